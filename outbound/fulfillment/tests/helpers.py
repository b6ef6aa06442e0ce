"""
Shared fixtures for the fulfillment tests.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from inventory.models import Inventory

from ..adapters import InMemoryEventPublisher, MockCarrierAdapter, MockCatalogAdapter
from ..services import (
    AllocationService, OrderService, PackingService, PickingService, ShippingService
)


class FulfillmentFixturesMixin:
    """Builds lots, orders and services wired to in-memory adapters."""

    def setUp(self):
        super().setUp()
        self.tenant_id = uuid.uuid4()
        self.warehouse_id = uuid.uuid4()
        self.product_id = uuid.uuid4()
        self.publisher = InMemoryEventPublisher()
        self.catalog = MockCatalogAdapter()
        self.carrier = MockCarrierAdapter()

        adapters = {
            'event_publisher': self.publisher,
            'carrier_adapter': self.carrier,
            'catalog_adapter': self.catalog,
        }
        self.order_service = OrderService(**adapters)
        self.allocation_service = AllocationService(**adapters)
        self.picking_service = PickingService(**adapters)
        self.packing_service = PackingService(**adapters)
        self.shipping_service = ShippingService(**adapters)

    def make_lot(self, quantity, product_id=None, expiry_days=None, received_days_ago=0,
                 location_code='A-01-01', batch_number='', **extra):
        quantity = Decimal(str(quantity))
        return Inventory.objects.create(
            tenant_id=self.tenant_id,
            warehouse_id=self.warehouse_id,
            product_id=product_id or self.product_id,
            product_sku=extra.pop('product_sku', 'SKU-001'),
            location_code=location_code,
            batch_number=batch_number,
            expiry_date=(
                timezone.localdate() + timedelta(days=expiry_days) if expiry_days is not None else None
            ),
            received_date=timezone.now() - timedelta(days=received_days_ago),
            quantity_on_hand=quantity,
            quantity_available=quantity,
            quantity_allocated=Decimal('0.0000'),
            **extra,
        )

    def make_order(self, *quantities, product_id=None, strategy='FIFO', **order_fields):
        """Create a NEW order with one line per quantity, all for the same product."""
        lines = [
            {
                'product_id': str(product_id or self.product_id),
                'product_sku': 'SKU-001',
                'product_name': 'Widget',
                'quantity_ordered': str(quantity),
            }
            for quantity in (quantities or (10,))
        ]
        data = {
            'warehouse_id': str(self.warehouse_id),
            'customer_name': 'Acme Retail',
            'allocation_strategy': strategy,
            'lines': lines,
            **order_fields,
        }
        return self.order_service.create_order(self.tenant_id, data, performed_by='clerk-1')

    def allocated_order(self, *quantities, **kwargs):
        order = self.make_order(*quantities, **kwargs)
        self.allocation_service.allocate_order(order.id, self.tenant_id)
        order.refresh_from_db()
        return order

    def picked_order(self, *quantities, **kwargs):
        """Allocate and fully pick an order; returns (order, pick task)."""
        order = self.allocated_order(*quantities, **kwargs)
        task = self.picking_service.generate_pick_tasks([order.id], self.tenant_id)[0]
        for line in task.lines.order_by('pick_sequence'):
            self.picking_service.pick_item(task.id, self.tenant_id, line.id, line.quantity_to_pick)
        self.picking_service.complete_pick_task(task.id, self.tenant_id)
        order.refresh_from_db()
        return order, task

    def packed_order(self, *quantities, **kwargs):
        """Pick, pack into one carton and label an order; returns (order, pack task)."""
        order, _ = self.picked_order(*quantities, **kwargs)
        task = self.packing_service.generate_pack_task(order.id, self.tenant_id)
        for line in task.lines.filter(line_status='PENDING'):
            self.packing_service.pack_item(task.id, self.tenant_id, line.id, line.quantity_to_pack, carton_number=1)
        self.packing_service.add_carton(task.id, self.tenant_id, {
            'carton_number': 1,
            'weight': '2.5',
            'length': '30', 'width': '20', 'height': '10',
            'items': [
                {'order_line_id': str(line.id), 'quantity': str(line.quantity_picked)}
                for line in order.lines.filter(quantity_picked__gt=0)
            ],
        })
        self.packing_service.generate_shipping_label(task.id, self.tenant_id)
        self.packing_service.complete_pack_task(task.id, self.tenant_id)
        order.refresh_from_db()
        task.refresh_from_db()
        return order, task
