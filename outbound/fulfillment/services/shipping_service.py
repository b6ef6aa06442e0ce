"""
Shipping Service for outbound fulfillment.

Creates shipments from packed orders and tracks their delivery.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..exceptions import InvalidTransitionException, NotFoundException, ValidationException
from ..models import (
    AllocationStatus, Carton, DeliveryStatus, LineStatus, Order, OrderEvent,
    OrderStatus, PackTaskStatus, Shipment, ShipmentLine
)
from ..serializers import DeliveryStatusUpdateSerializer, ShipmentCreateSerializer
from .base import FulfillmentService
from .workflow import validate_shipment_workflow

logger = logging.getLogger(__name__)

ZERO = Decimal('0.0000')


def tracking_url_for(carrier: str, tracking_number: str) -> str:
    """Carrier tracking page for a number, ``#<number>`` for unknown carriers."""
    templates = settings.FULFILLMENT.get('TRACKING_URL_TEMPLATES', {})
    template = templates.get((carrier or '').upper())
    if not template:
        return f"#{tracking_number}"
    return template.format(tracking_number=tracking_number)


class ShippingService(FulfillmentService):
    """Service class for shipment operations."""

    def create_shipment(self, order_id, tenant_id, shipment_data, performed_by=None) -> Shipment:
        """
        Ship a packed order.

        Args:
            order_id: Order UUID
            tenant_id: Tenant the order must belong to
            shipment_data: Carrier, service level, tracking number, shipment
                type, estimated delivery date, cost and optional carton ids
            performed_by: Opaque identifier of the acting user

        Returns:
            Created Shipment instance

        Raises:
            ValidationException: If the shipment data is invalid
            InvalidTransitionException: If the order is not PACKED
        """
        data = self._validate(ShipmentCreateSerializer, shipment_data or {}, "Invalid shipment data")

        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if order.status != OrderStatus.PACKED:
                raise InvalidTransitionException(order.status, OrderStatus.SHIPPED)

            pack_task = order.pack_tasks.filter(status=PackTaskStatus.COMPLETED).order_by('-completion_time').first()
            tracking_number = data.get('tracking_number') or (pack_task.tracking_number if pack_task else '')
            if not tracking_number:
                raise ValidationException(
                    "Tracking number is required when no label has been generated",
                    {'tracking_number': ['This field is required.']}
                )

            cartons = self._resolve_cartons(order, pack_task, data.get('carton_ids'))

            shipment_id = uuid.uuid4()
            shipment = Shipment.objects.create(
                id=shipment_id,
                tenant_id=order.tenant_id,
                warehouse_id=order.warehouse_id,
                order=order,
                shipment_number=self._document_number('SHP', shipment_id),
                carrier=data['carrier'],
                service_level=data.get('service_level', ''),
                tracking_number=tracking_number,
                tracking_url=tracking_url_for(data['carrier'], tracking_number),
                shipment_type=data['shipment_type'],
                shipping_cost=data.get('shipping_cost'),
                estimated_delivery_date=data.get('estimated_delivery_date'),
                total_cartons=len(cartons),
                total_weight=sum((carton.weight for carton in cartons), ZERO),
                total_volume=sum((carton.volume for carton in cartons), ZERO),
                carton_ids=[str(carton.id) for carton in cartons],
                created_by=str(performed_by) if performed_by else '',
            )

            for line in order.lines.select_for_update().filter(quantity_packed__gt=0).order_by('line_number'):
                picked = list(
                    line.allocation_details.filter(status=AllocationStatus.PICKED).order_by('allocated_at', 'id')
                )
                first = picked[0] if picked else None
                ShipmentLine.objects.create(
                    shipment=shipment,
                    order_line=line,
                    product_id=line.product_id,
                    product_sku=line.product_sku,
                    quantity_shipped=line.quantity_packed,
                    batch_number=first.batch_number if first else '',
                    lot_number=first.lot_number if first else '',
                    expiry_date=first.expiry_date if first else None,
                    serial_numbers=[serial for detail in picked for serial in (detail.serial_numbers or [])],
                    lineage=[detail.lineage() for detail in picked],
                )
                line.quantity_shipped = line.quantity_packed
                line.line_status = LineStatus.SHIPPED
                line.save(update_fields=['quantity_shipped', 'line_status'])

            order.recalculate_totals()
            order.shipped_at = timezone.now()
            order.tracking_number = tracking_number
            order.carrier = data['carrier']
            order.service_level = data.get('service_level', '') or order.service_level
            order.shipping_cost = data.get('shipping_cost')

            self._change_order_status(
                order,
                OrderStatus.SHIPPED,
                'order.shipped',
                f"Order shipped via {data['carrier']}",
                performed_by=performed_by,
                metadata={'shipment_id': shipment.id, 'tracking_number': tracking_number},
                extra_fields=['shipped_at', 'tracking_number', 'carrier', 'service_level', 'shipping_cost'],
            )
            self._publish('order.shipped', {
                'shipment_id': str(shipment.id),
                'order_id': str(order.id),
                'order_number': order.order_number,
                'tenant_id': str(order.tenant_id),
                'tracking_number': tracking_number,
            })

        logger.info(f"Shipment {shipment.shipment_number} created for order {order.order_number}")
        return shipment

    @staticmethod
    def _resolve_cartons(order: Order, pack_task, carton_ids) -> List[Carton]:
        """Requested cartons of the order, or every carton of its completed pack task."""
        if carton_ids is None:
            return list(pack_task.cartons.all()) if pack_task else []

        cartons = list(Carton.objects.filter(id__in=carton_ids, pack_task__order=order))
        found = {carton.id for carton in cartons}
        missing = [str(carton_id) for carton_id in carton_ids if carton_id not in found]
        if missing:
            raise ValidationException(
                "Cartons do not belong to this order",
                {'carton_ids': missing}
            )
        return cartons

    def update_delivery_status(self, shipment_id, tenant_id, delivery_status, notes=None,
                               actual_delivery_date=None, signed_by=None,
                               proof_of_delivery_url=None) -> Shipment:
        """
        Apply a carrier delivery update.

        DELIVERED also delivers the order; FAILED and RETURNED only record an
        order event.

        Raises:
            InvalidTransitionException: If the delivery status cannot follow the current one
        """
        data = self._validate(
            DeliveryStatusUpdateSerializer,
            {
                'delivery_status': delivery_status,
                'notes': notes,
                'actual_delivery_date': actual_delivery_date,
                'signed_by': signed_by,
                'proof_of_delivery_url': proof_of_delivery_url,
            },
            "Invalid delivery update",
        )
        new_status = data['delivery_status']

        with transaction.atomic():
            shipment = self._get(Shipment, shipment_id, tenant_id, lock=True)
            validate_shipment_workflow(shipment, new_status)

            old_status = shipment.delivery_status
            shipment.delivery_status = new_status
            if data.get('notes'):
                shipment.delivery_notes = data['notes']
            if data.get('proof_of_delivery_url'):
                shipment.proof_of_delivery_url = data['proof_of_delivery_url']

            order = Order.objects.select_for_update().get(pk=shipment.order_id)

            if new_status == DeliveryStatus.DELIVERED and old_status != new_status:
                delivered_at = data.get('actual_delivery_date') or timezone.now()
                shipment.actual_delivery_date = delivered_at
                if data.get('signed_by'):
                    shipment.signed_by = data['signed_by']
                    shipment.signature_captured_at = timezone.now()

                order.delivered_at = delivered_at
                self._change_order_status(
                    order,
                    OrderStatus.DELIVERED,
                    'order.delivered',
                    f"Order delivered, signed by {shipment.signed_by or 'nobody'}",
                    metadata={'shipment_id': shipment.id, 'signed_by': shipment.signed_by},
                    extra_fields=['delivered_at'],
                )
            elif new_status in (DeliveryStatus.FAILED, DeliveryStatus.RETURNED) and old_status != new_status:
                OrderEvent.log(
                    order,
                    f"order.{new_status.lower()}",
                    f"Order {new_status.lower()}: {data.get('notes') or ''}".strip(),
                    metadata={'shipment_id': shipment.id, 'delivery_notes': data.get('notes') or ''},
                )
                logger.warning(f"Shipment {shipment.shipment_number} {new_status}: {data.get('notes') or ''}")

            shipment.save()

            self._publish('shipment.status_updated', {
                'shipment_id': str(shipment.id),
                'order_id': str(order.id),
                'tenant_id': str(shipment.tenant_id),
                'delivery_status': new_status,
            })

        logger.info(f"Shipment {shipment.shipment_number} moved from {old_status} to {new_status}")
        return shipment

    def get_shipment(self, shipment_id, tenant_id) -> Dict[str, Any]:
        shipment = self._get(Shipment, shipment_id, tenant_id)

        return {
            'id': shipment.id,
            'shipment_number': shipment.shipment_number,
            'order_id': shipment.order_id,
            'carrier': shipment.carrier,
            'service_level': shipment.service_level,
            'tracking_number': shipment.tracking_number,
            'tracking_url': shipment.tracking_url,
            'shipment_type': shipment.shipment_type,
            'delivery_status': shipment.delivery_status,
            'total_cartons': shipment.total_cartons,
            'total_weight': shipment.total_weight,
            'total_volume': shipment.total_volume,
            'shipping_cost': shipment.shipping_cost,
            'estimated_delivery_date': shipment.estimated_delivery_date,
            'actual_delivery_date': shipment.actual_delivery_date,
            'signed_by': shipment.signed_by,
            'lines': [
                {
                    'order_line_id': line.order_line_id,
                    'product_sku': line.product_sku,
                    'quantity_shipped': line.quantity_shipped,
                    'batch_number': line.batch_number,
                    'lot_number': line.lot_number,
                    'expiry_date': line.expiry_date,
                    'serial_numbers': line.serial_numbers,
                    'lineage': line.lineage,
                }
                for line in shipment.lines.select_related('order_line')
            ],
        }

    def track_shipment(self, tracking_number, tenant_id) -> Dict[str, Any]:
        """
        Tracking view of a shipment built from its order events.

        Raises:
            NotFoundException: If no shipment carries the tracking number
        """
        shipment = (
            Shipment.objects.filter(tenant_id=tenant_id, tracking_number=tracking_number)
            .order_by('-created_at')
            .first()
        )
        if shipment is None:
            raise NotFoundException("Shipment", tracking_number)

        events = [{'date': shipment.created_at, 'status': 'Shipment Created', 'location': 'Warehouse'}]
        for event in shipment.order.events.filter(
            event_type__in=['order.delivered', 'order.failed', 'order.returned']
        ).order_by('created_at'):
            events.append({'date': event.created_at, 'status': event.description, 'location': ''})

        return {
            'tracking_number': tracking_number,
            'carrier': shipment.carrier,
            'status': shipment.delivery_status,
            'estimated_delivery': shipment.estimated_delivery_date,
            'actual_delivery': shipment.actual_delivery_date,
            'tracking_url': shipment.tracking_url,
            'events': events,
        }

    def list_shipments(self, tenant_id, order_id=None, delivery_status=None, carrier=None,
                       date_from=None, date_to=None):
        """Tenant shipments, newest first, optionally filtered."""
        queryset = Shipment.objects.filter(tenant_id=tenant_id)
        if order_id:
            queryset = queryset.filter(order_id=order_id)
        if delivery_status:
            queryset = queryset.filter(delivery_status=delivery_status)
        if carrier:
            queryset = queryset.filter(carrier=carrier.upper())
        if date_from:
            queryset = queryset.filter(ship_date__gte=date_from)
        if date_to:
            queryset = queryset.filter(ship_date__lte=date_to)
        return queryset.order_by('-created_at')
