"""
Order Service for outbound fulfillment.

Handles order creation, edits, holds and cancellation.
"""

import logging
from typing import Any, Dict, List

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from ..exceptions import InvalidTransitionException, ValidationException
from ..models import (
    AllocationStatus, LineStatus, Order, OrderEvent, OrderLine, OrderStatus,
    PackLineStatus, PackTaskStatus, PickLineStatus, PickTaskStatus
)
from ..serializers import OrderCreateSerializer, OrderUpdateSerializer
from .base import ZERO, FulfillmentService
from .workflow import validate_packing_workflow, validate_picking_workflow

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = [OrderStatus.NEW, OrderStatus.ON_HOLD]
HOLDABLE_STATUSES = [
    OrderStatus.NEW, OrderStatus.ALLOCATED,
    OrderStatus.PARTIALLY_ALLOCATED, OrderStatus.ALLOCATION_FAILED,
]
OPEN_PICK_STATUSES = [PickTaskStatus.PENDING, PickTaskStatus.ASSIGNED, PickTaskStatus.IN_PROGRESS]
OPEN_PACK_STATUSES = [PackTaskStatus.PENDING, PackTaskStatus.IN_PROGRESS]


def _number_lines(lines_data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Give unnumbered lines the next free line numbers, in input order."""
    used = {line['line_number'] for line in lines_data if line.get('line_number')}
    next_number = 1
    numbered = []
    for line in lines_data:
        if not line.get('line_number'):
            while next_number in used:
                next_number += 1
            line = {**line, 'line_number': next_number}
            used.add(next_number)
        numbered.append(line)
    return numbered


class OrderService(FulfillmentService):
    """Service class for order operations."""

    def create_order(self, tenant_id, order_data: Dict[str, Any], performed_by=None) -> Order:
        """
        Create a new order with its lines.

        Args:
            tenant_id: Tenant owning the order
            order_data: Order header fields plus a non-empty ``lines`` list
            performed_by: Opaque identifier of the acting user

        Returns:
            Created Order instance, status NEW

        Raises:
            ValidationException: If order data is invalid
        """
        data = dict(self._validate(OrderCreateSerializer, order_data or {}, "Invalid order data"))
        lines_data = _number_lines(data.pop('lines'))

        with transaction.atomic():
            order = Order.objects.create(
                tenant_id=tenant_id,
                created_by=str(performed_by) if performed_by else '',
                **data,
            )

            OrderLine.objects.bulk_create([
                OrderLine(tenant_id=tenant_id, order=order, **line)
                for line in lines_data
            ])
            order.recalculate_totals()

            OrderEvent.log(
                order,
                'order.created',
                f"Order created with {len(lines_data)} lines",
                performed_by=performed_by,
                metadata={'total_lines': len(lines_data), 'total_units': order.total_units_ordered},
            )
            self._publish('order.created', {
                'order_id': str(order.id),
                'order_number': order.order_number,
                'tenant_id': str(order.tenant_id),
                'warehouse_id': str(order.warehouse_id),
            })

        logger.info(f"Order {order.order_number} created with {len(lines_data)} lines")
        return order

    def update_order(self, order_id, tenant_id, update_data: Dict[str, Any], performed_by=None) -> Order:
        """
        Edit header fields of an order that has not been released to the floor.

        Raises:
            ValidationException: If the update data is invalid or the order
                is no longer NEW or ON_HOLD
        """
        data = self._validate(OrderUpdateSerializer, update_data or {}, "Invalid order update")

        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if order.status not in EDITABLE_STATUSES:
                raise ValidationException(
                    f"Order {order.order_number} cannot be edited in status {order.status}",
                    {'status': [order.status]}
                )

            old_values = {}
            for field, value in data.items():
                old_values[field] = getattr(order, field)
                setattr(order, field, value)
            order.save(update_fields=[*data.keys(), 'updated_at'])

            OrderEvent.log(
                order,
                'order.updated',
                "Order information updated",
                performed_by=performed_by,
                metadata={'old_values': old_values, 'new_values': dict(data)},
            )

        logger.info(f"Order {order.order_number} updated: {', '.join(data.keys())}")
        return order

    def hold_order(self, order_id, tenant_id, reason="", performed_by=None) -> Order:
        """
        Put an order on hold, remembering where it was.

        Only orders that have not started picking can be held.
        """
        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if order.status not in HOLDABLE_STATUSES:
                raise InvalidTransitionException(order.status, OrderStatus.ON_HOLD)

            order.status_before_hold = order.status
            self._change_order_status(
                order,
                OrderStatus.ON_HOLD,
                'order.held',
                f"Order placed on hold: {reason}".strip(' :'),
                performed_by=performed_by,
                metadata={'reason': reason},
                extra_fields=['status_before_hold'],
            )
            self._publish('order.held', {
                'order_id': str(order.id),
                'order_number': order.order_number,
                'tenant_id': str(order.tenant_id),
            })

        return order

    def release_hold(self, order_id, tenant_id, performed_by=None) -> Order:
        """Return a held order to the status it had before the hold."""
        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if order.status != OrderStatus.ON_HOLD:
                raise InvalidTransitionException(order.status, order.status_before_hold or OrderStatus.NEW)

            restored = order.status_before_hold or OrderStatus.NEW
            order.status_before_hold = ''
            self._change_order_status(
                order,
                restored,
                'order.released',
                "Order hold released",
                performed_by=performed_by,
                extra_fields=['status_before_hold'],
            )
            self._publish('order.released', {
                'order_id': str(order.id),
                'order_number': order.order_number,
                'tenant_id': str(order.tenant_id),
                'status': restored,
            })

        return order

    def cancel_order(self, order_id, tenant_id, reason="", performed_by=None) -> Order:
        """
        Cancel an order that has not shipped yet.

        Reserved stock goes back to the ledger; stock already picked stays
        depleted. Open pick and pack work for the order is cancelled, and a
        batch pick task is only cancelled once none of its other orders has
        live lines on it.

        Args:
            order_id: Order UUID
            tenant_id: Tenant the order must belong to
            reason: Cancellation reason
            performed_by: Opaque identifier of the acting user

        Returns:
            Cancelled Order instance

        Raises:
            NotFoundException: If the order does not exist for the tenant
            InvalidTransitionException: If the order is shipped, delivered or cancelled
        """
        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if not order.can_be_cancelled:
                raise InvalidTransitionException(order.status, OrderStatus.CANCELLED)

            details = list(
                order.allocation_details.select_for_update()
                .filter(status=AllocationStatus.ALLOCATED)
                .order_by('inventory_id', 'id')
            )
            released_quantity = self._release_details(order, details, 'Cancellation')

            cancelled_tasks = self._cancel_open_tasks(order)

            order.lines.update(
                line_status=LineStatus.CANCELLED,
                quantity_allocated=F('quantity_picked'),
                quantity_backordered=ZERO,
            )
            order.recalculate_totals()

            order.cancelled_at = timezone.now()
            order.cancelled_by = str(performed_by) if performed_by else ''
            order.cancellation_reason = reason or ''
            order.status_before_hold = ''
            self._change_order_status(
                order,
                OrderStatus.CANCELLED,
                'order.cancelled',
                f"Order cancelled: {reason}".strip(' :'),
                performed_by=performed_by,
                metadata={
                    'reason': reason,
                    'released_count': len(details),
                    'released_quantity': released_quantity,
                    'cancelled_tasks': cancelled_tasks,
                },
                extra_fields=['cancelled_at', 'cancelled_by', 'cancellation_reason', 'status_before_hold'],
            )
            self._publish('order.cancelled', {
                'order_id': str(order.id),
                'order_number': order.order_number,
                'tenant_id': str(order.tenant_id),
                'reason': reason,
            })

        logger.info(
            f"Order {order.order_number} cancelled, {len(details)} allocations released "
            f"({released_quantity} units)"
        )
        return order

    @staticmethod
    def _cancel_open_tasks(order: Order) -> List[str]:
        """Cancel the order's open pick and pack lines and any task left without work."""
        cancelled = []

        order.pick_lines.filter(
            line_status=PickLineStatus.PENDING
        ).update(line_status=PickLineStatus.CANCELLED)

        for task in order.pick_tasks.select_for_update().filter(status__in=OPEN_PICK_STATUSES).order_by('id'):
            others_live = task.lines.exclude(order=order).exclude(line_status=PickLineStatus.CANCELLED).exists()
            if others_live:
                continue
            validate_picking_workflow(task, PickTaskStatus.CANCELLED)
            task.status = PickTaskStatus.CANCELLED
            task.save(update_fields=['status', 'updated_at'])
            cancelled.append(task.task_number)

        for task in order.pack_tasks.select_for_update().filter(status__in=OPEN_PACK_STATUSES).order_by('id'):
            task.lines.filter(line_status=PackLineStatus.PENDING).update(line_status=PackLineStatus.CANCELLED)
            validate_packing_workflow(task, PackTaskStatus.CANCELLED)
            task.status = PackTaskStatus.CANCELLED
            task.save(update_fields=['status', 'updated_at'])
            cancelled.append(task.task_number)

        return cancelled

    def get_order_summary(self, order_id, tenant_id) -> Dict[str, Any]:
        """
        Get comprehensive order summary.

        Returns:
            Order header, lines with their quantity chain, and task counts
        """
        order = self._get(Order, order_id, tenant_id)

        lines = [
            {
                'id': line.id,
                'line_number': line.line_number,
                'product_sku': line.product_sku,
                'product_name': line.product_name,
                'quantity_ordered': line.quantity_ordered,
                'quantity_allocated': line.quantity_allocated,
                'quantity_picked': line.quantity_picked,
                'quantity_packed': line.quantity_packed,
                'quantity_shipped': line.quantity_shipped,
                'quantity_backordered': line.quantity_backordered,
                'line_status': line.line_status,
            }
            for line in order.lines.order_by('line_number')
        ]

        return {
            'order': {
                'id': order.id,
                'order_number': order.order_number,
                'status': order.status,
                'priority': order.priority,
                'allocation_strategy': order.allocation_strategy,
                'customer_name': order.customer_name,
                'warehouse_id': order.warehouse_id,
                'total_lines': order.total_lines,
                'total_units_ordered': order.total_units_ordered,
                'total_units_allocated': order.total_units_allocated,
                'total_units_picked': order.total_units_picked,
                'total_units_packed': order.total_units_packed,
                'total_units_shipped': order.total_units_shipped,
                'tracking_number': order.tracking_number,
                'created_at': order.created_at,
            },
            'lines': lines,
            'pick_tasks_count': order.pick_tasks.count(),
            'pack_tasks_count': order.pack_tasks.count(),
            'shipments_count': order.shipments.count(),
        }

    def list_order_events(self, order_id, tenant_id, event_type=None):
        """Events of an order, oldest first."""
        order = self._get(Order, order_id, tenant_id)
        events = order.events.all()
        if event_type:
            events = events.filter(event_type=event_type)
        return events.order_by('created_at')

    @staticmethod
    def list_orders(tenant_id, status=None, warehouse_id=None, priority=None, search=None):
        """Tenant orders, newest first, optionally filtered."""
        queryset = Order.objects.filter(tenant_id=tenant_id)
        if status:
            queryset = queryset.filter(status=status)
        if warehouse_id:
            queryset = queryset.filter(warehouse_id=warehouse_id)
        if priority:
            queryset = queryset.filter(priority=priority)
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) | Q(customer_name__icontains=search)
                | Q(customer_reference__icontains=search)
            )
        return queryset.order_by('-created_at')
