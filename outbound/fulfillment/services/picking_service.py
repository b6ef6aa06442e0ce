"""
Picking Service for outbound fulfillment.

Handles pick task generation, assignment, confirmation of picked quantities
and completion.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, Dict, List

from django.db import transaction
from django.utils import timezone

from ..exceptions import (
    InvalidTransitionException, NotFoundException, ValidationException
)
from ..models import (
    AllocationDetail, AllocationStatus, LineStatus, Order, OrderEvent, OrderLine,
    OrderPriority, OrderStatus, PickLineStatus, PickTask, PickTaskLine,
    PickTaskStatus, PickTaskType, ShortPickVariance
)
from ..serializers import PickItemSerializer, PickTaskGenerateSerializer
from .base import FulfillmentService
from .workflow import validate_picking_workflow

logger = logging.getLogger(__name__)

ZERO = Decimal('0.0000')

PRIORITY_RANK = {
    OrderPriority.LOW: 0,
    OrderPriority.NORMAL: 1,
    OrderPriority.HIGH: 2,
    OrderPriority.URGENT: 3,
}


def pick_path_sequence(details: List[AllocationDetail]) -> List[AllocationDetail]:
    """
    Order allocation details into a walking path.

    Sorts by location code, then SKU, then detail id so the result is stable.
    """
    return sorted(details, key=lambda d: (d.location_code, d.product_sku, str(d.id)))


class PickingService(FulfillmentService):
    """Service class for picking operations."""

    def __init__(self, path_strategy: Callable = pick_path_sequence, **kwargs):
        super().__init__(**kwargs)
        self.path_strategy = path_strategy

    def generate_pick_tasks(self, order_ids, tenant_id, task_type=PickTaskType.SINGLE,
                            performed_by=None) -> List[PickTask]:
        """
        Generate pick tasks for allocated orders.

        SINGLE creates one task per order, BATCH one task covering every order.

        Raises:
            ValidationException: If no orders are given or they span warehouses
            NotFoundException: If an order does not exist for the tenant
            InvalidTransitionException: If an order is not ALLOCATED
        """
        data = self._validate(
            PickTaskGenerateSerializer,
            {'order_ids': list(order_ids or []), 'task_type': task_type},
            "Invalid pick task request",
        )

        with transaction.atomic():
            orders = []
            # Lock in primary key order
            for order_id in sorted(data['order_ids'], key=str):
                order = self._get(Order, order_id, tenant_id, lock=True)
                if order.status != OrderStatus.ALLOCATED:
                    raise InvalidTransitionException(order.status, OrderStatus.PICKING)
                orders.append(order)

            if len({order.warehouse_id for order in orders}) > 1:
                raise ValidationException(
                    "Orders in one pick request must share a warehouse",
                    {'order_ids': [str(order.id) for order in orders]}
                )

            details_by_order = {}
            for order in orders:
                details = list(
                    order.allocation_details.select_for_update()
                    .filter(status=AllocationStatus.ALLOCATED)
                )
                if not details:
                    raise ValidationException(
                        f"Order {order.order_number} has no active allocations",
                        {'order_id': str(order.id)}
                    )
                details_by_order[order.id] = details

            if data['task_type'] == PickTaskType.BATCH:
                groups = [orders]
            else:
                groups = [[order] for order in orders]

            tasks = []
            for group in groups:
                task = self._create_task(group, details_by_order, data['task_type'], performed_by)
                tasks.append(task)

                for order in group:
                    self._change_order_status(
                        order,
                        OrderStatus.PICKING,
                        'pick.task_created',
                        f"Pick task {task.task_number} created",
                        performed_by=performed_by,
                        metadata={'pick_task_id': task.id, 'task_number': task.task_number},
                    )

                self._publish('pick.task_created', {
                    'pick_task_id': str(task.id),
                    'task_number': task.task_number,
                    'tenant_id': str(task.tenant_id),
                    'order_ids': [str(order.id) for order in group],
                    'total_lines': task.total_lines,
                })

        logger.info(f"Generated {len(tasks)} {data['task_type']} pick tasks for {len(orders)} orders")
        return tasks

    def _create_task(self, orders: List[Order], details_by_order, task_type, performed_by) -> PickTask:
        details = [detail for order in orders for detail in details_by_order[order.id]]
        priority = max((order.priority for order in orders), key=lambda p: PRIORITY_RANK.get(p, 0))

        task_id = uuid.uuid4()
        task = PickTask.objects.create(
            id=task_id,
            tenant_id=orders[0].tenant_id,
            warehouse_id=orders[0].warehouse_id,
            task_number=self._document_number('PICK', task_id),
            task_type=task_type,
            priority=priority,
            total_lines=len(details),
            total_units=sum((d.quantity_allocated for d in details), ZERO),
            created_by=str(performed_by) if performed_by else '',
        )
        task.orders.set(orders)

        PickTaskLine.objects.bulk_create([
            PickTaskLine(
                pick_task=task,
                allocation_detail=detail,
                order_id=detail.order_id,
                order_line_id=detail.order_line_id,
                product_id=detail.product_id,
                product_sku=detail.product_sku,
                location_code=detail.location_code,
                pick_sequence=sequence,
                quantity_to_pick=detail.quantity_allocated,
            )
            for sequence, detail in enumerate(self.path_strategy(details), start=1)
        ])
        return task

    def assign_pick_task(self, task_id, tenant_id, picker_user_id) -> PickTask:
        """
        Assign a picker to a pending pick task.

        Raises:
            InvalidTransitionException: If the task is not PENDING
        """
        with transaction.atomic():
            task = self._get(PickTask, task_id, tenant_id, lock=True)

            if task.status != PickTaskStatus.PENDING:
                raise InvalidTransitionException(task.status, PickTaskStatus.ASSIGNED, "PickTask")

            task.status = PickTaskStatus.ASSIGNED
            task.picker_user_id = str(picker_user_id)
            task.assigned_at = timezone.now()
            task.save(update_fields=['status', 'picker_user_id', 'assigned_at', 'updated_at'])

        logger.info(f"Picker {picker_user_id} assigned to task {task.task_number}")
        return task

    def start_pick_task(self, task_id, tenant_id, picker_user_id) -> PickTask:
        """Move a PENDING or ASSIGNED task to IN_PROGRESS."""
        with transaction.atomic():
            task = self._get(PickTask, task_id, tenant_id, lock=True)
            if task.status not in (PickTaskStatus.PENDING, PickTaskStatus.ASSIGNED):
                raise InvalidTransitionException(task.status, PickTaskStatus.IN_PROGRESS, "PickTask")
            self._start(task, picker_user_id)

        return task

    @staticmethod
    def _start(task: PickTask, picker_user_id):
        validate_picking_workflow(task, PickTaskStatus.IN_PROGRESS)
        task.status = PickTaskStatus.IN_PROGRESS
        task.start_time = timezone.now()
        if picker_user_id:
            task.picker_user_id = str(picker_user_id)
        task.save(update_fields=['status', 'start_time', 'picker_user_id', 'updated_at'])
        logger.info(f"Pick task {task.task_number} started by {task.picker_user_id or 'unknown picker'}")

    def pick_item(self, task_id, tenant_id, line_id, quantity_picked, variance_reason=None,
                  picker_notes=None, performed_by=None) -> Dict[str, Any]:
        """
        Confirm the quantity picked for one task line.

        A pending or assigned task is started automatically. Picking less than
        requested is a short pick: the missing units go back to available
        stock, the order line is backordered by the shortfall and a
        ShortPickVariance is opened.

        Raises:
            ValidationException: On negative quantity, over-pick or a line
                that was already confirmed
            InvalidTransitionException: If the task is completed or cancelled
        """
        data = self._validate(
            PickItemSerializer,
            {
                'line_id': line_id,
                'quantity_picked': quantity_picked,
                'variance_reason': variance_reason,
                'picker_notes': picker_notes,
            },
            "Invalid pick confirmation",
        )
        quantity = data['quantity_picked']

        with transaction.atomic():
            task = self._get(PickTask, task_id, tenant_id, lock=True)

            if task.status in (PickTaskStatus.PENDING, PickTaskStatus.ASSIGNED):
                self._start(task, task.picker_user_id or performed_by)
            elif task.status != PickTaskStatus.IN_PROGRESS:
                raise InvalidTransitionException(task.status, PickTaskStatus.IN_PROGRESS, "PickTask")

            try:
                line = task.lines.select_for_update().get(pk=data['line_id'])
            except PickTaskLine.DoesNotExist:
                raise NotFoundException("PickTaskLine", data['line_id'])

            if line.line_status != PickLineStatus.PENDING:
                raise ValidationException(
                    f"Pick line {line.id} has already been confirmed",
                    {'line_status': line.line_status}
                )
            if quantity > line.quantity_to_pick:
                raise ValidationException(
                    "Picked quantity exceeds quantity to pick",
                    {'quantity_picked': str(quantity), 'quantity_to_pick': str(line.quantity_to_pick)}
                )

            detail = AllocationDetail.objects.select_for_update().get(pk=line.allocation_detail_id)
            order_line = OrderLine.objects.select_for_update().get(pk=line.order_line_id)
            shortfall = line.quantity_to_pick - quantity
            picked_serials = list(detail.serial_numbers or [])[:int(quantity)]
            now = timezone.now()

            if quantity > 0:
                self.ledger.commit_depletion(
                    detail.inventory_id, quantity,
                    reference_type='PICK_TASK', reference_id=task.id,
                    notes=f"Picked for task {task.task_number}",
                    serial_numbers=picked_serials,
                )
            if shortfall > 0:
                self.ledger.release(
                    detail.inventory_id, shortfall,
                    reference_type='SHORT_PICK', reference_id=line.id,
                    notes=f"Short pick on task {task.task_number}",
                )

            line.quantity_picked = quantity
            line.variance_quantity = quantity - line.quantity_to_pick
            line.variance_reason = data.get('variance_reason') or ''
            line.picker_notes = data.get('picker_notes') or ''
            line.line_status = PickLineStatus.SHORT if shortfall > 0 else PickLineStatus.PICKED
            line.picked_at = now
            line.save()

            detail.quantity_picked = quantity
            detail.serial_numbers = picked_serials
            detail.status = AllocationStatus.PICKED if quantity > 0 else AllocationStatus.CANCELLED
            detail.picked_at = now if quantity > 0 else None
            detail.cancelled_at = None if quantity > 0 else now
            detail.save(update_fields=[
                'quantity_picked', 'serial_numbers', 'status', 'picked_at', 'cancelled_at'
            ])

            order_line.quantity_picked += quantity
            if shortfall > 0:
                # The released units are no longer allocated to this line
                order_line.quantity_allocated -= shortfall
                order_line.quantity_backordered += shortfall
                order_line.line_status = (
                    LineStatus.PARTIALLY_ALLOCATED if order_line.quantity_allocated > 0
                    else LineStatus.BACKORDERED
                )
            order_line.save(update_fields=[
                'quantity_picked', 'quantity_allocated', 'quantity_backordered', 'line_status'
            ])

            task.units_picked += quantity
            task.save(update_fields=['units_picked', 'updated_at'])

            order = Order.objects.select_for_update().get(pk=order_line.order_id)
            order.recalculate_totals()

            if shortfall > 0:
                variance = ShortPickVariance.objects.create(
                    tenant_id=task.tenant_id,
                    pick_task_line=line,
                    order_line=order_line,
                    inventory_id=detail.inventory_id,
                    quantity_requested=line.quantity_to_pick,
                    quantity_picked=quantity,
                    quantity_short=shortfall,
                    reason=line.variance_reason,
                )
                OrderEvent.log(
                    order,
                    'pick.short',
                    f"Short pick of {shortfall} {line.product_sku} at {line.location_code}",
                    performed_by=performed_by,
                    metadata={
                        'pick_task_id': task.id,
                        'pick_task_line_id': line.id,
                        'short_pick_variance_id': variance.id,
                        'quantity_short': shortfall,
                    },
                )
                self._publish('pick.short', {
                    'pick_task_id': str(task.id),
                    'order_id': str(order.id),
                    'order_line_id': str(order_line.id),
                    'product_sku': line.product_sku,
                    'quantity_short': shortfall,
                })
                logger.warning(
                    f"Short pick on task {task.task_number}: {line.product_sku} at "
                    f"{line.location_code} picked {quantity} of {line.quantity_to_pick}"
                )

        logger.info(f"Picked {quantity} {line.product_sku} on task {task.task_number}")
        return {
            'pick_task_id': task.id,
            'line_id': line.id,
            'line_status': line.line_status,
            'quantity_picked': line.quantity_picked,
            'variance_quantity': line.variance_quantity,
            'units_picked': task.units_picked,
        }

    def complete_pick_task(self, task_id, tenant_id, performed_by=None) -> PickTask:
        """
        Complete an in-progress task once every line is confirmed.

        Every order on the task moves to PICKED, cancelled orders excepted.
        """
        with transaction.atomic():
            task = self._get(PickTask, task_id, tenant_id, lock=True)

            if task.status != PickTaskStatus.IN_PROGRESS:
                raise InvalidTransitionException(task.status, PickTaskStatus.COMPLETED, "PickTask")

            pending = task.lines.filter(line_status=PickLineStatus.PENDING).count()
            if pending:
                raise ValidationException(
                    "Not all lines have been picked",
                    {'pending_lines': pending}
                )

            validate_picking_workflow(task, PickTaskStatus.COMPLETED)
            task.status = PickTaskStatus.COMPLETED
            task.completion_time = timezone.now()
            if task.start_time:
                task.actual_duration_minutes = int(
                    (task.completion_time - task.start_time).total_seconds() // 60
                )
            task.save(update_fields=['status', 'completion_time', 'actual_duration_minutes', 'updated_at'])

            orders = list(
                task.orders.select_for_update().exclude(status=OrderStatus.CANCELLED).order_by('id')
            )
            for order in orders:
                self._change_order_status(
                    order,
                    OrderStatus.PICKED,
                    'pick.completed',
                    f"Pick task {task.task_number} completed",
                    performed_by=performed_by,
                    metadata={'pick_task_id': task.id, 'duration': task.actual_duration_minutes},
                )

            self._publish('pick.completed', {
                'pick_task_id': str(task.id),
                'task_number': task.task_number,
                'tenant_id': str(task.tenant_id),
                'order_ids': [str(order.id) for order in orders],
            })

        logger.info(f"Pick task {task.task_number} completed in {task.actual_duration_minutes} minutes")
        return task

    def get_pick_task(self, task_id, tenant_id) -> Dict[str, Any]:
        """Pick task summary with lines in walking order."""
        task = self._get(PickTask, task_id, tenant_id)

        return {
            'id': task.id,
            'task_number': task.task_number,
            'task_type': task.task_type,
            'status': task.status,
            'priority': task.priority,
            'picker_user_id': task.picker_user_id,
            'order_ids': list(task.orders.values_list('id', flat=True)),
            'total_lines': task.total_lines,
            'total_units': task.total_units,
            'units_picked': task.units_picked,
            'progress_percentage': task.progress_percentage,
            'start_time': task.start_time,
            'completion_time': task.completion_time,
            'actual_duration_minutes': task.actual_duration_minutes,
            'lines': [
                {
                    'id': line.id,
                    'pick_sequence': line.pick_sequence,
                    'location_code': line.location_code,
                    'product_sku': line.product_sku,
                    'order_id': line.order_id,
                    'quantity_to_pick': line.quantity_to_pick,
                    'quantity_picked': line.quantity_picked,
                    'variance_quantity': line.variance_quantity,
                    'line_status': line.line_status,
                }
                for line in task.lines.order_by('pick_sequence')
            ],
        }
