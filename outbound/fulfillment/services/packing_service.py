"""
Packing Service for outbound fulfillment.

Handles pack task creation, carton management, label generation and
completion.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..exceptions import (
    DependencyFailureException, InvalidTransitionException, NotFoundException,
    ValidationException
)
from ..models import (
    Carton, LineStatus, Order, OrderLine, OrderStatus, PackLineStatus, PackTask,
    PackTaskLine, PackTaskStatus
)
from ..serializers import CartonSerializer, PackItemSerializer
from .base import FulfillmentService
from .workflow import validate_packing_workflow

logger = logging.getLogger(__name__)

ZERO = Decimal('0.0000')

OPEN_TASK_STATUSES = (PackTaskStatus.PENDING, PackTaskStatus.IN_PROGRESS)


class PackingService(FulfillmentService):
    """Service class for packing operations."""

    def generate_pack_task(self, order_id, tenant_id, performed_by=None) -> PackTask:
        """
        Create the pack task for a picked order.

        Lines with nothing picked are created already PACKED.

        Raises:
            InvalidTransitionException: If the order is not PICKED
        """
        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if order.status != OrderStatus.PICKED:
                raise InvalidTransitionException(order.status, OrderStatus.PACKING)

            lines = list(order.lines.exclude(line_status=LineStatus.CANCELLED).order_by('line_number'))

            task_id = uuid.uuid4()
            task = PackTask.objects.create(
                id=task_id,
                tenant_id=order.tenant_id,
                order=order,
                task_number=self._document_number('PACK', task_id),
                carrier=order.carrier or settings.FULFILLMENT.get('DEFAULT_CARRIER', ''),
                service_level=order.service_level,
                total_items_to_pack=sum((line.quantity_picked for line in lines), ZERO),
                created_by=str(performed_by) if performed_by else '',
            )
            PackTaskLine.objects.bulk_create([
                PackTaskLine(
                    pack_task=task,
                    order_line=line,
                    product_sku=line.product_sku,
                    quantity_to_pack=line.quantity_picked,
                    line_status=PackLineStatus.PENDING if line.quantity_picked > 0 else PackLineStatus.PACKED,
                )
                for line in lines
            ])

            self._change_order_status(
                order,
                OrderStatus.PACKING,
                'pack.task_created',
                f"Pack task {task.task_number} created",
                performed_by=performed_by,
                metadata={'pack_task_id': task.id, 'task_number': task.task_number},
            )
            self._publish('pack.task_created', {
                'pack_task_id': str(task.id),
                'task_number': task.task_number,
                'order_id': str(order.id),
                'tenant_id': str(order.tenant_id),
            })

        logger.info(f"Pack task {task.task_number} created for order {order.order_number}")
        return task

    def start_pack_task(self, task_id, tenant_id, packer_user_id) -> PackTask:
        """Move a PENDING pack task to IN_PROGRESS."""
        with transaction.atomic():
            task = self._get(PackTask, task_id, tenant_id, lock=True)
            if task.status != PackTaskStatus.PENDING:
                raise InvalidTransitionException(task.status, PackTaskStatus.IN_PROGRESS, "PackTask")
            self._start(task, packer_user_id)

        return task

    @staticmethod
    def _start(task: PackTask, packer_user_id):
        validate_packing_workflow(task, PackTaskStatus.IN_PROGRESS)
        task.status = PackTaskStatus.IN_PROGRESS
        task.start_time = timezone.now()
        if packer_user_id:
            task.packer_user_id = str(packer_user_id)
        task.save(update_fields=['status', 'start_time', 'packer_user_id', 'updated_at'])
        logger.info(f"Pack task {task.task_number} started")

    def pack_item(self, task_id, tenant_id, line_id, quantity_packed, carton_number=None,
                  variance_reason=None, performed_by=None) -> Dict[str, Any]:
        """
        Confirm the quantity packed for one pack line.

        Packing less than was picked leaves the line in VARIANCE.

        Raises:
            ValidationException: On negative quantity, over-pack or a line
                that was already confirmed
        """
        data = self._validate(
            PackItemSerializer,
            {
                'line_id': line_id,
                'quantity_packed': quantity_packed,
                'carton_number': carton_number,
                'variance_reason': variance_reason,
            },
            "Invalid pack confirmation",
        )
        quantity = data['quantity_packed']

        with transaction.atomic():
            task = self._get(PackTask, task_id, tenant_id, lock=True)

            if task.status == PackTaskStatus.PENDING:
                self._start(task, task.packer_user_id or performed_by)
            elif task.status != PackTaskStatus.IN_PROGRESS:
                raise InvalidTransitionException(task.status, PackTaskStatus.IN_PROGRESS, "PackTask")

            try:
                line = task.lines.select_for_update().get(pk=data['line_id'])
            except PackTaskLine.DoesNotExist:
                raise NotFoundException("PackTaskLine", data['line_id'])

            if line.line_status != PackLineStatus.PENDING:
                raise ValidationException(
                    f"Pack line {line.id} has already been confirmed",
                    {'line_status': line.line_status}
                )
            if quantity > line.quantity_to_pack:
                raise ValidationException(
                    "Packed quantity exceeds quantity to pack",
                    {'quantity_packed': str(quantity), 'quantity_to_pack': str(line.quantity_to_pack)}
                )

            line.quantity_packed = quantity
            line.variance_quantity = quantity - line.quantity_to_pack
            line.variance_reason = data.get('variance_reason') or ''
            line.carton_number = data.get('carton_number')
            line.line_status = PackLineStatus.PACKED if line.variance_quantity == 0 else PackLineStatus.VARIANCE
            line.packed_at = timezone.now()
            line.save()

            order_line = OrderLine.objects.select_for_update().get(pk=line.order_line_id)
            order_line.quantity_packed += quantity
            order_line.save(update_fields=['quantity_packed'])

            task.items_packed += quantity
            task.save(update_fields=['items_packed', 'updated_at'])

            Order.objects.select_for_update().get(pk=task.order_id).recalculate_totals()

        if line.line_status == PackLineStatus.VARIANCE:
            logger.warning(
                f"Pack variance on task {task.task_number}: {line.product_sku} packed "
                f"{quantity} of {line.quantity_to_pack}"
            )
        else:
            logger.info(f"Packed {quantity} {line.product_sku} on task {task.task_number}")

        return {
            'pack_task_id': task.id,
            'line_id': line.id,
            'line_status': line.line_status,
            'quantity_packed': line.quantity_packed,
            'variance_quantity': line.variance_quantity,
            'items_packed': task.items_packed,
        }

    def add_carton(self, task_id, tenant_id, carton_data) -> Carton:
        """
        Record a carton for an open pack task.

        Raises:
            ValidationException: If the payload is invalid, an item belongs to
                another order or the carton number is already used
        """
        with transaction.atomic():
            task = self._get(PackTask, task_id, tenant_id, lock=True)

            if task.status not in OPEN_TASK_STATUSES:
                raise InvalidTransitionException(task.status, PackTaskStatus.IN_PROGRESS, "PackTask")

            order_line_ids = list(task.order.lines.values_list('id', flat=True))
            data = self._validate(
                CartonSerializer,
                carton_data,
                "Invalid carton",
                context={'order_line_ids': order_line_ids},
            )

            if task.cartons.filter(carton_number=data['carton_number']).exists():
                raise ValidationException(
                    f"Carton {data['carton_number']} already exists on task {task.task_number}",
                    {'carton_number': data['carton_number']}
                )

            carton = Carton.objects.create(
                pack_task=task,
                carton_number=data['carton_number'],
                weight=data['weight'],
                length=data.get('length'),
                width=data.get('width'),
                height=data.get('height'),
                items=[
                    {'order_line_id': str(item['order_line_id']), 'quantity': str(item['quantity'])}
                    for item in data['items']
                ],
            )
            task.cartons_used = task.cartons.count()
            task.save(update_fields=['cartons_used', 'updated_at'])

        logger.info(f"Carton {carton.carton_number} added to pack task {task.task_number}")
        return carton

    def generate_shipping_label(self, task_id, tenant_id) -> Dict[str, str]:
        """
        Ask the carrier for a label and record the tracking number.

        The carrier is called outside any transaction. A repeated request
        returns the label already on file.

        Raises:
            DependencyFailureException: If the carrier adapter fails
        """
        task = self._get(PackTask, task_id, tenant_id)

        if task.shipping_label_generated:
            return {'tracking_number': task.tracking_number, 'label_url': task.label_url}
        if task.status not in OPEN_TASK_STATUSES:
            raise InvalidTransitionException(task.status, PackTaskStatus.IN_PROGRESS, "PackTask")

        order = task.order
        context = {
            'pack_task_id': str(task.id),
            'order_number': order.order_number,
            'carrier': task.carrier,
            'service_level': task.service_level,
            'shipping_address': order.shipping_address,
            'cartons': [
                {
                    'carton_number': carton.carton_number,
                    'weight': carton.weight,
                    'length': carton.length,
                    'width': carton.width,
                    'height': carton.height,
                }
                for carton in task.cartons.all()
            ],
        }

        try:
            label = self.carrier_adapter.generate_label(context)
        except Exception as exc:
            logger.error(f"Carrier label request failed for pack task {task.task_number}: {exc}")
            raise DependencyFailureException("carrier", str(exc)) from exc

        with transaction.atomic():
            task = self._get(PackTask, task_id, tenant_id, lock=True)
            if task.shipping_label_generated:
                return {'tracking_number': task.tracking_number, 'label_url': task.label_url}
            if task.status not in OPEN_TASK_STATUSES:
                logger.warning(
                    f"Discarding label {label['tracking_number']} for pack task {task.task_number}: "
                    f"task became {task.status} during the carrier call"
                )
                raise InvalidTransitionException(task.status, PackTaskStatus.IN_PROGRESS, "PackTask")

            task.shipping_label_generated = True
            task.tracking_number = label['tracking_number']
            task.label_url = label['label_url']
            task.save(update_fields=['shipping_label_generated', 'tracking_number', 'label_url', 'updated_at'])

            order = Order.objects.select_for_update().get(pk=task.order_id)
            order.tracking_number = label['tracking_number']
            order.save(update_fields=['tracking_number', 'updated_at'])

        logger.info(f"Shipping label generated for pack task {task.task_number}: {task.tracking_number}")
        return {'tracking_number': task.tracking_number, 'label_url': task.label_url}

    def complete_pack_task(self, task_id, tenant_id, performed_by=None) -> PackTask:
        """
        Complete an in-progress pack task; the order becomes PACKED.

        Every line must be confirmed and the shipping label generated.
        """
        with transaction.atomic():
            task = self._get(PackTask, task_id, tenant_id, lock=True)

            if task.status != PackTaskStatus.IN_PROGRESS:
                raise InvalidTransitionException(task.status, PackTaskStatus.COMPLETED, "PackTask")

            pending = task.lines.filter(line_status=PackLineStatus.PENDING).count()
            if pending:
                raise ValidationException("Not all lines have been packed", {'pending_lines': pending})
            if not task.shipping_label_generated:
                raise ValidationException(
                    "Shipping label must be generated before completing",
                    {'shipping_label_generated': False}
                )

            validate_packing_workflow(task, PackTaskStatus.COMPLETED)
            task.status = PackTaskStatus.COMPLETED
            task.completion_time = timezone.now()
            task.save(update_fields=['status', 'completion_time', 'updated_at'])

            order = Order.objects.select_for_update().get(pk=task.order_id)
            self._change_order_status(
                order,
                OrderStatus.PACKED,
                'pack.completed',
                f"Pack task {task.task_number} completed",
                performed_by=performed_by,
                metadata={
                    'pack_task_id': task.id,
                    'cartons_used': task.cartons_used,
                    'tracking_number': task.tracking_number,
                },
            )
            self._publish('pack.completed', {
                'pack_task_id': str(task.id),
                'task_number': task.task_number,
                'order_id': str(order.id),
                'tenant_id': str(task.tenant_id),
                'tracking_number': task.tracking_number,
            })

        logger.info(f"Pack task {task.task_number} completed")
        return task

    def get_pack_task(self, task_id, tenant_id) -> Dict[str, Any]:
        task = self._get(PackTask, task_id, tenant_id)

        return {
            'id': task.id,
            'task_number': task.task_number,
            'order_id': task.order_id,
            'status': task.status,
            'packer_user_id': task.packer_user_id,
            'total_items_to_pack': task.total_items_to_pack,
            'items_packed': task.items_packed,
            'cartons_used': task.cartons_used,
            'carrier': task.carrier,
            'service_level': task.service_level,
            'shipping_label_generated': task.shipping_label_generated,
            'tracking_number': task.tracking_number,
            'label_url': task.label_url,
            'lines': [
                {
                    'id': line.id,
                    'order_line_id': line.order_line_id,
                    'product_sku': line.product_sku,
                    'quantity_to_pack': line.quantity_to_pack,
                    'quantity_packed': line.quantity_packed,
                    'variance_quantity': line.variance_quantity,
                    'carton_number': line.carton_number,
                    'line_status': line.line_status,
                }
                for line in task.lines.select_related('order_line')
            ],
            'cartons': [
                {
                    'id': carton.id,
                    'carton_number': carton.carton_number,
                    'weight': carton.weight,
                    'volume': carton.volume,
                    'items': carton.items,
                }
                for carton in task.cartons.all()
            ],
        }
