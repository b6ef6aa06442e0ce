"""
Allocation Service for outbound fulfillment.

Reserves inventory lots for order lines according to the order's (or line's)
allocation strategy.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List

from django.db import transaction
from django.utils import timezone

from inventory.models import Inventory

from ..allocation_policies import order_candidates
from ..exceptions import InvalidTransitionException
from ..models import (
    AllocationDetail, AllocationStatus, LineStatus, Order, OrderLine, OrderStatus
)
from .base import FulfillmentService

logger = logging.getLogger(__name__)

ZERO = Decimal('0.0000')


class AllocationService(FulfillmentService):
    """Service class for inventory allocation operations."""

    ALLOCATABLE_STATUSES = [OrderStatus.NEW, OrderStatus.ALLOCATION_FAILED]
    DEALLOCATABLE_STATUSES = [
        OrderStatus.NEW, OrderStatus.ALLOCATED,
        OrderStatus.PARTIALLY_ALLOCATED, OrderStatus.ALLOCATION_FAILED,
    ]

    def allocate_order(self, order_id, tenant_id, performed_by=None) -> Dict[str, Any]:
        """
        Allocate inventory for every open line of an order.

        Partial allocation is a normal outcome, reported in the result rather
        than raised.

        Args:
            order_id: Order UUID
            tenant_id: Tenant the order must belong to
            performed_by: Opaque identifier of the acting user

        Returns:
            Allocation result with per-line details

        Raises:
            NotFoundException: If the order does not exist for the tenant
            InvalidTransitionException: If the order is not NEW or ALLOCATION_FAILED
        """
        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if order.status not in self.ALLOCATABLE_STATUSES:
                raise InvalidTransitionException(order.status, OrderStatus.ALLOCATED)

            lines = list(
                order.lines.select_for_update()
                .exclude(line_status=LineStatus.CANCELLED)
                .order_by('line_number')
            )

            lots = self.ledger.lock_lots(
                order.tenant_id,
                order.warehouse_id,
                {line.product_id for line in lines if line.remaining_to_allocate > 0},
            )
            line_results = [self._allocate_line(order, line, lots) for line in lines]

            allocated_lines = sum(1 for r in line_results if r['line_status'] == LineStatus.ALLOCATED)
            partial_lines = sum(1 for r in line_results if r['line_status'] == LineStatus.PARTIALLY_ALLOCATED)
            failed_lines = sum(1 for r in line_results if r['line_status'] == LineStatus.BACKORDERED)

            if allocated_lines == len(line_results):
                new_status = OrderStatus.ALLOCATED
                message = "Order fully allocated"
            elif allocated_lines or partial_lines:
                new_status = OrderStatus.PARTIALLY_ALLOCATED
                message = "Order partially allocated"
            else:
                new_status = OrderStatus.ALLOCATION_FAILED
                message = "Order allocation failed - no inventory available"

            order.recalculate_totals()
            if new_status != OrderStatus.ALLOCATION_FAILED:
                order.allocated_at = timezone.now()

            self._change_order_status(
                order,
                new_status,
                'order.allocated',
                message,
                performed_by=performed_by,
                metadata={
                    'allocated_lines': allocated_lines,
                    'partially_allocated_lines': partial_lines,
                    'failed_lines': failed_lines,
                },
                extra_fields=['allocated_at'],
            )

            self._publish('order.allocated', {
                'order_id': str(order.id),
                'order_number': order.order_number,
                'tenant_id': str(order.tenant_id),
                'status': new_status,
                'fully_allocated': new_status == OrderStatus.ALLOCATED,
            })

        logger.info(
            f"Order {order.order_number} allocation finished with {new_status}: "
            f"{allocated_lines} full, {partial_lines} partial, {failed_lines} failed"
        )
        return {
            'order_id': order.id,
            'success': new_status != OrderStatus.ALLOCATION_FAILED,
            'fully_allocated': new_status == OrderStatus.ALLOCATED,
            'allocated_lines': allocated_lines,
            'partially_allocated_lines': partial_lines,
            'failed_lines': failed_lines,
            'message': message,
            'status': new_status,
            'details': line_results,
        }

    def _allocate_line(self, order: Order, line: OrderLine, lots: List[Inventory]) -> Dict[str, Any]:
        """
        Greedily reserve lots for one line, in policy order.

        ``lots`` are the rows already locked for the whole order; the
        in-memory quantities are kept in step with each reservation so later
        lines of the same product see what is left.
        """
        remaining = line.remaining_to_allocate
        allocations = []

        if remaining > 0:
            buffer_days = self.catalog_adapter.get_safety_buffer_days(order.tenant_id, line.product_id)
            cutoff = timezone.localdate() + timedelta(days=buffer_days) if buffer_days > 0 else None

            candidates = [
                lot for lot in lots
                if lot.product_id == line.product_id
                and lot.quantity_available > 0
                and (cutoff is None or lot.expiry_date is None or lot.expiry_date > cutoff)
            ]

            for lot in order_candidates(line.effective_strategy, candidates):
                if remaining <= 0:
                    break

                quantity = min(lot.quantity_available, remaining)
                detail = AllocationDetail(
                    tenant_id=order.tenant_id,
                    order=order,
                    order_line=line,
                    inventory=lot,
                    location_code=lot.location_code,
                    product_id=line.product_id,
                    product_sku=line.product_sku,
                    quantity_allocated=quantity,
                    batch_number=lot.batch_number,
                    lot_number=lot.lot_number,
                    expiry_date=lot.expiry_date,
                    lpn=lot.lpn,
                    serial_numbers=self._claim_serials(lot, quantity),
                )
                self.ledger.reserve(
                    lot.id,
                    quantity,
                    reference_type='ALLOCATION',
                    reference_id=detail.id,
                    notes=f"Order {order.order_number} line {line.line_number}",
                )
                detail.save()
                lot.quantity_available -= quantity
                lot.quantity_allocated += quantity

                allocations.append({
                    'allocation_detail_id': detail.id,
                    'inventory_id': lot.id,
                    'location_code': lot.location_code,
                    'batch_number': lot.batch_number,
                    'expiry_date': lot.expiry_date,
                    'quantity': quantity,
                })
                line.quantity_allocated += quantity
                remaining -= quantity

        line.quantity_backordered = max(remaining, ZERO)
        if remaining <= 0:
            line.line_status = LineStatus.ALLOCATED
        elif line.quantity_allocated > 0:
            line.line_status = LineStatus.PARTIALLY_ALLOCATED
        else:
            line.line_status = LineStatus.BACKORDERED
        line.save(update_fields=['quantity_allocated', 'quantity_backordered', 'line_status'])

        if line.line_status != LineStatus.ALLOCATED:
            logger.warning(
                f"Line {line.line_number} of order {order.order_number} ({line.product_sku}) "
                f"backordered {line.quantity_backordered}"
            )

        return {
            'line_id': line.id,
            'sku': line.product_sku,
            'quantity_ordered': line.quantity_ordered,
            'quantity_allocated': line.quantity_allocated,
            'quantity_backordered': line.quantity_backordered,
            'line_status': line.line_status,
            'allocations': allocations,
        }

    @staticmethod
    def _claim_serials(lot: Inventory, quantity: Decimal) -> List[str]:
        """
        One serial per whole unit, from the lot's serials no active allocation holds.

        The lot row is locked by the caller, so two allocations can never
        claim the same serial.
        """
        if not lot.serial_numbers:
            return []
        held = {
            serial
            for serials in AllocationDetail.objects.filter(
                inventory=lot, status=AllocationStatus.ALLOCATED
            ).values_list('serial_numbers', flat=True)
            for serial in serials or []
        }
        free = [serial for serial in lot.serial_numbers if serial not in held]
        return free[:int(quantity)]

    def deallocate_order(self, order_id, tenant_id, performed_by=None) -> Dict[str, Any]:
        """
        Release every active allocation of an order and return it to NEW.

        Calling it again once nothing is allocated is a no-op.

        Raises:
            NotFoundException: If the order does not exist for the tenant
            InvalidTransitionException: If picking has already started
        """
        with transaction.atomic():
            order = self._get(Order, order_id, tenant_id, lock=True)

            if order.status not in self.DEALLOCATABLE_STATUSES:
                raise InvalidTransitionException(order.status, OrderStatus.NEW)

            details = list(
                order.allocation_details.select_for_update()
                .filter(status=AllocationStatus.ALLOCATED)
                .order_by('inventory_id', 'id')
            )

            if not details:
                return {
                    'order_id': order.id,
                    'success': True,
                    'released_count': 0,
                    'released_quantity': ZERO,
                    'status': order.status,
                }

            released_quantity = self._release_details(order, details, 'Deallocation')

            order.lines.exclude(line_status=LineStatus.CANCELLED).update(
                quantity_allocated=ZERO,
                quantity_backordered=ZERO,
                line_status=LineStatus.PENDING,
            )
            order.recalculate_totals()
            order.allocated_at = None

            self._change_order_status(
                order,
                OrderStatus.NEW,
                'order.deallocated',
                f"Released {len(details)} allocations",
                performed_by=performed_by,
                metadata={'released_count': len(details), 'released_quantity': released_quantity},
                extra_fields=['allocated_at'],
            )

            self._publish('order.deallocated', {
                'order_id': str(order.id),
                'order_number': order.order_number,
                'tenant_id': str(order.tenant_id),
                'released_count': len(details),
            })

        logger.info(f"Released {len(details)} allocations for order {order.order_number}")
        return {
            'order_id': order.id,
            'success': True,
            'released_count': len(details),
            'released_quantity': released_quantity,
            'status': order.status,
        }

    def check_allocation_availability(self, order_id, tenant_id) -> Dict[str, Any]:
        """
        Report, without reserving anything, whether each line could be filled.

        Uses the same lot filters as allocate_order, safety buffer included. A
        line is covered when what it already holds plus what is available
        reaches the ordered quantity; ``quantity_required`` is the part still
        to reserve, equal to the ordered quantity on a fresh order.
        """
        order = self._get(Order, order_id, tenant_id)

        lines = []
        for line in order.lines.exclude(line_status=LineStatus.CANCELLED).order_by('line_number'):
            buffer_days = self.catalog_adapter.get_safety_buffer_days(order.tenant_id, line.product_id)
            cutoff = timezone.localdate() + timedelta(days=buffer_days) if buffer_days > 0 else None
            available = self.ledger.available_quantity(
                order.tenant_id, order.warehouse_id, line.product_id, expiry_cutoff=cutoff
            )
            lines.append({
                'line_id': line.id,
                'sku': line.product_sku,
                'quantity_ordered': line.quantity_ordered,
                'quantity_allocated': line.quantity_allocated,
                'quantity_required': line.remaining_to_allocate,
                'quantity_available': available,
                'can_allocate': line.quantity_allocated + available >= line.quantity_ordered,
            })

        return {
            'order_id': order.id,
            'can_fully_allocate': all(line['can_allocate'] for line in lines),
            'lines': lines,
        }

    def get_allocation_summary(self, order_id, tenant_id) -> Dict[str, Any]:
        """
        Get allocation summary for an order.

        Returns:
            Active allocations grouped by location and by SKU
        """
        order = self._get(Order, order_id, tenant_id)
        allocations = order.allocation_details.filter(status=AllocationStatus.ALLOCATED)

        summary = {
            'order_id': order.id,
            'total_allocations': 0,
            'allocations_by_location': {},
            'allocations_by_item': {},
        }

        for allocation in allocations:
            summary['total_allocations'] += 1

            by_location = summary['allocations_by_location'].setdefault(
                allocation.location_code, {'total_quantity': ZERO, 'items': []}
            )
            by_location['total_quantity'] += allocation.quantity_allocated
            by_location['items'].append({
                'sku': allocation.product_sku,
                'quantity': allocation.quantity_allocated,
            })

            by_item = summary['allocations_by_item'].setdefault(
                allocation.product_sku, {'total_quantity': ZERO, 'locations': []}
            )
            by_item['total_quantity'] += allocation.quantity_allocated
            by_item['locations'].append({
                'location': allocation.location_code,
                'quantity': allocation.quantity_allocated,
            })

        return summary
