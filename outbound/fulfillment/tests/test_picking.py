"""
Tests for pick task generation and pick confirmation.
"""

import uuid
from decimal import Decimal

from django.test import TestCase

from ..exceptions import InvalidTransitionException, NotFoundException, ValidationException
from ..models import (
    AllocationStatus, LineStatus, OrderStatus, PickLineStatus, PickTaskStatus,
    PickTaskType, ShortPickVariance
)
from ..services import PickingService, pick_path_sequence
from .helpers import FulfillmentFixturesMixin


class PickTaskGenerationTest(FulfillmentFixturesMixin, TestCase):

    def test_single_task_per_order(self):
        self.make_lot(50)
        first = self.allocated_order(5)
        second = self.allocated_order(7)

        tasks = self.picking_service.generate_pick_tasks([first.id, second.id], self.tenant_id)

        self.assertEqual(len(tasks), 2)
        for task in tasks:
            self.assertEqual(task.task_type, PickTaskType.SINGLE)
            self.assertEqual(task.status, PickTaskStatus.PENDING)
            self.assertTrue(task.task_number.startswith('PICK-'))
            self.assertEqual(task.orders.count(), 1)

        first.refresh_from_db()
        self.assertEqual(first.status, OrderStatus.PICKING)
        self.assertTrue(first.events.filter(event_type='pick.task_created').exists())

    def test_task_numbers_are_unique_without_a_counter(self):
        self.make_lot(50)
        orders = [self.allocated_order(2) for _ in range(3)]

        tasks = self.picking_service.generate_pick_tasks([order.id for order in orders], self.tenant_id)

        for task in tasks:
            self.assertRegex(task.task_number, rf'^PICK-\d{{14}}-{str(task.id)[:8].upper()}$')
        self.assertEqual(len({task.task_number for task in tasks}), 3)

    def test_batch_task_covers_all_orders(self):
        self.make_lot(50)
        orders = [self.allocated_order(3), self.allocated_order(4)]
        orders[1].priority = 'URGENT'
        orders[1].save(update_fields=['priority'])

        tasks = self.picking_service.generate_pick_tasks(
            [order.id for order in orders], self.tenant_id, task_type=PickTaskType.BATCH
        )

        self.assertEqual(len(tasks), 1)
        task = tasks[0]
        self.assertEqual(task.orders.count(), 2)
        self.assertEqual(task.total_lines, 2)
        self.assertEqual(task.total_units, Decimal('7.0000'))
        self.assertEqual(task.priority, 'URGENT')

    def test_lines_follow_pick_path(self):
        self.make_lot(2, location_code='C-01')
        self.make_lot(2, location_code='A-01', received_days_ago=1)
        self.make_lot(2, location_code='B-01', received_days_ago=2)
        order = self.allocated_order(6)

        task = self.picking_service.generate_pick_tasks([order.id], self.tenant_id)[0]

        self.assertEqual(
            list(task.lines.order_by('pick_sequence').values_list('location_code', flat=True)),
            ['A-01', 'B-01', 'C-01']
        )

    def test_custom_path_strategy(self):
        self.make_lot(2, location_code='A-01')
        self.make_lot(2, location_code='B-01', received_days_ago=1)
        order = self.allocated_order(4)
        service = PickingService(
            path_strategy=lambda details: list(reversed(pick_path_sequence(details))),
            event_publisher=self.publisher,
        )

        task = service.generate_pick_tasks([order.id], self.tenant_id)[0]

        self.assertEqual(task.lines.get(pick_sequence=1).location_code, 'B-01')

    def test_order_must_be_allocated(self):
        order = self.make_order(5)

        with self.assertRaises(InvalidTransitionException):
            self.picking_service.generate_pick_tasks([order.id], self.tenant_id)

    def test_partially_allocated_order_rejected(self):
        self.make_lot(3)
        order = self.allocated_order(5)
        self.assertEqual(order.status, OrderStatus.PARTIALLY_ALLOCATED)

        with self.assertRaises(InvalidTransitionException):
            self.picking_service.generate_pick_tasks([order.id], self.tenant_id)

    def test_empty_order_list_rejected(self):
        with self.assertRaises(ValidationException):
            self.picking_service.generate_pick_tasks([], self.tenant_id)

    def test_batch_across_warehouses_rejected(self):
        self.make_lot(10)
        first = self.allocated_order(2)

        self.warehouse_id = uuid.uuid4()
        self.make_lot(10)
        second = self.allocated_order(2)

        with self.assertRaises(ValidationException):
            self.picking_service.generate_pick_tasks(
                [first.id, second.id], self.tenant_id, task_type=PickTaskType.BATCH
            )
        first.refresh_from_db()
        self.assertEqual(first.status, OrderStatus.ALLOCATED)


class PickConfirmationTest(FulfillmentFixturesMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.lot = self.make_lot(10)
        self.order = self.allocated_order(8)
        self.task = self.picking_service.generate_pick_tasks([self.order.id], self.tenant_id)[0]
        self.line = self.task.lines.get()

    def test_assign_then_start(self):
        task = self.picking_service.assign_pick_task(self.task.id, self.tenant_id, 'picker-7')
        self.assertEqual(task.status, PickTaskStatus.ASSIGNED)
        self.assertEqual(task.picker_user_id, 'picker-7')

        task = self.picking_service.start_pick_task(self.task.id, self.tenant_id, 'picker-7')
        self.assertEqual(task.status, PickTaskStatus.IN_PROGRESS)
        self.assertIsNotNone(task.start_time)

    def test_full_pick(self):
        result = self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('8'))

        self.assertEqual(result['line_status'], PickLineStatus.PICKED)
        self.task.refresh_from_db()
        self.assertEqual(self.task.status, PickTaskStatus.IN_PROGRESS)
        self.assertEqual(self.task.units_picked, Decimal('8.0000'))

        self.lot.refresh_from_db()
        self.assertEqual(self.lot.quantity_on_hand, Decimal('2.0000'))
        self.assertEqual(self.lot.quantity_allocated, Decimal('0.0000'))
        self.assertEqual(self.lot.quantity_available, Decimal('2.0000'))

        detail = self.line.allocation_detail
        detail.refresh_from_db()
        self.assertEqual(detail.status, AllocationStatus.PICKED)
        self.assertEqual(detail.quantity_picked, Decimal('8.0000'))

    def test_short_pick(self):
        result = self.picking_service.pick_item(
            self.task.id, self.tenant_id, self.line.id, Decimal('5'), variance_reason='Damaged'
        )

        self.assertEqual(result['line_status'], PickLineStatus.SHORT)
        self.assertEqual(result['variance_quantity'], Decimal('-3.0000'))

        self.lot.refresh_from_db()
        self.assertEqual(self.lot.quantity_on_hand, Decimal('5.0000'))
        self.assertEqual(self.lot.quantity_available, Decimal('5.0000'))
        self.assertEqual(self.lot.quantity_allocated, Decimal('0.0000'))

        order_line = self.order.lines.get()
        self.assertEqual(order_line.quantity_picked, Decimal('5.0000'))
        self.assertEqual(order_line.quantity_allocated, Decimal('5.0000'))
        self.assertEqual(order_line.quantity_backordered, Decimal('3.0000'))
        self.assertEqual(order_line.line_status, LineStatus.PARTIALLY_ALLOCATED)

        variance = ShortPickVariance.objects.get(pick_task_line=self.line)
        self.assertEqual(variance.quantity_short, Decimal('3.0000'))
        self.assertEqual(variance.reason, 'Damaged')
        self.assertTrue(self.order.events.filter(event_type='pick.short').exists())

    def test_zero_pick_cancels_detail(self):
        self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('0'))

        detail = self.line.allocation_detail
        detail.refresh_from_db()
        self.assertEqual(detail.status, AllocationStatus.CANCELLED)
        self.assertEqual(self.order.lines.get().line_status, LineStatus.BACKORDERED)

    def test_over_pick_rejected(self):
        with self.assertRaises(ValidationException):
            self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('9'))

        self.lot.refresh_from_db()
        self.assertEqual(self.lot.quantity_allocated, Decimal('8.0000'))

    def test_negative_pick_rejected(self):
        with self.assertRaises(ValidationException):
            self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('-1'))

    def test_line_cannot_be_confirmed_twice(self):
        self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('8'))

        with self.assertRaises(ValidationException):
            self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('8'))

    def test_unknown_line(self):
        with self.assertRaises(NotFoundException):
            self.picking_service.pick_item(self.task.id, self.tenant_id, uuid.uuid4(), Decimal('1'))

    def test_complete_requires_all_lines(self):
        self.picking_service.start_pick_task(self.task.id, self.tenant_id, 'picker-7')

        with self.assertRaises(ValidationException):
            self.picking_service.complete_pick_task(self.task.id, self.tenant_id)

    def test_complete_moves_order_to_picked(self):
        self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('8'))

        task = self.picking_service.complete_pick_task(self.task.id, self.tenant_id)

        self.assertEqual(task.status, PickTaskStatus.COMPLETED)
        self.assertIsNotNone(task.actual_duration_minutes)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.PICKED)
        self.assertEqual(self.order.total_units_picked, Decimal('8.0000'))

    def test_completed_task_rejects_picks(self):
        self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('8'))
        self.picking_service.complete_pick_task(self.task.id, self.tenant_id)

        with self.assertRaises(InvalidTransitionException):
            self.picking_service.pick_item(self.task.id, self.tenant_id, self.line.id, Decimal('1'))

    def test_get_pick_task(self):
        summary = self.picking_service.get_pick_task(self.task.id, self.tenant_id)

        self.assertEqual(summary['task_number'], self.task.task_number)
        self.assertEqual(len(summary['lines']), 1)
