"""
Tests for the order lifecycle: creation, edits, holds, cancellation and the
full flow from NEW to DELIVERED.
"""

import uuid
from decimal import Decimal
from unittest import mock

from django.test import TestCase

from inventory.models import InventoryTransaction, TransactionType

from ..exceptions import InvalidTransitionException, NotFoundException, ValidationException
from ..models import (
    AllocationStatus, DeliveryStatus, LineStatus, OrderEvent,
    OrderStatus, PackTaskStatus, PickLineStatus, PickTaskStatus, PickTaskType
)
from .helpers import FulfillmentFixturesMixin


class OrderCreationTest(FulfillmentFixturesMixin, TestCase):

    def test_create_order(self):
        with self.captureOnCommitCallbacks(execute=True):
            order = self.make_order(5, 3, priority='HIGH', carrier='ups')

        self.assertEqual(order.status, OrderStatus.NEW)
        self.assertTrue(order.order_number.startswith('ORD-'))
        self.assertEqual(order.tenant_id, self.tenant_id)
        self.assertEqual(order.carrier, 'UPS')
        self.assertEqual(order.created_by, 'clerk-1')
        self.assertEqual(order.total_lines, 2)
        self.assertEqual(order.total_units_ordered, Decimal('8.0000'))
        self.assertEqual(list(order.lines.values_list('line_number', flat=True)), [1, 2])

        self.assertTrue(order.events.filter(event_type='order.created').exists())
        self.assertEqual(self.publisher.topics(), ['order.created'])

    def test_explicit_line_numbers_are_kept(self):
        order = self.order_service.create_order(self.tenant_id, {
            'warehouse_id': str(self.warehouse_id),
            'customer_name': 'Acme Retail',
            'lines': [
                {'line_number': 2, 'product_id': str(self.product_id), 'product_sku': 'A', 'quantity_ordered': '1'},
                {'product_id': str(self.product_id), 'product_sku': 'B', 'quantity_ordered': '1'},
            ],
        })

        self.assertEqual(
            dict(order.lines.values_list('product_sku', 'line_number')),
            {'A': 2, 'B': 1}
        )

    def test_invalid_orders_rejected(self):
        invalid = [
            {'warehouse_id': str(self.warehouse_id), 'customer_name': 'X', 'lines': []},
            {'customer_name': 'X', 'lines': [{'product_id': str(uuid.uuid4()), 'product_sku': 'A',
                                              'quantity_ordered': '1'}]},
            {'warehouse_id': str(self.warehouse_id), 'customer_name': 'X',
             'lines': [{'product_id': str(uuid.uuid4()), 'product_sku': 'A', 'quantity_ordered': '0'}]},
            {'warehouse_id': str(self.warehouse_id), 'customer_name': 'X', 'lines': [
                {'line_number': 1, 'product_id': str(uuid.uuid4()), 'product_sku': 'A', 'quantity_ordered': '1'},
                {'line_number': 1, 'product_id': str(uuid.uuid4()), 'product_sku': 'B', 'quantity_ordered': '1'},
            ]},
        ]
        for data in invalid:
            with self.subTest(data=data):
                with self.assertRaises(ValidationException) as ctx:
                    self.order_service.create_order(self.tenant_id, data)
                self.assertEqual(ctx.exception.to_dict()['code'], 'VALIDATION_ERROR')

    def test_update_order(self):
        order = self.make_order(5)

        updated = self.order_service.update_order(
            order.id, self.tenant_id, {'priority': 'URGENT', 'notes': 'Call first'}, performed_by='clerk-2'
        )

        self.assertEqual(updated.priority, 'URGENT')
        self.assertEqual(updated.notes, 'Call first')
        event = order.events.get(event_type='order.updated')
        self.assertEqual(event.metadata['old_values']['priority'], 'NORMAL')

    def test_update_after_allocation_rejected(self):
        self.make_lot(10)
        order = self.allocated_order(5)

        with self.assertRaises(ValidationException):
            self.order_service.update_order(order.id, self.tenant_id, {'priority': 'LOW'})

    def test_empty_update_rejected(self):
        order = self.make_order(5)

        with self.assertRaises(ValidationException):
            self.order_service.update_order(order.id, self.tenant_id, {})

    def test_summary_and_lookup(self):
        order = self.make_order(5)

        summary = self.order_service.get_order_summary(order.id, self.tenant_id)
        self.assertEqual(summary['order']['order_number'], order.order_number)
        self.assertEqual(len(summary['lines']), 1)

        with self.assertRaises(NotFoundException):
            self.order_service.get_order_summary(order.id, uuid.uuid4())
        with self.assertRaises(NotFoundException):
            self.order_service.get_order_summary('not-a-uuid', self.tenant_id)

    def test_list_orders(self):
        first = self.make_order(1, customer_name='Globex')
        self.make_order(1)

        self.assertEqual(self.order_service.list_orders(self.tenant_id).count(), 2)
        self.assertEqual(list(self.order_service.list_orders(self.tenant_id, search='globex')), [first])
        self.assertEqual(self.order_service.list_orders(uuid.uuid4()).count(), 0)


class OrderHoldTest(FulfillmentFixturesMixin, TestCase):

    def test_hold_and_release_restores_status(self):
        self.make_lot(10)
        order = self.allocated_order(5)

        held = self.order_service.hold_order(order.id, self.tenant_id, reason='Credit check')
        self.assertEqual(held.status, OrderStatus.ON_HOLD)
        self.assertEqual(held.status_before_hold, OrderStatus.ALLOCATED)

        released = self.order_service.release_hold(order.id, self.tenant_id)
        self.assertEqual(released.status, OrderStatus.ALLOCATED)
        self.assertEqual(released.status_before_hold, '')

    def test_held_order_can_be_edited(self):
        order = self.make_order(5)
        self.order_service.hold_order(order.id, self.tenant_id)

        updated = self.order_service.update_order(order.id, self.tenant_id, {'special_instructions': 'Fragile'})
        self.assertEqual(updated.special_instructions, 'Fragile')

    def test_cannot_hold_while_picking(self):
        self.make_lot(10)
        order = self.allocated_order(5)
        self.picking_service.generate_pick_tasks([order.id], self.tenant_id)

        with self.assertRaises(InvalidTransitionException):
            self.order_service.hold_order(order.id, self.tenant_id)

    def test_release_requires_hold(self):
        order = self.make_order(5)

        with self.assertRaises(InvalidTransitionException):
            self.order_service.release_hold(order.id, self.tenant_id)


class OrderCancellationTest(FulfillmentFixturesMixin, TestCase):

    def test_cancel_allocated_order_restores_ledger(self):
        lot = self.make_lot(10)
        order = self.allocated_order(6)

        with self.captureOnCommitCallbacks(execute=True):
            cancelled = self.order_service.cancel_order(
                order.id, self.tenant_id, reason='Customer request', performed_by='clerk-1'
            )

        self.assertEqual(cancelled.status, OrderStatus.CANCELLED)
        self.assertEqual(cancelled.cancelled_by, 'clerk-1')
        self.assertEqual(cancelled.cancellation_reason, 'Customer request')
        self.assertIsNotNone(cancelled.cancelled_at)

        lot.refresh_from_db()
        self.assertEqual(lot.quantity_available, Decimal('10.0000'))
        self.assertEqual(lot.quantity_allocated, Decimal('0.0000'))
        self.assertFalse(order.allocation_details.exclude(status=AllocationStatus.CANCELLED).exists())
        self.assertFalse(order.lines.exclude(line_status=LineStatus.CANCELLED).exists())
        self.assertIn('order.cancelled', self.publisher.topics())

    def test_cancel_during_picking(self):
        lot = self.make_lot(10)
        order = self.allocated_order(3, 4)
        task = self.picking_service.generate_pick_tasks([order.id], self.tenant_id)[0]
        first_line = task.lines.order_by('pick_sequence').first()
        self.picking_service.pick_item(task.id, self.tenant_id, first_line.id, first_line.quantity_to_pick)

        self.order_service.cancel_order(order.id, self.tenant_id)

        task.refresh_from_db()
        self.assertEqual(task.status, PickTaskStatus.CANCELLED)
        self.assertEqual(
            set(task.lines.values_list('line_status', flat=True)),
            {PickLineStatus.PICKED, PickLineStatus.CANCELLED}
        )

        # Picked stock stays depleted; the rest is available again
        lot.refresh_from_db()
        self.assertEqual(lot.quantity_allocated, Decimal('0.0000'))
        self.assertEqual(lot.quantity_on_hand, Decimal('10.0000') - first_line.quantity_to_pick)
        self.assertEqual(lot.quantity_available, lot.quantity_on_hand)

    def test_cancel_one_order_of_a_batch(self):
        self.make_lot(20)
        keep = self.allocated_order(2)
        drop = self.allocated_order(3)
        task = self.picking_service.generate_pick_tasks(
            [keep.id, drop.id], self.tenant_id, task_type=PickTaskType.BATCH
        )[0]

        self.order_service.cancel_order(drop.id, self.tenant_id)

        task.refresh_from_db()
        self.assertEqual(task.status, PickTaskStatus.PENDING)

        for line in task.lines.filter(line_status=PickLineStatus.PENDING):
            self.picking_service.pick_item(task.id, self.tenant_id, line.id, line.quantity_to_pick)
        self.picking_service.complete_pick_task(task.id, self.tenant_id)

        keep.refresh_from_db()
        drop.refresh_from_db()
        self.assertEqual(keep.status, OrderStatus.PICKED)
        self.assertEqual(drop.status, OrderStatus.CANCELLED)

    def test_cancel_during_packing(self):
        self.make_lot(10)
        order, _ = self.picked_order(3)
        pack_task = self.packing_service.generate_pack_task(order.id, self.tenant_id)

        self.order_service.cancel_order(order.id, self.tenant_id)

        pack_task.refresh_from_db()
        self.assertEqual(pack_task.status, PackTaskStatus.CANCELLED)

    def test_cannot_cancel_shipped_order(self):
        self.make_lot(10)
        order, _ = self.packed_order(3)
        self.shipping_service.create_shipment(order.id, self.tenant_id, {'carrier': 'FEDEX'})

        with self.assertRaises(InvalidTransitionException):
            self.order_service.cancel_order(order.id, self.tenant_id)

    def test_cancel_is_terminal(self):
        order = self.make_order(1)
        self.order_service.cancel_order(order.id, self.tenant_id)

        with self.assertRaises(InvalidTransitionException):
            self.order_service.cancel_order(order.id, self.tenant_id)
        with self.assertRaises(InvalidTransitionException):
            self.allocation_service.allocate_order(order.id, self.tenant_id)


class OrderEventTest(FulfillmentFixturesMixin, TestCase):

    def test_events_are_append_only(self):
        order = self.make_order(1)
        event = order.events.get()

        event.description = 'rewritten'
        with self.assertRaises(ValueError):
            event.save()
        with self.assertRaises(ValueError):
            event.delete()

    def test_list_order_events(self):
        self.make_lot(10)
        order = self.allocated_order(2)

        events = self.order_service.list_order_events(order.id, self.tenant_id)

        self.assertEqual([e.event_type for e in events], ['order.created', 'order.allocated'])
        allocated = events.get(event_type='order.allocated')
        self.assertEqual(allocated.metadata['old_status'], OrderStatus.NEW)
        self.assertEqual(allocated.metadata['new_status'], OrderStatus.ALLOCATED)


class EndToEndFlowTest(FulfillmentFixturesMixin, TestCase):
    """NEW to DELIVERED through every service."""

    def test_full_flow(self):
        lot = self.make_lot(25, batch_number='B-9', expiry_days=200)

        with self.captureOnCommitCallbacks(execute=True):
            order = self.make_order(10, 5, strategy='FEFO')
            self.allocation_service.allocate_order(order.id, self.tenant_id)

            task = self.picking_service.generate_pick_tasks([order.id], self.tenant_id)[0]
            self.picking_service.assign_pick_task(task.id, self.tenant_id, 'picker-1')
            for line in task.lines.order_by('pick_sequence'):
                self.picking_service.pick_item(task.id, self.tenant_id, line.id, line.quantity_to_pick)
            self.picking_service.complete_pick_task(task.id, self.tenant_id)

            pack_task = self.packing_service.generate_pack_task(order.id, self.tenant_id)
            for line in pack_task.lines.all():
                self.packing_service.pack_item(pack_task.id, self.tenant_id, line.id, line.quantity_to_pack)
            self.packing_service.add_carton(pack_task.id, self.tenant_id, {
                'carton_number': 1,
                'weight': '4',
                'items': [{'order_line_id': str(line.id), 'quantity': str(line.quantity_picked)}
                          for line in order.lines.all()],
            })
            self.packing_service.generate_shipping_label(pack_task.id, self.tenant_id)
            self.packing_service.complete_pack_task(pack_task.id, self.tenant_id)

            shipment = self.shipping_service.create_shipment(order.id, self.tenant_id, {'carrier': 'FEDEX'})
            self.shipping_service.update_delivery_status(shipment.id, self.tenant_id, DeliveryStatus.IN_TRANSIT)
            self.shipping_service.update_delivery_status(
                shipment.id, self.tenant_id, DeliveryStatus.DELIVERED, signed_by='Front desk'
            )

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DELIVERED)
        for field in ('ordered', 'allocated', 'picked', 'packed', 'shipped'):
            self.assertEqual(getattr(order, f'total_units_{field}'), Decimal('15.0000'), field)

        lot.refresh_from_db()
        self.assertEqual(lot.quantity_on_hand, Decimal('10.0000'))
        self.assertEqual(lot.quantity_available, Decimal('10.0000'))
        self.assertEqual(lot.quantity_allocated, Decimal('0.0000'))

        journal = InventoryTransaction.objects.filter(inventory=lot)
        self.assertEqual(journal.filter(transaction_type=TransactionType.ALLOCATE).count(), 2)
        self.assertEqual(journal.filter(transaction_type=TransactionType.PICK).count(), 2)

        self.assertEqual(
            list(order.events.order_by('created_at').values_list('event_type', flat=True)),
            [
                'order.created', 'order.allocated', 'pick.task_created', 'pick.completed',
                'pack.task_created', 'pack.completed', 'order.shipped', 'order.delivered',
            ]
        )
        self.assertEqual(
            self.publisher.topics(),
            [
                'order.created', 'order.allocated', 'pick.task_created', 'pick.completed',
                'pack.task_created', 'pack.completed', 'order.shipped',
                'shipment.status_updated', 'shipment.status_updated',
            ]
        )

    def test_publisher_failure_does_not_roll_back(self):
        self.make_lot(10)
        order = self.make_order(2)
        self.publisher.publish = mock.Mock(side_effect=RuntimeError("broker down"))

        # Reported once, by Django's robust on_commit handler
        with self.assertNoLogs('fulfillment.adapters.event_publisher', level='ERROR'):
            with self.assertLogs('django.test', level='ERROR') as logs:
                with self.captureOnCommitCallbacks(execute=True):
                    self.allocation_service.allocate_order(order.id, self.tenant_id)

        self.assertEqual(len(logs.records), 1)
        self.assertIn('broker down', logs.output[0])
        self.publisher.publish.assert_called_once()

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.ALLOCATED)
        self.assertTrue(OrderEvent.objects.filter(order=order, event_type='order.allocated').exists())
