"""
Tests for shipment creation and delivery tracking.
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.test import TestCase, override_settings

from ..exceptions import InvalidTransitionException, NotFoundException, ValidationException
from ..models import DeliveryStatus, LineStatus, OrderStatus, ShipmentType
from ..services import tracking_url_for
from .helpers import FulfillmentFixturesMixin


class TrackingUrlTest(TestCase):

    def test_known_carrier(self):
        self.assertEqual(
            tracking_url_for('ups', '1Z999'),
            'https://www.ups.com/track?tracknum=1Z999'
        )

    def test_unknown_carrier_falls_back_to_anchor(self):
        self.assertEqual(tracking_url_for('ACME', 'X1'), '#X1')

    def test_templates_come_from_settings(self):
        templates = {'ACME': 'https://acme.test/{tracking_number}'}
        with override_settings(FULFILLMENT={**settings.FULFILLMENT, 'TRACKING_URL_TEMPLATES': templates}):
            self.assertEqual(tracking_url_for('ACME', 'X1'), 'https://acme.test/X1')


class ShipmentCreationTest(FulfillmentFixturesMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.make_lot(10, batch_number='B-1', lot_number='L-1', expiry_days=120, serial_numbers=['SN-1'])
        self.order, self.pack_task = self.packed_order(4)

    def test_create_shipment(self):
        shipment = self.shipping_service.create_shipment(
            self.order.id, self.tenant_id,
            {'carrier': 'fedex', 'service_level': 'GROUND', 'shipping_cost': '12.50'},
            performed_by='shipper-1',
        )

        self.assertRegex(shipment.shipment_number, rf'^SHP-\d{{14}}-{str(shipment.id)[:8].upper()}$')
        self.assertEqual(shipment.carrier, 'FEDEX')
        self.assertEqual(shipment.tracking_number, self.pack_task.tracking_number)
        self.assertEqual(
            shipment.tracking_url,
            f"https://www.fedex.com/fedextrack/?trknbr={self.pack_task.tracking_number}"
        )
        self.assertEqual(shipment.shipment_type, ShipmentType.PARCEL)
        self.assertEqual(shipment.delivery_status, DeliveryStatus.PENDING)
        self.assertEqual(shipment.total_cartons, 1)
        self.assertEqual(shipment.total_weight, Decimal('2.5000'))

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.SHIPPED)
        self.assertEqual(self.order.total_units_shipped, Decimal('4.0000'))
        self.assertIsNotNone(self.order.shipped_at)
        self.assertEqual(self.order.lines.get().line_status, LineStatus.SHIPPED)

    def test_shipment_line_keeps_lineage(self):
        shipment = self.shipping_service.create_shipment(self.order.id, self.tenant_id, {'carrier': 'FEDEX'})

        line = shipment.lines.get()
        self.assertEqual(line.quantity_shipped, Decimal('4.0000'))
        self.assertEqual(line.batch_number, 'B-1')
        self.assertEqual(line.lot_number, 'L-1')
        self.assertEqual(line.serial_numbers, ['SN-1'])
        self.assertEqual(len(line.lineage), 1)
        self.assertEqual(line.lineage[0]['batch_number'], 'B-1')
        self.assertEqual(line.lineage[0]['quantity_picked'], '4.0000')

    def test_explicit_tracking_number_wins(self):
        shipment = self.shipping_service.create_shipment(
            self.order.id, self.tenant_id, {'carrier': 'DHL', 'tracking_number': ' JD0001 '}
        )

        self.assertEqual(shipment.tracking_number, 'JD0001')
        self.assertIn('AWB=JD0001', shipment.tracking_url)

    def test_foreign_carton_rejected(self):
        with self.assertRaises(ValidationException):
            self.shipping_service.create_shipment(
                self.order.id, self.tenant_id, {'carrier': 'FEDEX', 'carton_ids': [str(uuid.uuid4())]}
            )

    def test_order_must_be_packed(self):
        other = self.make_order(1)

        with self.assertRaises(InvalidTransitionException):
            self.shipping_service.create_shipment(other.id, self.tenant_id, {'carrier': 'FEDEX'})

    def test_carrier_required(self):
        with self.assertRaises(ValidationException):
            self.shipping_service.create_shipment(self.order.id, self.tenant_id, {})

    def test_list_shipments(self):
        shipment = self.shipping_service.create_shipment(self.order.id, self.tenant_id, {'carrier': 'FEDEX'})

        self.assertEqual(list(self.shipping_service.list_shipments(self.tenant_id, carrier='fedex')), [shipment])
        self.assertFalse(self.shipping_service.list_shipments(self.tenant_id, carrier='UPS').exists())
        self.assertFalse(self.shipping_service.list_shipments(uuid.uuid4()).exists())


class SerialTraceabilityTest(FulfillmentFixturesMixin, TestCase):
    """Each unit carries exactly one serial from allocation to shipment."""

    def setUp(self):
        super().setUp()
        self.serials = [f'S{n}' for n in range(1, 11)]
        self.lot = self.make_lot(10, serial_numbers=self.serials)

    def test_shipment_lists_only_shipped_serials(self):
        order, _ = self.packed_order(3)

        shipment = self.shipping_service.create_shipment(order.id, self.tenant_id, {'carrier': 'FEDEX'})

        self.assertEqual(shipment.lines.get().serial_numbers, ['S1', 'S2', 'S3'])
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.serial_numbers, self.serials[3:])

    def test_orders_on_one_lot_get_disjoint_serials(self):
        first, _ = self.packed_order(3)
        second, _ = self.packed_order(4)

        first_shipment = self.shipping_service.create_shipment(first.id, self.tenant_id, {'carrier': 'FEDEX'})
        second_shipment = self.shipping_service.create_shipment(second.id, self.tenant_id, {'carrier': 'FEDEX'})

        self.assertEqual(first_shipment.lines.get().serial_numbers, ['S1', 'S2', 'S3'])
        self.assertEqual(second_shipment.lines.get().serial_numbers, ['S4', 'S5', 'S6', 'S7'])
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.serial_numbers, ['S8', 'S9', 'S10'])

    def test_short_pick_trims_serials_to_picked_units(self):
        order = self.allocated_order(5)
        task = self.picking_service.generate_pick_tasks([order.id], self.tenant_id)[0]
        line = task.lines.get()

        self.picking_service.pick_item(task.id, self.tenant_id, line.id, Decimal('2'))

        detail = line.allocation_detail
        detail.refresh_from_db()
        self.assertEqual(detail.serial_numbers, ['S1', 'S2'])
        self.lot.refresh_from_db()
        self.assertEqual(self.lot.serial_numbers, self.serials[2:])

        later = self.allocated_order(3)
        self.assertEqual(later.allocation_details.get().serial_numbers, ['S3', 'S4', 'S5'])


class DeliveryStatusTest(FulfillmentFixturesMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.make_lot(10)
        self.order, _ = self.packed_order(3)
        self.shipment = self.shipping_service.create_shipment(self.order.id, self.tenant_id, {'carrier': 'UPS'})

    def update(self, status, **kwargs):
        return self.shipping_service.update_delivery_status(self.shipment.id, self.tenant_id, status, **kwargs)

    def test_delivery_completes_order(self):
        self.update(DeliveryStatus.IN_TRANSIT)
        shipment = self.update(DeliveryStatus.DELIVERED, signed_by='J. Doe')

        self.assertEqual(shipment.delivery_status, DeliveryStatus.DELIVERED)
        self.assertEqual(shipment.signed_by, 'J. Doe')
        self.assertIsNotNone(shipment.actual_delivery_date)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)
        self.assertIsNotNone(self.order.delivered_at)
        event = self.order.events.get(event_type='order.delivered')
        self.assertIn('J. Doe', event.description)

    def test_invalid_delivery_transition(self):
        with self.assertRaises(InvalidTransitionException):
            self.update(DeliveryStatus.OUT_FOR_DELIVERY)

    def test_delivered_is_terminal(self):
        self.update(DeliveryStatus.IN_TRANSIT)
        self.update(DeliveryStatus.DELIVERED)

        with self.assertRaises(InvalidTransitionException):
            self.update(DeliveryStatus.RETURNED)

    def test_failed_delivery_logged_on_order(self):
        self.update(DeliveryStatus.IN_TRANSIT)

        with self.assertLogs('fulfillment.services.shipping_service', level='WARNING'):
            self.update(DeliveryStatus.FAILED, notes='Nobody home')

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.SHIPPED)
        self.assertTrue(self.order.events.filter(event_type='order.failed').exists())

        self.update(DeliveryStatus.OUT_FOR_DELIVERY)
        self.update(DeliveryStatus.DELIVERED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, OrderStatus.DELIVERED)

    def test_same_status_is_noop(self):
        self.update(DeliveryStatus.IN_TRANSIT)
        self.update(DeliveryStatus.IN_TRANSIT)

        self.shipment.refresh_from_db()
        self.assertEqual(self.shipment.delivery_status, DeliveryStatus.IN_TRANSIT)

    def test_unknown_status_rejected(self):
        with self.assertRaises(ValidationException):
            self.update('TELEPORTED')

    def test_track_shipment(self):
        self.update(DeliveryStatus.IN_TRANSIT)
        self.update(DeliveryStatus.DELIVERED, signed_by='J. Doe')

        tracking = self.shipping_service.track_shipment(self.shipment.tracking_number, self.tenant_id)

        self.assertEqual(tracking['status'], DeliveryStatus.DELIVERED)
        self.assertEqual(len(tracking['events']), 2)
        self.assertEqual(tracking['events'][0]['status'], 'Shipment Created')

    def test_track_unknown_number(self):
        with self.assertRaises(NotFoundException):
            self.shipping_service.track_shipment('NOPE', self.tenant_id)

    def test_get_shipment(self):
        summary = self.shipping_service.get_shipment(self.shipment.id, self.tenant_id)

        self.assertEqual(summary['shipment_number'], self.shipment.shipment_number)
        self.assertEqual(len(summary['lines']), 1)
