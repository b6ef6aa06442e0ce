"""
Shipment models for outbound fulfillment.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone


class DeliveryStatus(models.TextChoices):
    """Shipment delivery lifecycle."""
    PENDING = 'PENDING', 'Pending'
    PICKED_UP = 'PICKED_UP', 'Picked Up'
    IN_TRANSIT = 'IN_TRANSIT', 'In Transit'
    OUT_FOR_DELIVERY = 'OUT_FOR_DELIVERY', 'Out for Delivery'
    DELIVERED = 'DELIVERED', 'Delivered'
    FAILED = 'FAILED', 'Failed'
    RETURNED = 'RETURNED', 'Returned'


class ShipmentType(models.TextChoices):
    PARCEL = 'PARCEL', 'Parcel'
    LTL = 'LTL', 'Less Than Truckload'
    FTL = 'FTL', 'Full Truckload'


class Shipment(models.Model):
    """
    Cartons of one packed order handed to a carrier.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField(db_index=True)
    warehouse_id = models.UUIDField()
    order = models.ForeignKey(
        'Order',
        on_delete=models.CASCADE,
        related_name='shipments',
        help_text="Order this shipment belongs to"
    )

    shipment_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="SHP-<yyyymmdd>-<sequence>"
    )

    carrier = models.CharField(
        max_length=50,
        help_text="Shipping carrier (FEDEX, UPS, DHL, USPS, ...)"
    )
    service_level = models.CharField(max_length=50, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True, db_index=True)
    tracking_url = models.CharField(max_length=500, blank=True)
    shipment_type = models.CharField(
        max_length=10,
        choices=ShipmentType.choices,
        default=ShipmentType.PARCEL,
    )

    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_weight = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    total_volume = models.DecimalField(max_digits=16, decimal_places=4, default=Decimal('0.0000'))
    total_cartons = models.PositiveIntegerField(default=0)
    carton_ids = models.JSONField(default=list, blank=True)

    delivery_status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
    )
    ship_date = models.DateTimeField(default=timezone.now)
    estimated_delivery_date = models.DateField(null=True, blank=True)
    actual_delivery_date = models.DateTimeField(null=True, blank=True)

    signed_by = models.CharField(max_length=255, blank=True)
    signature_captured_at = models.DateTimeField(null=True, blank=True)
    proof_of_delivery_url = models.CharField(max_length=500, blank=True)
    delivery_notes = models.TextField(blank=True)

    created_by = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'shipments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant_id', 'delivery_status']),
            models.Index(fields=['carrier', 'tracking_number']),
            models.Index(fields=['order']),
        ]

    def __str__(self):
        return f"Shipment {self.shipment_number} - {self.carrier} ({self.delivery_status})"

    @property
    def is_delivered(self):
        return self.delivery_status == DeliveryStatus.DELIVERED

    @property
    def is_in_transit(self):
        return self.delivery_status in [
            DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT, DeliveryStatus.OUT_FOR_DELIVERY,
        ]


class ShipmentLine(models.Model):
    """Shipped quantity of one order line together with its lot lineage."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    shipment = models.ForeignKey(
        Shipment,
        on_delete=models.CASCADE,
        related_name='lines',
    )
    order_line = models.ForeignKey('OrderLine', on_delete=models.CASCADE, related_name='shipment_lines')
    product_id = models.UUIDField()
    product_sku = models.CharField(max_length=100)
    quantity_shipped = models.DecimalField(max_digits=12, decimal_places=4)

    # Lineage of the first picked allocation, plus the full list
    batch_number = models.CharField(max_length=100, blank=True)
    lot_number = models.CharField(max_length=100, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    serial_numbers = models.JSONField(default=list, blank=True)
    lineage = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = 'shipment_lines'
        ordering = ['shipment', 'order_line__line_number']

    def __str__(self):
        return f"{self.quantity_shipped} of {self.product_sku} on {self.shipment_id}"
