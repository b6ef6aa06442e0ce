"""
Allocation detail: one reservation of one inventory lot for one order line.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone


class AllocationStatus(models.TextChoices):
    """Allocation status enumeration."""
    ALLOCATED = 'ALLOCATED', 'Allocated'
    PICKED = 'PICKED', 'Picked'
    CANCELLED = 'CANCELLED', 'Cancelled'


class AllocationDetail(models.Model):
    """
    Reserved quantity on a specific inventory row.

    Batch, lot, expiry and serial numbers are copied from the inventory row
    at allocation time so the shipment can report lineage even after the
    row has been depleted.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField()

    order = models.ForeignKey(
        'Order',
        on_delete=models.CASCADE,
        related_name='allocation_details',
    )
    order_line = models.ForeignKey(
        'OrderLine',
        on_delete=models.CASCADE,
        related_name='allocation_details',
    )
    inventory = models.ForeignKey(
        'inventory.Inventory',
        on_delete=models.PROTECT,
        related_name='allocation_details',
        help_text="Inventory lot the quantity is reserved on"
    )

    location_code = models.CharField(max_length=100)
    product_id = models.UUIDField()
    product_sku = models.CharField(max_length=100)

    quantity_allocated = models.DecimalField(max_digits=12, decimal_places=4)
    quantity_picked = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))

    # Lineage snapshot
    batch_number = models.CharField(max_length=100, blank=True)
    lot_number = models.CharField(max_length=100, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    lpn = models.CharField(max_length=100, blank=True)
    serial_numbers = models.JSONField(default=list, blank=True)

    status = models.CharField(
        max_length=20,
        choices=AllocationStatus.choices,
        default=AllocationStatus.ALLOCATED,
    )

    allocated_at = models.DateTimeField(default=timezone.now)
    picked_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'allocation_details'
        ordering = ['allocated_at']
        indexes = [
            models.Index(fields=['order', 'status']),
            models.Index(fields=['order_line', 'status']),
            models.Index(fields=['inventory']),
        ]

    def __str__(self):
        return f"Allocation {self.quantity_allocated} of {self.product_sku} at {self.location_code}"

    @property
    def is_active(self):
        return self.status == AllocationStatus.ALLOCATED

    def lineage(self):
        """Serializable lineage record used on shipment lines."""
        return {
            'allocation_detail_id': str(self.id),
            'inventory_id': str(self.inventory_id),
            'location_code': self.location_code,
            'batch_number': self.batch_number,
            'lot_number': self.lot_number,
            'expiry_date': self.expiry_date.isoformat() if self.expiry_date else None,
            'lpn': self.lpn,
            'serial_numbers': list(self.serial_numbers or []),
            'quantity_picked': str(self.quantity_picked),
        }
