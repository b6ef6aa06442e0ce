"""
Order model for outbound fulfillment.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.db.models import Count, Sum
from django.utils import timezone


class OrderStatus(models.TextChoices):
    """Order status enumeration with workflow states."""
    NEW = 'NEW', 'New'
    ALLOCATED = 'ALLOCATED', 'Allocated'
    PARTIALLY_ALLOCATED = 'PARTIALLY_ALLOCATED', 'Partially Allocated'
    ALLOCATION_FAILED = 'ALLOCATION_FAILED', 'Allocation Failed'
    PICKING = 'PICKING', 'Picking'
    PICKED = 'PICKED', 'Picked'
    PACKING = 'PACKING', 'Packing'
    PACKED = 'PACKED', 'Packed'
    SHIPPED = 'SHIPPED', 'Shipped'
    DELIVERED = 'DELIVERED', 'Delivered'
    ON_HOLD = 'ON_HOLD', 'On Hold'
    CANCELLED = 'CANCELLED', 'Cancelled'


class OrderPriority(models.TextChoices):
    """Order priority levels."""
    LOW = 'LOW', 'Low'
    NORMAL = 'NORMAL', 'Normal'
    HIGH = 'HIGH', 'High'
    URGENT = 'URGENT', 'Urgent'


class AllocationStrategy(models.TextChoices):
    """Lot selection policy used when reserving inventory."""
    FIFO = 'FIFO', 'First In, First Out'
    FEFO = 'FEFO', 'First Expired, First Out'
    LIFO = 'LIFO', 'Last In, First Out'
    MANUAL = 'MANUAL', 'Manual'


class Order(models.Model):
    """
    Customer order moving through allocation, picking, packing and shipping.

    The unit totals are denormalised from the order lines and are only ever
    written by recalculate_totals().
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField(db_index=True)
    warehouse_id = models.UUIDField(help_text="Warehouse fulfilling the order")
    order_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="Unique order identifier (auto-generated)"
    )

    # Customer snapshot; customer master data lives elsewhere
    customer_reference = models.CharField(max_length=100, blank=True)
    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField(blank=True)
    shipping_address = models.JSONField(default=dict, blank=True)

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.NEW,
        help_text="Current order status in the fulfillment workflow"
    )
    status_before_hold = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        blank=True,
        help_text="Status to restore when a hold is released"
    )
    priority = models.CharField(
        max_length=10,
        choices=OrderPriority.choices,
        default=OrderPriority.NORMAL,
    )
    allocation_strategy = models.CharField(
        max_length=10,
        choices=AllocationStrategy.choices,
        default=AllocationStrategy.FIFO,
        help_text="Default lot selection policy for the order's lines"
    )

    required_ship_date = models.DateField(null=True, blank=True)
    requested_delivery_date = models.DateField(null=True, blank=True)

    # Totals, recomputed from lines
    total_lines = models.PositiveIntegerField(default=0)
    total_units_ordered = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    total_units_allocated = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    total_units_picked = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    total_units_packed = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    total_units_shipped = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))

    # Shipping
    carrier = models.CharField(max_length=50, blank=True)
    service_level = models.CharField(max_length=50, blank=True)
    tracking_number = models.CharField(max_length=100, blank=True, db_index=True)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    # Lifecycle timestamps
    allocated_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.CharField(max_length=100, blank=True)
    cancellation_reason = models.TextField(blank=True)

    special_instructions = models.TextField(blank=True)
    notes = models.TextField(
        blank=True,
        help_text="Order notes or special instructions"
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Additional flexible metadata"
    )

    created_by = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant_id', 'status']),
            models.Index(fields=['status', 'priority']),
            models.Index(fields=['warehouse_id', 'status']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return f"Order {self.order_number} - {self.customer_name}"

    def save(self, *args, **kwargs):
        """Override save to auto-generate order number if not provided."""
        if not self.order_number:
            timestamp = timezone.now().strftime('%Y%m%d%H%M%S')
            self.order_number = f"ORD-{timestamp}-{str(self.id)[:8].upper()}"
        super().save(*args, **kwargs)

    def recalculate_totals(self, save=True):
        """
        Recompute line count and unit totals from the order lines.

        Callers run this inside the transaction that mutated the lines.
        """
        zero = Decimal('0.0000')
        totals = self.lines.aggregate(
            lines=Count('id'),
            ordered=Sum('quantity_ordered'),
            allocated=Sum('quantity_allocated'),
            picked=Sum('quantity_picked'),
            packed=Sum('quantity_packed'),
            shipped=Sum('quantity_shipped'),
        )
        self.total_lines = totals['lines'] or 0
        self.total_units_ordered = totals['ordered'] or zero
        self.total_units_allocated = totals['allocated'] or zero
        self.total_units_picked = totals['picked'] or zero
        self.total_units_packed = totals['packed'] or zero
        self.total_units_shipped = totals['shipped'] or zero

        if save:
            self.save(update_fields=[
                'total_lines', 'total_units_ordered', 'total_units_allocated',
                'total_units_picked', 'total_units_packed', 'total_units_shipped',
                'updated_at',
            ])
        return self

    @property
    def is_allocated(self):
        """Check if stock has been reserved for the order."""
        return self.status in [
            OrderStatus.ALLOCATED, OrderStatus.PARTIALLY_ALLOCATED, OrderStatus.PICKING,
            OrderStatus.PICKED, OrderStatus.PACKING, OrderStatus.PACKED,
            OrderStatus.SHIPPED, OrderStatus.DELIVERED,
        ]

    @property
    def is_shipped(self):
        return self.status in [OrderStatus.SHIPPED, OrderStatus.DELIVERED]

    @property
    def can_be_cancelled(self):
        """Orders can be cancelled until they leave the building."""
        return self.status not in [OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED]
