"""
Picking models for outbound fulfillment.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone

from .order import OrderPriority


class PickTaskStatus(models.TextChoices):
    """Pick task status enumeration."""
    PENDING = 'PENDING', 'Pending'
    ASSIGNED = 'ASSIGNED', 'Assigned'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class PickTaskType(models.TextChoices):
    SINGLE = 'SINGLE', 'Single Order'
    BATCH = 'BATCH', 'Batch'


class PickLineStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    PICKED = 'PICKED', 'Picked'
    SHORT = 'SHORT', 'Short'
    CANCELLED = 'CANCELLED', 'Cancelled'


class PickTask(models.Model):
    """
    Unit of picking work covering one order (SINGLE) or several (BATCH).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField(db_index=True)
    warehouse_id = models.UUIDField()

    task_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="PICK-<yyyymmdd>-<sequence>"
    )
    task_type = models.CharField(
        max_length=10,
        choices=PickTaskType.choices,
        default=PickTaskType.SINGLE,
    )
    orders = models.ManyToManyField(
        'Order',
        related_name='pick_tasks',
        help_text="Orders covered by this task"
    )

    status = models.CharField(
        max_length=20,
        choices=PickTaskStatus.choices,
        default=PickTaskStatus.PENDING,
    )
    priority = models.CharField(
        max_length=10,
        choices=OrderPriority.choices,
        default=OrderPriority.NORMAL,
    )

    picker_user_id = models.CharField(max_length=100, blank=True)

    total_lines = models.PositiveIntegerField(default=0)
    total_units = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    units_picked = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))

    assigned_at = models.DateTimeField(null=True, blank=True)
    start_time = models.DateTimeField(null=True, blank=True)
    completion_time = models.DateTimeField(null=True, blank=True)
    actual_duration_minutes = models.PositiveIntegerField(null=True, blank=True)

    created_by = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'pick_tasks'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant_id', 'status']),
            models.Index(fields=['picker_user_id', 'status']),
        ]

    def __str__(self):
        return f"Pick Task {self.task_number} - {self.status}"

    @property
    def progress_percentage(self):
        if not self.total_units:
            return 100.0
        return float(self.units_picked / self.total_units * 100)


class PickTaskLine(models.Model):
    """
    One allocation detail to pick, in walking order.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    pick_task = models.ForeignKey(
        PickTask,
        on_delete=models.CASCADE,
        related_name='lines',
    )
    allocation_detail = models.ForeignKey(
        'AllocationDetail',
        on_delete=models.PROTECT,
        related_name='pick_lines',
    )
    order = models.ForeignKey('Order', on_delete=models.CASCADE, related_name='pick_lines')
    order_line = models.ForeignKey('OrderLine', on_delete=models.CASCADE, related_name='pick_lines')

    product_id = models.UUIDField()
    product_sku = models.CharField(max_length=100)
    location_code = models.CharField(
        max_length=100,
        help_text="Location the item should be picked from"
    )
    pick_sequence = models.PositiveIntegerField()

    quantity_to_pick = models.DecimalField(max_digits=12, decimal_places=4)
    quantity_picked = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    variance_quantity = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    variance_reason = models.CharField(max_length=255, blank=True)
    picker_notes = models.TextField(blank=True)

    line_status = models.CharField(
        max_length=20,
        choices=PickLineStatus.choices,
        default=PickLineStatus.PENDING,
    )
    picked_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'pick_task_lines'
        ordering = ['pick_task', 'pick_sequence']
        indexes = [
            models.Index(fields=['pick_task', 'line_status']),
        ]

    def __str__(self):
        return f"Pick {self.quantity_picked}/{self.quantity_to_pick} of {self.product_sku} at {self.location_code}"

    @property
    def shortfall(self):
        return self.quantity_to_pick - self.quantity_picked


class VarianceStatus(models.TextChoices):
    OPEN = 'OPEN', 'Open'
    RESOLVED = 'RESOLVED', 'Resolved'


class ShortPickVariance(models.Model):
    """Record of a pick that came up short, awaiting investigation."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField()
    pick_task_line = models.OneToOneField(
        PickTaskLine,
        on_delete=models.CASCADE,
        related_name='short_pick_variance',
    )
    order_line = models.ForeignKey('OrderLine', on_delete=models.CASCADE, related_name='short_pick_variances')
    inventory = models.ForeignKey(
        'inventory.Inventory',
        on_delete=models.PROTECT,
        related_name='short_pick_variances',
    )

    quantity_requested = models.DecimalField(max_digits=12, decimal_places=4)
    quantity_picked = models.DecimalField(max_digits=12, decimal_places=4)
    quantity_short = models.DecimalField(max_digits=12, decimal_places=4)
    reason = models.CharField(max_length=255, blank=True)

    status = models.CharField(
        max_length=10,
        choices=VarianceStatus.choices,
        default=VarianceStatus.OPEN,
    )
    resolution_note = models.TextField(blank=True)
    resolved_by = models.CharField(max_length=100, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'short_pick_variances'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant_id', 'status']),
        ]

    def __str__(self):
        return f"Short pick of {self.quantity_short} on {self.order_line_id} ({self.status})"
