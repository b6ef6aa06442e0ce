"""
Packing models for outbound fulfillment.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone


class PackTaskStatus(models.TextChoices):
    """Pack task status enumeration."""
    PENDING = 'PENDING', 'Pending'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class PackLineStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    PACKED = 'PACKED', 'Packed'
    VARIANCE = 'VARIANCE', 'Variance'
    CANCELLED = 'CANCELLED', 'Cancelled'


class PackTask(models.Model):
    """
    Packing work for a single picked order, ending with a carrier label.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField(db_index=True)
    order = models.ForeignKey(
        'Order',
        on_delete=models.CASCADE,
        related_name='pack_tasks',
        help_text="Order this pack task belongs to"
    )

    task_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="PACK-<yyyymmdd>-<sequence>"
    )
    status = models.CharField(
        max_length=20,
        choices=PackTaskStatus.choices,
        default=PackTaskStatus.PENDING,
    )
    packer_user_id = models.CharField(max_length=100, blank=True)

    total_items_to_pack = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    items_packed = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    cartons_used = models.PositiveIntegerField(default=0)

    carrier = models.CharField(max_length=50, blank=True)
    service_level = models.CharField(max_length=50, blank=True)
    shipping_label_generated = models.BooleanField(default=False)
    tracking_number = models.CharField(max_length=100, blank=True)
    label_url = models.CharField(max_length=500, blank=True)

    start_time = models.DateTimeField(null=True, blank=True)
    completion_time = models.DateTimeField(null=True, blank=True)
    created_by = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'pack_tasks'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['tenant_id', 'status']),
            models.Index(fields=['order', 'status']),
        ]

    def __str__(self):
        return f"Pack Task {self.task_number} - {self.status}"


class PackTaskLine(models.Model):
    """One order line to pack and the carton it went into."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    pack_task = models.ForeignKey(
        PackTask,
        on_delete=models.CASCADE,
        related_name='lines',
    )
    order_line = models.ForeignKey('OrderLine', on_delete=models.CASCADE, related_name='pack_lines')
    product_sku = models.CharField(max_length=100)

    quantity_to_pack = models.DecimalField(max_digits=12, decimal_places=4)
    quantity_packed = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    variance_quantity = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    variance_reason = models.CharField(max_length=255, blank=True)
    carton_number = models.PositiveIntegerField(null=True, blank=True)

    line_status = models.CharField(
        max_length=20,
        choices=PackLineStatus.choices,
        default=PackLineStatus.PENDING,
    )
    packed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'pack_task_lines'
        ordering = ['pack_task', 'order_line__line_number']

    def __str__(self):
        return f"Pack {self.quantity_packed}/{self.quantity_to_pack} of {self.product_sku}"


class Carton(models.Model):
    """
    Physical box produced by a pack task.

    ``items`` holds ``{"order_line_id", "quantity"}`` entries.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    pack_task = models.ForeignKey(
        PackTask,
        on_delete=models.CASCADE,
        related_name='cartons',
    )
    carton_number = models.PositiveIntegerField()

    weight = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        help_text="Carton weight (kg)"
    )
    length = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    width = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    height = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)

    items = models.JSONField(default=list)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'cartons'
        ordering = ['pack_task', 'carton_number']
        constraints = [
            models.UniqueConstraint(fields=['pack_task', 'carton_number'], name='carton_number_unique_per_task'),
        ]

    def __str__(self):
        return f"Carton {self.carton_number} of {self.pack_task_id}"

    @property
    def volume(self):
        """Volume in cubic units, zero when any dimension is missing."""
        if self.length is None or self.width is None or self.height is None:
            return Decimal('0.0000')
        return self.length * self.width * self.height
