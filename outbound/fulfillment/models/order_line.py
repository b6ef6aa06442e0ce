"""
OrderLine model for outbound fulfillment.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.db.models import F, Q

from .order import AllocationStrategy


class LineStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    PARTIALLY_ALLOCATED = 'PARTIALLY_ALLOCATED', 'Partially Allocated'
    ALLOCATED = 'ALLOCATED', 'Allocated'
    BACKORDERED = 'BACKORDERED', 'Backordered'
    SHIPPED = 'SHIPPED', 'Shipped'
    CANCELLED = 'CANCELLED', 'Cancelled'


class OrderLine(models.Model):
    """
    One product on an order.

    Quantities only ever flow downstream:
    shipped <= packed <= picked <= allocated <= ordered.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField()
    order = models.ForeignKey(
        'Order',
        on_delete=models.CASCADE,
        related_name='lines',
        help_text="Order this line belongs to"
    )
    line_number = models.PositiveIntegerField()

    # Product snapshot; catalog master data lives elsewhere
    product_id = models.UUIDField()
    product_sku = models.CharField(
        max_length=100,
        help_text="Product SKU for inventory tracking"
    )
    product_name = models.CharField(max_length=255, blank=True)
    uom = models.CharField(max_length=20, default='Each')
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    allocation_strategy = models.CharField(
        max_length=10,
        choices=AllocationStrategy.choices,
        blank=True,
        help_text="Overrides the order's allocation strategy when set"
    )

    quantity_ordered = models.DecimalField(max_digits=12, decimal_places=4)
    quantity_allocated = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    quantity_picked = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    quantity_packed = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    quantity_shipped = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))
    quantity_backordered = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('0.0000'))

    line_status = models.CharField(
        max_length=20,
        choices=LineStatus.choices,
        default=LineStatus.PENDING,
    )

    special_handling = models.TextField(blank=True)

    class Meta:
        db_table = 'order_lines'
        ordering = ['order', 'line_number']
        indexes = [
            models.Index(fields=['order', 'line_status']),
            models.Index(fields=['product_id']),
        ]
        constraints = [
            models.UniqueConstraint(fields=['order', 'line_number'], name='order_line_number_unique'),
            models.CheckConstraint(condition=Q(quantity_ordered__gt=0), name='order_line_ordered_positive'),
            models.CheckConstraint(
                condition=Q(quantity_allocated__gte=0) & Q(quantity_allocated__lte=F('quantity_ordered')),
                name='order_line_allocated_within_ordered',
            ),
            models.CheckConstraint(
                condition=Q(quantity_picked__gte=0) & Q(quantity_picked__lte=F('quantity_allocated')),
                name='order_line_picked_within_allocated',
            ),
            models.CheckConstraint(
                condition=Q(quantity_packed__gte=0) & Q(quantity_packed__lte=F('quantity_picked')),
                name='order_line_packed_within_picked',
            ),
            models.CheckConstraint(
                condition=Q(quantity_shipped__gte=0) & Q(quantity_shipped__lte=F('quantity_packed')),
                name='order_line_shipped_within_packed',
            ),
        ]

    def __str__(self):
        return f"{self.product_sku} - {self.quantity_ordered} units"

    @property
    def effective_strategy(self):
        """Line override if present, otherwise the order's strategy."""
        return self.allocation_strategy or self.order.allocation_strategy

    @property
    def remaining_to_allocate(self):
        return self.quantity_ordered - self.quantity_allocated

    @property
    def remaining_to_pick(self):
        return self.quantity_allocated - self.quantity_picked

    @property
    def is_fully_allocated(self):
        return self.quantity_allocated >= self.quantity_ordered
