"""
Audit trail for orders.
"""

import uuid
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class OrderEvent(models.Model):
    """
    Append-only record of something that happened to an order.

    Rows are written once; updating or deleting an existing event raises.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField()
    order = models.ForeignKey(
        'Order',
        on_delete=models.CASCADE,
        related_name='events',
    )

    event_type = models.CharField(
        max_length=50,
        help_text="Dotted event name (order.created, pick.short, ...)"
    )
    description = models.TextField(blank=True)
    metadata = models.JSONField(
        default=dict,
        blank=True,
        encoder=DjangoJSONEncoder,
        help_text="Additional event metadata"
    )
    performed_by = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'order_events'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', '-created_at']),
            models.Index(fields=['event_type', '-created_at']),
        ]

    def __str__(self):
        return f"{self.event_type} on {self.order_id} by {self.performed_by or 'system'}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Order events are append-only and cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Order events are append-only and cannot be deleted")

    @classmethod
    def log(cls, order, event_type: str, description: str = "", performed_by=None, metadata=None):
        """
        Append an event for an order.

        Args:
            order: The order the event belongs to
            event_type: Dotted event name
            description: Human readable summary
            performed_by: Opaque user identifier, if any
            metadata: JSON-serialisable details (Decimals and UUIDs allowed)
        """
        return cls.objects.create(
            tenant_id=order.tenant_id,
            order=order,
            event_type=event_type,
            description=description,
            performed_by=str(performed_by) if performed_by else "",
            metadata=metadata or {},
        )
