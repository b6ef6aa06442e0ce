import uuid
from decimal import Decimal

from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class InventoryStatus(models.TextChoices):
    AVAILABLE = "AVAILABLE", "Available"
    ON_HOLD = "ON_HOLD", "On Hold"
    QUARANTINE = "QUARANTINE", "Quarantine"
    DAMAGED = "DAMAGED", "Damaged"


class Inventory(models.Model):
    """
    One receivable unit of stock: a product at a location for a given batch.

    quantity_on_hand is always quantity_available + quantity_allocated; the
    database enforces it together with non-negative quantities.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField(db_index=True)
    warehouse_id = models.UUIDField()

    product_id = models.UUIDField()
    product_sku = models.CharField(max_length=100)
    location_code = models.CharField(max_length=100)

    batch_number = models.CharField(max_length=100, blank=True)
    lot_number = models.CharField(max_length=100, blank=True)
    lpn = models.CharField(max_length=100, blank=True)
    serial_numbers = models.JSONField(default=list, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    received_date = models.DateTimeField(default=timezone.now)

    status = models.CharField(
        max_length=20,
        choices=InventoryStatus.choices,
        default=InventoryStatus.AVAILABLE,
    )

    quantity_on_hand = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal("0.0000"))
    quantity_available = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal("0.0000"))
    quantity_allocated = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal("0.0000"))

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "inventory"
        verbose_name_plural = "Inventory"
        indexes = [
            models.Index(fields=["tenant_id", "warehouse_id", "product_id", "status"]),
            models.Index(fields=["product_sku"]),
            models.Index(fields=["location_code"]),
            models.Index(fields=["expiry_date"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity_on_hand=F("quantity_available") + F("quantity_allocated")),
                name="inventory_on_hand_balanced",
            ),
            models.CheckConstraint(condition=Q(quantity_on_hand__gte=0), name="inventory_on_hand_non_negative"),
            models.CheckConstraint(condition=Q(quantity_available__gte=0), name="inventory_available_non_negative"),
            models.CheckConstraint(condition=Q(quantity_allocated__gte=0), name="inventory_allocated_non_negative"),
        ]

    def __str__(self):
        return f"{self.product_sku} at {self.location_code} ({self.batch_number or 'no batch'})"

    @property
    def is_balanced(self):
        return (
            self.quantity_on_hand == self.quantity_available + self.quantity_allocated
            and min(self.quantity_on_hand, self.quantity_available, self.quantity_allocated) >= 0
        )


class TransactionType(models.TextChoices):
    ALLOCATE = "ALLOCATE", "Allocate"
    RELEASE = "RELEASE", "Release"
    PICK = "PICK", "Pick"


class InventoryTransaction(models.Model):
    """Append-only journal of every ledger movement."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant_id = models.UUIDField()
    inventory = models.ForeignKey(
        Inventory,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    # Signed: negative for stock leaving the building.
    quantity = models.DecimalField(max_digits=12, decimal_places=4)
    reference_type = models.CharField(max_length=30, blank=True)
    reference_id = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "inventory_transactions"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["inventory", "-created_at"]),
            models.Index(fields=["reference_type", "reference_id"]),
            models.Index(fields=["transaction_type"]),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.quantity} on {self.inventory_id}"
