"""
Inventory ledger: the only code allowed to move quantities between the
on-hand, available and allocated buckets of an Inventory row.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Q, Sum
from django.utils import timezone

from fulfillment.exceptions import (
    InsufficientQuantityException, NotFoundException, ValidationException
)
from inventory.models import Inventory, InventoryStatus, InventoryTransaction, TransactionType

logger = logging.getLogger(__name__)


class InventoryLedger:
    """
    Guarded read-modify-write operations on inventory quantities.

    Every write is a single conditional UPDATE (compare-and-swap on the
    bucket being decremented) and joins the caller's transaction; calling
    one outside ``transaction.atomic()`` raises TransactionManagementError.
    """

    def reserve(self, inventory_id, quantity, reference_type="", reference_id="", notes="") -> Inventory:
        """
        Move quantity from available to allocated.

        Raises:
            InsufficientQuantityException: If available < quantity at update time
            NotFoundException: If the inventory row does not exist
        """
        self._require_atomic()
        quantity = self._validate_quantity(quantity)
        updated = Inventory.objects.filter(
            pk=inventory_id, quantity_available__gte=quantity
        ).update(
            quantity_available=F("quantity_available") - quantity,
            quantity_allocated=F("quantity_allocated") + quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            self._raise_shortage(inventory_id, "reserve", quantity, "quantity_available")

        return self._record(
            inventory_id, TransactionType.ALLOCATE, quantity,
            reference_type, reference_id, notes
        )

    def release(self, inventory_id, quantity, reference_type="", reference_id="", notes="") -> Inventory:
        """
        Move quantity from allocated back to available.

        Raises:
            InsufficientQuantityException: If allocated < quantity at update time
            NotFoundException: If the inventory row does not exist
        """
        self._require_atomic()
        quantity = self._validate_quantity(quantity)
        updated = Inventory.objects.filter(
            pk=inventory_id, quantity_allocated__gte=quantity
        ).update(
            quantity_allocated=F("quantity_allocated") - quantity,
            quantity_available=F("quantity_available") + quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            self._raise_shortage(inventory_id, "release", quantity, "quantity_allocated")

        return self._record(
            inventory_id, TransactionType.RELEASE, quantity,
            reference_type, reference_id, notes
        )

    def commit_depletion(self, inventory_id, quantity, reference_type="", reference_id="", notes="",
                         serial_numbers=None) -> Inventory:
        """
        Physically remove allocated stock: on-hand and allocated both drop.

        Serial numbers given are taken off the row, they have left the shelf.

        Raises:
            InsufficientQuantityException: If allocated < quantity at update time
            NotFoundException: If the inventory row does not exist
        """
        self._require_atomic()
        quantity = self._validate_quantity(quantity)
        updated = Inventory.objects.filter(
            pk=inventory_id, quantity_allocated__gte=quantity, quantity_on_hand__gte=quantity
        ).update(
            quantity_on_hand=F("quantity_on_hand") - quantity,
            quantity_allocated=F("quantity_allocated") - quantity,
            updated_at=timezone.now(),
        )
        if not updated:
            self._raise_shortage(inventory_id, "commit_depletion", quantity, "quantity_allocated")
        if serial_numbers:
            self._remove_serials(inventory_id, serial_numbers)

        return self._record(
            inventory_id, TransactionType.PICK, -quantity,
            reference_type, reference_id, notes
        )

    @staticmethod
    def available_lots(tenant_id, warehouse_id, product_id, expiry_cutoff=None):
        """
        Lots that can satisfy an allocation, ordered by primary key.

        Lots expiring on or before ``expiry_cutoff`` are excluded; lots
        without an expiry date are always eligible.
        """
        queryset = Inventory.objects.filter(
            tenant_id=tenant_id,
            warehouse_id=warehouse_id,
            product_id=product_id,
            status=InventoryStatus.AVAILABLE,
            quantity_available__gt=0,
        )
        if expiry_cutoff is not None:
            queryset = queryset.filter(Q(expiry_date__isnull=True) | Q(expiry_date__gt=expiry_cutoff))
        return queryset.order_by("id")

    @staticmethod
    def lock_lots(tenant_id, warehouse_id, product_ids):
        """
        Lock every allocatable lot of the given products in one statement.

        Rows are locked in primary key order, so concurrent allocations that
        touch overlapping products always queue in the same order.
        """
        if not product_ids:
            return []
        return list(
            Inventory.objects.select_for_update().filter(
                tenant_id=tenant_id,
                warehouse_id=warehouse_id,
                product_id__in=product_ids,
                status=InventoryStatus.AVAILABLE,
                quantity_available__gt=0,
            ).order_by("id")
        )

    @classmethod
    def available_quantity(cls, tenant_id, warehouse_id, product_id, expiry_cutoff=None) -> Decimal:
        """Sum of available quantity across eligible lots."""
        total = cls.available_lots(
            tenant_id, warehouse_id, product_id, expiry_cutoff
        ).aggregate(total=Sum("quantity_available"))["total"]
        return total or Decimal("0.0000")

    @staticmethod
    def check_invariants(inventory_id) -> dict:
        """Read-only report of the bucket balance for one inventory row."""
        try:
            inventory = Inventory.objects.get(pk=inventory_id)
        except Inventory.DoesNotExist:
            raise NotFoundException("Inventory", inventory_id)

        return {
            "inventory_id": str(inventory.id),
            "quantity_on_hand": inventory.quantity_on_hand,
            "quantity_available": inventory.quantity_available,
            "quantity_allocated": inventory.quantity_allocated,
            "balanced": inventory.is_balanced,
        }

    @staticmethod
    def _require_atomic():
        if not transaction.get_connection().in_atomic_block:
            raise transaction.TransactionManagementError(
                "Inventory ledger writes must run inside transaction.atomic()"
            )

    @staticmethod
    def _validate_quantity(quantity) -> Decimal:
        quantity = Decimal(str(quantity))
        if quantity <= 0:
            raise ValidationException(
                "Ledger quantity must be positive",
                {"quantity": str(quantity)}
            )
        return quantity

    @staticmethod
    def _raise_shortage(inventory_id, operation, quantity, bucket):
        try:
            current = Inventory.objects.get(pk=inventory_id)
        except Inventory.DoesNotExist:
            raise NotFoundException("Inventory", inventory_id)

        logger.warning(
            f"Ledger {operation} of {quantity} refused on inventory {inventory_id}: "
            f"{bucket}={getattr(current, bucket)}"
        )
        raise InsufficientQuantityException(
            inventory_id, operation, quantity, getattr(current, bucket)
        )

    @staticmethod
    def _remove_serials(inventory_id, serial_numbers):
        inventory = Inventory.objects.select_for_update().get(pk=inventory_id)
        gone = set(serial_numbers)
        inventory.serial_numbers = [s for s in inventory.serial_numbers or [] if s not in gone]
        inventory.save(update_fields=["serial_numbers", "updated_at"])

    @staticmethod
    def _record(inventory_id, transaction_type, quantity, reference_type, reference_id, notes) -> Inventory:
        inventory = Inventory.objects.get(pk=inventory_id)
        InventoryTransaction.objects.create(
            tenant_id=inventory.tenant_id,
            inventory=inventory,
            transaction_type=transaction_type,
            quantity=quantity,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id else "",
            notes=notes,
        )
        return inventory
