"""
Shared plumbing for the fulfillment services.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List

from django.apps import apps
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone

from inventory.services import InventoryLedger

from ..adapters.event_publisher import publish_after_commit
from ..exceptions import NotFoundException, ValidationException
from ..models import AllocationDetail, AllocationStatus, Order, OrderEvent
from .workflow import validate_order_workflow

logger = logging.getLogger(__name__)

ZERO = Decimal('0.0000')


class FulfillmentService:
    """
    Base class holding the injected collaborators.

    Anything not passed to the constructor comes from the fulfillment app
    config, which builds it from settings at startup.
    """

    def __init__(self, event_publisher=None, carrier_adapter=None, catalog_adapter=None, ledger=None):
        config = apps.get_app_config("fulfillment")
        self.event_publisher = event_publisher or config.event_publisher
        self.carrier_adapter = carrier_adapter or config.carrier_adapter
        self.catalog_adapter = catalog_adapter or config.catalog_adapter
        self.ledger = ledger or InventoryLedger()

    @staticmethod
    def _get(model, pk, tenant_id, lock=False, entity_type=None):
        """
        Fetch a tenant-scoped row, optionally locking it.

        Raises:
            NotFoundException: If the row is missing, belongs to another
                tenant or the id is malformed
        """
        queryset = model.objects.select_for_update() if lock else model.objects
        try:
            return queryset.get(pk=pk, tenant_id=tenant_id)
        except (model.DoesNotExist, DjangoValidationError, ValueError):
            raise NotFoundException(entity_type or model.__name__, pk)

    @staticmethod
    def _validate(serializer_class, data, message="Invalid input", context=None) -> Dict[str, Any]:
        """Run a DRF serializer and turn its errors into a ValidationException."""
        serializer = serializer_class(data=data, context=context or {})
        if not serializer.is_valid():
            raise ValidationException(message, serializer.errors)
        return serializer.validated_data

    @staticmethod
    def _change_order_status(order: Order, new_status: str, event_type: str, description: str,
                             performed_by=None, metadata=None, extra_fields=()) -> Order:
        """
        Move an order along its workflow and append the matching event.

        The order must already be locked by the caller.
        """
        validate_order_workflow(order, new_status)
        old_status = order.status
        order.status = new_status
        order.save(update_fields=['status', 'updated_at', *extra_fields])

        OrderEvent.log(
            order,
            event_type,
            description,
            performed_by=performed_by,
            metadata={'old_status': old_status, 'new_status': new_status, **(metadata or {})},
        )
        logger.info(f"Order {order.order_number} moved from {old_status} to {new_status}")
        return order

    def _publish(self, topic: str, payload: Dict[str, Any]):
        publish_after_commit(self.event_publisher, topic, {**payload, 'timestamp': timezone.now()})

    @staticmethod
    def _document_number(prefix: str, pk) -> str:
        """``<prefix>-<yyyymmddHHMMSS>-<first 8 chars of the id>``, unique without a counter."""
        return f"{prefix}-{timezone.now():%Y%m%d%H%M%S}-{str(pk)[:8].upper()}"

    def _release_details(self, order: Order, details: List[AllocationDetail], reason: str) -> Decimal:
        """Return reserved stock to the ledger and cancel the details."""
        released = ZERO
        now = timezone.now()
        for detail in details:
            self.ledger.release(
                detail.inventory_id,
                detail.quantity_allocated,
                reference_type='ALLOCATION',
                reference_id=detail.id,
                notes=f"{reason} of order {order.order_number}",
            )
            detail.status = AllocationStatus.CANCELLED
            detail.cancelled_at = now
            detail.save(update_fields=['status', 'cancelled_at'])
            released += detail.quantity_allocated
        return released
