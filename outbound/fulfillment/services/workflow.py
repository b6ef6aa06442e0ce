"""
Workflow rules for outbound fulfillment.

Each entity has a table of allowed status transitions. Moving to the current
status is always allowed and is a no-op; terminal states map to an empty list.
"""

from ..exceptions import InvalidTransitionException
from ..models import (
    DeliveryStatus, Order, OrderStatus, PackTask, PackTaskStatus,
    PickTask, PickTaskStatus, Shipment
)


class StatusWorkflow:
    """Base class: subclasses provide the transition table."""

    ENTITY_TYPE = ""
    STATUS_FIELD = "status"
    ALLOWED_TRANSITIONS = {}

    @classmethod
    def validate_transition(cls, entity, new_status: str) -> None:
        """
        Validate if a status transition is allowed.

        Args:
            entity: Model instance carrying the status
            new_status: New status to transition to

        Raises:
            InvalidTransitionException: If transition is not allowed
        """
        current_status = getattr(entity, cls.STATUS_FIELD)

        if current_status == new_status:
            return

        if new_status not in cls.ALLOWED_TRANSITIONS.get(current_status, []):
            raise InvalidTransitionException(
                current_status=current_status,
                attempted_status=new_status,
                entity_type=cls.ENTITY_TYPE
            )

    @classmethod
    def can_transition_to(cls, entity, new_status: str) -> bool:
        try:
            cls.validate_transition(entity, new_status)
            return True
        except InvalidTransitionException:
            return False

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.ALLOWED_TRANSITIONS.get(status)


class OrderWorkflow(StatusWorkflow):
    """Workflow rules for Order state transitions."""

    ENTITY_TYPE = "Order"
    ALLOWED_TRANSITIONS = {
        OrderStatus.NEW: [
            OrderStatus.ALLOCATED, OrderStatus.PARTIALLY_ALLOCATED, OrderStatus.ALLOCATION_FAILED,
            OrderStatus.ON_HOLD, OrderStatus.CANCELLED,
        ],
        OrderStatus.ALLOCATED: [
            OrderStatus.PICKING, OrderStatus.NEW, OrderStatus.ON_HOLD, OrderStatus.CANCELLED,
        ],
        OrderStatus.PARTIALLY_ALLOCATED: [
            OrderStatus.NEW, OrderStatus.ON_HOLD, OrderStatus.CANCELLED,
        ],
        OrderStatus.ALLOCATION_FAILED: [
            OrderStatus.NEW, OrderStatus.ALLOCATED, OrderStatus.PARTIALLY_ALLOCATED,
            OrderStatus.ON_HOLD, OrderStatus.CANCELLED,
        ],
        OrderStatus.PICKING: [OrderStatus.PICKED, OrderStatus.CANCELLED],
        OrderStatus.PICKED: [OrderStatus.PACKING, OrderStatus.CANCELLED],
        OrderStatus.PACKING: [OrderStatus.PACKED, OrderStatus.CANCELLED],
        OrderStatus.PACKED: [OrderStatus.SHIPPED, OrderStatus.CANCELLED],
        OrderStatus.SHIPPED: [OrderStatus.DELIVERED],
        OrderStatus.ON_HOLD: [
            OrderStatus.NEW, OrderStatus.ALLOCATED, OrderStatus.PARTIALLY_ALLOCATED,
            OrderStatus.ALLOCATION_FAILED, OrderStatus.CANCELLED,
        ],
        OrderStatus.DELIVERED: [],  # Final state
        OrderStatus.CANCELLED: [],  # Final state
    }


class PickTaskWorkflow(StatusWorkflow):
    """Workflow rules for PickTask state transitions."""

    ENTITY_TYPE = "PickTask"
    ALLOWED_TRANSITIONS = {
        PickTaskStatus.PENDING: [
            PickTaskStatus.ASSIGNED, PickTaskStatus.IN_PROGRESS, PickTaskStatus.CANCELLED,
        ],
        PickTaskStatus.ASSIGNED: [PickTaskStatus.IN_PROGRESS, PickTaskStatus.CANCELLED],
        PickTaskStatus.IN_PROGRESS: [PickTaskStatus.COMPLETED, PickTaskStatus.CANCELLED],
        PickTaskStatus.COMPLETED: [],
        PickTaskStatus.CANCELLED: [],
    }


class PackTaskWorkflow(StatusWorkflow):
    """Workflow rules for PackTask state transitions."""

    ENTITY_TYPE = "PackTask"
    ALLOWED_TRANSITIONS = {
        PackTaskStatus.PENDING: [PackTaskStatus.IN_PROGRESS, PackTaskStatus.CANCELLED],
        PackTaskStatus.IN_PROGRESS: [PackTaskStatus.COMPLETED, PackTaskStatus.CANCELLED],
        PackTaskStatus.COMPLETED: [],
        PackTaskStatus.CANCELLED: [],
    }


class ShipmentWorkflow(StatusWorkflow):
    """Delivery status transitions reported by the carrier."""

    ENTITY_TYPE = "Shipment"
    STATUS_FIELD = "delivery_status"
    ALLOWED_TRANSITIONS = {
        DeliveryStatus.PENDING: [
            DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED,
        ],
        DeliveryStatus.PICKED_UP: [
            DeliveryStatus.IN_TRANSIT, DeliveryStatus.FAILED, DeliveryStatus.RETURNED,
        ],
        DeliveryStatus.IN_TRANSIT: [
            DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.DELIVERED,
            DeliveryStatus.FAILED, DeliveryStatus.RETURNED,
        ],
        DeliveryStatus.OUT_FOR_DELIVERY: [
            DeliveryStatus.DELIVERED, DeliveryStatus.FAILED, DeliveryStatus.RETURNED,
        ],
        # A failed attempt can be retried or sent back
        DeliveryStatus.FAILED: [
            DeliveryStatus.IN_TRANSIT, DeliveryStatus.OUT_FOR_DELIVERY, DeliveryStatus.RETURNED,
        ],
        DeliveryStatus.DELIVERED: [],
        DeliveryStatus.RETURNED: [],
    }


def validate_order_workflow(order: Order, new_status: str) -> None:
    """
    Validate order workflow transition.

    Raises:
        InvalidTransitionException: If transition is not allowed
    """
    OrderWorkflow.validate_transition(order, new_status)


def validate_picking_workflow(task: PickTask, new_status: str) -> None:
    PickTaskWorkflow.validate_transition(task, new_status)


def validate_packing_workflow(task: PackTask, new_status: str) -> None:
    PackTaskWorkflow.validate_transition(task, new_status)


def validate_shipment_workflow(shipment: Shipment, new_status: str) -> None:
    ShipmentWorkflow.validate_transition(shipment, new_status)
