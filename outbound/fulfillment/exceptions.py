"""
Custom exceptions for the outbound fulfillment pipeline.

Every failure carries a stable ``code`` and a human readable ``message``;
``to_dict()`` is what callers outside the trust boundary get to see.
"""

from typing import Dict, Any


class BusinessException(Exception):
    """Base exception for business logic errors."""

    def __init__(self, message: str, code: str = "BUSINESS_ERROR", details: Dict[str, Any] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundException(BusinessException):
    """Raised when an entity is missing or outside the caller's tenant."""

    def __init__(self, entity_type: str, entity_id):
        message = f"{entity_type} {entity_id} not found"
        super().__init__(message, "NOT_FOUND", {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
        })


class InvalidTransitionException(BusinessException):
    """Raised when attempting an invalid workflow transition."""

    def __init__(self, current_status: str, attempted_status: str, entity_type: str = "Order"):
        message = f"Invalid transition for {entity_type}: cannot move from {current_status} to {attempted_status}"
        super().__init__(message, "INVALID_TRANSITION", {
            "current_status": str(current_status),
            "attempted_status": str(attempted_status),
            "entity_type": entity_type
        })


class InsufficientQuantityException(BusinessException):
    """Raised when a ledger reservation, release or depletion precondition fails."""

    def __init__(self, inventory_id, operation: str, requested_qty, available_qty=None):
        message = (
            f"Insufficient quantity on inventory {inventory_id} for {operation}: "
            f"requested {requested_qty}"
        )
        if available_qty is not None:
            message += f", available {available_qty}"
        super().__init__(message, "INSUFFICIENT_QUANTITY", {
            "inventory_id": str(inventory_id),
            "operation": operation,
            "requested_quantity": str(requested_qty),
            "available_quantity": None if available_qty is None else str(available_qty),
        })


class ValidationException(BusinessException):
    """Raised when data validation fails."""

    def __init__(self, message: str, field_errors: Dict[str, Any] = None):
        super().__init__(message, "VALIDATION_ERROR", field_errors or {})


class DependencyFailureException(BusinessException):
    """Raised when an external collaborator (carrier, notifications) fails."""

    def __init__(self, dependency: str, message: str):
        super().__init__(f"{dependency} failed: {message}", "DEPENDENCY_FAILURE", {
            "dependency": dependency,
        })
