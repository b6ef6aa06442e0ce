"""
Outbound fulfillment services.
"""

from .workflow import (
    OrderWorkflow, PackTaskWorkflow, PickTaskWorkflow, ShipmentWorkflow,
    validate_order_workflow, validate_picking_workflow,
    validate_packing_workflow, validate_shipment_workflow
)
from .base import FulfillmentService
from .order_service import OrderService
from .allocation_service import AllocationService
from .picking_service import PickingService, pick_path_sequence
from .packing_service import PackingService
from .shipping_service import ShippingService, tracking_url_for

__all__ = [
    # Workflow rules
    'OrderWorkflow', 'PickTaskWorkflow', 'PackTaskWorkflow', 'ShipmentWorkflow',
    'validate_order_workflow', 'validate_picking_workflow',
    'validate_packing_workflow', 'validate_shipment_workflow',

    # Services
    'FulfillmentService', 'OrderService', 'AllocationService', 'PickingService',
    'PackingService', 'ShippingService',

    # Helpers
    'pick_path_sequence', 'tracking_url_for',
]
