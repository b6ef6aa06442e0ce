"""
Outbound fulfillment models.
"""

from .order import Order, OrderStatus, OrderPriority, AllocationStrategy
from .order_line import OrderLine, LineStatus
from .allocation import AllocationDetail, AllocationStatus
from .picking import (
    PickTask, PickTaskStatus, PickTaskType, PickTaskLine, PickLineStatus,
    ShortPickVariance, VarianceStatus,
)
from .packing import PackTask, PackTaskStatus, PackTaskLine, PackLineStatus, Carton
from .shipment import Shipment, ShipmentLine, DeliveryStatus, ShipmentType
from .audit import OrderEvent

__all__ = [
    # Order models
    'Order', 'OrderStatus', 'OrderPriority', 'AllocationStrategy',
    'OrderLine', 'LineStatus',

    # Allocation models
    'AllocationDetail', 'AllocationStatus',

    # Picking models
    'PickTask', 'PickTaskStatus', 'PickTaskType',
    'PickTaskLine', 'PickLineStatus',
    'ShortPickVariance', 'VarianceStatus',

    # Packing models
    'PackTask', 'PackTaskStatus', 'PackTaskLine', 'PackLineStatus', 'Carton',

    # Shipment models
    'Shipment', 'ShipmentLine', 'DeliveryStatus', 'ShipmentType',

    # Audit
    'OrderEvent',
]
