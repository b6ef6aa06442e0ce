from .order_serializers import OrderCreateSerializer, OrderLineInputSerializer, OrderUpdateSerializer
from .picking_serializers import PickItemSerializer, PickTaskGenerateSerializer
from .packing_serializers import CartonItemSerializer, CartonSerializer, PackItemSerializer
from .shipment_serializers import DeliveryStatusUpdateSerializer, ShipmentCreateSerializer

__all__ = [
    'OrderCreateSerializer', 'OrderLineInputSerializer', 'OrderUpdateSerializer',
    'PickItemSerializer', 'PickTaskGenerateSerializer',
    'CartonItemSerializer', 'CartonSerializer', 'PackItemSerializer',
    'DeliveryStatusUpdateSerializer', 'ShipmentCreateSerializer',
]
