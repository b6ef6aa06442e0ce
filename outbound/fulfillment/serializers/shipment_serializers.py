"""
Shipment serializers for outbound fulfillment.
"""

from rest_framework import serializers

from ..models import DeliveryStatus, ShipmentType


class ShipmentCreateSerializer(serializers.Serializer):
    """Serializer for creating shipments."""

    carrier = serializers.CharField(max_length=50)
    service_level = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    shipment_type = serializers.ChoiceField(choices=ShipmentType.choices, default=ShipmentType.PARCEL)
    estimated_delivery_date = serializers.DateField(required=False, allow_null=True)
    shipping_cost = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    carton_ids = serializers.ListField(child=serializers.UUIDField(), required=False)

    def validate_carrier(self, value):
        """Validate carrier."""
        if not value.strip():
            raise serializers.ValidationError("Carrier must be specified")
        return value.strip().upper()

    def validate_shipping_cost(self, value):
        """Validate shipping cost."""
        if value is not None and value < 0:
            raise serializers.ValidationError("Shipping cost cannot be negative")
        return value

    def validate_tracking_number(self, value):
        return value.strip()


class DeliveryStatusUpdateSerializer(serializers.Serializer):
    """Serializer for carrier delivery updates."""

    delivery_status = serializers.ChoiceField(choices=DeliveryStatus.choices)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    actual_delivery_date = serializers.DateTimeField(required=False, allow_null=True)
    signed_by = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    proof_of_delivery_url = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)
