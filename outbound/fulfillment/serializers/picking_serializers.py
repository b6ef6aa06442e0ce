"""
Picking serializers for outbound fulfillment.
"""

from rest_framework import serializers

from ..models import PickTaskType


class PickTaskGenerateSerializer(serializers.Serializer):
    """Serializer for generating pick tasks from allocated orders."""

    order_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    task_type = serializers.ChoiceField(choices=PickTaskType.choices, default=PickTaskType.SINGLE)

    def validate_order_ids(self, value):
        # Keep first occurrence order
        return list(dict.fromkeys(value))


class PickItemSerializer(serializers.Serializer):
    """Serializer for confirming a picked quantity."""

    line_id = serializers.UUIDField()
    quantity_picked = serializers.DecimalField(max_digits=12, decimal_places=4)
    variance_reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)
    picker_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_quantity_picked(self, value):
        if value < 0:
            raise serializers.ValidationError("Picked quantity cannot be negative")
        return value
