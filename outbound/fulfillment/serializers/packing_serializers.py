"""
Packing serializers for outbound fulfillment.
"""

from rest_framework import serializers


class PackItemSerializer(serializers.Serializer):
    """Serializer for confirming a packed quantity."""

    line_id = serializers.UUIDField()
    quantity_packed = serializers.DecimalField(max_digits=12, decimal_places=4)
    carton_number = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    variance_reason = serializers.CharField(max_length=255, required=False, allow_blank=True, allow_null=True)

    def validate_quantity_packed(self, value):
        if value < 0:
            raise serializers.ValidationError("Packed quantity cannot be negative")
        return value


class CartonItemSerializer(serializers.Serializer):
    order_line_id = serializers.UUIDField()
    quantity = serializers.DecimalField(max_digits=12, decimal_places=4)

    def validate_quantity(self, value):
        """Validate quantity."""
        if value <= 0:
            raise serializers.ValidationError("Quantity must be greater than 0")
        return value


class CartonSerializer(serializers.Serializer):
    """
    Serializer for adding a carton to a pack task.

    Expects ``order_line_ids`` in the context: the lines of the order being
    packed. Items pointing at any other line are rejected.
    """

    carton_number = serializers.IntegerField(min_value=1)
    weight = serializers.DecimalField(max_digits=12, decimal_places=4)
    length = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    width = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    height = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    items = CartonItemSerializer(many=True)

    def validate_weight(self, value):
        if value <= 0:
            raise serializers.ValidationError("Carton weight must be greater than 0")
        return value

    def validate_items(self, value):
        if not value:
            raise serializers.ValidationError("Carton must contain at least one item")

        allowed = {str(line_id) for line_id in self.context.get('order_line_ids', [])}
        foreign = [str(item['order_line_id']) for item in value if str(item['order_line_id']) not in allowed]
        if foreign:
            raise serializers.ValidationError(
                f"Order lines not on this order: {', '.join(foreign)}"
            )
        return value

    def validate(self, data):
        """Dimensions are all-or-nothing and strictly positive."""
        dimensions = [data.get('length'), data.get('width'), data.get('height')]
        supplied = [d for d in dimensions if d is not None]
        if supplied and len(supplied) != 3:
            raise serializers.ValidationError("Length, width and height must be given together")
        if any(d <= 0 for d in supplied):
            raise serializers.ValidationError("Carton dimensions must be greater than 0")
        return data
