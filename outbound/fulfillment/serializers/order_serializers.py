"""
Order serializers: validation of order commands.
"""

from rest_framework import serializers

from ..models import AllocationStrategy, OrderPriority


class OrderLineInputSerializer(serializers.Serializer):
    """One requested product on a new order."""

    line_number = serializers.IntegerField(min_value=1, required=False)
    product_id = serializers.UUIDField()
    product_sku = serializers.CharField(max_length=100)
    product_name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    quantity_ordered = serializers.DecimalField(max_digits=12, decimal_places=4)
    uom = serializers.CharField(max_length=20, required=False, default='Each')
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    allocation_strategy = serializers.ChoiceField(
        choices=AllocationStrategy.choices, required=False, allow_blank=True, default=''
    )
    special_handling = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_quantity_ordered(self, value):
        """Validate ordered quantity."""
        if value <= 0:
            raise serializers.ValidationError("Quantity ordered must be greater than 0")
        return value

    def validate_unit_price(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError("Unit price cannot be negative")
        return value


class OrderCreateSerializer(serializers.Serializer):
    """Serializer for creating orders."""

    warehouse_id = serializers.UUIDField()
    customer_reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    customer_name = serializers.CharField(max_length=255)
    customer_email = serializers.EmailField(required=False, allow_blank=True, default='')
    shipping_address = serializers.DictField(required=False, default=dict)
    priority = serializers.ChoiceField(choices=OrderPriority.choices, default=OrderPriority.NORMAL)
    allocation_strategy = serializers.ChoiceField(
        choices=AllocationStrategy.choices, default=AllocationStrategy.FIFO
    )
    required_ship_date = serializers.DateField(required=False, allow_null=True)
    requested_delivery_date = serializers.DateField(required=False, allow_null=True)
    carrier = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    service_level = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    special_instructions = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    metadata = serializers.DictField(required=False, default=dict)
    lines = OrderLineInputSerializer(many=True)

    def validate_lines(self, value):
        """Validate order lines."""
        if not value:
            raise serializers.ValidationError("Order must contain at least one line")

        numbers = [line.get('line_number') for line in value if line.get('line_number') is not None]
        if len(numbers) != len(set(numbers)):
            raise serializers.ValidationError("Duplicate line numbers in order")

        return value

    def validate_carrier(self, value):
        return value.strip().upper()


class OrderUpdateSerializer(serializers.Serializer):
    """Fields that may still change while an order is NEW or ON_HOLD."""

    priority = serializers.ChoiceField(choices=OrderPriority.choices, required=False)
    allocation_strategy = serializers.ChoiceField(choices=AllocationStrategy.choices, required=False)
    required_ship_date = serializers.DateField(required=False, allow_null=True)
    requested_delivery_date = serializers.DateField(required=False, allow_null=True)
    shipping_address = serializers.DictField(required=False)
    carrier = serializers.CharField(max_length=50, required=False, allow_blank=True)
    service_level = serializers.CharField(max_length=50, required=False, allow_blank=True)
    special_instructions = serializers.CharField(required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, data):
        if not data:
            raise serializers.ValidationError("No updatable fields supplied")
        return data

    def validate_carrier(self, value):
        return value.strip().upper()
