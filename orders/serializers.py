# Django Imports
import json
from decimal import Decimal
from rest_framework import serializers
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction

from customers.models import Customer
from .finance import (
    ReturnType, ShippingChargeHandling,
    compute_payment_status, is_whole, parse_json_list, parse_json_map, to_decimal
)
from .models import Order, OrderItem, OrderPayment
from .services import generate_order_number

# Python Imports


class JSONTextField(serializers.Field):
    """
    Exposes a JSON text column as structured data.

    Reads never fail: malformed stored JSON comes back as an empty list/map.
    Writes of a map only accept non-negative numbers below 10**12, whole
    numbers when ``whole`` is set.
    """

    def __init__(self, kind='map', whole=False, **kwargs):
        self.kind = kind
        self.whole = whole
        super().__init__(**kwargs)

    def to_representation(self, value):
        if self.kind == 'list':
            return parse_json_list(value)
        return {key: str(number) for key, number in parse_json_map(value).items()}

    def to_internal_value(self, data):
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                raise serializers.ValidationError("Value must be valid JSON.")

        expected = list if self.kind == 'list' else dict
        if not isinstance(data, expected):
            raise serializers.ValidationError(
                "Expected a JSON list." if self.kind == 'list' else "Expected a JSON object."
            )
        if self.kind == 'map':
            for key, value in data.items():
                number = to_decimal(value)
                if number is None or number < 0 or (self.whole and not is_whole(number)):
                    kind = "a whole number" if self.whole else "a number"
                    raise serializers.ValidationError(
                        f"Value for '{key}' must be {kind} between 0 and 999999999999."
                    )
        return json.dumps(data, cls=DjangoJSONEncoder)


class OrderItemSerializer(serializers.ModelSerializer):
    """Serializer for order lines."""

    line_total = serializers.SerializerMethodField()

    class Meta:
        model = OrderItem
        fields = [
            'id', 'product_id', 'product_variant_id', 'product_name',
            'color', 'size', 'quantity', 'price', 'line_total'
        ]
        read_only_fields = ['id', 'line_total']

    def get_line_total(self, obj):
        return str(Decimal(obj.quantity) * obj.price)


class OrderSerializer(serializers.ModelSerializer):
    """Serializer for orders, with nested line items and computed balances."""

    customer = serializers.PrimaryKeyRelatedField(
        queryset=Customer.objects.all(), allow_null=True, required=False
    )
    customer_name = serializers.CharField(source='customer.name', read_only=True, default=None)
    selected_products = JSONTextField(kind='list', required=False)
    product_quantities = JSONTextField(kind='map', whole=True, required=False)
    product_prices = JSONTextField(kind='map', required=False)

    items = OrderItemSerializer(many=True, read_only=True)
    # Write-only field for creating/replacing order items
    items_input = OrderItemSerializer(many=True, write_only=True, required=False)

    status_display = serializers.CharField(source='get_status_display', read_only=True)
    payment_status = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer', 'customer_name', 'status', 'status_display',
            'selected_products', 'product_quantities', 'product_prices',
            'shipping_charges', 'payment_amount', 'refund_amount', 'return_status',
            'notes', 'items', 'items_input', 'payment_status', 'created_at', 'updated_at'
        ]
        read_only_fields = [
            'id', 'order_number', 'payment_amount', 'refund_amount', 'return_status',
            'created_at', 'updated_at'
        ]

    def get_payment_status(self, obj):
        return PaymentStatusSerializer(compute_payment_status(obj.to_snapshot())).data

    def validate_customer(self, value):
        tenant = self.context.get('tenant')
        if value is not None and tenant is not None and value.tenant_id != tenant.id:
            raise serializers.ValidationError("Customer does not belong to this business.")
        return value

    def create(self, validated_data):
        """Creates an Order with its nested OrderItems and a fresh order number."""
        items_data = validated_data.pop('items_input', [])

        with transaction.atomic():
            validated_data['order_number'] = generate_order_number(validated_data['tenant'])
            order = Order.objects.create(**validated_data)
            for item_data in items_data:
                OrderItem.objects.create(order=order, **item_data)

        return order

    def update(self, instance, validated_data):
        items_data = validated_data.pop('items_input', None)

        with transaction.atomic():
            instance = super().update(instance, validated_data)
            if items_data is not None:
                instance.items.all().delete()
                for item_data in items_data:
                    OrderItem.objects.create(order=instance, **item_data)

        return instance


class OrderPaymentSerializer(serializers.ModelSerializer):
    """Read serializer for recorded payments."""

    recorded_by = serializers.CharField(source='recorded_by.username', read_only=True, default=None)

    class Meta:
        model = OrderPayment
        fields = ['id', 'order', 'amount', 'method', 'reference', 'payment_date', 'recorded_by', 'created_at']
        read_only_fields = fields


class RecordPaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=OrderPayment.METHOD_CHOICES, default='CASH')
    reference = serializers.CharField(max_length=100, allow_blank=True, default='')
    payment_date = serializers.DateTimeField(required=False)


class PaymentStatusSerializer(serializers.Serializer):
    total = serializers.DecimalField(max_digits=None, decimal_places=2)
    paid = serializers.DecimalField(max_digits=None, decimal_places=2)
    remaining = serializers.DecimalField(max_digits=None, decimal_places=2)
    is_fully_paid = serializers.BooleanField()
    is_partially_paid = serializers.BooleanField()
    is_unpaid = serializers.BooleanField()


class ReturnLineSerializer(serializers.Serializer):
    """A product picked for return; quantity/price default to the order's values."""

    product_id = serializers.CharField(max_length=64)
    variant_id = serializers.CharField(max_length=64, required=False, allow_null=True, allow_blank=True)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    quantity = serializers.IntegerField(required=False, allow_null=True)
    unit_price = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )


class RefundPreviewSerializer(serializers.Serializer):
    return_type = serializers.ChoiceField(choices=ReturnType.CHOICES)
    shipping_charge_handling = serializers.ChoiceField(
        choices=ShippingChargeHandling.CHOICES, default=ShippingChargeHandling.FULL_REFUND
    )
    selected_products = ReturnLineSerializer(many=True, default=list)
    advance_balance = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )


class RefundBreakdownSerializer(serializers.Serializer):
    products_value = serializers.DecimalField(max_digits=None, decimal_places=2)
    shipping_charges = serializers.DecimalField(max_digits=None, decimal_places=2)
    refund_amount = serializers.DecimalField(max_digits=None, decimal_places=2)
    advance_used = serializers.DecimalField(max_digits=None, decimal_places=2)
    unrecovered_shortfall = serializers.DecimalField(max_digits=None, decimal_places=2)

