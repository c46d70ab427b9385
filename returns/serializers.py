# Django Imports
from rest_framework import serializers

from orders.finance import ReturnType, ShippingChargeHandling
from orders.models import Order
from orders.serializers import ReturnLineSerializer
from .models import Return, ReturnItem

# Python Imports


class ReturnItemSerializer(serializers.ModelSerializer):

    class Meta:
        model = ReturnItem
        fields = [
            'id', 'product_id', 'product_variant_id', 'product_name',
            'color', 'size', 'quantity', 'unit_price', 'line_total'
        ]
        read_only_fields = fields


class ReturnSerializer(serializers.ModelSerializer):
    """Read serializer for returns, figures included"""

    order_number = serializers.CharField(source='order.order_number', read_only=True)
    customer_name = serializers.CharField(source='order.customer.name', read_only=True, default=None)
    items = ReturnItemSerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    return_type_display = serializers.CharField(source='get_return_type_display', read_only=True)
    processed_by = serializers.CharField(source='processed_by.username', read_only=True, default=None)

    class Meta:
        model = Return
        fields = [
            'id', 'return_number', 'order', 'order_number', 'customer_name',
            'return_type', 'return_type_display', 'shipping_charge_handling',
            'status', 'status_display', 'reason', 'return_date',
            'products_value', 'shipping_charge_amount', 'advance_balance_used',
            'refund_amount', 'unrecovered_shortfall', 'refund_method',
            'rejection_reason', 'processed_by', 'processed_at', 'items',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class ReturnCreateSerializer(serializers.Serializer):
    """Payload for creating a customer return against an order"""

    order = serializers.PrimaryKeyRelatedField(queryset=Order.objects.all())
    return_type = serializers.ChoiceField(choices=ReturnType.CHOICES)
    shipping_charge_handling = serializers.ChoiceField(choices=ShippingChargeHandling.CHOICES)
    selected_products = ReturnLineSerializer(many=True, default=list)
    reason = serializers.CharField(allow_blank=True)
    return_date = serializers.DateTimeField(required=False, allow_null=True)

    def validate_order(self, value):
        tenant = self.context.get('tenant')
        if tenant is not None and value.tenant_id != tenant.id:
            raise serializers.ValidationError("Order does not belong to this business.")
        return value


class ReturnUpdateSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True)
    return_date = serializers.DateTimeField(required=False)


class ReturnRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True)


class ReturnRefundSerializer(serializers.Serializer):
    refund_method = serializers.ChoiceField(choices=Return.REFUND_METHODS)
    refund_amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
