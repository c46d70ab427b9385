# Django Import
from rest_framework import filters, status
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from tenants.base_viewsets import TenantAwareModelViewSet
from .finance import (
    OrderLine, complete_selected_lines, compute_return_refund, validate_return_quantities, ZERO
)
from .models import Order
from .serializers import (
    OrderSerializer, OrderPaymentSerializer, RecordPaymentSerializer,
    PaymentStatusSerializer, RefundPreviewSerializer, RefundBreakdownSerializer
)
from .services import PaymentService, PaymentError

# Python Import


class OrderViewSet(TenantAwareModelViewSet):
    """ViewSet for orders, their payments and refund previews"""

    queryset = Order.objects.select_related('customer').prefetch_related('items')
    serializer_class = OrderSerializer

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'customer', 'return_status']
    search_fields = ['order_number', 'customer__name', 'customer__phone_number']
    ordering_fields = ['created_at', 'order_number', 'payment_amount']
    ordering = ['-created_at']

    @action(detail=True, methods=['get'], url_path='payment-status')
    def payment_status(self, request, pk=None):
        """Total, paid and remaining balance of the order"""
        order = self.get_object()
        payment_status = PaymentService.get_payment_status(order)
        return Response(PaymentStatusSerializer(payment_status).data)

    @action(detail=True, methods=['get', 'post'])
    def payments(self, request, pk=None):
        """List the payments received, or record a new one"""
        order = self.get_object()

        if request.method == 'GET':
            serializer = OrderPaymentSerializer(order.payments.select_related('recorded_by'), many=True)
            return Response(serializer.data)

        serializer = RecordPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            payment_status = PaymentService.record_payment(
                order,
                serializer.validated_data['amount'],
                method=serializer.validated_data['method'],
                reference=serializer.validated_data['reference'],
                user=request.user,
                payment_date=serializer.validated_data.get('payment_date'),
            )
        except PaymentError as e:
            return self.error_response(e)

        return Response(PaymentStatusSerializer(payment_status).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='refund-preview')
    def refund_preview(self, request, pk=None):
        """
        Work out what a return would refund without saving anything.

        The customer's current advance balance is used unless the request
        supplies one.
        """
        order = self.get_object()
        serializer = RefundPreviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        advance_balance = data.get('advance_balance')
        if advance_balance is None:
            advance_balance = order.customer.advance_balance if order.customer else ZERO

        snapshot = order.to_snapshot()
        selected_lines = complete_selected_lines(
            [OrderLine.from_data(entry) for entry in data['selected_products']], snapshot
        )
        breakdown = compute_return_refund(
            snapshot,
            data['return_type'],
            selected_lines,
            data['shipping_charge_handling'],
            advance_balance,
        )
        validation = validate_return_quantities(
            selected_lines,
            snapshot,
            [ret.to_record() for ret in order.returns.prefetch_related('items')],
            return_type=data['return_type'],
        )

        response_data = dict(RefundBreakdownSerializer(breakdown).data)
        response_data['validation'] = {
            'ok': validation.ok,
            'code': validation.code,
            'message': validation.message,
        }
        return Response(response_data)
