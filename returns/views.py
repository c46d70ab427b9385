# Django Import
from rest_framework import filters, status
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from tenants.base_viewsets import TenantAwareModelViewSet
from tenants.permissions import IsTenantFinanceManager
from .models import Return
from .serializers import (
    ReturnSerializer, ReturnCreateSerializer, ReturnUpdateSerializer,
    ReturnRejectSerializer, ReturnRefundSerializer
)
from .services import ReturnService, ReturnServiceError

# Python Import


class ReturnViewSet(TenantAwareModelViewSet):
    """
    Returns are created and moved through their lifecycle by ReturnService;
    they are never deleted.
    """

    queryset = Return.objects.select_related('order', 'order__customer', 'processed_by').prefetch_related('items')
    serializer_class = ReturnSerializer
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['order', 'status', 'return_type']
    search_fields = ['return_number', 'order__order_number', 'reason']
    ordering_fields = ['return_date', 'refund_amount', 'created_at']
    ordering = ['-return_date']

    def get_permissions(self):
        if self.action in ('approve', 'reject', 'refund'):
            return [IsTenantFinanceManager()]
        return super().get_permissions()

    def create(self, request, *args, **kwargs):
        serializer = ReturnCreateSerializer(data=request.data, context=self.get_serializer_context())
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            sales_return = ReturnService.create_order_return(
                data['order'],
                data['return_type'],
                data['shipping_charge_handling'],
                data['reason'],
                return_date=data.get('return_date'),
                selected_products=data['selected_products'],
                user=request.user,
            )
        except ReturnServiceError as e:
            return self.error_response(e)

        return Response(self.get_serializer(sales_return).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        sales_return = self.get_object()
        serializer = ReturnUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        try:
            sales_return = ReturnService.update_return(
                sales_return,
                reason=serializer.validated_data.get('reason'),
                return_date=serializer.validated_data.get('return_date'),
            )
        except ReturnServiceError as e:
            return self.error_response(e)

        return Response(self.get_serializer(sales_return).data)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        sales_return = self.get_object()
        try:
            sales_return = ReturnService.approve_return(sales_return, user=request.user)
        except ReturnServiceError as e:
            return self.error_response(e)
        return Response(self.get_serializer(sales_return).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        """Reject a pending return, reversing its refund and advance usage"""
        sales_return = self.get_object()
        serializer = ReturnRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            sales_return = ReturnService.reject_return(
                sales_return, serializer.validated_data['reason'], user=request.user
            )
        except ReturnServiceError as e:
            return self.error_response(e)
        return Response(self.get_serializer(sales_return).data)

    @action(detail=True, methods=['post'])
    def refund(self, request, pk=None):
        sales_return = self.get_object()
        serializer = ReturnRefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            sales_return = ReturnService.process_refund(
                sales_return,
                serializer.validated_data['refund_method'],
                refund_amount=serializer.validated_data.get('refund_amount'),
                user=request.user,
            )
        except ReturnServiceError as e:
            return self.error_response(e)
        return Response(self.get_serializer(sales_return).data)
