# Django Import
from rest_framework import filters
from django_filters.rest_framework import DjangoFilterBackend

from .models import Customer
from .serializers import CustomerSerializer
from tenants.base_viewsets import TenantAwareModelViewSet

# Python Import


class CustomerViewSet(TenantAwareModelViewSet):
    """ViewSet for managing customers with tenant isolation"""

    queryset = Customer.objects.all().order_by('name')
    serializer_class = CustomerSerializer

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['city']
    search_fields = ['name', 'phone_number', 'email', 'address', 'notes']
    ordering_fields = ['name', 'advance_balance', 'created_at']
    ordering = ['name']
