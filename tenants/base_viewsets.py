from rest_framework import viewsets
from rest_framework.response import Response
from rest_framework import status
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework.authentication import SessionAuthentication

from .permissions import IsTenantWriterOrReadOnly


class TenantAwareModelViewSet(viewsets.ModelViewSet):
    """
    Base ViewSet that automatically handles tenant filtering and context
    """
    authentication_classes = [JWTAuthentication, SessionAuthentication]
    permission_classes = [IsTenantWriterOrReadOnly]

    def get_queryset(self):
        """Filter queryset by current tenant"""
        queryset = super().get_queryset()
        tenant_field = getattr(queryset.model, '_tenant_field', None)
        if tenant_field:
            queryset = queryset.filter(**{tenant_field: self.request.tenant})
        return queryset

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context['tenant'] = getattr(self.request, 'tenant', None)
        return context

    def perform_create(self, serializer):
        """Ensure created objects are associated with current tenant"""
        tenant_field = getattr(self.queryset.model, '_tenant_field', None)
        if tenant_field:
            serializer.save(**{tenant_field: self.request.tenant})
        else:
            serializer.save()

    @staticmethod
    def error_response(error, status_code=status.HTTP_400_BAD_REQUEST):
        """Render a service-layer error (anything with ``code`` and ``message``)."""
        return Response({'error': error.message, 'code': error.code}, status=status_code)
