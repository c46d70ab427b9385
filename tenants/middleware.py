"""
Custom middleware for tenant-aware operations.
"""

from django.conf import settings
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
import structlog

from .context import TenantContextManager
from .models import Tenant

logger = structlog.get_logger(__name__)


class TenantContextMiddleware(MiddlewareMixin):
    """
    Resolve the tenant named by the request header and expose it as
    ``request.tenant``. Requests without the header are left to the API
    permission layer, which falls back to the user's membership.
    """

    def process_request(self, request):
        """Add tenant information to request context."""
        TenantContextManager.clear_tenant_context()
        request.tenant = None

        slug = request.META.get(settings.DRESS_SHOP['TENANT_HEADER'])
        if not slug:
            return None

        tenant = Tenant.objects.filter(slug=slug.strip().lower()).first()
        if tenant is None:
            return JsonResponse(
                {'error': 'Tenant not found', 'detail': f'No tenant with slug "{slug}"'},
                status=404
            )
        if not tenant.is_active:
            return JsonResponse(
                {'error': 'Tenant is not active'},
                status=403
            )

        request.tenant = tenant
        TenantContextManager.set_tenant_context(tenant)
        logger.debug("tenant_resolved", tenant_slug=tenant.slug, path=request.path)
        return None

    def process_response(self, request, response):
        """Add tenant information to response headers and clean up context."""
        tenant = TenantContextManager.get_current_tenant() or getattr(request, 'tenant', None)

        if tenant:
            response['X-Tenant-ID'] = str(tenant.id)
            response['X-Tenant-Slug'] = tenant.slug

        TenantContextManager.clear_tenant_context()
        return response
