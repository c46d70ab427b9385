"""
Custom permissions for tenant-aware operations.
"""

from rest_framework import permissions
from .context import TenantContextManager
from .models import TenantUser


class IsTenantMember(permissions.BasePermission):
    """
    Permission to check if user is a member of the current tenant.

    When the request did not name a tenant (no tenant header), a user with
    exactly one active membership is placed in that tenant.
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        tenant = getattr(request, 'tenant', None)
        memberships = TenantUser.objects.select_related('tenant').filter(
            user=request.user,
            is_active=True,
            tenant__is_active=True
        )

        if tenant:
            tenant_user = memberships.filter(tenant=tenant).first()
        else:
            candidates = list(memberships[:2])
            tenant_user = candidates[0] if len(candidates) == 1 else None

        if tenant_user is None:
            return False

        # Add tenant and tenant_user to request for easy access
        request.tenant = tenant_user.tenant
        request.tenant_user = tenant_user
        TenantContextManager.set_tenant_context(tenant_user.tenant)
        return True


class IsTenantWriterOrReadOnly(IsTenantMember):
    """
    Viewers get read-only access, every other role may write.
    """

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False

        if request.method in permissions.SAFE_METHODS:
            return True
        return request.tenant_user.can_write


class IsTenantFinanceManager(IsTenantMember):
    """
    Permission for money-moving actions (approving returns, issuing refunds).
    """

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False

        return request.tenant_user.can_manage_finances
