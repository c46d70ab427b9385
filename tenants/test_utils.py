"""
Multi-tenant testing utilities
"""
from django.contrib.auth.models import User
from django.test import TestCase
from rest_framework.test import APITestCase

from .context import TenantContextManager
from .models import Tenant, TenantUser


class TenantTestMixin:
    """
    Mixin for test classes that need tenants and tenant members
    """

    def create_test_tenant(self, name, business_code, slug=None, **kwargs):
        if slug is None:
            slug = name.lower().replace(' ', '-')
        return Tenant.objects.create(name=name, slug=slug, business_code=business_code, **kwargs)

    def create_member(self, username, tenant, role='staff', **kwargs):
        """Create a user holding ``role`` in ``tenant``"""
        user = User.objects.create_user(username=username, password='testpass123')
        TenantUser.objects.create(user=user, tenant=tenant, role=role, **kwargs)
        return user

    def tearDown(self):
        TenantContextManager.clear_tenant_context()
        super().tearDown()


class TenantTestCase(TenantTestMixin, TestCase):
    """
    Base test case for tenant-aware model and service tests
    """
    pass


class TenantAPITestCase(TenantTestMixin, APITestCase):
    """
    Base test case for API tests; requests go out as a tenant member
    """

    def login_as(self, user, tenant=None):
        """Authenticate the client, optionally naming the tenant in the header"""
        self.client.force_authenticate(user=user)
        if tenant is not None:
            self.client.credentials(HTTP_X_TENANT_SLUG=tenant.slug)
        else:
            self.client.credentials()
