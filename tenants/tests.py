"""
Test suite for multi-tenant functionality
"""

import logging

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase
from rest_framework import status

from customers.models import Customer
from .context import TenantContextManager
from .logging import TenantLogFilter, add_tenant_context
from .models import Tenant, TenantUser
from .test_utils import TenantAPITestCase, TenantTestCase


class TenantModelTest(TenantTestCase):
    """Test tenant model functionality"""

    def test_create_tenant(self):
        tenant = self.create_test_tenant('Bridal House', 'BRDL')

        self.assertEqual(tenant.slug, 'bridal-house')
        self.assertEqual(tenant.currency, 'PKR')
        self.assertTrue(tenant.is_active)
        self.assertEqual(str(tenant), 'Bridal House')

    def test_business_code_validation(self):
        for code in ('brdl', 'BR', 'BRD!'):
            tenant = Tenant(name='Bad Code', slug=f'bad-{len(code)}', business_code=code)
            with self.assertRaises(ValidationError):
                tenant.full_clean()

    def test_member_roles(self):
        tenant = self.create_test_tenant('Bridal House', 'BRDL')
        roles = {}
        for role, _ in TenantUser.ROLE_CHOICES:
            self.create_member(role, tenant, role=role)
            roles[role] = TenantUser.objects.get(user__username=role)

        self.assertTrue(roles['owner'].is_owner_or_admin)
        self.assertFalse(roles['manager'].is_owner_or_admin)
        self.assertTrue(roles['manager'].can_manage_finances)
        self.assertFalse(roles['staff'].can_manage_finances)
        self.assertTrue(roles['staff'].can_write)
        self.assertFalse(roles['viewer'].can_write)

    def test_rows_are_filtered_per_tenant(self):
        first = self.create_test_tenant('Bridal House', 'BRDL')
        second = self.create_test_tenant('Saree Palace', 'SARI')
        Customer.objects.create(tenant=first, name='Ayesha')
        Customer.objects.create(tenant=second, name='Sana')

        self.assertEqual(
            list(Customer.objects.for_tenant(first).values_list('name', flat=True)), ['Ayesha']
        )

    def test_save_validates_row(self):
        tenant = self.create_test_tenant('Bridal House', 'BRDL')
        with self.assertRaises(ValidationError):
            Customer.objects.create(tenant=tenant, name='Ayesha', advance_balance=-1)


class TenantLoggingTest(SimpleTestCase):

    def tearDown(self):
        TenantContextManager.clear_tenant_context()

    def test_filter_stamps_tenant(self):
        record = logging.LogRecord('dress_shop', logging.INFO, __file__, 1, 'hello', None, None)
        TenantLogFilter().filter(record)
        self.assertEqual(record.tenant_slug, 'public')

        TenantContextManager.set_tenant_context(Tenant(id=7, name='Bridal House', slug='bridal-house'))
        TenantLogFilter().filter(record)
        self.assertEqual(record.tenant_id, 7)
        self.assertEqual(record.tenant_slug, 'bridal-house')

    def test_structlog_processor(self):
        self.assertEqual(add_tenant_context(None, 'info', {'event': 'x'})['tenant'], 'public')
        TenantContextManager.set_tenant_context(Tenant(name='Bridal House', slug='bridal-house'))
        self.assertEqual(add_tenant_context(None, 'info', {'event': 'x'})['tenant'], 'bridal-house')


class TenantResolutionTest(TenantAPITestCase):
    """Tenant resolution through the header and through membership"""

    def setUp(self):
        self.tenant = self.create_test_tenant('Bridal House', 'BRDL')
        self.user = self.create_member('ayesha', self.tenant)
        Customer.objects.create(tenant=self.tenant, name='Mehreen')

    def test_header_selects_tenant(self):
        self.login_as(self.user, self.tenant)
        response = self.client.get('/api/v1/customers/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response['X-Tenant-Slug'], 'bridal-house')
        self.assertIsNone(TenantContextManager.get_current_tenant())

    def test_single_membership_needs_no_header(self):
        self.login_as(self.user)
        response = self.client.get('/api/v1/customers/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['X-Tenant-Slug'], 'bridal-house')

    def test_multiple_memberships_need_header(self):
        other = self.create_test_tenant('Saree Palace', 'SARI')
        TenantUser.objects.create(user=self.user, tenant=other, role='staff')
        self.login_as(self.user)

        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.login_as(self.user, other)
        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 0)

    def test_unknown_tenant(self):
        self.client.force_authenticate(user=self.user)
        response = self.client.get('/api/v1/customers/', HTTP_X_TENANT_SLUG='nowhere')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_inactive_tenant(self):
        self.tenant.is_active = False
        self.tenant.save()
        self.login_as(self.user, self.tenant)
        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_non_member_refused(self):
        other = self.create_test_tenant('Saree Palace', 'SARI')
        self.login_as(self.user, other)
        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_refused(self):
        response = self.client.get('/api/v1/customers/', HTTP_X_TENANT_SLUG='bridal-house')
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_create_customer_in_current_tenant(self):
        self.login_as(self.user, self.tenant)
        response = self.client.post(
            '/api/v1/customers/', {'name': 'Sana', 'advance_balance': '250.00'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(Customer.objects.get(pk=response.data['id']).tenant, self.tenant)

        response = self.client.post(
            '/api/v1/customers/', {'name': 'Sana', 'advance_balance': '-1'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
