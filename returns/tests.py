"""
Tests for the return lifecycle and the returns API
"""

from decimal import Decimal

from django.utils import timezone
from rest_framework import status

from orders.finance import (
    EMPTY_SELECTION, FULL_RETURN_EXISTS, RETURN_QUANTITY_EXCEEDED,
    OrderReturnStatus, ReturnStatus, ReturnType, ShippingChargeHandling
)
from orders.test_utils import OrderTestMixin
from tenants.test_utils import TenantAPITestCase, TenantTestCase
from .models import Return
from .services import ReturnService, ReturnServiceError


D = Decimal


class ReturnServiceTest(OrderTestMixin, TenantTestCase):

    def setUp(self):
        self.tenant = self.create_test_tenant('Bridal House', 'BRDL')
        self.user = self.create_member('manager', self.tenant, role='manager')
        self.customer = self.create_customer(self.tenant, advance_balance='40.00')
        # A: 2 x 500, B: 3 x 200, shipping 50
        self.order = self.create_order(
            self.tenant,
            items=[('A', 2, '500.00'), ('B', 3, '200.00')],
            customer=self.customer,
            shipping='50.00',
        )

    def create_partial(self, *selected, reason='Wrong size', order=None):
        return ReturnService.create_order_return(
            order or self.order,
            ReturnType.CUSTOMER_PARTIAL,
            ShippingChargeHandling.FULL_REFUND,
            reason,
            selected_products=list(selected),
            user=self.user,
        )

    def create_full(self, order, handling=ShippingChargeHandling.FULL_REFUND):
        return ReturnService.create_order_return(
            order, ReturnType.CUSTOMER_FULL, handling, 'Customer cancelled the event', user=self.user
        )

    def assertServiceError(self, code, func, *args, **kwargs):
        with self.assertRaises(ReturnServiceError) as ctx:
            func(*args, **kwargs)
        self.assertEqual(ctx.exception.code, code)
        return ctx.exception

    def test_partial_return_refunds_selected_lines(self):
        sales_return = self.create_partial({'product_id': 'B'})

        self.assertEqual(sales_return.status, ReturnStatus.PENDING)
        self.assertEqual(sales_return.products_value, D('600.00'))
        self.assertEqual(sales_return.refund_amount, D('650.00'))
        self.assertEqual(
            sales_return.return_number, f"RET-{timezone.localtime(timezone.now()).year}-0001"
        )

        item = sales_return.items.get()
        self.assertEqual(item.quantity, 3)
        self.assertEqual(item.line_total, D('600.00'))
        self.assertEqual(item.product_name, 'Dress B')

        self.order.refresh_from_db()
        self.assertEqual(self.order.refund_amount, D('650.00'))
        self.assertEqual(self.order.return_status, OrderReturnStatus.PARTIAL)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.advance_balance, D('40.00'))

    def test_full_return_takes_shipping_from_advance(self):
        order = self.create_order(self.tenant, items=[('A', 2, '500.00')], customer=self.customer, shipping='100.00')
        sales_return = self.create_full(order, ShippingChargeHandling.DEDUCT_FROM_ADVANCE)

        self.assertEqual(sales_return.advance_balance_used, D('40.00'))
        self.assertEqual(sales_return.refund_amount, D('940.00'))
        self.assertEqual(sales_return.items.get().quantity, 2)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.advance_balance, D('0.00'))
        order.refresh_from_db()
        self.assertEqual(order.return_status, OrderReturnStatus.FULL)

    def test_shortfall_is_recorded(self):
        order = self.create_order(self.tenant, items=[('A', 1, '50.00')], shipping='200.00')
        sales_return = self.create_full(order, ShippingChargeHandling.CUSTOMER_PAYS)

        self.assertEqual(sales_return.refund_amount, D('0.00'))
        self.assertEqual(sales_return.unrecovered_shortfall, D('150.00'))

    def test_fractional_quantities_match_stored_items(self):
        order = self.create_legacy_order(
            self.tenant,
            selected_products=[{'id': 'A', 'name': 'Lehenga'}, {'id': 'B', 'name': 'Kurta'}],
            quantities={'A': '2.5', 'B': '2'},
            prices={'A': '100', 'B': '300'},
        )
        sales_return = self.create_full(order)

        items = {item.product_id: item for item in sales_return.items.all()}
        self.assertEqual(items['A'].quantity, 1)
        self.assertEqual(items['B'].quantity, 2)
        self.assertEqual(sales_return.products_value, D('700.00'))
        self.assertEqual(sales_return.products_value, sum(item.line_total for item in items.values()))

    def test_quantity_exceeded(self):
        error = self.assertServiceError(
            RETURN_QUANTITY_EXCEEDED, self.create_partial, {'product_id': 'B', 'quantity': 4}
        )
        self.assertEqual(error.line_key, 'B')
        self.assertFalse(Return.objects.exists())

    def test_partial_returns_stack_until_exhausted(self):
        self.create_partial({'product_id': 'B', 'quantity': 2})
        second = self.create_partial({'product_id': 'B', 'quantity': 1})
        self.assertTrue(second.return_number.endswith('-0002'))
        self.assertServiceError(
            RETURN_QUANTITY_EXCEEDED, self.create_partial, {'product_id': 'B', 'quantity': 1}
        )

        self.order.refresh_from_db()
        self.assertEqual(self.order.refund_amount, D('700.00'))
        self.assertEqual(self.order.return_status, OrderReturnStatus.PARTIAL)

    def test_partials_covering_everything_mark_order_fully_returned(self):
        self.create_partial({'product_id': 'A'}, {'product_id': 'B'})
        self.order.refresh_from_db()
        self.assertEqual(self.order.return_status, OrderReturnStatus.FULL)
        self.assertServiceError(FULL_RETURN_EXISTS, self.create_full, self.order)

    def test_only_one_full_return(self):
        self.create_full(self.order)
        self.assertServiceError(FULL_RETURN_EXISTS, self.create_full, self.order)

    def test_empty_partial_selection(self):
        self.assertServiceError(EMPTY_SELECTION, self.create_partial)

    def test_reason_required(self):
        self.assertServiceError(
            ReturnServiceError.MISSING_REASON, self.create_partial, {'product_id': 'B'}, reason='   '
        )

    def test_supplier_returns_cannot_be_created_against_orders(self):
        self.assertServiceError(
            ReturnServiceError.INVALID_RETURN_TYPE,
            ReturnService.create_order_return,
            self.order, ReturnType.SUPPLIER, None, 'Faulty batch', selected_products=[{'product_id': 'A'}]
        )

    def test_unknown_shipping_handling(self):
        self.assertServiceError(
            ReturnServiceError.INVALID_SHIPPING_HANDLING,
            ReturnService.create_order_return,
            self.order, ReturnType.CUSTOMER_FULL, 'FREE_SHIPPING', 'Changed mind'
        )

    def test_approve_only_once(self):
        sales_return = self.create_partial({'product_id': 'B'})
        approved = ReturnService.approve_return(sales_return, user=self.user)
        self.assertEqual(approved.status, ReturnStatus.APPROVED)
        self.assertEqual(approved.processed_by, self.user)
        self.assertIsNotNone(approved.processed_at)

        self.assertServiceError(
            ReturnServiceError.INVALID_STATUS_TRANSITION, ReturnService.approve_return, approved
        )

    def test_reject_reverses_refund_and_advance(self):
        order = self.create_order(self.tenant, items=[('A', 2, '500.00')], customer=self.customer, shipping='100.00')
        sales_return = self.create_full(order, ShippingChargeHandling.DEDUCT_FROM_ADVANCE)

        rejected = ReturnService.reject_return(sales_return, 'Item worn', user=self.user)
        self.assertEqual(rejected.status, ReturnStatus.REJECTED)
        self.assertEqual(rejected.rejection_reason, 'Item worn')

        order.refresh_from_db()
        self.assertEqual(order.refund_amount, D('0.00'))
        self.assertEqual(order.return_status, OrderReturnStatus.NONE)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.advance_balance, D('40.00'))

        # A rejected full return no longer blocks a new one
        self.create_full(order)

    def test_reject_requires_reason(self):
        sales_return = self.create_partial({'product_id': 'B'})
        self.assertServiceError(
            ReturnServiceError.MISSING_REASON, ReturnService.reject_return, sales_return, ''
        )

    def test_approved_return_cannot_be_rejected(self):
        sales_return = ReturnService.approve_return(self.create_partial({'product_id': 'B'}))
        self.assertServiceError(
            ReturnServiceError.INVALID_STATUS_TRANSITION, ReturnService.reject_return, sales_return, 'Too late'
        )

    def test_refund_requires_approval(self):
        sales_return = self.create_partial({'product_id': 'B'})
        self.assertServiceError(
            ReturnServiceError.INVALID_STATUS_TRANSITION, ReturnService.process_refund, sales_return, 'CASH'
        )

    def test_refund_credit_to_account(self):
        sales_return = ReturnService.approve_return(self.create_partial({'product_id': 'B'}))
        refunded = ReturnService.process_refund(sales_return, 'CREDIT_TO_ACCOUNT', user=self.user)

        self.assertEqual(refunded.status, ReturnStatus.REFUNDED)
        self.assertEqual(refunded.refund_method, 'CREDIT_TO_ACCOUNT')
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.advance_balance, D('690.00'))

    def test_credit_to_account_needs_a_customer(self):
        order = self.create_order(self.tenant, items=[('A', 1, '300.00')])
        sales_return = ReturnService.approve_return(self.create_full(order))

        self.assertServiceError(
            ReturnServiceError.INVALID_REFUND_METHOD,
            ReturnService.process_refund, sales_return, 'CREDIT_TO_ACCOUNT'
        )
        sales_return.refresh_from_db()
        self.assertEqual(sales_return.status, ReturnStatus.APPROVED)

        refunded = ReturnService.process_refund(sales_return, 'CASH')
        self.assertEqual(refunded.status, ReturnStatus.REFUNDED)

    def test_refund_amount_override_follows_through_to_order(self):
        sales_return = ReturnService.approve_return(self.create_partial({'product_id': 'B'}))
        refunded = ReturnService.process_refund(sales_return, 'CASH', refund_amount='600')

        self.assertEqual(refunded.refund_amount, D('600.00'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.refund_amount, D('600.00'))
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.advance_balance, D('40.00'))

    def test_refund_validation(self):
        sales_return = ReturnService.approve_return(self.create_partial({'product_id': 'B'}))
        self.assertServiceError(
            ReturnServiceError.INVALID_REFUND_METHOD, ReturnService.process_refund, sales_return, 'CHEQUE'
        )
        self.assertServiceError(
            ReturnServiceError.INVALID_REFUND_AMOUNT,
            ReturnService.process_refund, sales_return, 'CASH', refund_amount='-1'
        )

    def test_update_pending_return_only(self):
        sales_return = self.create_partial({'product_id': 'B'})
        updated = ReturnService.update_return(sales_return, reason='Colour mismatch')
        self.assertEqual(updated.reason, 'Colour mismatch')

        ReturnService.approve_return(updated)
        self.assertServiceError(
            ReturnServiceError.RETURN_IMMUTABLE, ReturnService.update_return, updated, reason='Edited'
        )

    def test_changes_are_tracked_in_history(self):
        sales_return = self.create_partial({'product_id': 'B'})
        ReturnService.approve_return(sales_return)
        self.assertEqual(sales_return.history.count(), 2)
        self.assertEqual(sales_return.history.first().status, ReturnStatus.APPROVED)


class ReturnAPITest(OrderTestMixin, TenantAPITestCase):

    def setUp(self):
        self.tenant = self.create_test_tenant('Bridal House', 'BRDL')
        self.staff = self.create_member('staff', self.tenant, role='staff')
        self.manager = self.create_member('manager', self.tenant, role='manager')
        self.customer = self.create_customer(self.tenant)
        self.order = self.create_order(
            self.tenant,
            items=[('A', 2, '500.00'), ('B', 3, '200.00')],
            customer=self.customer,
            shipping='50.00',
        )
        self.login_as(self.staff, self.tenant)

    def post_return(self, **overrides):
        payload = {
            'order': self.order.id,
            'return_type': 'CUSTOMER_PARTIAL',
            'shipping_charge_handling': 'FULL_REFUND',
            'selected_products': [{'product_id': 'B', 'quantity': 1}],
            'reason': 'Stitching fault',
        }
        payload.update(overrides)
        return self.client.post('/api/v1/returns/', payload, format='json')

    def test_create_return(self):
        response = self.post_return()
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['refund_amount'], '250.00')
        self.assertEqual(response.data['order_number'], self.order.order_number)
        self.assertEqual(len(response.data['items']), 1)

    def test_create_return_reports_error_code(self):
        response = self.post_return(selected_products=[{'product_id': 'B', 'quantity': 9}])
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], RETURN_QUANTITY_EXCEEDED)

    def test_order_from_other_tenant(self):
        other = self.create_test_tenant('Saree Palace', 'SARI')
        foreign = self.create_order(other, items=[('B', 3, '200.00')])
        response = self.post_return(order=foreign.id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Return.objects.exists())

    def test_staff_cannot_approve(self):
        return_id = self.post_return().data['id']
        response = self.client.post(f'/api/v1/returns/{return_id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.login_as(self.manager, self.tenant)
        response = self.client.post(f'/api/v1/returns/{return_id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], ReturnStatus.APPROVED)
        self.assertEqual(response.data['processed_by'], 'manager')

    def test_refunded_return_is_immutable(self):
        self.login_as(self.manager, self.tenant)
        return_id = self.post_return().data['id']
        self.client.post(f'/api/v1/returns/{return_id}/approve/')

        response = self.client.post(f'/api/v1/returns/{return_id}/refund/', {'refund_method': 'CASH'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['status'], ReturnStatus.REFUNDED)

        response = self.client.patch(f'/api/v1/returns/{return_id}/', {'reason': 'Edited'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], ReturnServiceError.RETURN_IMMUTABLE)

        response = self.client.post(f'/api/v1/returns/{return_id}/reject/', {'reason': 'No'}, format='json')
        self.assertEqual(response.data['code'], ReturnServiceError.INVALID_STATUS_TRANSITION)

    def test_reject_return(self):
        self.login_as(self.manager, self.tenant)
        return_id = self.post_return().data['id']
        response = self.client.post(f'/api/v1/returns/{return_id}/reject/', {'reason': 'Worn'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['rejection_reason'], 'Worn')

        self.order.refresh_from_db()
        self.assertEqual(self.order.refund_amount, D('0.00'))

    def test_returns_cannot_be_deleted(self):
        return_id = self.post_return().data['id']
        response = self.client.delete(f'/api/v1/returns/{return_id}/')
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_filter_by_status(self):
        self.login_as(self.manager, self.tenant)
        first = self.post_return().data['id']
        self.post_return(selected_products=[{'product_id': 'A', 'quantity': 1}])
        self.client.post(f'/api/v1/returns/{first}/approve/')

        response = self.client.get('/api/v1/returns/', {'status': 'APPROVED'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], first)
