"""
Tests for order finance calculations, payments and the orders API
"""

import json
from datetime import datetime
from decimal import Decimal

from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework import status

from tenants.test_utils import TenantAPITestCase
from .finance import (
    EMPTY_SELECTION, FULL_RETURN_EXISTS, RETURN_QUANTITY_EXCEEDED,
    OrderLine, OrderReturnStatus, OrderSnapshot, OrderStatus, ReturnRecord, ReturnStatus,
    ReturnType, ShippingChargeHandling, complete_selected_lines, compute_line_total,
    compute_order_total, compute_payment_status, compute_products_total,
    compute_return_refund, compute_return_status, line_key, parse_json_list,
    parse_json_map, to_decimal, validate_return_quantities
)
from .models import Order, OrderPayment
from .services import PaymentError, PaymentService, generate_order_number
from .test_utils import OrderTestMixin


D = Decimal


def snapshot(lines=(), quantities=None, prices=None, shipping='0', paid=None, status=OrderStatus.PENDING):
    return OrderSnapshot(
        lines=tuple(lines),
        quantities={key: D(value) for key, value in (quantities or {}).items()},
        prices={key: D(value) for key, value in (prices or {}).items()},
        shipping_charges=D(shipping),
        payment_amount=None if paid is None else D(paid),
        status=status,
    )


def dress_order(shipping='100', paid=None):
    """Two dresses at 500 each"""
    return snapshot(
        lines=[OrderLine('A', name='Bridal Lehenga')],
        quantities={'A': '2'},
        prices={'A': '500'},
        shipping=shipping,
        paid=paid,
    )


def two_line_order(shipping='50'):
    """A: 2 x 500, B: 3 x 200"""
    return snapshot(
        lines=[OrderLine('A', name='Lehenga'), OrderLine('B', name='Kurta')],
        quantities={'A': '2', 'B': '3'},
        prices={'A': '500', 'B': '200'},
        shipping=shipping,
    )


class ParsingTest(SimpleTestCase):

    def test_parse_json_map_accepts_string_and_dict(self):
        self.assertEqual(parse_json_map('{"A": 2, "B": "3.5"}'), {'A': D('2'), 'B': D('3.5')})
        self.assertEqual(parse_json_map({'A': 1}), {'A': D('1')})

    def test_parse_json_map_recovers_from_garbage(self):
        self.assertEqual(parse_json_map('{not json'), {})
        self.assertEqual(parse_json_map('[1, 2]'), {})
        self.assertEqual(parse_json_map(None), {})
        self.assertEqual(parse_json_map(''), {})

    def test_parse_json_map_drops_non_numeric_values(self):
        parsed = parse_json_map('{"A": "abc", "B": null, "C": true, "D": NaN, "E": 4}')
        self.assertEqual(parsed, {'E': D('4')})

    def test_parse_json_list(self):
        self.assertEqual(parse_json_list('[{"id": "A"}]'), [{'id': 'A'}])
        self.assertEqual(parse_json_list('{"id": "A"}'), [])
        self.assertEqual(parse_json_list('oops'), [])

    def test_to_decimal_rejects_unusable_values(self):
        for value in (None, True, '', 'abc', float('inf'), float('nan'), [1]):
            self.assertIsNone(to_decimal(value), value)
        self.assertEqual(to_decimal(' 12.50 '), D('12.50'))
        self.assertEqual(to_decimal(0.1), D('0.1'))

    def test_to_decimal_rejects_oversized_numbers(self):
        for value in ('1e999999', '1E12', 10 ** 13, D('-5e20')):
            self.assertIsNone(to_decimal(value), value)
        self.assertEqual(to_decimal('999999999999.99'), D('999999999999.99'))
        self.assertEqual(to_decimal('0E+100'), D('0'))
        self.assertEqual(parse_json_map('{"A": "1e999999", "B": 2}'), {'B': D('2')})

    def test_line_key(self):
        self.assertEqual(line_key('A', 'red-m'), 'A_red-m')
        self.assertEqual(line_key('A'), 'A')
        self.assertEqual(line_key('A', ''), 'A')

    def test_order_line_from_legacy_entry(self):
        line = OrderLine.from_data({'id': 7, 'productVariantId': 3, 'name': 'Saree', 'price': '900'})
        self.assertEqual(line.product_id, '7')
        self.assertEqual(line.variant_id, '3')
        self.assertEqual(line.key, '7_3')
        self.assertEqual(line.unit_price, D('900'))
        self.assertIsNone(line.quantity)

    def test_order_line_key_falls_back_to_name(self):
        self.assertEqual(OrderLine.from_data({'name': 'Custom stitching'}).key, 'Custom stitching')
        self.assertEqual(OrderLine.from_data('A').key, 'A')

    def test_snapshot_from_record_prefers_items(self):
        record = {
            'selectedProducts': json.dumps([{'id': 'X'}]),
            'orderItems': [{'productId': 'A', 'quantity': 2, 'price': 100}],
            'productQuantities': '{"X": 5}',
            'shippingCharges': '-20',
            'paymentAmount': None,
        }
        order = OrderSnapshot.from_record(record)
        self.assertEqual([line.key for line in order.lines], ['A'])
        self.assertEqual(order.shipping_charges, D('0'))
        self.assertEqual(compute_order_total(order), D('200'))


class LineTotalTest(SimpleTestCase):

    def test_explicit_values_win(self):
        line = OrderLine('A', quantity=D('4'), unit_price=D('10'))
        self.assertEqual(compute_line_total(line, {'A': D('2')}, {'A': D('99')}), D('40'))

    def test_line_key_beats_product_id(self):
        line = OrderLine('A', variant_id='red')
        quantities = {'A_red': D('3'), 'A': D('9')}
        prices = {'A_red': D('100'), 'A': D('1')}
        self.assertEqual(compute_line_total(line, quantities, prices), D('300'))

    def test_falls_back_to_product_id(self):
        line = OrderLine('A', variant_id='red')
        self.assertEqual(compute_line_total(line, {'A': D('2')}, {'A': D('150')}), D('300'))

    def test_defaults_are_one_and_zero(self):
        line = OrderLine('A')
        self.assertEqual(compute_line_total(line, {}, {'A': D('75')}), D('75'))
        self.assertEqual(compute_line_total(line, {'A': D('5')}, {}), D('0'))

    def test_negative_values_clamp_to_zero(self):
        self.assertEqual(compute_line_total(OrderLine('A'), {'A': D('-2')}, {'A': D('100')}), D('0'))
        self.assertEqual(compute_line_total(OrderLine('A'), {'A': D('2')}, {'A': D('-100')}), D('0'))

    def test_garbage_explicit_value_falls_through(self):
        line = OrderLine.from_data({'id': 'A', 'quantity': 'lots', 'price': 'free'})
        self.assertEqual(compute_line_total(line, {'A': D('2')}, {'A': D('50')}), D('100'))

    def test_oversized_map_values_are_ignored(self):
        line = OrderLine('A')
        quantities = parse_json_map('{"A": "1e999999"}')
        prices = parse_json_map('{"A": "10"}')
        self.assertEqual(compute_line_total(line, quantities, prices), D('10'))

    def test_fractional_quantities_fall_through(self):
        prices = {'A': D('100')}
        self.assertEqual(compute_line_total(OrderLine('A', quantity=D('2.5')), {'A': D('3')}, prices), D('300'))
        self.assertEqual(compute_line_total(OrderLine('A'), {'A': D('2.5')}, prices), D('100'))
        self.assertEqual(compute_line_total(OrderLine('A', quantity=D('2.0')), {}, prices), D('200'))


class OrderTotalTest(SimpleTestCase):

    def test_total_excludes_shipping(self):
        self.assertEqual(compute_order_total(dress_order(shipping='100')), D('1000'))

    def test_empty_order_totals_zero(self):
        self.assertEqual(compute_order_total(snapshot()), D('0'))
        self.assertEqual(compute_products_total([], {}, {}), D('0'))

    def test_total_is_idempotent(self):
        order = two_line_order()
        self.assertEqual(compute_order_total(order), compute_order_total(order))

    def test_products_total_is_additive(self):
        order = two_line_order()
        lines = list(order.lines) + [OrderLine('C', quantity=D('1'), unit_price=D('75'))]
        whole = compute_products_total(lines, order.quantities, order.prices)
        parts = (
            compute_products_total(lines[:1], order.quantities, order.prices)
            + compute_products_total(lines[1:], order.quantities, order.prices)
        )
        self.assertEqual(whole, parts)
        self.assertEqual(whole, D('1675'))

    def test_totals_never_negative(self):
        lines = [OrderLine('A', quantity=D('-3'), unit_price=D('10')), OrderLine('B', unit_price=D('-5'))]
        self.assertEqual(compute_products_total(lines, {}, {}), D('0'))


class PaymentStatusTest(SimpleTestCase):

    def assertExactlyOneFlag(self, payment_status):
        flags = [payment_status.is_fully_paid, payment_status.is_partially_paid, payment_status.is_unpaid]
        self.assertEqual(flags.count(True), 1, payment_status)

    def test_unpaid_when_payment_missing(self):
        payment_status = compute_payment_status(dress_order(paid=None))
        self.assertTrue(payment_status.is_unpaid)
        self.assertEqual(payment_status.paid, D('0'))
        self.assertEqual(payment_status.remaining, D('1000'))

    def test_partially_paid(self):
        payment_status = compute_payment_status(dress_order(paid='400'))
        self.assertTrue(payment_status.is_partially_paid)
        self.assertEqual(payment_status.remaining, D('600'))

    def test_overpayment_is_negative_remaining(self):
        payment_status = compute_payment_status(dress_order(paid='1200'))
        self.assertTrue(payment_status.is_fully_paid)
        self.assertEqual(payment_status.total, D('1000'))
        self.assertEqual(payment_status.remaining, D('-200'))

    def test_empty_order_with_nothing_paid_is_fully_paid(self):
        payment_status = compute_payment_status(snapshot(paid='0'))
        self.assertTrue(payment_status.is_fully_paid)
        self.assertFalse(payment_status.is_unpaid)

    def test_flags_partition(self):
        for paid in (None, '0', '1', '999.99', '1000', '1500'):
            self.assertExactlyOneFlag(compute_payment_status(dress_order(paid=paid)))
        for paid in (None, '0', '10'):
            self.assertExactlyOneFlag(compute_payment_status(snapshot(paid=paid)))


class ReturnRefundTest(SimpleTestCase):

    def test_full_return_refunds_shipping(self):
        breakdown = compute_return_refund(
            dress_order(), ReturnType.CUSTOMER_FULL, [], ShippingChargeHandling.FULL_REFUND
        )
        self.assertEqual(breakdown.products_value, D('1000'))
        self.assertEqual(breakdown.refund_amount, D('1100'))
        self.assertEqual(breakdown.advance_used, D('0'))

    def test_customer_pays_shipping(self):
        breakdown = compute_return_refund(
            dress_order(), ReturnType.CUSTOMER_FULL, [], ShippingChargeHandling.CUSTOMER_PAYS
        )
        self.assertEqual(breakdown.refund_amount, D('900'))

    def test_advance_covers_shipping(self):
        breakdown = compute_return_refund(
            dress_order(), ReturnType.CUSTOMER_FULL, [],
            ShippingChargeHandling.DEDUCT_FROM_ADVANCE, advance_balance=D('250')
        )
        self.assertEqual(breakdown.advance_used, D('100'))
        self.assertEqual(breakdown.refund_amount, D('1000'))

    def test_advance_shortfall_reduces_refund(self):
        breakdown = compute_return_refund(
            dress_order(), ReturnType.CUSTOMER_FULL, [],
            ShippingChargeHandling.DEDUCT_FROM_ADVANCE, advance_balance=D('40')
        )
        self.assertEqual(breakdown.advance_used, D('40'))
        self.assertEqual(breakdown.refund_amount, D('940'))
        self.assertEqual(breakdown.unrecovered_shortfall, D('0'))

    def test_partial_return_values_selected_lines_only(self):
        breakdown = compute_return_refund(
            two_line_order(shipping='50'), ReturnType.CUSTOMER_PARTIAL,
            [OrderLine('B')], ShippingChargeHandling.FULL_REFUND
        )
        self.assertEqual(breakdown.products_value, D('600'))
        self.assertEqual(breakdown.refund_amount, D('650'))

    def test_partial_return_of_second_line(self):
        order = snapshot(
            lines=[
                OrderLine('A', quantity=D('1'), unit_price=D('300')),
                OrderLine('B', quantity=D('3'), unit_price=D('200')),
            ],
            shipping='50',
        )
        selected = complete_selected_lines([OrderLine('B')], order)
        breakdown = compute_return_refund(
            order, ReturnType.CUSTOMER_PARTIAL, selected, ShippingChargeHandling.FULL_REFUND
        )
        self.assertEqual(breakdown.products_value, D('600'))
        self.assertEqual(breakdown.refund_amount, D('650'))
        self.assertEqual(breakdown.advance_used, D('0'))

    def test_refund_floors_at_zero_and_reports_shortfall(self):
        order = snapshot(lines=[OrderLine('A', quantity=D('1'), unit_price=D('50'))], shipping='200')
        breakdown = compute_return_refund(
            order, ReturnType.CUSTOMER_FULL, [], ShippingChargeHandling.CUSTOMER_PAYS
        )
        self.assertEqual(breakdown.refund_amount, D('0'))
        self.assertEqual(breakdown.unrecovered_shortfall, D('150'))

    def test_supplier_return_ignores_shipping(self):
        breakdown = compute_return_refund(
            two_line_order(), ReturnType.SUPPLIER, [OrderLine('A')],
            ShippingChargeHandling.CUSTOMER_PAYS
        )
        self.assertEqual(breakdown.refund_amount, D('1000'))

    def test_garbage_advance_balance_counts_as_zero(self):
        breakdown = compute_return_refund(
            dress_order(), ReturnType.CUSTOMER_FULL, [],
            ShippingChargeHandling.DEDUCT_FROM_ADVANCE, advance_balance='n/a'
        )
        self.assertEqual(breakdown.advance_used, D('0'))
        self.assertEqual(breakdown.refund_amount, D('900'))

    def test_complete_selected_lines_fills_from_order(self):
        order = snapshot(lines=[OrderLine('A', quantity=D('2'), unit_price=D('500'), name='Lehenga')])
        completed = complete_selected_lines([OrderLine('A'), OrderLine('Z')], order)
        self.assertEqual(completed[0].quantity, D('2'))
        self.assertEqual(completed[0].unit_price, D('500'))
        self.assertEqual(completed[0].name, 'Lehenga')
        self.assertEqual(completed[1], OrderLine('Z'))


class ValidateReturnQuantitiesTest(SimpleTestCase):

    def partial(self, *lines, status=ReturnStatus.PENDING):
        return ReturnRecord(ReturnType.CUSTOMER_PARTIAL, status, tuple(lines))

    def test_empty_selection(self):
        result = validate_return_quantities([], two_line_order(), [])
        self.assertFalse(result)
        self.assertEqual(result.code, EMPTY_SELECTION)

    def test_within_purchased_quantity(self):
        self.assertTrue(validate_return_quantities([OrderLine('B', quantity=D('3'))], two_line_order(), []))

    def test_exceeds_purchased_quantity(self):
        result = validate_return_quantities([OrderLine('B', quantity=D('4'))], two_line_order(), [])
        self.assertEqual(result.code, RETURN_QUANTITY_EXCEEDED)
        self.assertEqual(result.line_key, 'B')

    def test_quantity_below_one(self):
        result = validate_return_quantities([OrderLine('B', quantity=D('0'))], two_line_order(), [])
        self.assertEqual(result.code, RETURN_QUANTITY_EXCEEDED)

    def test_unknown_line_has_nothing_available(self):
        result = validate_return_quantities([OrderLine('Z', quantity=D('1'))], two_line_order(), [])
        self.assertEqual(result.code, RETURN_QUANTITY_EXCEEDED)

    def test_partial_returns_stack(self):
        existing = [self.partial(OrderLine('B', quantity=D('2')))]
        order = two_line_order()
        self.assertTrue(validate_return_quantities([OrderLine('B', quantity=D('1'))], order, existing))
        result = validate_return_quantities([OrderLine('B', quantity=D('2'))], order, existing)
        self.assertEqual(result.code, RETURN_QUANTITY_EXCEEDED)

    def test_rejected_returns_are_ignored(self):
        existing = [self.partial(OrderLine('B', quantity=D('3')), status=ReturnStatus.REJECTED)]
        self.assertTrue(validate_return_quantities([OrderLine('B', quantity=D('3'))], two_line_order(), existing))

    def test_duplicate_selected_lines_are_summed(self):
        selected = [OrderLine('B', quantity=D('2')), OrderLine('B', quantity=D('2'))]
        result = validate_return_quantities(selected, two_line_order(), [])
        self.assertEqual(result.code, RETURN_QUANTITY_EXCEEDED)

    def test_second_full_return_refused(self):
        existing = [ReturnRecord(ReturnType.CUSTOMER_FULL, ReturnStatus.APPROVED)]
        result = validate_return_quantities([], two_line_order(), existing, return_type=ReturnType.CUSTOMER_FULL)
        self.assertEqual(result.code, FULL_RETURN_EXISTS)

    def test_full_return_refused_once_partials_cover_everything(self):
        existing = [self.partial(OrderLine('A', quantity=D('2')), OrderLine('B', quantity=D('3')))]
        result = validate_return_quantities([], two_line_order(), existing, return_type=ReturnType.CUSTOMER_FULL)
        self.assertEqual(result.code, FULL_RETURN_EXISTS)

    def test_full_return_allowed_after_rejected_full_return(self):
        existing = [ReturnRecord(ReturnType.CUSTOMER_FULL, ReturnStatus.REJECTED)]
        self.assertTrue(
            validate_return_quantities([], two_line_order(), existing, return_type=ReturnType.CUSTOMER_FULL)
        )

    def test_return_status(self):
        order = two_line_order()
        self.assertEqual(compute_return_status(order, []), OrderReturnStatus.NONE)
        self.assertEqual(
            compute_return_status(order, [self.partial(OrderLine('B', quantity=D('1')))]),
            OrderReturnStatus.PARTIAL
        )
        self.assertEqual(
            compute_return_status(order, [self.partial(OrderLine('A', quantity=D('2')), OrderLine('B', quantity=D('3')))]),
            OrderReturnStatus.FULL
        )
        self.assertEqual(
            compute_return_status(order, [self.partial(OrderLine('B', quantity=D('1')), status=ReturnStatus.REJECTED)]),
            OrderReturnStatus.NONE
        )


class OrderModelTest(OrderTestMixin, TestCase):

    def setUp(self):
        self.tenant = self.create_test_tenant('Bridal House', 'BRDL')

    def test_items_win_over_legacy_json(self):
        order = self.create_order(
            self.tenant,
            items=[('A', 2, '500.00')],
            selected_products=json.dumps([{'id': 'X'}]),
        )
        self.assertEqual([line.key for line in order.get_order_lines()], ['A'])
        self.assertEqual(compute_order_total(order.to_snapshot()), D('1000'))

    def test_legacy_order_reads_json_columns(self):
        order = self.create_legacy_order(
            self.tenant,
            selected_products=[{'id': 'A', 'productVariantId': 'red'}, {'id': 'B'}],
            quantities={'A_red': 2, 'B': 1},
            prices={'A': 300, 'B': 'n/a'},
        )
        self.assertEqual(compute_order_total(order.to_snapshot()), D('600'))

    def test_malformed_json_columns_do_not_break_snapshot(self):
        order = self.create_order(self.tenant, product_quantities='{broken', product_prices='[]')
        self.assertEqual(order.to_snapshot().quantities, {})
        self.assertEqual(compute_order_total(order.to_snapshot()), D('0'))


class GenerateOrderNumberTest(OrderTestMixin, TestCase):

    def setUp(self):
        self.tenant = self.create_test_tenant('Bridal House', 'BRDL')
        self.now = timezone.make_aware(datetime(2025, 3, 14, 12, 0))

    def test_first_order_of_month(self):
        self.assertEqual(generate_order_number(self.tenant, now=self.now), 'BRDL-MAR-25-001')

    def test_sequence_counts_orders_in_month(self):
        self.create_order(self.tenant, order_number='BRDL-MAR-25-001', created_at=self.now)
        self.assertEqual(generate_order_number(self.tenant, now=self.now), 'BRDL-MAR-25-002')

    def test_taken_numbers_are_skipped(self):
        earlier = timezone.make_aware(datetime(2025, 2, 20, 12, 0))
        self.create_order(self.tenant, order_number='BRDL-MAR-25-001', created_at=earlier)
        self.assertEqual(generate_order_number(self.tenant, now=self.now), 'BRDL-MAR-25-002')

    def test_sequence_is_per_tenant(self):
        other = self.create_test_tenant('Saree Palace', 'SARI')
        self.create_order(other, order_number='SARI-MAR-25-001', created_at=self.now)
        self.assertEqual(generate_order_number(self.tenant, now=self.now), 'BRDL-MAR-25-001')


class PaymentServiceTest(OrderTestMixin, TestCase):

    def setUp(self):
        self.tenant = self.create_test_tenant('Bridal House', 'BRDL')
        self.order = self.create_order(self.tenant, items=[('A', 2, '500.00')])

    def test_first_payment_starts_from_nothing(self):
        payment_status = PaymentService.record_payment(self.order, '400')
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_amount, D('400.00'))
        self.assertTrue(payment_status.is_partially_paid)
        self.assertEqual(OrderPayment.objects.filter(order=self.order).count(), 1)

    def test_payments_accumulate_past_total(self):
        PaymentService.record_payment(self.order, D('1000'))
        payment_status = PaymentService.record_payment(self.order, D('200'), method='BANK_TRANSFER')
        self.assertTrue(payment_status.is_fully_paid)
        self.assertEqual(payment_status.remaining, D('-200.00'))

    def test_non_positive_amount_refused(self):
        for amount in ('0', '-5', 'abc', None):
            with self.assertRaises(PaymentError) as ctx:
                PaymentService.record_payment(self.order, amount)
            self.assertEqual(ctx.exception.code, PaymentError.INVALID_PAYMENT_AMOUNT)
        self.assertFalse(OrderPayment.objects.exists())

    def test_cancelled_order_refuses_payment(self):
        self.order.status = OrderStatus.CANCELLED
        self.order.save()
        with self.assertRaises(PaymentError) as ctx:
            PaymentService.record_payment(self.order, '100')
        self.assertEqual(ctx.exception.code, PaymentError.ORDER_CANCELLED)


class OrderAPITest(OrderTestMixin, TenantAPITestCase):

    def setUp(self):
        self.tenant = self.create_test_tenant('Bridal House', 'BRDL')
        self.other_tenant = self.create_test_tenant('Saree Palace', 'SARI')
        self.user = self.create_member('ayesha', self.tenant, role='manager')
        self.customer = self.create_customer(self.tenant, advance_balance='40.00')
        self.login_as(self.user, self.tenant)

    def test_create_order_with_items(self):
        payload = {
            'customer': self.customer.id,
            'shipping_charges': '100.00',
            'items_input': [
                {'product_id': 'A', 'product_name': 'Lehenga', 'quantity': 2, 'price': '500.00'},
            ],
        }
        response = self.client.post('/api/v1/orders/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertTrue(response.data['order_number'].startswith('BRDL-'))
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['payment_status']['total'], '1000.00')
        self.assertTrue(response.data['payment_status']['is_unpaid'])

        order = Order.objects.get(pk=response.data['id'])
        self.assertEqual(order.tenant, self.tenant)

    def test_large_legacy_totals_are_served(self):
        order = self.create_legacy_order(
            self.tenant,
            selected_products=[{'id': 'A'}],
            quantities={'A': 1000000},
            prices={'A': 10000000},
        )
        response = self.client.get(f'/api/v1/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_status']['total'], '10000000000000.00')

        response = self.client.post(
            f'/api/v1/orders/{order.id}/refund-preview/', {'return_type': 'CUSTOMER_FULL'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['products_value'], '10000000000000.00')

    def test_order_maps_are_validated(self):
        bad_payloads = [
            {'product_quantities': {'A': '2.5'}},
            {'product_quantities': {'A': -1}},
            {'product_prices': {'A': 'free'}},
            {'product_prices': {'A': '1e999999'}},
            {'product_prices': '{"A": 1e13}'},
        ]
        for payload in bad_payloads:
            response = self.client.post('/api/v1/orders/', payload, format='json')
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, payload)

        response = self.client.post(
            '/api/v1/orders/',
            {
                'selected_products': [{'id': 'A'}],
                'product_quantities': {'A': 2},
                'product_prices': {'A': '450.50'},
            },
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['payment_status']['total'], '901.00')

    def test_customer_from_other_tenant_rejected(self):
        stranger = self.create_customer(self.other_tenant, name='Stranger')
        response = self.client.post('/api/v1/orders/', {'customer': stranger.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_orders_are_tenant_scoped(self):
        own = self.create_order(self.tenant, items=[('A', 1, '100.00')])
        foreign = self.create_order(self.other_tenant, items=[('A', 1, '100.00')])

        response = self.client.get('/api/v1/orders/')
        ids = [row['id'] for row in response.data['results']]
        self.assertEqual(ids, [own.id])

        response = self.client.get(f'/api/v1/orders/{foreign.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_record_and_list_payments(self):
        order = self.create_order(self.tenant, items=[('A', 2, '500.00')])
        response = self.client.post(
            f'/api/v1/orders/{order.id}/payments/', {'amount': '1200.00', 'reference': 'TRX-1'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data['remaining'], '-200.00')
        self.assertTrue(response.data['is_fully_paid'])

        response = self.client.get(f'/api/v1/orders/{order.id}/payments/')
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['recorded_by'], 'ayesha')

        response = self.client.get(f'/api/v1/orders/{order.id}/payment-status/')
        self.assertEqual(response.data['paid'], '1200.00')

    def test_zero_payment_rejected(self):
        order = self.create_order(self.tenant, items=[('A', 2, '500.00')])
        response = self.client.post(f'/api/v1/orders/{order.id}/payments/', {'amount': '0'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_payment_on_cancelled_order(self):
        order = self.create_order(self.tenant, items=[('A', 2, '500.00')], status=OrderStatus.CANCELLED)
        response = self.client.post(f'/api/v1/orders/{order.id}/payments/', {'amount': '10'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], PaymentError.ORDER_CANCELLED)

    def test_refund_preview_uses_customer_advance(self):
        order = self.create_order(
            self.tenant, items=[('A', 2, '500.00')], customer=self.customer, shipping='100.00'
        )
        response = self.client.post(
            f'/api/v1/orders/{order.id}/refund-preview/',
            {'return_type': 'CUSTOMER_FULL', 'shipping_charge_handling': 'DEDUCT_FROM_ADVANCE'},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data['advance_used'], '40.00')
        self.assertEqual(response.data['refund_amount'], '940.00')
        self.assertTrue(response.data['validation']['ok'])
        self.assertFalse(order.returns.exists())

    def test_refund_preview_partial(self):
        order = self.create_order(self.tenant, items=[('A', 2, '500.00'), ('B', 3, '200.00')], shipping='50.00')
        response = self.client.post(
            f'/api/v1/orders/{order.id}/refund-preview/',
            {
                'return_type': 'CUSTOMER_PARTIAL',
                'shipping_charge_handling': 'FULL_REFUND',
                'selected_products': [{'product_id': 'B'}],
            },
            format='json'
        )
        self.assertEqual(response.data['products_value'], '600.00')
        self.assertEqual(response.data['refund_amount'], '650.00')

    def test_refund_preview_flags_excess_quantity(self):
        order = self.create_order(self.tenant, items=[('B', 3, '200.00')])
        response = self.client.post(
            f'/api/v1/orders/{order.id}/refund-preview/',
            {
                'return_type': 'CUSTOMER_PARTIAL',
                'selected_products': [{'product_id': 'B', 'quantity': 5}],
            },
            format='json'
        )
        self.assertFalse(response.data['validation']['ok'])
        self.assertEqual(response.data['validation']['code'], RETURN_QUANTITY_EXCEEDED)

    def test_viewer_cannot_create_orders(self):
        viewer = self.create_member('viewer', self.tenant, role='viewer')
        self.login_as(viewer, self.tenant)
        self.assertEqual(self.client.get('/api/v1/orders/').status_code, status.HTTP_200_OK)
        response = self.client.post('/api/v1/orders/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
