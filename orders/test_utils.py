"""
Factories shared by the order and return tests
"""
import json
from decimal import Decimal

from customers.models import Customer
from tenants.test_utils import TenantTestMixin
from .models import Order, OrderItem


class OrderTestMixin(TenantTestMixin):

    def create_customer(self, tenant, name='Ayesha Khan', advance_balance='0.00', **kwargs):
        return Customer.objects.create(
            tenant=tenant, name=name, advance_balance=Decimal(advance_balance), **kwargs
        )

    def create_order(self, tenant, items=(), customer=None, shipping='0.00', order_number=None, **kwargs):
        """
        Create an order with item rows.

        ``items`` holds ``(product_id, quantity, price)`` or
        ``(product_id, variant_id, quantity, price)`` tuples.
        """
        if order_number is None:
            order_number = f"{tenant.business_code}-JAN-25-{Order.objects.filter(tenant=tenant).count() + 1:03d}"
        order = Order.objects.create(
            tenant=tenant,
            order_number=order_number,
            customer=customer,
            shipping_charges=Decimal(shipping),
            **kwargs
        )
        for item in items:
            if len(item) == 3:
                product_id, quantity, price = item
                variant_id = None
            else:
                product_id, variant_id, quantity, price = item
            OrderItem.objects.create(
                order=order,
                product_id=product_id,
                product_variant_id=variant_id,
                product_name=f"Dress {product_id}",
                quantity=quantity,
                price=Decimal(price),
            )
        return order

    def create_legacy_order(self, tenant, selected_products, quantities, prices, **kwargs):
        """Order whose lines only live in the JSON text columns"""
        return self.create_order(
            tenant,
            selected_products=json.dumps(selected_products),
            product_quantities=json.dumps(quantities),
            product_prices=json.dumps(prices),
            **kwargs
        )
