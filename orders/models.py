from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal

from tenants.base_models import TenantAwareModel, TenantAwareHistoricalModel
from customers.models import Customer
from .finance import (
    OrderLine, OrderReturnStatus, OrderSnapshot, OrderStatus, clamp_non_negative,
    parse_json_list, parse_json_map, to_decimal, ZERO
)


class Order(TenantAwareHistoricalModel):
    """
    Customer order.

    Older orders keep their lines only in the JSON text columns
    (``selected_products`` + ``product_quantities`` / ``product_prices``);
    newer ones also have ``OrderItem`` rows, which win when present.
    """

    order_number = models.CharField(
        max_length=50,
        verbose_name='Order Number'
    )
    customer = models.ForeignKey(
        Customer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders',
        verbose_name='Customer'
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.CHOICES,
        default=OrderStatus.PENDING,
        verbose_name='Order Status'
    )

    # Denormalized line data, stored as JSON text
    selected_products = models.TextField(
        default='[]',
        blank=True,
        verbose_name='Selected Products (JSON)'
    )
    product_quantities = models.TextField(
        default='{}',
        blank=True,
        verbose_name='Product Quantities (JSON)'
    )
    product_prices = models.TextField(
        default='{}',
        blank=True,
        verbose_name='Product Prices (JSON)'
    )

    # Financial Information
    shipping_charges = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        verbose_name='Shipping Charges'
    )
    payment_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))],
        verbose_name='Amount Received',
        help_text='Cumulative amount received; empty until a payment is recorded'
    )
    refund_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name='Refunded Amount'
    )
    return_status = models.CharField(
        max_length=10,
        choices=OrderReturnStatus.CHOICES,
        default=OrderReturnStatus.NONE,
        verbose_name='Return Status'
    )

    notes = models.TextField(blank=True, verbose_name='Notes')
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        unique_together = [('tenant', 'order_number')]
        indexes = [
            models.Index(fields=['status'], name='order_status_idx'),
            models.Index(fields=['created_at'], name='order_created_idx'),
        ]

    def __str__(self):
        return f"Order {self.order_number}"

    def get_order_lines(self):
        """Lines from order items when there are any, else the legacy JSON list."""
        items = list(self.items.all()) if self.pk else []
        if items:
            return tuple(item.to_line() for item in items)
        return tuple(OrderLine.from_data(entry) for entry in parse_json_list(self.selected_products))

    def to_snapshot(self) -> OrderSnapshot:
        """Deserialize the finance-relevant fields for the calculator."""
        return OrderSnapshot(
            lines=self.get_order_lines(),
            quantities=parse_json_map(self.product_quantities),
            prices=parse_json_map(self.product_prices),
            shipping_charges=clamp_non_negative(to_decimal(self.shipping_charges) or ZERO),
            payment_amount=to_decimal(self.payment_amount),
            status=self.status,
        )


class OrderItem(models.Model):
    """A single product line of an order."""

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items',
        verbose_name='Order'
    )
    product_id = models.CharField(
        max_length=64,
        verbose_name='Product ID'
    )
    product_variant_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        verbose_name='Variant ID'
    )
    product_name = models.CharField(
        max_length=255,
        blank=True,
        verbose_name='Product Name'
    )
    color = models.CharField(max_length=50, blank=True)
    size = models.CharField(max_length=50, blank=True)
    quantity = models.PositiveIntegerField(
        default=1,
        verbose_name='Quantity'
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        verbose_name='Unit Price',
        help_text='Price at the time of order'
    )

    class Meta:
        verbose_name = 'Order Item'
        verbose_name_plural = 'Order Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.product_name or self.product_id} x {self.quantity}"

    def to_line(self) -> OrderLine:
        return OrderLine(
            product_id=self.product_id,
            variant_id=self.product_variant_id or None,
            quantity=Decimal(self.quantity),
            unit_price=to_decimal(self.price),
            name=self.product_name,
        )


class OrderPayment(TenantAwareModel):
    """A customer payment received against an order."""

    METHOD_CHOICES = [
        ('CASH', 'Cash'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('COD', 'Cash on Delivery'),
        ('OTHER', 'Other'),
    ]

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='payments',
        verbose_name='Order'
    )
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        verbose_name='Amount'
    )
    method = models.CharField(
        max_length=20,
        choices=METHOD_CHOICES,
        default='CASH',
        verbose_name='Payment Method'
    )
    reference = models.CharField(max_length=100, blank=True, verbose_name='Reference')
    payment_date = models.DateTimeField(default=timezone.now, verbose_name='Payment Date')
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recorded_order_payments',
        verbose_name='Recorded By'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Order Payment'
        verbose_name_plural = 'Order Payments'
        ordering = ['-payment_date']

    def __str__(self):
        return f"Payment {self.amount} for {self.order.order_number}"
