from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from django.utils import timezone
from decimal import Decimal

from tenants.base_models import TenantAwareHistoricalModel
from orders.finance import OrderLine, ReturnRecord, ReturnStatus, ReturnType, ShippingChargeHandling, to_decimal
from orders.models import Order


class Return(TenantAwareHistoricalModel):
    """Tenant-aware order return model"""

    REFUND_METHODS = [
        ('CASH', 'Cash'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('CREDIT_TO_ACCOUNT', 'Credit to Account'),
    ]

    return_number = models.CharField(
        max_length=50,
        verbose_name='Return Number'
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='returns',
        verbose_name='Order'
    )
    return_type = models.CharField(
        max_length=20,
        choices=ReturnType.CHOICES,
        verbose_name='Return Type'
    )
    shipping_charge_handling = models.CharField(
        max_length=20,
        choices=ShippingChargeHandling.CHOICES,
        null=True,
        blank=True,
        verbose_name='Shipping Charge Handling'
    )
    status = models.CharField(
        max_length=20,
        choices=ReturnStatus.CHOICES,
        default=ReturnStatus.PENDING,
        verbose_name='Return Status'
    )
    reason = models.TextField(verbose_name='Return Reason')
    return_date = models.DateTimeField(
        default=timezone.now,
        verbose_name='Return Date'
    )

    # Financial Information
    products_value = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name='Products Value'
    )
    shipping_charge_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name='Shipping Charges'
    )
    advance_balance_used = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name='Advance Balance Used'
    )
    refund_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        verbose_name='Refund Amount'
    )
    unrecovered_shortfall = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name='Unrecovered Shortfall',
        help_text='Shipping the customer still owed after the refund was floored at zero'
    )
    refund_method = models.CharField(
        max_length=20,
        choices=REFUND_METHODS,
        blank=True,
        verbose_name='Refund Method'
    )

    # Processing Information
    rejection_reason = models.TextField(blank=True, verbose_name='Rejection Reason')
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='processed_returns',
        verbose_name='Processed By'
    )
    processed_at = models.DateTimeField(null=True, blank=True, verbose_name='Processed At')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Return'
        verbose_name_plural = 'Returns'
        ordering = ['-return_date']
        unique_together = [('tenant', 'return_number')]
        indexes = [
            models.Index(fields=['return_date'], name='return_date_idx'),
            models.Index(fields=['status'], name='return_status_idx'),
        ]

    def __str__(self):
        return f"Return {self.return_number} - {self.order.order_number}"

    def to_record(self) -> ReturnRecord:
        return ReturnRecord(
            return_type=self.return_type,
            status=self.status,
            lines=tuple(item.to_line() for item in self.items.all()),
        )


class ReturnItem(models.Model):
    """A product line taken back as part of a return"""

    sales_return = models.ForeignKey(
        Return,
        on_delete=models.CASCADE,
        related_name='items',
        verbose_name='Return'
    )
    product_id = models.CharField(max_length=64, blank=True, verbose_name='Product ID')
    product_variant_id = models.CharField(
        max_length=64,
        null=True,
        blank=True,
        verbose_name='Variant ID'
    )
    product_name = models.CharField(max_length=255, blank=True, verbose_name='Product Name')
    color = models.CharField(max_length=50, blank=True)
    size = models.CharField(max_length=50, blank=True)

    # Return Quantities and Pricing
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        verbose_name='Quantity Returned'
    )
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name='Unit Price'
    )
    line_total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name='Line Total'
    )

    class Meta:
        verbose_name = 'Return Item'
        verbose_name_plural = 'Return Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.product_name or self.product_id} x {self.quantity}"

    def save(self, *args, **kwargs):
        self.line_total = Decimal(self.quantity) * (self.unit_price or Decimal('0.00'))
        super().save(*args, **kwargs)

    def to_line(self) -> OrderLine:
        return OrderLine(
            product_id=self.product_id,
            variant_id=self.product_variant_id or None,
            quantity=Decimal(self.quantity),
            unit_price=to_decimal(self.unit_price),
            name=self.product_name,
        )
