# Django Imports
from django.db import models
from django.core.validators import MinValueValidator
from decimal import Decimal

from tenants.base_models import TenantAwareHistoricalModel

# Python Imports


class Customer(TenantAwareHistoricalModel):

    name = models.CharField(
        max_length=255,
        verbose_name='Customer Name'
    )
    phone_number = models.CharField(
        max_length=20,
        blank=True,
        db_index=True,
        verbose_name='Phone Number',
        help_text="Customer's phone number (optional)"
    )
    email = models.EmailField(
        blank=True,
        verbose_name='Email Address',
        help_text="Customer's email address (optional)"
    )
    address = models.TextField(
        blank=True,
        verbose_name='Address',
        help_text="Customer's address (optional)"
    )
    city = models.CharField(
        max_length=100,
        blank=True,
        verbose_name='City'
    )
    advance_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        verbose_name='Advance Balance',
        help_text="Credit held for the customer; can absorb shipping on returns"
    )
    notes = models.TextField(
        blank=True,
        verbose_name='Notes',
        help_text="Any additional notes about the customer (optional)"
    )
    created_at = models.DateTimeField(
        auto_now_add=True
    )
    updated_at = models.DateTimeField(
        auto_now=True
    )

    class Meta:
        verbose_name = 'Customer'
        verbose_name_plural = 'Customers'
        ordering = ['name']

    def __str__(self):
        return self.name
