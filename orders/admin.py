# Django Imports
from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import Order, OrderItem, OrderPayment

# Python Imports


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    fields = ('product_id', 'product_variant_id', 'product_name', 'color', 'size', 'quantity', 'price')


class OrderPaymentInline(admin.TabularInline):
    model = OrderPayment
    extra = 0
    fields = ('amount', 'method', 'reference', 'payment_date', 'recorded_by')
    readonly_fields = fields
    can_delete = False


@admin.register(Order)
class OrderAdmin(SimpleHistoryAdmin):

    list_display = (
        'order_number', 'tenant', 'customer', 'status',
        'shipping_charges', 'payment_amount', 'refund_amount', 'return_status', 'created_at'
    )
    list_filter = ('tenant', 'status', 'return_status')
    search_fields = ('order_number', 'customer__name', 'customer__phone_number')
    readonly_fields = ('payment_amount', 'refund_amount', 'return_status', 'created_at', 'updated_at')
    inlines = [OrderItemInline, OrderPaymentInline]
    fieldsets = (
        ('Order Information', {
            'fields': ('tenant', 'order_number', 'customer', 'status', 'notes')
        }),
        ('Legacy Line Data', {
            'fields': ('selected_products', 'product_quantities', 'product_prices'),
            'classes': ('collapse',)
        }),
        ('Financials', {
            'fields': ('shipping_charges', 'payment_amount', 'refund_amount', 'return_status')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at')
        }),
    )


@admin.register(OrderPayment)
class OrderPaymentAdmin(admin.ModelAdmin):

    list_display = ('order', 'amount', 'method', 'reference', 'payment_date', 'recorded_by')
    list_filter = ('tenant', 'method')
    search_fields = ('order__order_number', 'reference')
    raw_id_fields = ('order',)
