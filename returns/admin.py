# Django Imports
from django.contrib import admin
from simple_history.admin import SimpleHistoryAdmin

from .models import Return, ReturnItem

# Python Imports


class ReturnItemInline(admin.TabularInline):
    model = ReturnItem
    extra = 0
    fields = ('product_id', 'product_variant_id', 'product_name', 'quantity', 'unit_price', 'line_total')
    readonly_fields = ('line_total',)


@admin.register(Return)
class ReturnAdmin(SimpleHistoryAdmin):

    list_display = (
        'return_number', 'tenant', 'order', 'return_type', 'status',
        'refund_amount', 'unrecovered_shortfall', 'return_date'
    )
    list_filter = ('tenant', 'status', 'return_type', 'shipping_charge_handling')
    search_fields = ('return_number', 'order__order_number', 'reason')
    raw_id_fields = ('order',)
    readonly_fields = (
        'products_value', 'shipping_charge_amount', 'advance_balance_used',
        'refund_amount', 'unrecovered_shortfall', 'processed_by', 'processed_at',
        'created_at', 'updated_at'
    )
    inlines = [ReturnItemInline]
