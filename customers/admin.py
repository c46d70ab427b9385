# Django Imports
from django.contrib import admin
from .models import Customer
from simple_history.admin import SimpleHistoryAdmin

# Python Imports


@admin.register(Customer)
class CustomerAdmin(SimpleHistoryAdmin):

    list_display = ('name', 'tenant', 'phone_number', 'city', 'advance_balance')
    list_filter = ('tenant',)
    search_fields = ('name', 'phone_number', 'email', 'address', 'notes')
    ordering = ('name',)
    fieldsets = (
        ('Customer Information', {
            'fields': ('tenant', 'name', 'phone_number', 'email', 'address', 'city', 'notes')
        }),
        ('Balances', {
            'fields': ('advance_balance',)
        }),
    )
