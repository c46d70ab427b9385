from django.contrib import admin
from .models import Tenant, TenantUser


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    """
    Admin interface for managing tenants.
    """
    list_display = ['name', 'slug', 'business_code', 'currency', 'is_active', 'created_on']
    list_filter = ['is_active', 'created_on']
    search_fields = ['name', 'slug', 'business_code', 'contact_email']
    readonly_fields = ['created_on', 'updated_on']
    prepopulated_fields = {'slug': ('name',)}


@admin.register(TenantUser)
class TenantUserAdmin(admin.ModelAdmin):
    """
    Admin interface for tenant memberships.
    """
    list_display = ['user', 'tenant', 'role', 'is_active', 'joined_on']
    list_filter = ['role', 'is_active']
    search_fields = ['user__username', 'user__email', 'tenant__name']
    raw_id_fields = ['user', 'tenant']
