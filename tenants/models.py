from django.db import models
from django.contrib.auth.models import User
from django.core.validators import RegexValidator


class Tenant(models.Model):
    """
    A business using the dashboard.
    Every order, customer and return row carries a tenant key; queries are
    always filtered by the tenant resolved for the request.
    """
    name = models.CharField(max_length=100, help_text="Business/Company name")
    slug = models.SlugField(max_length=50, unique=True, help_text="URL-friendly identifier")
    business_code = models.CharField(
        max_length=4,
        unique=True,
        validators=[RegexValidator(r'^[A-Z0-9]{4}$', 'Business code must be 4 uppercase letters or digits.')],
        help_text="Prefix used in order numbers"
    )

    # Contact information
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)

    is_active = models.BooleanField(default=True)
    currency = models.CharField(max_length=3, default='PKR')

    # Timestamps
    created_on = models.DateTimeField(auto_now_add=True)
    updated_on = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tenants_tenant'
        ordering = ['name']

    def __str__(self):
        return self.name


class TenantUser(models.Model):
    """
    Junction model linking global users to specific tenants with roles.
    Allows users to belong to multiple tenants with different permissions.
    """
    ROLE_CHOICES = [
        ('owner', 'Owner'),
        ('admin', 'Administrator'),
        ('manager', 'Manager'),
        ('staff', 'Staff'),
        ('viewer', 'Viewer'),
    ]
    MANAGER_ROLES = ('owner', 'admin', 'manager')

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='tenant_memberships')
    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='user_memberships')
    role = models.CharField(max_length=50, choices=ROLE_CHOICES, default='staff')
    is_active = models.BooleanField(default=True)

    # Timestamps
    joined_on = models.DateTimeField(auto_now_add=True)
    updated_on = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ('user', 'tenant')
        db_table = 'tenant_users'

    def __str__(self):
        return f"{self.user.username} - {self.tenant.name} ({self.role})"

    @property
    def is_owner_or_admin(self):
        return self.role in ['owner', 'admin']

    @property
    def can_manage_finances(self):
        """Approving returns and issuing refunds is limited to managers and up."""
        return self.role in self.MANAGER_ROLES

    @property
    def can_write(self):
        return self.role != 'viewer'
