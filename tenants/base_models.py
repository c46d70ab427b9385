from django.db import models
from simple_history.models import HistoricalRecords


class TenantAwareQuerySet(models.QuerySet):

    def for_tenant(self, tenant):
        return self.filter(tenant=tenant)


class TenantAwareModel(models.Model):
    """Abstract base model for rows owned by a single tenant"""

    _tenant_field = 'tenant'

    tenant = models.ForeignKey(
        'tenants.Tenant',
        on_delete=models.CASCADE,
        related_name='%(app_label)s_%(class)s_set',
        verbose_name='Tenant'
    )

    objects = TenantAwareQuerySet.as_manager()

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Override save to ensure the row is valid before it is written"""
        self.full_clean()
        super().save(*args, **kwargs)


class TenantAwareHistoricalModel(TenantAwareModel):
    """Abstract base model for tenant-aware models with history tracking"""

    history = HistoricalRecords(inherit=True)

    class Meta:
        abstract = True
