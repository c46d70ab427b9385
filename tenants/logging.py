"""
Custom logging utilities for multi-tenant application
"""
import logging
from .context import TenantContextManager


class TenantLogFilter(logging.Filter):
    """
    Logging filter that adds tenant information to log records
    """

    def filter(self, record):
        tenant = TenantContextManager.get_current_tenant()
        if tenant:
            record.tenant_id = tenant.id
            record.tenant_slug = tenant.slug
        else:
            record.tenant_id = 'public'
            record.tenant_slug = 'public'

        return True


def add_tenant_context(logger, method_name, event_dict):
    """structlog processor mirroring TenantLogFilter for structured events"""
    event_dict.setdefault('tenant', TenantContextManager.get_current_tenant_slug() or 'public')
    return event_dict
