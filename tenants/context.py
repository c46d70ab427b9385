import threading

# Per-thread tenant of the request being served
_thread_locals = threading.local()


class TenantContextManager:
    """
    Holds the tenant of the current request so code without access to the
    request (log filters, structlog processors) can still see it.
    """

    @staticmethod
    def set_tenant_context(tenant):
        _thread_locals.tenant = tenant

    @staticmethod
    def get_current_tenant():
        return getattr(_thread_locals, 'tenant', None)

    @staticmethod
    def get_current_tenant_slug():
        tenant = TenantContextManager.get_current_tenant()
        return tenant.slug if tenant else None

    @staticmethod
    def clear_tenant_context():
        _thread_locals.tenant = None
