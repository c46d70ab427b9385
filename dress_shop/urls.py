"""
URL configuration for the dress_shop project.

Every app registers its own router; they are all mounted under ``api/v1/``.
"""


from django.contrib import admin
from django.urls import path, include
from drf_yasg.views import get_schema_view
from drf_yasg import openapi, codecs
from rest_framework import permissions
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

import json
from decimal import Decimal


# drf-yasg dumps serializer min/max values as-is; Decimal needs help
class DecimalEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        return super(DecimalEncoder, self).default(obj)


codecs.json.dumps = lambda obj, **kwargs: json.dumps(obj, cls=DecimalEncoder, **kwargs)


schema_view = get_schema_view(
   openapi.Info(
      title="Dress Shop API",
      default_version='v1',
      description="""
      REST API for the dress shop dashboard: customers, orders, payments and returns.

      **Key Features:**

      - Orders with line items, payment recording and balance tracking
      - Refund previews for full and partial returns
      - Return lifecycle: approve, reject, refund

      **Authentication:** JWT bearer tokens. Requests are scoped to one business via the
      `X-Tenant-Slug` header, or the user's only business when the header is absent.
      """,
   ),
   public=True,
   permission_classes=(permissions.AllowAny,),
)


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/v1/auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/v1/', include('customers.urls')),
    path('api/v1/', include('orders.urls')),
    path('api/v1/', include('returns.urls')),

    path('swagger<format>/', schema_view.without_ui(cache_timeout=0), name='schema-json'),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
]
