from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import OrderViewSet

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')  # /api/v1/orders/

urlpatterns = [
    path('', include(router.urls)),
]
