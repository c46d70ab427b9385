from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import CustomerViewSet

router = DefaultRouter()
router.register(r'customers', CustomerViewSet, basename='customer')  # /api/v1/customers/

urlpatterns = [
    path('', include(router.urls)),
]
