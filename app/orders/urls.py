"""
URL configuration for the orders API.

Routes:
    /orders/               GET, POST
    /orders/{id}/          GET
    /orders/{id}/cancel/   POST

All routes are prefixed with /api/v1/ in the main URLconf.
"""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from orders.views import OrderViewSet

router = SimpleRouter()
router.register(r"orders", OrderViewSet, basename="order")

app_name = "orders"

urlpatterns = [
    path("", include(router.urls)),
]
