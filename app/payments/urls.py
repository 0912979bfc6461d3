"""
URL configuration for the payments app.

Routes:
    /orders/{id}/pay/                    POST
    /payments/{ref}/verify/              GET
    /payments/{ref}/refund/              POST (admin)
    /payout-configs/                     GET, POST
    /payout-configs/{id}/                DELETE
    /payout-configs/{id}/set-default/    POST
    /webhooks/{provider}/                POST (paypal, stripe, tron, ethereum)

All routes are prefixed with /api/v1/ when included in the main URLconf.
"""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from payments.views import PaymentViewSet, PayoutConfigViewSet, PayView
from payments.webhooks.views import provider_webhook

router = SimpleRouter()
router.register(r"payments", PaymentViewSet, basename="payment")
router.register(r"payout-configs", PayoutConfigViewSet, basename="payout-config")

app_name = "payments"

urlpatterns = [
    path("orders/<int:order_id>/pay/", PayView.as_view(), name="order-pay"),
    path("webhooks/<str:provider>/", provider_webhook, name="provider-webhook"),
    path("", include(router.urls)),
]
