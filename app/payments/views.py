"""
DRF views for payments app.

Endpoints:
    POST   /api/v1/orders/{id}/pay/                       Start paying an order
    GET    /api/v1/payments/{ref}/verify/                 Check and finalize a payment
    POST   /api/v1/payments/{ref}/refund/                 Refund (admin only)
    GET    /api/v1/payout-configs/                        Payee destinations
    POST   /api/v1/payout-configs/                        Add destination
    DELETE /api/v1/payout-configs/{id}/                   Deactivate destination
    POST   /api/v1/payout-configs/{id}/set-default/       Use for settlement

Webhooks are plain Django views (payments.webhooks.views).

Design Decisions:
    - Business rules live in the services; domain errors propagate to
      core.exception_handlers.api_exception_handler
    - Provider errors surface as 502/503 so clients can retry
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.serializers import (
    PaymentStartSerializer,
    PaymentStatusSerializer,
    PaymentTransactionSerializer,
    PayoutConfigCreateSerializer,
    PayoutConfigSerializer,
    PayRequestSerializer,
)
from payments.services import PaymentService, PayoutConfigService


class PayView(APIView):
    """Start (or resume) payment of a pending order."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="pay_order",
        summary="Pay order",
        tags=["Payments"],
        request=PayRequestSerializer,
        responses={
            200: PaymentStartSerializer,
            403: OpenApiResponse(description="Not the buyer"),
            404: OpenApiResponse(description="Order not found"),
            409: OpenApiResponse(description="Order is not payable or payment in progress"),
            502: OpenApiResponse(description="Provider error"),
            503: OpenApiResponse(description="Payment method not configured"),
        },
    )
    def post(self, request, order_id: int):
        serializer = PayRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        attempt = PaymentService().pay(
            order_id,
            request.user,
            serializer.validated_data["payment_method"],
            return_url=serializer.validated_data["return_url"] or None,
            cancel_url=serializer.validated_data["cancel_url"] or None,
        )
        return Response(PaymentStartSerializer(attempt).data)


class PaymentViewSet(viewsets.GenericViewSet):
    """
    Operations on a payment attempt, addressed by its payment_ref.

    verify:
        Ask the provider where the payment stands; completes and settles
        the order when the provider confirms it.

    refund:
        Refund a completed payment through its provider. Admin only.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = PaymentStatusSerializer
    lookup_value_regex = r"\d+"

    def get_service(self) -> PaymentService:
        return PaymentService()

    @extend_schema(
        operation_id="verify_payment",
        summary="Verify payment",
        tags=["Payments"],
        responses={
            200: PaymentStatusSerializer,
            403: OpenApiResponse(description="Not the buyer"),
            404: OpenApiResponse(description="Payment not found"),
            502: OpenApiResponse(description="Provider error"),
        },
    )
    @action(detail=True, methods=["get"])
    def verify(self, request, pk=None):
        """Verify a payment with its provider."""
        payment_status = self.get_service().verify(pk, request.user)
        return Response(PaymentStatusSerializer(payment_status).data)

    @extend_schema(
        operation_id="refund_payment",
        summary="Refund payment",
        tags=["Payments"],
        request=None,
        responses={
            200: PaymentTransactionSerializer,
            400: OpenApiResponse(description="Refund unsupported for this method"),
            404: OpenApiResponse(description="Payment not found"),
            409: OpenApiResponse(description="Payment is not completed"),
        },
    )
    @action(detail=True, methods=["post"], permission_classes=[IsAdminUser])
    def refund(self, request, pk=None):
        """Refund a completed payment."""
        attempt = self.get_service().refund(pk, request.user)
        return Response(PaymentTransactionSerializer(attempt).data)


@extend_schema_view(
    list=extend_schema(operation_id="list_payout_configs", summary="List payout configs", tags=["Payouts"]),
    create=extend_schema(
        operation_id="create_payout_config",
        summary="Add payout config",
        tags=["Payouts"],
        request=PayoutConfigCreateSerializer,
        responses={
            201: PayoutConfigSerializer,
            400: OpenApiResponse(description="Malformed destination"),
            409: OpenApiResponse(description="Destination already registered"),
        },
    ),
    destroy=extend_schema(operation_id="delete_payout_config", summary="Delete payout config", tags=["Payouts"]),
)
class PayoutConfigViewSet(viewsets.GenericViewSet):
    """
    Payout destinations of the authenticated payee.

    Settlement pays a payee through the most recently set active
    destination of the sale's payout method (card sales use PayPal).
    """

    permission_classes = [IsAuthenticated]
    serializer_class = PayoutConfigSerializer
    pagination_class = None
    lookup_value_regex = r"\d+"

    def get_service(self) -> PayoutConfigService:
        return PayoutConfigService()

    def list(self, request):
        configs = self.get_service().list_configs(request.user)
        return Response(PayoutConfigSerializer(configs, many=True).data)

    def create(self, request):
        serializer = PayoutConfigCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        config = self.get_service().create_config(request.user, **serializer.validated_data)
        return Response(PayoutConfigSerializer(config).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        self.get_service().delete_config(request.user, int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="set_default_payout_config",
        summary="Set default payout config",
        tags=["Payouts"],
        request=None,
        responses={200: PayoutConfigSerializer},
    )
    @action(detail=True, methods=["post"], url_path="set-default")
    def set_default(self, request, pk=None):
        config = self.get_service().set_default(request.user, int(pk))
        return Response(PayoutConfigSerializer(config).data)
