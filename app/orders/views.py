"""
ViewSet for the orders API.

URL Structure:
    /api/v1/orders/               GET (list), POST (create)
    /api/v1/orders/{id}/          GET
    /api/v1/orders/{id}/cancel/   POST

Design Decisions:
    - All business rules live in OrderService; domain errors propagate to
      core.exception_handlers.api_exception_handler
    - Buyers see their own orders; staff see every order
    - The pay step lives in the payments app (/orders/{id}/pay/)
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from orders.serializers import (
    OrderCreateSerializer,
    OrderListFilterSerializer,
    OrderSerializer,
)
from orders.services import OrderService


@extend_schema_view(
    list=extend_schema(
        operation_id="list_orders",
        summary="List orders",
        tags=["Orders"],
        parameters=[
            OpenApiParameter("status", OpenApiTypes.STR, description="Filter by status"),
            OpenApiParameter("created_after", OpenApiTypes.DATETIME),
            OpenApiParameter("created_before", OpenApiTypes.DATETIME),
            OpenApiParameter("buyer_id", OpenApiTypes.INT, description="Staff only"),
        ],
    ),
    create=extend_schema(
        operation_id="create_order",
        summary="Create order",
        tags=["Orders"],
        request=OrderCreateSerializer,
        responses={
            201: OrderSerializer,
            404: OpenApiResponse(description="Resource not found"),
            409: OpenApiResponse(description="Resource already purchased"),
        },
    ),
    retrieve=extend_schema(
        operation_id="get_order",
        summary="Get order",
        tags=["Orders"],
    ),
)
class OrderViewSet(viewsets.GenericViewSet):
    """
    Order operations for the authenticated buyer.

    list:
        Paginated orders, newest first. Filters: status, created_after,
        created_before (and buyer_id for staff).

    create:
        Create a pending order for a resource at its current price.
        Expires after ORDER_EXPIRY_MINUTES unless paid.

    retrieve:
        Order details. Buyers may only read their own orders.

    cancel:
        Cancel a pending order.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer
    lookup_value_regex = r"\d+"

    def get_service(self) -> OrderService:
        return OrderService()

    def list(self, request):
        """List orders visible to the caller."""
        filters = OrderListFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)

        queryset = self.get_service().list_orders(request.user, **filters.validated_data)
        page = self.paginate_queryset(queryset)
        serializer = OrderSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def create(self, request):
        """Create a pending order."""
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self.get_service().create_order(
            buyer=request.user,
            resource_id=serializer.validated_data["resource_id"],
            payment_method=serializer.validated_data["payment_method"],
        )
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        """Get one order."""
        order = self.get_service().get_order(int(pk), request.user)
        return Response(OrderSerializer(order).data)

    @extend_schema(
        operation_id="cancel_order",
        summary="Cancel order",
        tags=["Orders"],
        request=None,
        responses={
            200: OrderSerializer,
            403: OpenApiResponse(description="Not the buyer"),
            409: OpenApiResponse(description="Order is not pending"),
        },
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        """Cancel a pending order."""
        order = self.get_service().cancel_order(int(pk), request.user)
        return Response(OrderSerializer(order).data)
