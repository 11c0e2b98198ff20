import logging

from django.db.models import Q
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from account.permissions import IsPlatformAdmin, IsSeller
from payment.services.ledger import LedgerError
from payment.services.references import PaymentReference
from .escrow import EscrowService
from .exceptions import CheckoutError, EscrowReleaseError, InvalidTransitionError, PartialCheckoutError
from .models import Order
from .serializers import CheckoutSerializer, OrderSerializer, OrderStatusSerializer
from .services import CheckoutService

logger = logging.getLogger(__name__)


def _can_view(user, order: Order) -> bool:
    if user.is_platform_admin:
        return True
    if order.buyer_id == user.id or order.seller_id == user.id:
        return True
    return order.items.filter(seller=user).exists()


class CheckoutView(APIView):
    """
    Split the cart into one order per seller and pay it.
    WALLET pays immediately; mobile money creates PENDING orders and
    starts a collection for the shared payment reference.
    """

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        method = data["payment_method"]
        items = data["items"]

        retry_ref = data.get("payment_ref") or None
        if retry_ref:
            parsed = PaymentReference.parse(retry_ref)
            if not parsed or parsed.is_recharge or parsed.owner_id != str(request.user.id):
                return Response({"detail": "Invalid payment_ref"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            if method == Order.PaymentMethod.WALLET:
                result = CheckoutService.checkout_with_wallet(request.user, items)
            else:
                result = CheckoutService.checkout_with_mobile_money(
                    request.user,
                    items,
                    provider=method,
                    phone=data.get("phone_number", ""),
                    payment_ref=retry_ref,
                )
        except PartialCheckoutError as exc:
            return Response(
                {
                    "detail": str(exc),
                    "orders": OrderSerializer(exc.created_orders, many=True).data,
                    "failed_sellers": exc.failed_sellers,
                },
                status=status.HTTP_409_CONFLICT,
            )
        except CheckoutError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except Exception:
            logger.exception("Unexpected checkout error for buyer=%s", request.user.id)
            return Response({"detail": "Unexpected checkout error"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        body = {
            "success": result.success,
            "message": result.message,
            "payment_ref": result.payment_ref,
            "orders": OrderSerializer(result.orders, many=True).data,
        }
        if result.transaction_id:
            body["transaction_id"] = result.transaction_id
        if result.payment_url:
            body["payment_url"] = result.payment_url
        return Response(body, status=status.HTTP_201_CREATED)


# e.g
# {
#   "payment_method": "WAVE",
#   "phone_number": "+225 07 00 00 00 00",
#   "items": [
#     {"product_id": "p-1", "quantity": 2, "price": "5000", "seller_id": "<uuid>"}
#   ]
# }


class ListOrdersView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        orders = Order.objects.filter(buyer=request.user).prefetch_related("items").order_by("-created_at")
        return Response({"orders": OrderSerializer(orders, many=True).data})


class SellerOrdersView(APIView):
    permission_classes = [IsSeller]

    def get(self, request):
        orders = (
            Order.objects.filter(Q(seller=request.user) | Q(items__seller=request.user))
            .distinct()
            .prefetch_related("items")
            .order_by("-created_at")
        )
        status_filter = request.query_params.get("status")
        if status_filter:
            orders = orders.filter(status=status_filter)
        return Response({"orders": OrderSerializer(orders, many=True).data})


class OrderDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        order = Order.objects.prefetch_related("items").filter(pk=pk).first()
        if not order:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        if not _can_view(request.user, order):
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(OrderSerializer(order).data)


class OrderStatusUpdateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request, pk):
        order = Order.objects.filter(pk=pk).first()
        if not order:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        if order.seller_id != request.user.id and not request.user.is_platform_admin:
            return Response({"detail": "Only the seller or an admin can update this order"}, status=status.HTTP_403_FORBIDDEN)

        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            order = EscrowService.update_status(order, serializer.validated_data["status"], actor=request.user)
        except InvalidTransitionError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        order.refresh_from_db()
        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)


class ReleasePayoutView(APIView):
    """Retry the seller credit of a delivered order whose release failed."""

    permission_classes = [IsPlatformAdmin]

    def post(self, request, pk):
        order = Order.objects.filter(pk=pk).first()
        if not order:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        if order.status != Order.Status.DELIVERED:
            return Response({"detail": "Only delivered orders can be paid out"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            released = EscrowService.release_payout(order)
        except (EscrowReleaseError, LedgerError) as exc:
            logger.exception("Manual payout release failed for order=%s", order.id)
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(
            {"order_id": str(order.id), "released": released, "payout_status": order.payout_status},
            status=status.HTTP_200_OK,
        )


class SellerEscrowView(APIView):
    permission_classes = [IsSeller]

    def get(self, request):
        return Response({"escrow_total": EscrowService.seller_escrow_total(request.user)})
