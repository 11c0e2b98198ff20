import json
import logging
from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.shortcuts import get_object_or_404
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from account.permissions import IsPlatformAdmin, IsSeller
from payment.models import PayoutRequest, WalletTransaction, WebhookLog
from payment.services.geniuspay_sdk import GeniusPaySDK
from payment.services.ledger import LedgerService
from payment.services.payouts import PayoutService, PayoutStateError, PayoutValidationError
from payment.services.references import PaymentReference
from payment.services.service import PaymentService
from .serializers import (
    GatewayActionSerializer,
    PayoutCreateSerializer,
    PayoutRejectSerializer,
    PayoutRequestSerializer,
    WalletRechargeSerializer,
    WalletTransactionSerializer,
)

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "HTTP_X_SIGNATURE"


def _signature_is_valid(request) -> bool:
    """
    True when the HMAC matches the configured secret. Without a secret,
    unsigned deliveries pass only when GENIUSPAY_ALLOW_UNSIGNED_WEBHOOKS is set.
    """
    secret = getattr(settings, "GENIUSPAY_WEBHOOK_SECRET", "")
    if not secret:
        return bool(getattr(settings, "GENIUSPAY_ALLOW_UNSIGNED_WEBHOOKS", False))
    return GeniusPaySDK.verify_signature(secret, request.body, request.META.get(SIGNATURE_HEADER))


class GatewayView(APIView):
    """
    Single entry point for the client's payment calls:
    {"action": "initiate" | "verify" | "callback", ...}.
    """

    def initial(self, request, *args, **kwargs):
        # Cache the raw body before parsing, the callback signature is computed over it.
        request.body
        super().initial(request, *args, **kwargs)

    def get_permissions(self):
        if isinstance(self.request.data, dict) and self.request.data.get("action") == "callback":
            return [permissions.AllowAny()]
        return [permissions.IsAuthenticated()]

    def post(self, request):
        serializer = GatewayActionSerializer(data=request.data)
        if not serializer.is_valid() or serializer.validated_data["action"] not in GatewayActionSerializer.ACTIONS:
            return Response({"success": False, "message": "Invalid action"}, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        action = data["action"]

        try:
            service = PaymentService()
            if action == "initiate":
                order_ref = data.get("orderId")
                parsed = PaymentReference.parse(order_ref)
                if parsed and parsed.owner_id != str(request.user.id) and not request.user.is_platform_admin:
                    return Response(
                        {"success": False, "message": "Reference does not belong to you"},
                        status=status.HTTP_403_FORBIDDEN,
                    )
                result = service.initiate(
                    amount=data.get("amount"),
                    phone=data.get("phoneNumber") or "",
                    order_ref=order_ref,
                )
                code = status.HTTP_200_OK if result.success else status.HTTP_400_BAD_REQUEST
            elif action == "verify":
                result = service.verify(data.get("transactionId"), order_ref=data.get("orderId"))
                upstream_failed = not result.success and result.status is None
                code = status.HTTP_400_BAD_REQUEST if upstream_failed else status.HTTP_200_OK
            else:
                if not _signature_is_valid(request):
                    logger.warning("Rejected gateway callback with invalid signature")
                    return Response(
                        {"success": False, "message": "Invalid signature"},
                        status=status.HTTP_401_UNAUTHORIZED,
                    )
                result = service.callback(dict(request.data.items()))
                code = status.HTTP_200_OK
        except Exception:
            logger.exception("Unexpected gateway error for action=%s", action)
            return Response(
                {"success": False, "message": "Server error"},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        return Response(result.to_dict(), status=code)


@method_decorator(csrf_exempt, name="dispatch")
class GeniusPayWebhookView(View):
    """
    Endpoint to receive GeniusPay pay-in notifications.
    Every delivery is kept in WebhookLog.
    """

    def get(self, request: HttpRequest):
        # Simple GET for sanity checks
        return JsonResponse({"info": "GeniusPay Webhook endpoint, POST only"})

    def post(self, request: HttpRequest):
        # Parse JSON
        try:
            payload = json.loads(request.body)
            if not isinstance(payload, dict):
                raise ValueError("payload must be an object")
        except ValueError:
            logger.error("GeniusPay webhook invalid JSON: %s", request.body)
            WebhookLog.objects.create(
                provider="GENIUSPAY",
                event_type="INVALID_JSON",
                reference="INVALID_JSON",
                payload={"raw_body": request.body.decode("utf-8", errors="replace")},
                processed=False,
                processing_attempts=1,
            )
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        logger.info("GeniusPay webhook received: %s", payload)
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        reference = body.get("reference") or body.get("orderId") or payload.get("reference") or payload.get("orderId")

        webhook_log = WebhookLog.objects.create(
            provider="GENIUSPAY",
            event_type="RECEIVED",
            reference=str(reference or "MISSING_REFERENCE"),
            payload=payload,
            processed=False,
            processing_attempts=1,
        )

        if not _signature_is_valid(request):
            webhook_log.event_type = "INVALID_SIGNATURE"
            webhook_log.save(update_fields=["event_type"])
            logger.warning("GeniusPay webhook signature mismatch for reference=%s", reference)
            return JsonResponse({"error": "Invalid signature"}, status=401)

        if not reference:
            webhook_log.event_type = "MISSING_REFERENCE"
            webhook_log.save(update_fields=["event_type"])
            logger.warning("GeniusPay webhook missing reference")
            return JsonResponse({"error": "Missing reference"}, status=400)

        try:
            result = PaymentService().callback(payload)
        except Exception:
            webhook_log.event_type = "PAYMENT_SYNC_FAILED"
            webhook_log.save(update_fields=["event_type"])
            logger.exception("GeniusPay webhook processing failed for reference=%s", reference)
            return JsonResponse({"error": "Unexpected webhook error"}, status=500)

        webhook_log.event_type = "PAYMENT_CONFIRMED" if result.success else "PAYMENT_NOT_CONFIRMED"
        webhook_log.processed = True
        webhook_log.save(update_fields=["event_type", "processed"])
        return JsonResponse(result.to_dict(), status=200)


class WalletView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        request.user.refresh_from_db(fields=["wallet_balance"])
        transactions = WalletTransaction.objects.filter(user=request.user).order_by("-created_at")[:50]
        return Response(
            {
                "wallet_balance": request.user.wallet_balance,
                "ledger_balance": LedgerService.reconstruct_balance(request.user),
                "transactions": WalletTransactionSerializer(transactions, many=True).data,
            }
        )


class WalletRechargeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = WalletRechargeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = PaymentService().initiate_recharge(
                request.user,
                serializer.validated_data["amount"],
                serializer.validated_data["phone_number"],
            )
        except Exception:
            logger.exception("Unexpected recharge error for user=%s", request.user.id)
            return Response({"detail": "Unexpected payment error"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        code = status.HTTP_201_CREATED if result.success else status.HTTP_400_BAD_REQUEST
        return Response(result.to_dict(), status=code)


class PayoutRequestView(APIView):
    permission_classes = [IsSeller]

    def post(self, request):
        serializer = PayoutCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            payout = PayoutService.request_payout(
                request.user,
                serializer.validated_data["amount"],
                serializer.validated_data["method"],
                serializer.validated_data.get("phone", ""),
            )
        except PayoutValidationError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(PayoutRequestSerializer(payout).data, status=status.HTTP_201_CREATED)


class PayoutHistoryView(APIView):
    permission_classes = [IsSeller]

    def get(self, request):
        payouts = PayoutRequest.objects.filter(seller=request.user).order_by("-created_at")
        return Response({"payouts": PayoutRequestSerializer(payouts, many=True).data})


class AdminPayoutListView(APIView):
    permission_classes = [IsPlatformAdmin]

    def get(self, request):
        payouts = PayoutRequest.objects.select_related("seller").order_by("-created_at")
        status_filter = request.query_params.get("status")
        if status_filter and status_filter != "ALL":
            payouts = payouts.filter(status=status_filter)
        return Response({"payouts": PayoutRequestSerializer(payouts, many=True).data})


class PayoutApproveView(APIView):
    permission_classes = [IsPlatformAdmin]

    def post(self, request, pk):
        payout = get_object_or_404(PayoutRequest, pk=pk)
        try:
            PayoutService.approve(payout, actor=request.user)
        except PayoutStateError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        return Response(PayoutRequestSerializer(payout).data, status=status.HTTP_200_OK)


class PayoutRejectView(APIView):
    permission_classes = [IsPlatformAdmin]

    def post(self, request, pk):
        payout = get_object_or_404(PayoutRequest, pk=pk)
        serializer = PayoutRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            PayoutService.reject(payout, actor=request.user, note=serializer.validated_data.get("note", ""))
        except PayoutStateError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        return Response(PayoutRequestSerializer(payout).data, status=status.HTTP_200_OK)
