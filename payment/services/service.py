from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.conf import settings
from django.db.models import Q

from audit.models import AuditLog
from audit.services import AuditService
from order.escrow import EscrowService
from order.models import Order
from payment.models import WalletTransaction
from .geniuspay_sdk import DEFAULT_BASE_URL, GeniusPaySDK
from .ledger import LedgerService
from .references import PaymentReference

logger = logging.getLogger(__name__)

PAID_STATUSES = {"paid", "success", "completed"}


class PaymentServiceError(Exception):
    """Base exception for payment service errors."""


class PaymentConfigurationError(PaymentServiceError):
    """Raised when required GeniusPay settings are missing."""


class PaymentGatewayError(PaymentServiceError):
    """Raised when GeniusPay API calls fail."""


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    message: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None
    status: Optional[str] = None
    reference: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "message": self.message,
            "transactionId": self.transaction_id,
            "paymentUrl": self.payment_url,
            "status": self.status,
            "reference": self.reference,
        }
        return {key: value for key, value in data.items() if value is not None}


class PaymentService:
    """Mobile-money payments through the GeniusPay pay-in API."""

    def __init__(self, sdk: Optional[GeniusPaySDK] = None) -> None:
        self.country_code = self._get_setting("GENIUSPAY_COUNTRY_CODE", required=False) or "225"
        self.currency = self._get_setting("GENIUSPAY_CURRENCY", required=False) or "XOF"
        self.return_url = self._get_setting("GENIUSPAY_RETURN_URL", required=False)
        self._sdk = sdk

    @property
    def sdk(self) -> GeniusPaySDK:
        if self._sdk is None:
            self._sdk = GeniusPaySDK(
                api_key=self._get_setting("GENIUSPAY_API_KEY"),
                base_url=self._get_setting("GENIUSPAY_BASE_URL", required=False) or DEFAULT_BASE_URL,
                timeout=int(self._get_setting("GENIUSPAY_TIMEOUT", required=False) or 30),
            )
        return self._sdk

    # -----------------------------
    # Gateway actions
    # -----------------------------
    def initiate(
        self,
        amount: Decimal | float | int | str,
        phone: str,
        order_ref: str,
        description: Optional[str] = None,
    ) -> GatewayResult:
        try:
            normalized_amount = self._validate_amount(amount)
            local_phone = self.normalize_phone(phone)
            if not order_ref:
                raise PaymentServiceError("orderId is required")
            data = self._call_gateway(
                lambda: self.sdk.create_payin(
                    amount=float(normalized_amount),
                    phone_number=f"{self.country_code}{local_phone}",
                    reference=str(order_ref),
                    description=description or f"Commande #{order_ref}",
                    return_url=self.return_url,
                    currency=self.currency,
                )
            )
        except PaymentServiceError as exc:
            logger.warning("Payment initiation failed for ref=%s: %s", order_ref, exc)
            return GatewayResult(success=False, message=str(exc), reference=order_ref or None)

        logger.info("Payment initiated for ref=%s amount=%s", order_ref, normalized_amount)
        return GatewayResult(
            success=True,
            message="Paiement initié avec succès.",
            transaction_id=self._extract_transaction_id(data),
            payment_url=self._extract_field(data, "payment_url"),
            reference=order_ref,
        )

    def verify(self, transaction_id: str, order_ref: Optional[str] = None) -> GatewayResult:
        if not transaction_id:
            return GatewayResult(success=False, message="transactionId is required")
        try:
            data = self._call_gateway(lambda: self.sdk.get_payin(str(transaction_id)))
        except PaymentServiceError as exc:
            logger.warning("Payment verification failed for transaction=%s: %s", transaction_id, exc)
            return GatewayResult(success=False, message=str(exc), transaction_id=transaction_id)

        raw_status = self._extract_field(data, "status")
        upstream_ref = self._extract_field(data, "reference")
        if order_ref and upstream_ref and upstream_ref != str(order_ref):
            logger.warning(
                "Transaction %s belongs to ref=%s, not ref=%s", transaction_id, upstream_ref, order_ref
            )
            return GatewayResult(
                success=False,
                message="La transaction ne correspond pas à cette référence.",
                transaction_id=transaction_id,
                status=raw_status,
                reference=str(order_ref),
            )
        is_paid = self.is_paid_status(raw_status)
        ref = upstream_ref or order_ref
        if is_paid and ref:
            self.confirm_reference(ref)
        return GatewayResult(
            success=is_paid,
            message="Paiement confirmé." if is_paid else "Paiement en attente.",
            transaction_id=transaction_id,
            status=raw_status,
            reference=ref,
        )

    def callback(self, payload: Dict[str, Any]) -> GatewayResult:
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        ref = body.get("orderId") or body.get("reference") or payload.get("orderId") or payload.get("reference")
        raw_status = body.get("status") or payload.get("status")
        is_paid = self.is_paid_status(raw_status)
        if is_paid and ref:
            self.confirm_reference(str(ref))
        elif not is_paid:
            logger.info("Ignoring callback for ref=%s with status=%s", ref, raw_status)
        return GatewayResult(
            success=is_paid,
            message="Paiement confirmé via callback." if is_paid else "Paiement non confirmé.",
            status=raw_status,
            reference=str(ref) if ref else None,
        )

    def confirm_reference(self, ref: str) -> int:
        """
        Apply a confirmed payment. Recharge references credit their pending
        recharge rows; anything else marks every order sharing the
        reference (or the legacy order id) as paid. Returns how many rows
        or orders changed; repeated confirmations change nothing.
        """
        parsed = PaymentReference.parse(ref)
        if parsed and parsed.is_recharge:
            completed = LedgerService.complete_pending_recharges(ref)
            logger.info("Recharge reference %s confirmed, %d row(s) completed", ref, completed)
            return completed

        query = Q(payment_ref=ref)
        try:
            query |= Q(id=uuid.UUID(str(ref)))
        except ValueError:
            pass
        changed = 0
        for order in Order.objects.filter(query):
            if EscrowService.mark_paid(order):
                changed += 1
        logger.info("Payment reference %s confirmed, %d order(s) marked paid", ref, changed)
        return changed

    # -----------------------------
    # Wallet recharge
    # -----------------------------
    def initiate_recharge(self, user, amount: Decimal | float | int | str, phone: str) -> GatewayResult:
        try:
            normalized_amount = self._validate_amount(amount)
            self.normalize_phone(phone)
        except PaymentServiceError as exc:
            return GatewayResult(success=False, message=str(exc))

        ref = str(PaymentReference.for_recharge(user.id))
        LedgerService.record_transaction(
            user,
            type=WalletTransaction.Type.RECHARGE,
            amount=normalized_amount,
            status=WalletTransaction.Status.PENDING,
            payment_ref=ref,
            meta={"method": "wave"},
        )
        AuditService.record(
            actor=user,
            action=AuditLog.Action.WALLET_RECHARGE,
            entity="wallet_transactions",
            entity_id=ref,
            details={"amount": normalized_amount},
        )
        result = self.initiate(normalized_amount, phone, ref, description=f"Recharge portefeuille #{ref}")
        return replace(result, reference=ref)

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def is_paid_status(raw_status: Any) -> bool:
        return str(raw_status or "").strip().lower() in PAID_STATUSES

    def normalize_phone(self, phone: str) -> str:
        """Local number without whitespace or country code."""
        cleaned = re.sub(r"\s+", "", phone or "")
        for prefix in (f"+{self.country_code}", f"00{self.country_code}", self.country_code):
            if cleaned.startswith(prefix) and len(cleaned) > len(prefix) + 7:
                cleaned = cleaned[len(prefix):]
                break
        if not cleaned.isdigit() or not 8 <= len(cleaned) <= 10:
            raise PaymentServiceError("phoneNumber is invalid")
        return cleaned

    @staticmethod
    def _get_setting(key: str, required: bool = True) -> str:
        value = getattr(settings, key, None) or os.getenv(key)
        if required and not value:
            raise PaymentConfigurationError(
                f"Missing payment configuration: {key}. Set it in Django settings or environment variables."
            )
        return value or ""

    @staticmethod
    def _validate_amount(amount: Any) -> Decimal:
        try:
            dec = Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            raise PaymentServiceError("amount must be a number")
        if not dec.is_finite() or dec <= 0:
            raise PaymentServiceError("amount must be greater than 0")
        return dec

    @staticmethod
    def _extract_field(data: Dict[str, Any], key: str) -> Optional[str]:
        value = data.get(key)
        nested = data.get("data")
        if value is None and isinstance(nested, dict):
            value = nested.get(key)
        return str(value) if value is not None else None

    @classmethod
    def _extract_transaction_id(cls, data: Dict[str, Any]) -> Optional[str]:
        return cls._extract_field(data, "id") or cls._extract_field(data, "transaction_id")

    @staticmethod
    def _call_gateway(func):
        try:
            return func()
        except PaymentServiceError:
            raise
        except Exception as exc:
            message = str(exc).strip()
            if not message:
                message = "Payment provider request failed"
            raise PaymentGatewayError(message) from exc
