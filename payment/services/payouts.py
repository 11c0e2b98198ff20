from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.utils import timezone

from audit.models import AuditLog
from audit.services import AuditService
from payment.models import PayoutRequest, WalletTransaction
from .ledger import InsufficientFundsError, LedgerService

logger = logging.getLogger(__name__)


class PayoutError(Exception):
    """Base exception for payout workflow errors."""


class PayoutValidationError(PayoutError):
    """Raised when a payout request is invalid. The message is user-facing."""


class PayoutStateError(PayoutError):
    """Raised when a payout request is no longer PENDING."""


class PayoutService:
    """
    Seller withdrawals. The amount leaves the wallet when the request is
    made; approval only settles it, rejection gives it back.
    """

    @staticmethod
    def _validate_amount(amount) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            raise PayoutValidationError("Montant invalide.")
        if not value.is_finite() or value <= 0:
            raise PayoutValidationError("Montant invalide.")
        return value.quantize(Decimal("0.01"))

    @staticmethod
    @transaction.atomic
    def request_payout(seller, amount, method: str, phone: str = "") -> PayoutRequest:
        value = PayoutService._validate_amount(amount)
        try:
            entry = LedgerService.post(
                seller,
                type=WalletTransaction.Type.PAYOUT_REQUEST,
                amount=-value,
                status=WalletTransaction.Status.PENDING,
                meta={"method": method, "phone": phone},
                require_funds=True,
            )
        except InsufficientFundsError:
            raise PayoutValidationError("Solde insuffisant pour ce retrait.")

        payout = PayoutRequest.objects.create(
            seller=seller,
            amount=value,
            method=method,
            phone=phone or "",
            status=PayoutRequest.Status.PENDING,
            ledger_entry=entry,
        )
        entry.reference_id = str(payout.id)
        entry.save(update_fields=["reference_id", "updated_at"])

        AuditService.record(
            actor=seller,
            action=AuditLog.Action.PAYOUT_REQUEST,
            entity="payout_requests",
            entity_id=payout.id,
            details={"amount": value, "method": method},
        )
        logger.info("Payout requested id=%s seller=%s amount=%s", payout.id, seller.pk, value)
        return payout

    @staticmethod
    def _lock_pending(payout: PayoutRequest) -> PayoutRequest:
        locked = PayoutRequest.objects.select_for_update().get(pk=payout.pk)
        if locked.status != PayoutRequest.Status.PENDING:
            raise PayoutStateError(f"Payout request is already {locked.status}")
        return locked

    @staticmethod
    def _finish(locked: PayoutRequest, payout: PayoutRequest, status: str, actor, note: str = "") -> None:
        locked.status = status
        locked.processed_by = actor if getattr(actor, "pk", None) else None
        locked.processed_at = timezone.now()
        if note:
            locked.note = note
        locked.save(update_fields=["status", "processed_by", "processed_at", "note", "updated_at"])
        for field in ("status", "processed_by", "processed_at", "note", "updated_at"):
            setattr(payout, field, getattr(locked, field))

    @staticmethod
    @transaction.atomic
    def approve(payout: PayoutRequest, actor=None) -> PayoutRequest:
        locked = PayoutService._lock_pending(payout)
        if locked.ledger_entry_id:
            LedgerService.complete(locked.ledger_entry)
        PayoutService._finish(locked, payout, PayoutRequest.Status.COMPLETED, actor)

        AuditService.record(
            actor=actor,
            action=AuditLog.Action.PAYOUT_APPROVE,
            entity="payout_requests",
            entity_id=locked.id,
            details={"amount": locked.amount, "seller": locked.seller_id},
        )
        logger.info("Payout approved id=%s", locked.id)
        return payout

    @staticmethod
    @transaction.atomic
    def reject(payout: PayoutRequest, actor=None, note: str = "") -> PayoutRequest:
        locked = PayoutService._lock_pending(payout)
        LedgerService.post(
            locked.seller_id,
            type=WalletTransaction.Type.PAYOUT_REFUND,
            amount=locked.amount,
            status=WalletTransaction.Status.COMPLETED,
            reference_id=str(locked.id),
            meta={"reason": note or "PAYOUT_REJECTED"},
        )
        # The reservation stays in history; completing it lets the refund net it out.
        if locked.ledger_entry_id:
            LedgerService.complete(locked.ledger_entry)
        PayoutService._finish(locked, payout, PayoutRequest.Status.REJECTED, actor, note)

        AuditService.record(
            actor=actor,
            action=AuditLog.Action.PAYOUT_REJECT,
            entity="payout_requests",
            entity_id=locked.id,
            details={"amount": locked.amount, "seller": locked.seller_id, "note": note},
        )
        logger.info("Payout rejected id=%s", locked.id)
        return payout
