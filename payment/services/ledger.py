from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, Q, Sum

from payment.models import WalletTransaction

User = get_user_model()
logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for wallet ledger errors."""


class InsufficientFundsError(LedgerError):
    """Raised when a debit would take a wallet below zero."""


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _user_id(user) -> Any:
    return getattr(user, "pk", user)


class LedgerService:
    """
    Wallet balance movements.

    ``User.wallet_balance`` is a cached running total; ``WalletTransaction``
    rows are the history it can be rebuilt from. Every balance change goes
    through ``apply_balance_delta`` so the increment happens in the
    database on a locked row.
    """

    @staticmethod
    def record_transaction(
        user,
        type: str,
        amount: Decimal | float | int,
        status: str = WalletTransaction.Status.COMPLETED,
        reference_id: Optional[str] = None,
        payment_ref: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> WalletTransaction:
        return WalletTransaction.objects.create(
            user_id=_user_id(user),
            type=type,
            amount=_money(amount),
            status=status,
            reference_id=str(reference_id) if reference_id else None,
            payment_ref=payment_ref,
            meta=meta or {},
        )

    @staticmethod
    @transaction.atomic
    def apply_balance_delta(user, delta: Decimal | float | int, require_funds: bool = False) -> Decimal:
        """Add ``delta`` to the wallet and return the new balance."""
        delta = _money(delta)
        locked = User.objects.select_for_update().only("id", "wallet_balance").get(pk=_user_id(user))
        if require_funds and delta < 0 and locked.wallet_balance + delta < 0:
            raise InsufficientFundsError("Insufficient wallet balance")

        User.objects.filter(pk=locked.pk).update(wallet_balance=F("wallet_balance") + delta)
        new_balance = User.objects.filter(pk=locked.pk).values_list("wallet_balance", flat=True).get()
        if isinstance(user, User):
            user.wallet_balance = new_balance
        return new_balance

    @classmethod
    @transaction.atomic
    def post(
        cls,
        user,
        type: str,
        amount: Decimal | float | int,
        status: str = WalletTransaction.Status.COMPLETED,
        reference_id: Optional[str] = None,
        payment_ref: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
        require_funds: bool = False,
    ) -> WalletTransaction:
        """Move money and write its ledger row in the same transaction."""
        amount = _money(amount)
        cls.apply_balance_delta(user, amount, require_funds=require_funds)
        entry = cls.record_transaction(
            user,
            type=type,
            amount=amount,
            status=status,
            reference_id=reference_id,
            payment_ref=payment_ref,
            meta=meta,
        )
        logger.info("Posted %s %s for user=%s (%s)", type, amount, _user_id(user), status)
        return entry

    @classmethod
    @transaction.atomic
    def complete_pending_recharges(cls, payment_ref: str) -> int:
        """
        Credit every still-PENDING recharge row for ``payment_ref`` and mark
        it COMPLETED. Safe to call repeatedly for the same reference.
        """
        if not payment_ref:
            return 0
        pending = list(
            WalletTransaction.objects.select_for_update()
            .filter(
                payment_ref=payment_ref,
                type=WalletTransaction.Type.RECHARGE,
                status=WalletTransaction.Status.PENDING,
            )
            .order_by("created_at")
        )
        for entry in pending:
            cls.apply_balance_delta(entry.user_id, entry.amount)
            entry.status = WalletTransaction.Status.COMPLETED
            entry.save(update_fields=["status", "updated_at"])
            logger.info("Recharge %s completed for user=%s amount=%s", payment_ref, entry.user_id, entry.amount)
        return len(pending)

    @staticmethod
    @transaction.atomic
    def complete(entry: WalletTransaction) -> WalletTransaction:
        """Flip a PENDING row to COMPLETED without moving money."""
        locked = WalletTransaction.objects.select_for_update().get(pk=entry.pk)
        if locked.status != WalletTransaction.Status.COMPLETED:
            locked.status = WalletTransaction.Status.COMPLETED
            locked.save(update_fields=["status", "updated_at"])
        entry.status = locked.status
        return locked

    @staticmethod
    def reconstruct_balance(user) -> Decimal:
        """
        Balance implied by the history: completed movements plus pending
        debits, which are reservations already taken from the wallet.
        """
        total = (
            WalletTransaction.objects.filter(user_id=_user_id(user))
            .filter(
                Q(status=WalletTransaction.Status.COMPLETED)
                | Q(status=WalletTransaction.Status.PENDING, amount__lt=0)
            )
            .aggregate(total=Sum("amount"))["total"]
        )
        return _money(total or 0)
