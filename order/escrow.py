from __future__ import annotations

import logging
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum

from audit.models import AuditLog
from audit.services import AuditService
from payment.models import WalletTransaction
from payment.services.ledger import LedgerService
from .exceptions import EscrowReleaseError, InvalidTransitionError
from .models import Order

logger = logging.getLogger(__name__)


class EscrowService:
    """
    Order status and seller escrow.

    ``status`` moves PENDING -> PAID -> DELIVERED. ``payout_status`` moves
    PENDING -> ESCROW -> PAID and never goes back; only escrowed funds are
    released. Status changes reach ``secure_escrow`` and ``release_payout``
    through ``order.signals``.
    """

    ALLOWED_TRANSITIONS = {
        Order.Status.PENDING: {Order.Status.PAID},
        Order.Status.PAID: {Order.Status.DELIVERED},
        Order.Status.DELIVERED: set(),
    }

    @classmethod
    def can_transition(cls, current: str, target: str) -> bool:
        return target in cls.ALLOWED_TRANSITIONS.get(current, set())

    @staticmethod
    def _sync(order: Order, locked: Order) -> None:
        for field in ("status", "payout_status", "escrow_amount", "updated_at"):
            setattr(order, field, getattr(locked, field))

    @staticmethod
    @transaction.atomic
    def secure_escrow(order: Order) -> bool:
        """Hold the seller's share once payment is confirmed."""
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.payout_status != Order.PayoutStatus.PENDING:
            return False
        locked.payout_status = Order.PayoutStatus.ESCROW
        locked.escrow_amount = locked.seller_amount
        locked.save(update_fields=["payout_status", "escrow_amount", "updated_at"])
        EscrowService._sync(order, locked)
        logger.info("Escrow secured for order=%s amount=%s", locked.id, locked.escrow_amount)
        return True

    @staticmethod
    @transaction.atomic
    def mark_paid(order: Order) -> bool:
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.status != Order.Status.PENDING:
            return False
        locked.status = Order.Status.PAID
        locked.save(update_fields=["status", "updated_at"])
        locked.refresh_from_db()
        EscrowService._sync(order, locked)
        return True

    @staticmethod
    def release_payout(order: Order) -> bool:
        """
        Credit the seller for a delivered order. Returns False when the
        payout was already released. Raises EscrowReleaseError or
        LedgerError without touching ``payout_status`` so it can be retried.
        """
        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            if locked.payout_status == Order.PayoutStatus.PAID:
                return False
            if locked.payout_status != Order.PayoutStatus.ESCROW:
                raise EscrowReleaseError(f"Order {locked.id} has no escrowed funds to release")
            if not locked.seller_id:
                raise EscrowReleaseError(f"Order {locked.id} has no seller to pay out")

            amount = locked.seller_amount or Decimal("0.00")
            if amount > 0:
                LedgerService.post(
                    locked.seller_id,
                    type=WalletTransaction.Type.PAYOUT,
                    amount=amount,
                    status=WalletTransaction.Status.COMPLETED,
                    reference_id=str(locked.id),
                    meta={"reason": "ORDER_DELIVERED"},
                )
            locked.payout_status = Order.PayoutStatus.PAID
            locked.escrow_amount = Decimal("0.00")
            locked.save(update_fields=["payout_status", "escrow_amount", "updated_at"])
        EscrowService._sync(order, locked)
        logger.info("Payout released for order=%s seller=%s amount=%s", locked.id, locked.seller_id, amount)
        return True

    @classmethod
    @transaction.atomic
    def update_status(cls, order: Order, new_status: str, actor=None) -> Order:
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.status == new_status:
            return locked
        if not cls.can_transition(locked.status, new_status):
            raise InvalidTransitionError(f"Cannot change order status from {locked.status} to {new_status}")

        previous = locked.status
        locked.status = new_status
        locked.save(update_fields=["status", "updated_at"])
        locked.refresh_from_db()
        cls._sync(order, locked)

        AuditService.record(
            actor=actor,
            action=AuditLog.Action.ORDER_STATUS_UPDATE,
            entity="orders",
            entity_id=locked.id,
            details={"from": previous, "to": new_status, "payout_status": locked.payout_status},
        )
        return locked

    @staticmethod
    def seller_escrow_total(seller) -> Decimal:
        total = (
            Order.objects.filter(seller=seller, payout_status=Order.PayoutStatus.ESCROW)
            .aggregate(total=Sum("escrow_amount"))["total"]
        )
        return total or Decimal("0.00")
