from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from account.commission import DEFAULT_COMMISSION_RATE, resolve_commission_rate
from audit.models import AuditLog
from audit.services import AuditService
from payment.models import WalletTransaction
from payment.services.ledger import InsufficientFundsError, LedgerService
from payment.services.references import PaymentReference
from payment.services.service import PaymentService
from .exceptions import CheckoutError, PartialCheckoutError
from .models import Order, OrderItem

User = get_user_model()
logger = logging.getLogger(__name__)

UNKNOWN_SELLER = "UNKNOWN"


@dataclass(frozen=True)
class CartLine:
    product_id: str
    quantity: int
    price: Decimal
    seller_id: Optional[str] = None
    product_name: str = ""

    @property
    def total(self) -> Decimal:
        return self.price * self.quantity

    @classmethod
    def from_data(cls, data: Any) -> "CartLine":
        if isinstance(data, cls):
            return data
        try:
            quantity = int(data["quantity"])
            price = Decimal(str(data["price"]))
            product_id = str(data["product_id"])
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            raise CheckoutError(f"Invalid cart line: {data!r}") from exc
        if quantity <= 0:
            raise CheckoutError("Quantity must be greater than zero")
        if not price.is_finite() or price < 0:
            raise CheckoutError("Price must be a non-negative number")
        seller_id = data.get("seller_id")
        return cls(
            product_id=product_id,
            quantity=quantity,
            price=price,
            seller_id=str(seller_id) if seller_id else None,
            product_name=data.get("product_name") or "",
        )


@dataclass(frozen=True)
class CheckoutResult:
    success: bool
    orders: List[Order]
    payment_ref: Optional[str] = None
    message: str = ""
    transaction_id: Optional[str] = None
    payment_url: Optional[str] = None


def _money(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_commission(total: Decimal, rate: Decimal) -> Decimal:
    """Commission rounded half-up to whole currency units (XOF has no minor unit)."""
    return (total * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


class OrderSplitter:
    """Turns one cart into one order per seller."""

    @staticmethod
    def _normalize_lines(items: Iterable[Any]) -> List[CartLine]:
        lines = [CartLine.from_data(item) for item in items or []]
        if not lines:
            raise CheckoutError("Cart is empty")
        return lines

    @staticmethod
    def _resolve_sellers(lines: List[CartLine]) -> Dict[str, User]:
        candidate_ids = set()
        for line in lines:
            if not line.seller_id:
                continue
            try:
                candidate_ids.add(uuid.UUID(line.seller_id))
            except ValueError:
                logger.warning("Ignoring malformed seller_id=%s on product=%s", line.seller_id, line.product_id)
        return {str(user.id): user for user in User.objects.filter(id__in=candidate_ids)}

    @classmethod
    def group_by_seller(cls, lines: List[CartLine], sellers: Optional[Dict[str, User]] = None) -> "OrderedDict[str, List[CartLine]]":
        if sellers is None:
            sellers = cls._resolve_sellers(lines)
        groups: "OrderedDict[str, List[CartLine]]" = OrderedDict()
        for line in lines:
            key = UNKNOWN_SELLER
            if line.seller_id:
                try:
                    normalized = str(uuid.UUID(line.seller_id))
                except ValueError:
                    normalized = None
                if normalized in sellers:
                    key = normalized
            groups.setdefault(key, []).append(line)
        return groups

    @staticmethod
    def _existing_order(payment_ref: Optional[str], seller: Optional[User]) -> Optional[Order]:
        if not payment_ref:
            return None
        qs = Order.objects.filter(payment_ref=payment_ref)
        qs = qs.filter(seller=seller) if seller else qs.filter(seller__isnull=True)
        return qs.first()

    @staticmethod
    @transaction.atomic
    def _create_group(
        buyer,
        seller: Optional[User],
        lines: List[CartLine],
        payment_method: str,
        status: str,
        payment_ref: Optional[str],
        rate: Decimal,
    ) -> Order:
        total = _money(sum((line.total for line in lines), Decimal("0")))
        commission = compute_commission(total, rate)
        seller_amount = max(Decimal("0.00"), total - commission)
        commission = total - seller_amount
        paid = status == Order.Status.PAID

        order = Order.objects.create(
            buyer=buyer,
            seller=seller,
            status=status,
            payment_method=payment_method,
            payment_ref=payment_ref,
            total_amount=total,
            commission_amount=commission,
            seller_amount=seller_amount,
            payout_status=Order.PayoutStatus.ESCROW if paid else Order.PayoutStatus.PENDING,
            escrow_amount=seller_amount if paid else Decimal("0.00"),
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    seller=seller,
                    product_id=line.product_id,
                    product_name=line.product_name,
                    price=line.price,
                    quantity=line.quantity,
                    total=_money(line.total),
                )
                for line in lines
            ]
        )
        AuditService.record(
            actor=buyer,
            action=AuditLog.Action.ORDER_CREATE,
            entity="orders",
            entity_id=order.id,
            details={
                "totalAmount": total,
                "paymentMethod": payment_method,
                "items": len(lines),
                "paymentRef": payment_ref,
            },
        )
        return order

    @classmethod
    def split_and_create_orders(
        cls,
        buyer,
        payment_method: str,
        items: Iterable[Any],
        status: Optional[str] = None,
        payment_ref: Optional[str] = None,
        commission_rate: Optional[Decimal] = None,
    ) -> List[Order]:
        """
        Create one order per seller group.

        Each group commits on its own. When a group fails, the remaining
        groups are still attempted and PartialCheckoutError is raised with
        the orders that were created. Groups already present for
        ``payment_ref`` are returned instead of being created twice.
        """
        lines = cls._normalize_lines(items)
        if status is None:
            status = Order.Status.PAID if payment_method == Order.PaymentMethod.WALLET else Order.Status.PENDING
        unknown_rate = DEFAULT_COMMISSION_RATE if commission_rate is None else Decimal(str(commission_rate))

        sellers = cls._resolve_sellers(lines)
        groups = cls.group_by_seller(lines, sellers)

        orders: List[Order] = []
        failed: List[str] = []
        for key, group_lines in groups.items():
            seller = sellers.get(key)
            existing = cls._existing_order(payment_ref, seller)
            if existing:
                orders.append(existing)
                continue
            rate = resolve_commission_rate(seller) if seller else unknown_rate
            try:
                orders.append(
                    cls._create_group(buyer, seller, group_lines, payment_method, status, payment_ref, rate)
                )
            except IntegrityError:
                # Another request created this group for the same reference.
                existing = cls._existing_order(payment_ref, seller)
                if existing:
                    orders.append(existing)
                    continue
                logger.exception("Failed to create order for seller=%s ref=%s", key, payment_ref)
                failed.append(key)
            except Exception:
                logger.exception("Failed to create order for seller=%s ref=%s", key, payment_ref)
                failed.append(key)

        if failed:
            raise PartialCheckoutError(
                f"Could not create orders for {len(failed)} seller group(s)",
                created_orders=orders,
                failed_sellers=failed,
            )
        return orders


def split_and_create_orders(buyer, payment_method, items, status=None, payment_ref=None, commission_rate=None):
    return OrderSplitter.split_and_create_orders(
        buyer,
        payment_method,
        items,
        status=status,
        payment_ref=payment_ref,
        commission_rate=commission_rate,
    )


class CheckoutService:

    @staticmethod
    def cart_total(items: Iterable[Any]) -> Decimal:
        return _money(sum((CartLine.from_data(item).total for item in items), Decimal("0")))

    @staticmethod
    @transaction.atomic
    def checkout_with_wallet(buyer, items: Iterable[Any]) -> CheckoutResult:
        """Pay the whole cart from the buyer's wallet. All-or-nothing."""
        lines = OrderSplitter._normalize_lines(items)
        total = CheckoutService.cart_total(lines)
        payment_ref = str(PaymentReference.for_purchase(buyer.id))

        try:
            LedgerService.post(
                buyer,
                type=WalletTransaction.Type.PURCHASE,
                amount=-total,
                status=WalletTransaction.Status.COMPLETED,
                payment_ref=payment_ref,
                meta={"items": len(lines)},
                require_funds=True,
            )
        except InsufficientFundsError as exc:
            raise CheckoutError(str(exc)) from exc

        try:
            orders = OrderSplitter.split_and_create_orders(
                buyer,
                Order.PaymentMethod.WALLET,
                lines,
                status=Order.Status.PAID,
                payment_ref=payment_ref,
            )
        except PartialCheckoutError as exc:
            # Nothing is kept: the debit and the created groups roll back together.
            raise CheckoutError("Checkout failed, your wallet was not charged") from exc
        logger.info("Wallet checkout ref=%s buyer=%s total=%s orders=%d", payment_ref, buyer.id, total, len(orders))
        return CheckoutResult(success=True, orders=orders, payment_ref=payment_ref, message="Paiement effectué.")

    @staticmethod
    def checkout_with_mobile_money(
        buyer,
        items: Iterable[Any],
        provider: str = Order.PaymentMethod.WAVE,
        phone: str = "",
        payment_ref: Optional[str] = None,
        gateway=None,
    ) -> CheckoutResult:
        """
        Create PENDING orders under one payment reference and ask the
        gateway to collect the cart total. The orders stay PENDING until the
        payment is confirmed; when initiation fails they are kept and the
        reference is returned so initiation can be retried.
        """
        lines = OrderSplitter._normalize_lines(items)
        total = CheckoutService.cart_total(lines)
        payment_ref = payment_ref or str(PaymentReference.for_purchase(buyer.id))

        orders = OrderSplitter.split_and_create_orders(
            buyer,
            provider,
            lines,
            status=Order.Status.PENDING,
            payment_ref=payment_ref,
        )

        gateway = gateway or PaymentService()
        result = gateway.initiate(amount=total, phone=phone, order_ref=payment_ref)
        if not result.success:
            logger.warning("Payment initiation failed for ref=%s: %s", payment_ref, result.message)
        return CheckoutResult(
            success=result.success,
            orders=orders,
            payment_ref=payment_ref,
            message=result.message,
            transaction_id=result.transaction_id,
            payment_url=result.payment_url,
        )
