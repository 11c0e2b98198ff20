from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError

User = get_user_model()


DEFAULT_COMMISSION_RATE = Decimal("0.12")
PARTNER_COMMISSION_RATE = Decimal("0.08")

MIN_RATE = Decimal("0")
MAX_RATE = Decimal("1")


def default_rate_for_role(role: Optional[str]) -> Decimal:
    if role == User.Role.PARTNER_ADMIN:
        return PARTNER_COMMISSION_RATE
    return DEFAULT_COMMISSION_RATE


def _coerce_rate(raw_value: Any) -> Optional[Decimal]:
    if raw_value is None or isinstance(raw_value, bool):
        return None
    try:
        rate = Decimal(str(raw_value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return None
    if rate.is_nan() or rate.is_infinite():
        return None
    if rate < MIN_RATE or rate > MAX_RATE:
        return None
    return rate


def normalize_commission_rate(raw_value: Any, role: Optional[str]) -> Decimal:
    """Return the override when it is a number in [0, 1], else the role default."""
    rate = _coerce_rate(raw_value)
    if rate is None:
        return default_rate_for_role(role)
    return rate


def resolve_commission_rate(seller: Union["User", str, None]) -> Decimal:
    """
    Commission rate applicable to a seller.

    Accepts a User instance or a user id. Unknown sellers get the
    default seller rate; invalid overrides silently fall back to the
    role default.
    """
    if seller is None:
        return DEFAULT_COMMISSION_RATE
    if not isinstance(seller, User):
        seller = User.objects.filter(pk=seller).only("role", "commission_rate").first()
        if seller is None:
            return DEFAULT_COMMISSION_RATE
    return normalize_commission_rate(seller.commission_rate, seller.role)


def set_commission_rate(seller: "User", rate: Any) -> Optional[Decimal]:
    if rate is None or rate == "":
        seller.commission_rate = None
    else:
        validated = _coerce_rate(rate)
        if validated is None:
            raise ValidationError("commission_rate must be a number between 0 and 1")
        seller.commission_rate = validated
    seller.save(update_fields=["commission_rate", "updated_at"])
    return seller.commission_rate
