from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PaymentReference:
    """
    Reference shared by every order of one mobile-money checkout
    (``PAY-{owner}-{ms}``) or by one wallet recharge (``TOPUP-{owner}-{ms}``).
    """

    PURCHASE = "PURCHASE"
    RECHARGE = "RECHARGE"

    PREFIXES = {PURCHASE: "PAY", RECHARGE: "TOPUP"}

    kind: str
    owner_id: str
    timestamp_ms: int

    def __str__(self) -> str:
        return f"{self.PREFIXES[self.kind]}-{self.owner_id}-{self.timestamp_ms}"

    @property
    def is_recharge(self) -> bool:
        return self.kind == self.RECHARGE

    @classmethod
    def _new(cls, kind: str, owner_id) -> "PaymentReference":
        return cls(kind=kind, owner_id=str(owner_id), timestamp_ms=int(time.time() * 1000))

    @classmethod
    def for_purchase(cls, owner_id) -> "PaymentReference":
        return cls._new(cls.PURCHASE, owner_id)

    @classmethod
    def for_recharge(cls, owner_id) -> "PaymentReference":
        return cls._new(cls.RECHARGE, owner_id)

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["PaymentReference"]:
        # Owner ids are UUIDs, so only the first and last hyphen delimit fields.
        if not raw:
            return None
        raw = str(raw).strip()
        first = raw.find("-")
        last = raw.rfind("-")
        if first <= 0 or last == first:
            return None
        prefix, owner_id, stamp = raw[:first], raw[first + 1:last], raw[last + 1:]
        kind = next((k for k, p in cls.PREFIXES.items() if p == prefix), None)
        if kind is None or not owner_id or not stamp.isdigit():
            return None
        return cls(kind=kind, owner_id=owner_id, timestamp_ms=int(stamp))
