from typing import Iterable, List


class OrderServiceError(Exception):
    """Base exception for order service errors."""


class CheckoutError(OrderServiceError):
    """Raised when a checkout cannot be completed."""


class PartialCheckoutError(CheckoutError):
    """
    Raised when some seller groups of a split were created and others
    failed. ``created_orders`` holds what was committed; retrying with the
    same payment reference only creates the missing groups.
    """

    def __init__(self, message: str, created_orders: Iterable = (), failed_sellers: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.created_orders: List = list(created_orders)
        self.failed_sellers: List[str] = list(failed_sellers)


class InvalidTransitionError(OrderServiceError):
    """Raised when an order status change is not allowed."""


class EscrowReleaseError(OrderServiceError):
    """Raised when a delivered order's payout cannot be credited."""
