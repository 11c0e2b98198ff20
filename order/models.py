import uuid
from decimal import Decimal
from django.db import models
from django.contrib.auth import get_user_model
User = get_user_model()


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"
        DELIVERED = "DELIVERED", "Delivered"

    class PayoutStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ESCROW = "ESCROW", "In escrow"
        PAID = "PAID", "Paid out"

    class PaymentMethod(models.TextChoices):
        WALLET = "WALLET", "Wallet"
        WAVE = "WAVE", "Wave"
        ORANGE_MONEY = "ORANGE_MONEY", "Orange Money"
        MTN_MONEY = "MTN_MONEY", "MTN Money"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    buyer = models.ForeignKey(User, on_delete=models.CASCADE, related_name="orders")
    # Null when the cart line carried no resolvable seller.
    seller = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sales",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_method = models.CharField(max_length=30, choices=PaymentMethod.choices)
    payment_ref = models.CharField(max_length=150, blank=True, null=True, db_index=True)

    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    seller_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    payout_status = models.CharField(
        max_length=20,
        choices=PayoutStatus.choices,
        default=PayoutStatus.PENDING,
    )
    escrow_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["payment_ref", "seller"],
                name="unique_order_per_payment_ref_and_seller",
            ),
        ]
        indexes = [
            models.Index(fields=["status"], name="order_order_status_2b7c41_idx"),
            models.Index(fields=["payout_status"], name="order_order_payout__9e0d53_idx"),
        ]

    def __str__(self):
        return f"{self.id} - {self.status}/{self.payout_status}"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    seller = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sold_items",
    )

    # Snapshot fields
    product_id = models.CharField(max_length=100)
    product_name = models.CharField(max_length=255, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField()
    total = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.product_name or self.product_id} x{self.quantity}"
