import uuid
from django.db import models
from django.conf import settings


class WalletTransaction(models.Model):
    """
    One row per wallet movement. Amounts are signed: credits positive,
    debits negative. Rows are never edited except for the PENDING ->
    COMPLETED status flip.
    """

    class Type(models.TextChoices):
        RECHARGE = "RECHARGE", "Recharge"
        PURCHASE = "PURCHASE", "Purchase"
        PAYOUT = "PAYOUT", "Payout"
        PAYOUT_REQUEST = "PAYOUT_REQUEST", "Payout Request"
        PAYOUT_REFUND = "PAYOUT_REFUND", "Payout Refund"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wallet_transactions"
    )

    type = models.CharField(max_length=20, choices=Type.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING
    )

    reference_id = models.CharField(max_length=150, blank=True, null=True)
    payment_ref = models.CharField(max_length=150, blank=True, null=True)

    meta = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["payment_ref"], name="payment_wal_payment_4c1a7e_idx"),
            models.Index(fields=["user", "status"], name="payment_wal_user_id_8b3f20_idx"),
        ]

    def __str__(self):
        return f"{self.type} {self.amount} ({self.status})"


class PayoutRequest(models.Model):

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        REJECTED = "REJECTED", "Rejected"

    class Method(models.TextChoices):
        WAVE = "WAVE", "Wave"
        ORANGE_MONEY = "ORANGE_MONEY", "Orange Money"
        MTN_MONEY = "MTN_MONEY", "MTN Money"
        BANK = "BANK", "Bank transfer"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="payout_requests")

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=30, choices=Method.choices)
    phone = models.CharField(max_length=30, blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)

    ledger_entry = models.OneToOneField(
        WalletTransaction,
        on_delete=models.SET_NULL,
        related_name="payout_request",
        null=True,
        blank=True,
    )
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="processed_payout_requests",
        null=True,
        blank=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)
    note = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="payment_pay_status_5e2d91_idx"),
        ]

    def __str__(self):
        return f"Payout {self.id} - {self.status}"


class WebhookLog(models.Model):

    provider = models.CharField(max_length=50)
    event_type = models.CharField(max_length=100)

    reference = models.CharField(max_length=150)
    payload = models.JSONField()

    processed = models.BooleanField(default=False)
    processing_attempts = models.IntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["reference"], name="payment_web_referen_7a6c02_idx"),
            models.Index(fields=["processed"], name="payment_web_process_1f9b84_idx"),
        ]
