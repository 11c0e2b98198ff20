import uuid
from django.conf import settings
from django.db import models


class AuditLog(models.Model):
    class Action(models.TextChoices):
        ORDER_CREATE = "ORDER_CREATE", "Order Create"
        ORDER_STATUS_UPDATE = "ORDER_STATUS_UPDATE", "Order Status Update"
        PAYOUT_REQUEST = "PAYOUT_REQUEST", "Payout Request"
        PAYOUT_APPROVE = "PAYOUT_APPROVE", "Payout Approve"
        PAYOUT_REJECT = "PAYOUT_REJECT", "Payout Reject"
        COMMISSION_RATE_UPDATE = "COMMISSION_RATE_UPDATE", "Commission Rate Update"
        WALLET_RECHARGE = "WALLET_RECHARGE", "Wallet Recharge"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    action = models.CharField(max_length=50, choices=Action.choices)
    entity = models.CharField(max_length=50)
    entity_id = models.CharField(max_length=100, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["action"], name="audit_audit_action_6d1f0e_idx"),
            models.Index(fields=["entity", "entity_id"], name="audit_audit_entity_3b2c9a_idx"),
            models.Index(fields=["created_at"], name="audit_audit_created_8f4e21_idx"),
        ]

    def __str__(self):
        return f"{self.action} {self.entity}:{self.entity_id}"
