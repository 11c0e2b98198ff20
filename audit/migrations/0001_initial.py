import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("ORDER_CREATE", "Order Create"),
                            ("ORDER_STATUS_UPDATE", "Order Status Update"),
                            ("PAYOUT_REQUEST", "Payout Request"),
                            ("PAYOUT_APPROVE", "Payout Approve"),
                            ("PAYOUT_REJECT", "Payout Reject"),
                            ("COMMISSION_RATE_UPDATE", "Commission Rate Update"),
                            ("WALLET_RECHARGE", "Wallet Recharge"),
                        ],
                        max_length=50,
                    ),
                ),
                ("entity", models.CharField(max_length=50)),
                ("entity_id", models.CharField(blank=True, max_length=100)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["action"], name="audit_audit_action_6d1f0e_idx"),
                    models.Index(fields=["entity", "entity_id"], name="audit_audit_entity_3b2c9a_idx"),
                    models.Index(fields=["created_at"], name="audit_audit_created_8f4e21_idx"),
                ],
            },
        ),
    ]
