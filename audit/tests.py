from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from account.models import User
from audit.models import AuditLog
from audit.services import AuditService


class AuditServiceTests(TestCase):
    def setUp(self):
        self.admin = User.objects.create_user(
            email="admin@example.com", password="Pass123!", role=User.Role.ADMIN
        )

    def test_record_serializes_decimals(self):
        log = AuditService.record(
            actor=self.admin,
            action=AuditLog.Action.PAYOUT_APPROVE,
            entity="payout_requests",
            entity_id="abc",
            details={"amount": Decimal("1500.00")},
        )

        log.refresh_from_db()
        self.assertEqual(log.details, {"amount": "1500.00"})
        self.assertEqual(log.actor, self.admin)

    def test_anonymous_actor_is_stored_as_null(self):
        log = AuditService.record(actor=None, action=AuditLog.Action.WALLET_RECHARGE, entity="wallet")

        self.assertIsNone(log.actor)

    @patch("audit.services.AuditLog.objects.create", side_effect=RuntimeError("db down"))
    def test_failures_are_swallowed(self, _create):
        with self.assertLogs("audit.services", level="ERROR"):
            result = AuditService.record(actor=self.admin, action=AuditLog.Action.ORDER_CREATE, entity="orders")

        self.assertIsNone(result)


class AuditLogListViewTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            email="admin@example.com", password="Pass123!", role=User.Role.ADMIN
        )
        self.seller = User.objects.create_user(
            email="seller@example.com", password="Pass123!", role=User.Role.STORE_ADMIN
        )
        AuditService.record(actor=self.seller, action=AuditLog.Action.PAYOUT_REQUEST, entity="payout_requests")
        AuditService.record(actor=self.admin, action=AuditLog.Action.PAYOUT_APPROVE, entity="payout_requests")

    def test_filters_by_action_and_role(self):
        self.client.force_authenticate(self.admin)

        response = self.client.get("/audit/logs/", {"action": "PAYOUT_REQUEST"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 1)

        response = self.client.get("/audit/logs/", {"actor_role": "ADMIN"})
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["action"], "PAYOUT_APPROVE")

    def test_non_admin_forbidden(self):
        self.client.force_authenticate(self.seller)

        response = self.client.get("/audit/logs/")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
