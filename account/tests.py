from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from account.commission import (
    DEFAULT_COMMISSION_RATE,
    PARTNER_COMMISSION_RATE,
    normalize_commission_rate,
    resolve_commission_rate,
    set_commission_rate,
)
from account.models import User
from audit.models import AuditLog


class UserModelTests(TestCase):
    def test_create_user_hashes_password(self):
        user = User.objects.create_user(email="user@example.com", password="Pass123!")

        self.assertNotEqual(user.password, "Pass123!")
        self.assertTrue(user.check_password("Pass123!"))
        self.assertEqual(user.role, User.Role.BUYER)
        self.assertEqual(user.wallet_balance, Decimal("0.00"))

    def test_create_user_requires_email(self):
        with self.assertRaisesMessage(ValueError, "Users must have an email"):
            User.objects.create_user(email="", password="Pass123!")

    def test_superuser_defaults_to_super_admin(self):
        admin = User.objects.create_superuser(email="root@example.com", password="Pass123!")

        self.assertEqual(admin.role, User.Role.SUPER_ADMIN)
        self.assertTrue(admin.is_platform_admin)
        self.assertFalse(admin.is_seller)

    def test_seller_roles(self):
        store = User(email="s@example.com", role=User.Role.STORE_ADMIN)
        partner = User(email="p@example.com", role=User.Role.PARTNER_ADMIN)
        buyer = User(email="b@example.com", role=User.Role.BUYER)

        self.assertTrue(store.is_seller)
        self.assertTrue(partner.is_seller)
        self.assertFalse(buyer.is_seller)


class CommissionRateTests(TestCase):
    def setUp(self):
        self.store = User.objects.create_user(
            email="store@example.com", password="Pass123!", role=User.Role.STORE_ADMIN
        )
        self.partner = User.objects.create_user(
            email="partner@example.com", password="Pass123!", role=User.Role.PARTNER_ADMIN
        )

    def test_role_defaults(self):
        self.assertEqual(resolve_commission_rate(self.store), DEFAULT_COMMISSION_RATE)
        self.assertEqual(resolve_commission_rate(self.partner), PARTNER_COMMISSION_RATE)

    def test_override_is_used(self):
        self.store.commission_rate = Decimal("0.1000")
        self.store.save()

        self.assertEqual(resolve_commission_rate(self.store.id), Decimal("0.1000"))

    def test_invalid_overrides_fall_back_to_role_default(self):
        for raw in ("1.5", "-0.2", "NaN", "abc", float("nan"), True):
            with self.subTest(raw=raw):
                self.assertEqual(
                    normalize_commission_rate(raw, User.Role.STORE_ADMIN), DEFAULT_COMMISSION_RATE
                )
                self.assertEqual(
                    normalize_commission_rate(raw, User.Role.PARTNER_ADMIN), PARTNER_COMMISSION_RATE
                )

    def test_bounds_are_inclusive(self):
        self.assertEqual(normalize_commission_rate("0", User.Role.STORE_ADMIN), Decimal("0"))
        self.assertEqual(normalize_commission_rate("1", User.Role.STORE_ADMIN), Decimal("1"))

    def test_unknown_seller_gets_default(self):
        self.assertEqual(resolve_commission_rate("00000000-0000-0000-0000-000000000000"), DEFAULT_COMMISSION_RATE)
        self.assertEqual(resolve_commission_rate(None), DEFAULT_COMMISSION_RATE)

    def test_set_commission_rate_rejects_out_of_range(self):
        with self.assertRaises(ValidationError):
            set_commission_rate(self.store, "1.5")

        self.store.refresh_from_db()
        self.assertIsNone(self.store.commission_rate)

    def test_set_commission_rate_clears_override(self):
        set_commission_rate(self.partner, "0.05")
        set_commission_rate(self.partner, None)

        self.partner.refresh_from_db()
        self.assertIsNone(self.partner.commission_rate)
        self.assertEqual(resolve_commission_rate(self.partner), PARTNER_COMMISSION_RATE)


class AccountApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(
            email="admin@example.com", password="Pass123!", role=User.Role.ADMIN
        )
        self.seller = User.objects.create_user(
            email="seller@example.com", password="Pass123!", role=User.Role.STORE_ADMIN
        )

    def test_register_cannot_self_assign_admin_role(self):
        response = self.client.post(
            "/auth/register/",
            {"email": "new@example.com", "password": "Pass123!", "role": "ADMIN"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("role", response.data)

    def test_register_and_login(self):
        response = self.client.post(
            "/auth/register/",
            {"email": "buyer@example.com", "password": "Pass123!", "full_name": "Awa"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertNotIn("password", response.data)

        response = self.client.post(
            "/auth/login/", {"email": "buyer@example.com", "password": "Pass123!"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data)

    def test_me_reports_effective_rate_for_seller(self):
        self.client.force_authenticate(self.seller)

        response = self.client.get("/auth/me/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data["effective_commission_rate"]), DEFAULT_COMMISSION_RATE)

    def test_admin_updates_commission_rate_and_is_audited(self):
        self.client.force_authenticate(self.admin)

        response = self.client.patch(
            f"/auth/sellers/{self.seller.id}/commission/", {"commission_rate": "0.1000"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.seller.refresh_from_db()
        self.assertEqual(self.seller.commission_rate, Decimal("0.1000"))
        log = AuditLog.objects.get(action=AuditLog.Action.COMMISSION_RATE_UPDATE)
        self.assertEqual(log.entity_id, str(self.seller.id))
        self.assertEqual(log.actor, self.admin)

    def test_commission_rate_out_of_range_rejected(self):
        self.client.force_authenticate(self.admin)

        response = self.client.patch(
            f"/auth/sellers/{self.seller.id}/commission/", {"commission_rate": "1.5"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_seller_cannot_update_commission_rate(self):
        self.client.force_authenticate(self.seller)

        response = self.client.patch(
            f"/auth/sellers/{self.seller.id}/commission/", {"commission_rate": "0"}, format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
