import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from account.models import User
from audit.models import AuditLog
from order.models import Order
from order.services import split_and_create_orders
from payment.models import PayoutRequest, WalletTransaction, WebhookLog
from payment.services.ledger import InsufficientFundsError, LedgerService
from payment.services.payouts import PayoutService, PayoutStateError, PayoutValidationError
from payment.services.references import PaymentReference
from payment.services.service import GatewayResult, PaymentService


WEBHOOK_SECRET = "s3cret"


def _sign(body):
    return hmac.new(WEBHOOK_SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _ok_response(data):
    response = MagicMock()
    response.ok = True
    response.status_code = 200
    response.json.return_value = data
    return response


class PaymentReferenceTests(TestCase):
    def test_renders_wire_format(self):
        ref = PaymentReference(kind=PaymentReference.PURCHASE, owner_id="abc", timestamp_ms=1700000000000)
        self.assertEqual(str(ref), "PAY-abc-1700000000000")
        topup = PaymentReference(kind=PaymentReference.RECHARGE, owner_id="abc", timestamp_ms=5)
        self.assertEqual(str(topup), "TOPUP-abc-5")

    def test_parse_keeps_hyphenated_owner_id(self):
        owner = "7d4f1e2a-9b3c-4d5e-8f60-718293a4b5c6"
        parsed = PaymentReference.parse(f"TOPUP-{owner}-1700000000000")

        self.assertEqual(parsed.kind, PaymentReference.RECHARGE)
        self.assertEqual(parsed.owner_id, owner)
        self.assertEqual(parsed.timestamp_ms, 1700000000000)
        self.assertTrue(parsed.is_recharge)

    def test_parse_rejects_foreign_strings(self):
        for raw in (None, "", "7d4f1e2a-9b3c-4d5e-8f60-718293a4b5c6", "REF-abc-1", "PAY-abc", "PAY-abc-xyz"):
            with self.subTest(raw=raw):
                self.assertIsNone(PaymentReference.parse(raw))

    def test_generated_reference_round_trips(self):
        ref = PaymentReference.for_purchase("7d4f1e2a-9b3c-4d5e-8f60-718293a4b5c6")
        self.assertEqual(PaymentReference.parse(str(ref)), ref)


class LedgerServiceTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(email="wallet@example.com", password="pass1234")

    def test_post_pairs_balance_change_with_row(self):
        entry = LedgerService.post(self.user, WalletTransaction.Type.RECHARGE, Decimal("5000"))

        self.user.refresh_from_db()
        self.assertEqual(self.user.wallet_balance, Decimal("5000.00"))
        self.assertEqual(entry.amount, Decimal("5000.00"))
        self.assertEqual(entry.status, WalletTransaction.Status.COMPLETED)

    def test_require_funds_rejects_overdraft(self):
        LedgerService.post(self.user, WalletTransaction.Type.RECHARGE, Decimal("100"))

        with self.assertRaises(InsufficientFundsError):
            LedgerService.post(self.user, WalletTransaction.Type.PURCHASE, Decimal("-150"), require_funds=True)

        self.user.refresh_from_db()
        self.assertEqual(self.user.wallet_balance, Decimal("100.00"))
        self.assertEqual(WalletTransaction.objects.filter(user=self.user).count(), 1)

    def test_complete_pending_recharges_is_idempotent(self):
        ref = str(PaymentReference.for_recharge(self.user.id))
        LedgerService.record_transaction(
            self.user, WalletTransaction.Type.RECHARGE, Decimal("2500"), WalletTransaction.Status.PENDING, payment_ref=ref
        )

        self.assertEqual(LedgerService.complete_pending_recharges(ref), 1)
        self.assertEqual(LedgerService.complete_pending_recharges(ref), 0)

        self.user.refresh_from_db()
        self.assertEqual(self.user.wallet_balance, Decimal("2500.00"))
        self.assertEqual(
            WalletTransaction.objects.get(payment_ref=ref).status, WalletTransaction.Status.COMPLETED
        )

    def test_reconstruct_balance_matches_cached_balance(self):
        LedgerService.post(self.user, WalletTransaction.Type.RECHARGE, Decimal("10000"))
        LedgerService.post(self.user, WalletTransaction.Type.PURCHASE, Decimal("-3000"))
        LedgerService.record_transaction(
            self.user, WalletTransaction.Type.RECHARGE, Decimal("999"), WalletTransaction.Status.PENDING
        )
        LedgerService.post(
            self.user, WalletTransaction.Type.PAYOUT_REQUEST, Decimal("-2000"), WalletTransaction.Status.PENDING
        )

        self.user.refresh_from_db()
        self.assertEqual(self.user.wallet_balance, Decimal("5000.00"))
        self.assertEqual(LedgerService.reconstruct_balance(self.user), Decimal("5000.00"))


class PayoutServiceTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user(
            email="seller@example.com", password="pass1234", role=User.Role.STORE_ADMIN
        )
        self.admin = User.objects.create_user(
            email="admin@example.com", password="pass1234", role=User.Role.ADMIN
        )
        LedgerService.post(self.seller, WalletTransaction.Type.PAYOUT, Decimal("10000"))

    def test_request_reserves_funds(self):
        payout = PayoutService.request_payout(self.seller, Decimal("4000"), PayoutRequest.Method.WAVE, "0700000000")

        self.seller.refresh_from_db()
        self.assertEqual(self.seller.wallet_balance, Decimal("6000.00"))
        self.assertEqual(payout.status, PayoutRequest.Status.PENDING)
        self.assertEqual(payout.ledger_entry.type, WalletTransaction.Type.PAYOUT_REQUEST)
        self.assertEqual(payout.ledger_entry.amount, Decimal("-4000.00"))
        self.assertEqual(payout.ledger_entry.status, WalletTransaction.Status.PENDING)
        self.assertEqual(payout.ledger_entry.reference_id, str(payout.id))
        self.assertEqual(LedgerService.reconstruct_balance(self.seller), Decimal("6000.00"))
        self.assertTrue(AuditLog.objects.filter(action=AuditLog.Action.PAYOUT_REQUEST).exists())

    def test_request_validation(self):
        for amount in (Decimal("0"), Decimal("-5"), Decimal("10000.01"), "abc"):
            with self.subTest(amount=amount):
                with self.assertRaises(PayoutValidationError):
                    PayoutService.request_payout(self.seller, amount, PayoutRequest.Method.WAVE)

        self.seller.refresh_from_db()
        self.assertEqual(self.seller.wallet_balance, Decimal("10000.00"))
        self.assertFalse(PayoutRequest.objects.exists())

    def test_request_full_balance_allowed(self):
        PayoutService.request_payout(self.seller, Decimal("10000"), PayoutRequest.Method.WAVE)

        self.seller.refresh_from_db()
        self.assertEqual(self.seller.wallet_balance, Decimal("0.00"))

    def test_approve_settles_without_moving_money(self):
        payout = PayoutService.request_payout(self.seller, Decimal("4000"), PayoutRequest.Method.WAVE)

        PayoutService.approve(payout, actor=self.admin)

        payout.refresh_from_db()
        self.seller.refresh_from_db()
        self.assertEqual(payout.status, PayoutRequest.Status.COMPLETED)
        self.assertEqual(payout.processed_by, self.admin)
        self.assertIsNotNone(payout.processed_at)
        self.assertEqual(payout.ledger_entry.status, WalletTransaction.Status.COMPLETED)
        self.assertEqual(self.seller.wallet_balance, Decimal("6000.00"))
        self.assertEqual(LedgerService.reconstruct_balance(self.seller), Decimal("6000.00"))

    def test_reject_restores_balance(self):
        payout = PayoutService.request_payout(self.seller, Decimal("4000"), PayoutRequest.Method.WAVE)

        PayoutService.reject(payout, actor=self.admin, note="wrong number")

        payout.refresh_from_db()
        self.seller.refresh_from_db()
        self.assertEqual(payout.status, PayoutRequest.Status.REJECTED)
        self.assertEqual(payout.note, "wrong number")
        self.assertEqual(self.seller.wallet_balance, Decimal("10000.00"))
        refund = WalletTransaction.objects.get(type=WalletTransaction.Type.PAYOUT_REFUND)
        self.assertEqual(refund.amount, Decimal("4000.00"))
        self.assertEqual(refund.status, WalletTransaction.Status.COMPLETED)
        self.assertEqual(LedgerService.reconstruct_balance(self.seller), Decimal("10000.00"))

    def test_processed_request_cannot_change_again(self):
        payout = PayoutService.request_payout(self.seller, Decimal("4000"), PayoutRequest.Method.WAVE)
        PayoutService.reject(payout, actor=self.admin)

        with self.assertRaises(PayoutStateError):
            PayoutService.reject(payout, actor=self.admin)
        with self.assertRaises(PayoutStateError):
            PayoutService.approve(payout, actor=self.admin)

        self.seller.refresh_from_db()
        self.assertEqual(self.seller.wallet_balance, Decimal("10000.00"))


@override_settings(GENIUSPAY_API_KEY="test-key", GENIUSPAY_RETURN_URL="https://shop.example/return")
class PaymentServiceTests(TestCase):
    def setUp(self):
        self.buyer = User.objects.create_user(email="buyer@example.com", password="pass1234")
        self.seller = User.objects.create_user(
            email="seller@example.com", password="pass1234", role=User.Role.STORE_ADMIN
        )

    def test_normalize_phone(self):
        service = PaymentService()
        for raw in ("0700000000", "+225 07 00 00 00 00", "002250700000000", "2250700000000"):
            with self.subTest(raw=raw):
                self.assertEqual(service.normalize_phone(raw), "0700000000")

    @patch("payment.services.geniuspay_sdk.requests.post")
    def test_initiate_posts_payin(self, mock_post):
        mock_post.return_value = _ok_response({"id": "tx-1", "payment_url": "https://pay/tx-1"})

        result = PaymentService().initiate(Decimal("15000"), "+225 07 00 00 00 00", "PAY-abc-1")

        self.assertTrue(result.success)
        self.assertEqual(result.transaction_id, "tx-1")
        self.assertEqual(result.payment_url, "https://pay/tx-1")
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], "https://api.geniuspay.com/v1/payin")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer test-key")
        self.assertEqual(kwargs["json"]["phone_number"], "2250700000000")
        self.assertEqual(kwargs["json"]["currency"], "XOF")
        self.assertEqual(kwargs["json"]["payment_method"], "wave")
        self.assertEqual(kwargs["json"]["reference"], "PAY-abc-1")
        self.assertEqual(kwargs["json"]["return_url"], "https://shop.example/return")

    @patch("payment.services.geniuspay_sdk.requests.post")
    def test_initiate_validation_skips_upstream(self, mock_post):
        self.assertFalse(PaymentService().initiate(Decimal("0"), "0700000000", "PAY-abc-1").success)
        self.assertFalse(PaymentService().initiate(Decimal("100"), "12ab", "PAY-abc-1").success)
        mock_post.assert_not_called()

    @patch("payment.services.geniuspay_sdk.requests.post", side_effect=ConnectionError("timeout"))
    def test_initiate_upstream_failure_is_a_result(self, _post):
        result = PaymentService().initiate(Decimal("100"), "0700000000", "PAY-abc-1")

        self.assertFalse(result.success)
        self.assertEqual(result.message, "timeout")

    @override_settings(GENIUSPAY_API_KEY="")
    @patch.dict("os.environ", {"GENIUSPAY_API_KEY": ""})
    def test_missing_api_key(self):
        result = PaymentService().initiate(Decimal("100"), "0700000000", "PAY-abc-1")

        self.assertFalse(result.success)
        self.assertIn("GENIUSPAY_API_KEY", result.message)

    def test_verify_pending_changes_nothing(self):
        order = split_and_create_orders(
            self.buyer,
            Order.PaymentMethod.WAVE,
            [{"product_id": "p", "quantity": 1, "price": "1000", "seller_id": str(self.seller.id)}],
            payment_ref="PAY-abc-1",
        )[0]
        sdk = MagicMock()
        sdk.get_payin.return_value = {"id": "tx-1", "status": "pending"}

        result = PaymentService(sdk=sdk).verify("tx-1", order_ref="PAY-abc-1")

        self.assertFalse(result.success)
        self.assertEqual(result.status, "pending")
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PENDING)

    def test_verify_rejects_transaction_of_another_reference(self):
        cheap_ref = f"TOPUP-{self.buyer.id}-1"
        target_ref = f"TOPUP-{self.buyer.id}-2"
        LedgerService.record_transaction(
            self.buyer,
            WalletTransaction.Type.RECHARGE,
            Decimal("1000000"),
            WalletTransaction.Status.PENDING,
            payment_ref=target_ref,
        )
        sdk = MagicMock()
        sdk.get_payin.return_value = {"id": "tx-1", "status": "paid", "reference": cheap_ref, "amount": 100}

        result = PaymentService(sdk=sdk).verify("tx-1", order_ref=target_ref)

        self.assertFalse(result.success)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("0.00"))
        self.assertEqual(
            WalletTransaction.objects.get(payment_ref=target_ref).status, WalletTransaction.Status.PENDING
        )

    def test_verify_confirms_matching_reference(self):
        ref = f"TOPUP-{self.buyer.id}-1"
        LedgerService.record_transaction(
            self.buyer, WalletTransaction.Type.RECHARGE, Decimal("100"), WalletTransaction.Status.PENDING, payment_ref=ref
        )
        sdk = MagicMock()
        sdk.get_payin.return_value = {"data": {"id": "tx-1", "status": "paid", "reference": ref}}

        result = PaymentService(sdk=sdk).verify("tx-1", order_ref=ref)

        self.assertTrue(result.success)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("100.00"))

    def test_callback_confirms_legacy_order_id(self):
        order = split_and_create_orders(
            self.buyer,
            Order.PaymentMethod.WAVE,
            [{"product_id": "p", "quantity": 1, "price": "1000", "seller_id": str(self.seller.id)}],
        )[0]

        result = PaymentService().callback({"reference": str(order.id), "status": "COMPLETED"})

        self.assertTrue(result.success)
        order.refresh_from_db()
        self.assertEqual(order.payout_status, Order.PayoutStatus.ESCROW)
        self.assertEqual(order.escrow_amount, Decimal("880.00"))

    @patch("payment.services.geniuspay_sdk.requests.post")
    def test_recharge_flow(self, mock_post):
        mock_post.return_value = _ok_response({"transaction_id": "tx-r", "payment_url": "https://pay/tx-r"})
        service = PaymentService()

        result = service.initiate_recharge(self.buyer, Decimal("5000"), "0700000000")

        self.assertTrue(result.success)
        self.assertTrue(result.reference.startswith(f"TOPUP-{self.buyer.id}-"))
        entry = WalletTransaction.objects.get(payment_ref=result.reference)
        self.assertEqual(entry.status, WalletTransaction.Status.PENDING)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("0.00"))

        service.callback({"orderId": result.reference, "status": "success"})
        service.callback({"orderId": result.reference, "status": "success"})

        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("5000.00"))
        self.assertEqual(LedgerService.reconstruct_balance(self.buyer), Decimal("5000.00"))

    def test_recharge_with_invalid_phone_writes_nothing(self):
        result = PaymentService().initiate_recharge(self.buyer, Decimal("5000"), "abc")

        self.assertFalse(result.success)
        self.assertFalse(WalletTransaction.objects.exists())


class GatewayViewTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.buyer = User.objects.create_user(email="buyer@example.com", password="pass1234")
        self.seller = User.objects.create_user(
            email="seller@example.com", password="pass1234", role=User.Role.STORE_ADMIN
        )

    def test_unknown_action(self):
        self.client.force_authenticate(self.buyer)

        response = self.client.post("/payment/gateway/", {"action": "refund"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {"success": False, "message": "Invalid action"})

    def test_initiate_requires_authentication(self):
        response = self.client.post("/payment/gateway/", {"action": "initiate"}, format="json")

        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    @patch("payment.views.PaymentService")
    def test_initiate_returns_camel_case(self, service_cls):
        service_cls.return_value.initiate.return_value = GatewayResult(
            success=True, message="ok", transaction_id="tx-1", payment_url="https://pay/tx-1"
        )
        self.client.force_authenticate(self.buyer)
        ref = f"PAY-{self.buyer.id}-1700000000000"

        response = self.client.post(
            "/payment/gateway/",
            {"action": "initiate", "amount": 1000, "phoneNumber": "0700000000", "orderId": ref},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data,
            {"success": True, "message": "ok", "transactionId": "tx-1", "paymentUrl": "https://pay/tx-1"},
        )

    def test_initiate_for_someone_elses_reference_forbidden(self):
        self.client.force_authenticate(self.buyer)

        response = self.client.post(
            "/payment/gateway/",
            {"action": "initiate", "amount": 1000, "phoneNumber": "0700000000", "orderId": f"PAY-{self.seller.id}-1"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def _callback(self, payload, signed=True):
        body = json.dumps(payload).encode("utf-8")
        extra = {"HTTP_X_SIGNATURE": _sign(body)} if signed else {}
        return self.client.generic("POST", "/payment/gateway/", body, content_type="application/json", **extra)

    def _pending_order(self, ref):
        return split_and_create_orders(
            self.buyer,
            Order.PaymentMethod.WAVE,
            [{"product_id": "p", "quantity": 1, "price": "1000", "seller_id": str(self.seller.id)}],
            payment_ref=ref,
        )[0]

    @override_settings(GENIUSPAY_WEBHOOK_SECRET=WEBHOOK_SECRET)
    def test_signed_callback_is_public_and_idempotent(self):
        ref = f"PAY-{self.buyer.id}-1700000000000"
        self._pending_order(ref)

        for _ in range(2):
            response = self._callback({"action": "callback", "orderId": ref, "status": "paid"})
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertTrue(response.data["success"])

        order = Order.objects.get(payment_ref=ref)
        self.assertEqual(order.status, Order.Status.PAID)
        self.assertEqual(order.escrow_amount, order.seller_amount)

    @override_settings(GENIUSPAY_WEBHOOK_SECRET=WEBHOOK_SECRET)
    def test_callback_with_unpaid_status_changes_nothing(self):
        ref = f"PAY-{self.buyer.id}-1700000000000"
        self._pending_order(ref)

        response = self._callback({"action": "callback", "orderId": ref, "status": "failed"})

        self.assertFalse(response.data["success"])
        self.assertEqual(Order.objects.get(payment_ref=ref).status, Order.Status.PENDING)

    @override_settings(GENIUSPAY_WEBHOOK_SECRET="", GENIUSPAY_ALLOW_UNSIGNED_WEBHOOKS=False)
    def test_unsigned_callback_refused_without_secret(self):
        ref = f"TOPUP-{self.buyer.id}-1700000000000"
        LedgerService.record_transaction(
            self.buyer, WalletTransaction.Type.RECHARGE, Decimal("5000"), WalletTransaction.Status.PENDING, payment_ref=ref
        )

        response = self._callback({"action": "callback", "reference": ref, "status": "paid"}, signed=False)

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("0.00"))

    @override_settings(GENIUSPAY_WEBHOOK_SECRET=WEBHOOK_SECRET)
    def test_callback_with_wrong_signature_refused(self):
        ref = f"PAY-{self.buyer.id}-1700000000000"
        self._pending_order(ref)
        body = json.dumps({"action": "callback", "orderId": ref, "status": "paid"}).encode("utf-8")

        response = self.client.generic(
            "POST", "/payment/gateway/", body, content_type="application/json", HTTP_X_SIGNATURE="0" * 64
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(Order.objects.get(payment_ref=ref).status, Order.Status.PENDING)


class GeniusPayWebhookTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.buyer = User.objects.create_user(email="buyer@example.com", password="pass1234")
        self.ref = str(PaymentReference.for_recharge(self.buyer.id))
        LedgerService.record_transaction(
            self.buyer,
            WalletTransaction.Type.RECHARGE,
            Decimal("3000"),
            WalletTransaction.Status.PENDING,
            payment_ref=self.ref,
        )

    def _post(self, payload, signed=True, **extra):
        body = json.dumps(payload).encode("utf-8")
        if signed:
            extra.setdefault("HTTP_X_SIGNATURE", _sign(body))
        return self.client.generic(
            "POST", "/payment/webhook/geniuspay/", body, content_type="application/json", **extra
        )

    @override_settings(GENIUSPAY_WEBHOOK_SECRET=WEBHOOK_SECRET)
    def test_webhook_completes_recharge_and_logs(self):
        response = self._post({"event": "payin.success", "data": {"reference": self.ref, "status": "success"}})

        self.assertEqual(response.status_code, 200)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("3000.00"))
        log = WebhookLog.objects.get(reference=self.ref)
        self.assertTrue(log.processed)
        self.assertEqual(log.event_type, "PAYMENT_CONFIRMED")

    def test_invalid_json_logged(self):
        response = self.client.generic(
            "POST", "/payment/webhook/geniuspay/", "not-json", content_type="application/json"
        )

        self.assertEqual(response.status_code, 400)
        self.assertTrue(WebhookLog.objects.filter(event_type="INVALID_JSON").exists())

    @override_settings(GENIUSPAY_WEBHOOK_SECRET=WEBHOOK_SECRET)
    def test_signature_required_when_secret_configured(self):
        payload = {"reference": self.ref, "status": "paid"}

        response = self._post(payload, HTTP_X_SIGNATURE="bad")
        self.assertEqual(response.status_code, 401)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("0.00"))

        response = self._post(payload)
        self.assertEqual(response.status_code, 200)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("3000.00"))

    @override_settings(GENIUSPAY_WEBHOOK_SECRET="", GENIUSPAY_ALLOW_UNSIGNED_WEBHOOKS=False)
    def test_unsigned_delivery_refused_without_secret(self):
        response = self._post({"reference": self.ref, "status": "paid"}, signed=False)

        self.assertEqual(response.status_code, 401)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("0.00"))
        self.assertEqual(WebhookLog.objects.get(reference=self.ref).event_type, "INVALID_SIGNATURE")

    @override_settings(GENIUSPAY_WEBHOOK_SECRET="", GENIUSPAY_ALLOW_UNSIGNED_WEBHOOKS=True)
    def test_unsigned_delivery_accepted_when_explicitly_allowed(self):
        response = self._post({"reference": self.ref, "status": "paid"}, signed=False)

        self.assertEqual(response.status_code, 200)
        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("3000.00"))


class PayoutViewsTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.seller = User.objects.create_user(
            email="seller@example.com", password="pass1234", role=User.Role.STORE_ADMIN
        )
        self.admin = User.objects.create_user(
            email="admin@example.com", password="pass1234", role=User.Role.ADMIN
        )
        self.buyer = User.objects.create_user(email="buyer@example.com", password="pass1234")
        LedgerService.post(self.seller, WalletTransaction.Type.PAYOUT, Decimal("5000"))

    def test_seller_requests_and_admin_rejects(self):
        self.client.force_authenticate(self.seller)
        response = self.client.post(
            "/payment/payouts/request/", {"amount": "2000", "method": "WAVE", "phone": "0700000000"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        payout_id = response.data["id"]

        response = self.client.post(f"/payment/payouts/{payout_id}/reject/", {"note": "no"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(self.admin)
        response = self.client.post(f"/payment/payouts/{payout_id}/reject/", {"note": "no"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], PayoutRequest.Status.REJECTED)

        response = self.client.post(f"/payment/payouts/{payout_id}/approve/", format="json")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        self.seller.refresh_from_db()
        self.assertEqual(self.seller.wallet_balance, Decimal("5000.00"))

    def test_overdraft_request_rejected_with_message(self):
        self.client.force_authenticate(self.seller)

        response = self.client.post("/payment/payouts/request/", {"amount": "9000", "method": "WAVE"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("detail", response.data)

    def test_buyer_cannot_request_payout(self):
        self.client.force_authenticate(self.buyer)

        response = self.client.post("/payment/payouts/request/", {"amount": "10", "method": "WAVE"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_wallet_view(self):
        self.client.force_authenticate(self.seller)

        response = self.client.get("/payment/wallet/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(str(response.data["wallet_balance"])), Decimal("5000.00"))
        self.assertEqual(Decimal(str(response.data["ledger_balance"])), Decimal("5000.00"))
        self.assertEqual(len(response.data["transactions"]), 1)
