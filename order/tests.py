from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from account.models import User
from audit.models import AuditLog
from payment.models import WalletTransaction
from payment.services.ledger import LedgerService
from payment.services.service import GatewayResult, PaymentService

from .escrow import EscrowService
from .exceptions import CheckoutError, EscrowReleaseError, InvalidTransitionError, PartialCheckoutError
from .models import Order, OrderItem
from .services import CheckoutService, OrderSplitter, compute_commission, split_and_create_orders


def _make_users(test):
    test.buyer = User.objects.create_user(email="buyer@example.com", password="pass1234")
    test.store = User.objects.create_user(
        email="store@example.com", password="pass1234", role=User.Role.STORE_ADMIN
    )
    test.partner = User.objects.create_user(
        email="partner@example.com", password="pass1234", role=User.Role.PARTNER_ADMIN
    )
    test.admin = User.objects.create_user(
        email="admin@example.com", password="pass1234", role=User.Role.ADMIN
    )


def _cart(store, partner):
    return [
        {"product_id": "p-1", "quantity": 2, "price": "5000", "seller_id": str(store.id)},
        {"product_id": "p-2", "quantity": 1, "price": "5000", "seller_id": str(partner.id)},
    ]


class OrderSplitterTests(TestCase):
    def setUp(self):
        _make_users(self)

    def test_commission_rounds_half_up_to_whole_units(self):
        self.assertEqual(compute_commission(Decimal("1050"), Decimal("0.12")), Decimal("126"))
        self.assertEqual(compute_commission(Decimal("1000"), Decimal("0.1225")), Decimal("123"))
        self.assertEqual(compute_commission(Decimal("12.5"), Decimal("0.2")), Decimal("3"))

    def test_groups_by_seller_and_splits_amounts(self):
        orders = split_and_create_orders(self.buyer, Order.PaymentMethod.WAVE, _cart(self.store, self.partner))

        self.assertEqual(len(orders), 2)
        by_seller = {o.seller_id: o for o in orders}
        store_order = by_seller[self.store.id]
        partner_order = by_seller[self.partner.id]

        self.assertEqual(store_order.total_amount, Decimal("10000.00"))
        self.assertEqual(store_order.commission_amount, Decimal("1200.00"))
        self.assertEqual(store_order.seller_amount, Decimal("8800.00"))
        self.assertEqual(partner_order.commission_amount, Decimal("400.00"))
        self.assertEqual(partner_order.seller_amount, Decimal("4600.00"))

        for order in orders:
            self.assertEqual(order.seller_amount + order.commission_amount, order.total_amount)
            self.assertEqual(order.status, Order.Status.PENDING)
            self.assertEqual(order.payout_status, Order.PayoutStatus.PENDING)
            self.assertEqual(order.escrow_amount, Decimal("0.00"))
        self.assertEqual(OrderItem.objects.filter(seller=self.store).count(), 1)
        self.assertEqual(AuditLog.objects.filter(action=AuditLog.Action.ORDER_CREATE).count(), 2)

    def test_seller_override_rate_is_used(self):
        self.store.commission_rate = Decimal("0.1000")
        self.store.save()

        orders = split_and_create_orders(
            self.buyer,
            Order.PaymentMethod.WAVE,
            [{"product_id": "p-1", "quantity": 1, "price": "1000", "seller_id": str(self.store.id)}],
        )

        self.assertEqual(orders[0].commission_amount, Decimal("100.00"))

    def test_unknown_sellers_share_one_bucket(self):
        items = [
            {"product_id": "p-1", "quantity": 1, "price": "1000"},
            {"product_id": "p-2", "quantity": 1, "price": "1000", "seller_id": "not-a-uuid"},
            {"product_id": "p-3", "quantity": 1, "price": "1000", "seller_id": "3f2b8c0e-0000-0000-0000-000000000000"},
        ]

        orders = split_and_create_orders(self.buyer, Order.PaymentMethod.WAVE, items, commission_rate=Decimal("0.05"))

        self.assertEqual(len(orders), 1)
        self.assertIsNone(orders[0].seller)
        self.assertEqual(orders[0].total_amount, Decimal("3000.00"))
        self.assertEqual(orders[0].commission_amount, Decimal("150.00"))

    def test_wallet_orders_start_in_escrow(self):
        orders = split_and_create_orders(
            self.buyer, Order.PaymentMethod.WALLET, _cart(self.store, self.partner), payment_ref="PAY-x-1"
        )

        for order in orders:
            self.assertEqual(order.status, Order.Status.PAID)
            self.assertEqual(order.payout_status, Order.PayoutStatus.ESCROW)
            self.assertEqual(order.escrow_amount, order.seller_amount)
            self.assertEqual(order.payment_ref, "PAY-x-1")

    def test_explicit_status_overrides_method_default(self):
        orders = split_and_create_orders(
            self.buyer, Order.PaymentMethod.WALLET, _cart(self.store, self.partner), status=Order.Status.PENDING
        )

        self.assertTrue(all(o.status == Order.Status.PENDING for o in orders))

    def test_empty_cart_rejected(self):
        with self.assertRaisesMessage(CheckoutError, "Cart is empty"):
            split_and_create_orders(self.buyer, Order.PaymentMethod.WAVE, [])

    def test_invalid_quantity_rejected(self):
        with self.assertRaises(CheckoutError):
            split_and_create_orders(
                self.buyer, Order.PaymentMethod.WAVE, [{"product_id": "p", "quantity": 0, "price": "10"}]
            )

    def test_failed_group_does_not_roll_back_siblings_and_retry_completes(self):
        original = OrderSplitter._create_group
        partner = self.partner

        def flaky(buyer, seller, *args, **kwargs):
            if seller == partner:
                raise RuntimeError("database unavailable")
            return original(buyer, seller, *args, **kwargs)

        ref = f"PAY-{self.buyer.id}-1700000000000"
        with patch.object(OrderSplitter, "_create_group", side_effect=flaky):
            with self.assertRaises(PartialCheckoutError) as ctx:
                split_and_create_orders(self.buyer, Order.PaymentMethod.WAVE, _cart(self.store, self.partner), payment_ref=ref)

        self.assertEqual(len(ctx.exception.created_orders), 1)
        self.assertEqual(ctx.exception.failed_sellers, [str(self.partner.id)])
        self.assertEqual(Order.objects.filter(payment_ref=ref).count(), 1)

        orders = split_and_create_orders(self.buyer, Order.PaymentMethod.WAVE, _cart(self.store, self.partner), payment_ref=ref)

        self.assertEqual(len(orders), 2)
        self.assertEqual(Order.objects.filter(payment_ref=ref).count(), 2)


class EscrowServiceTests(TestCase):
    def setUp(self):
        _make_users(self)
        self.order = split_and_create_orders(
            self.buyer,
            Order.PaymentMethod.WAVE,
            [{"product_id": "p-1", "quantity": 1, "price": "10000", "seller_id": str(self.store.id)}],
        )[0]

    def test_mark_paid_secures_escrow_once(self):
        self.assertTrue(EscrowService.mark_paid(self.order))
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PAID)
        self.assertEqual(self.order.payout_status, Order.PayoutStatus.ESCROW)
        self.assertEqual(self.order.escrow_amount, Decimal("8800.00"))

        self.assertFalse(EscrowService.mark_paid(self.order))
        self.assertFalse(EscrowService.secure_escrow(self.order))

    def test_delivery_releases_payout_exactly_once(self):
        EscrowService.update_status(self.order, Order.Status.PAID, actor=self.store)
        EscrowService.update_status(self.order, Order.Status.DELIVERED, actor=self.store)

        self.order.refresh_from_db()
        self.store.refresh_from_db()
        self.assertEqual(self.order.payout_status, Order.PayoutStatus.PAID)
        self.assertEqual(self.order.escrow_amount, Decimal("0.00"))
        self.assertEqual(self.store.wallet_balance, Decimal("8800.00"))

        payout = WalletTransaction.objects.get(user=self.store, type=WalletTransaction.Type.PAYOUT)
        self.assertEqual(payout.amount, Decimal("8800.00"))
        self.assertEqual(payout.status, WalletTransaction.Status.COMPLETED)
        self.assertEqual(payout.reference_id, str(self.order.id))
        self.assertEqual(payout.meta, {"reason": "ORDER_DELIVERED"})

        self.assertFalse(EscrowService.release_payout(self.order))
        EscrowService.update_status(self.order, Order.Status.DELIVERED, actor=self.store)
        self.store.refresh_from_db()
        self.assertEqual(self.store.wallet_balance, Decimal("8800.00"))
        self.assertEqual(WalletTransaction.objects.filter(type=WalletTransaction.Type.PAYOUT).count(), 1)

    def test_unpaid_order_cannot_be_delivered(self):
        with self.assertRaises(InvalidTransitionError):
            EscrowService.update_status(self.order, Order.Status.DELIVERED, actor=self.store)

        self.order.refresh_from_db()
        self.store.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertEqual(self.order.payout_status, Order.PayoutStatus.PENDING)
        self.assertEqual(self.store.wallet_balance, Decimal("0.00"))
        self.assertFalse(WalletTransaction.objects.exists())

    def test_release_refuses_order_without_escrow(self):
        with self.assertRaises(EscrowReleaseError):
            EscrowService.release_payout(self.order)

        self.order.status = Order.Status.DELIVERED
        with self.assertLogs("order.signals", level="ERROR"):
            self.order.save()

        self.order.refresh_from_db()
        self.store.refresh_from_db()
        self.assertEqual(self.order.payout_status, Order.PayoutStatus.PENDING)
        self.assertEqual(self.store.wallet_balance, Decimal("0.00"))
        self.assertFalse(WalletTransaction.objects.exists())

    def test_delivered_is_terminal(self):
        EscrowService.update_status(self.order, Order.Status.PAID)
        EscrowService.update_status(self.order, Order.Status.DELIVERED)

        with self.assertRaises(InvalidTransitionError):
            EscrowService.update_status(self.order, Order.Status.PAID)
        with self.assertRaises(InvalidTransitionError):
            EscrowService.update_status(self.order, Order.Status.PENDING)

    def test_status_update_is_audited(self):
        EscrowService.update_status(self.order, Order.Status.PAID, actor=self.admin)

        log = AuditLog.objects.get(action=AuditLog.Action.ORDER_STATUS_UPDATE)
        self.assertEqual(log.details["from"], "PENDING")
        self.assertEqual(log.details["to"], "PAID")

    def test_release_without_seller_is_logged_and_retryable(self):
        orphan = split_and_create_orders(
            self.buyer, Order.PaymentMethod.WALLET, [{"product_id": "p-9", "quantity": 1, "price": "500"}]
        )[0]

        with self.assertLogs("order.signals", level="ERROR"):
            EscrowService.update_status(orphan, Order.Status.DELIVERED, actor=self.admin)

        orphan.refresh_from_db()
        self.assertEqual(orphan.status, Order.Status.DELIVERED)
        self.assertEqual(orphan.payout_status, Order.PayoutStatus.ESCROW)
        self.assertEqual(orphan.escrow_amount, orphan.seller_amount)

    def test_seller_escrow_total(self):
        EscrowService.mark_paid(self.order)
        split_and_create_orders(
            self.buyer,
            Order.PaymentMethod.WALLET,
            [{"product_id": "p-2", "quantity": 1, "price": "1000", "seller_id": str(self.store.id)}],
        )

        self.assertEqual(EscrowService.seller_escrow_total(self.store), Decimal("9680.00"))
        self.assertEqual(EscrowService.seller_escrow_total(self.partner), Decimal("0.00"))


class CheckoutServiceTests(TestCase):
    def setUp(self):
        _make_users(self)

    def test_wallet_checkout_debits_and_escrows(self):
        LedgerService.post(self.buyer, WalletTransaction.Type.RECHARGE, Decimal("20000"))

        result = CheckoutService.checkout_with_wallet(self.buyer, _cart(self.store, self.partner))

        self.buyer.refresh_from_db()
        self.assertTrue(result.success)
        self.assertTrue(result.payment_ref.startswith(f"PAY-{self.buyer.id}-"))
        self.assertEqual(self.buyer.wallet_balance, Decimal("5000.00"))
        purchase = WalletTransaction.objects.get(user=self.buyer, type=WalletTransaction.Type.PURCHASE)
        self.assertEqual(purchase.amount, Decimal("-15000.00"))
        self.assertEqual(purchase.status, WalletTransaction.Status.COMPLETED)
        for order in result.orders:
            self.assertEqual(order.status, Order.Status.PAID)
            self.assertEqual(order.payout_status, Order.PayoutStatus.ESCROW)
            self.assertEqual(order.payment_method, Order.PaymentMethod.WALLET)
        self.assertEqual(LedgerService.reconstruct_balance(self.buyer), self.buyer.wallet_balance)

    def test_wallet_checkout_with_insufficient_balance_changes_nothing(self):
        LedgerService.post(self.buyer, WalletTransaction.Type.RECHARGE, Decimal("1000"))

        with self.assertRaisesMessage(CheckoutError, "Insufficient wallet balance"):
            CheckoutService.checkout_with_wallet(self.buyer, _cart(self.store, self.partner))

        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("1000.00"))
        self.assertFalse(Order.objects.exists())
        self.assertFalse(WalletTransaction.objects.filter(type=WalletTransaction.Type.PURCHASE).exists())

    def test_wallet_checkout_is_all_or_nothing(self):
        LedgerService.post(self.buyer, WalletTransaction.Type.RECHARGE, Decimal("20000"))
        original = OrderSplitter._create_group
        partner = self.partner

        def flaky(buyer, seller, *args, **kwargs):
            if seller == partner:
                raise RuntimeError("database unavailable")
            return original(buyer, seller, *args, **kwargs)

        with patch.object(OrderSplitter, "_create_group", side_effect=flaky):
            with self.assertRaises(CheckoutError):
                CheckoutService.checkout_with_wallet(self.buyer, _cart(self.store, self.partner))

        self.buyer.refresh_from_db()
        self.assertEqual(self.buyer.wallet_balance, Decimal("20000.00"))
        self.assertFalse(Order.objects.exists())

    def test_mobile_money_checkout_then_confirmation(self):
        gateway = MagicMock()
        gateway.initiate.return_value = GatewayResult(success=True, transaction_id="tx-1", payment_url="https://pay/tx-1")

        result = CheckoutService.checkout_with_mobile_money(
            self.buyer, _cart(self.store, self.partner), phone="0700000000", gateway=gateway
        )

        self.assertTrue(result.success)
        self.assertEqual(len(result.orders), 2)
        gateway.initiate.assert_called_once_with(amount=Decimal("15000.00"), phone="0700000000", order_ref=result.payment_ref)
        for order in result.orders:
            self.assertEqual(order.status, Order.Status.PENDING)
            self.assertEqual(order.payment_ref, result.payment_ref)

        sdk = MagicMock()
        sdk.get_payin.return_value = {"id": "tx-1", "status": "SUCCESS"}
        service = PaymentService(sdk=sdk)
        service.verify("tx-1", order_ref=result.payment_ref)
        service.callback({"orderId": result.payment_ref, "status": "paid"})

        for order in Order.objects.filter(payment_ref=result.payment_ref):
            self.assertEqual(order.status, Order.Status.PAID)
            self.assertEqual(order.payout_status, Order.PayoutStatus.ESCROW)
            self.assertEqual(order.escrow_amount, order.seller_amount)
        self.assertFalse(WalletTransaction.objects.exists())

    def test_mobile_money_initiation_failure_keeps_pending_orders(self):
        gateway = MagicMock()
        gateway.initiate.return_value = GatewayResult(success=False, message="upstream down")

        result = CheckoutService.checkout_with_mobile_money(
            self.buyer, _cart(self.store, self.partner), phone="0700000000", gateway=gateway
        )

        self.assertFalse(result.success)
        self.assertEqual(result.message, "upstream down")
        self.assertEqual(Order.objects.filter(payment_ref=result.payment_ref, status=Order.Status.PENDING).count(), 2)

        retry = CheckoutService.checkout_with_mobile_money(
            self.buyer, _cart(self.store, self.partner), phone="0700000000", payment_ref=result.payment_ref, gateway=gateway
        )
        self.assertEqual(Order.objects.filter(payment_ref=result.payment_ref).count(), 2)
        self.assertEqual({o.id for o in retry.orders}, {o.id for o in result.orders})


class OrderViewsTests(APITestCase):
    def setUp(self):
        _make_users(self)
        self.client.force_authenticate(user=self.buyer)

    def test_wallet_checkout_endpoint(self):
        LedgerService.post(self.buyer, WalletTransaction.Type.RECHARGE, Decimal("20000"))

        response = self.client.post(
            "/order/checkout/",
            {"payment_method": "WALLET", "items": _cart(self.store, self.partner)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(len(response.data["orders"]), 2)
        self.assertTrue(response.data["payment_ref"].startswith("PAY-"))

    def test_wallet_checkout_endpoint_insufficient_balance(self):
        response = self.client.post(
            "/order/checkout/",
            {"payment_method": "WALLET", "items": _cart(self.store, self.partner)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["detail"], "Insufficient wallet balance")

    @patch("order.services.PaymentService")
    def test_mobile_money_checkout_endpoint(self, service_cls):
        service_cls.return_value.initiate.return_value = GatewayResult(
            success=True, message="ok", transaction_id="tx-9", payment_url="https://pay/tx-9"
        )

        response = self.client.post(
            "/order/checkout/",
            {"payment_method": "WAVE", "phone_number": "+225 07 00 00 00 00", "items": _cart(self.store, self.partner)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["transaction_id"], "tx-9")
        self.assertEqual(response.data["payment_url"], "https://pay/tx-9")

    def test_mobile_money_requires_phone(self):
        response = self.client.post(
            "/order/checkout/",
            {"payment_method": "WAVE", "items": _cart(self.store, self.partner)},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_retry_with_foreign_payment_ref_rejected(self):
        response = self.client.post(
            "/order/checkout/",
            {
                "payment_method": "WAVE",
                "phone_number": "0700000000",
                "payment_ref": f"PAY-{self.store.id}-1700000000000",
                "items": _cart(self.store, self.partner),
            },
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_seller_sees_own_orders_and_updates_status(self):
        orders = split_and_create_orders(self.buyer, Order.PaymentMethod.WALLET, _cart(self.store, self.partner))
        store_order = next(o for o in orders if o.seller_id == self.store.id)

        self.client.force_authenticate(user=self.store)
        response = self.client.get("/order/seller/orders/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o["id"] for o in response.data["orders"]], [str(store_order.id)])

        response = self.client.get("/order/seller/escrow/")
        self.assertEqual(Decimal(str(response.data["escrow_total"])), Decimal("8800.00"))

        response = self.client.patch(f"/order/orders/{store_order.id}/status/", {"status": "DELIVERED"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["payout_status"], Order.PayoutStatus.PAID)

        response = self.client.patch(f"/order/orders/{store_order.id}/status/", {"status": "PAID"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_buyer_cannot_update_status(self):
        order = split_and_create_orders(self.buyer, Order.PaymentMethod.WALLET, _cart(self.store, self.partner))[0]

        response = self.client.patch(f"/order/orders/{order.id}/status/", {"status": "DELIVERED"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_seller_cannot_deliver_unpaid_mobile_money_order(self):
        order = split_and_create_orders(
            self.buyer,
            Order.PaymentMethod.WAVE,
            [{"product_id": "p-1", "quantity": 1, "price": "15000", "seller_id": str(self.store.id)}],
        )[0]
        self.client.force_authenticate(user=self.store)

        response = self.client.patch(f"/order/orders/{order.id}/status/", {"status": "DELIVERED"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        order.refresh_from_db()
        self.store.refresh_from_db()
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(self.store.wallet_balance, Decimal("0.00"))

    def test_buyer_lists_orders(self):
        split_and_create_orders(self.buyer, Order.PaymentMethod.WALLET, _cart(self.store, self.partner))

        response = self.client.get("/order/orders/")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data["orders"]), 2)
        self.assertEqual(len(response.data["orders"][0]["items"]), 1)
