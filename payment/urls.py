from django.urls import path
from .views import *

urlpatterns = [
    path("gateway/", GatewayView.as_view(), name="payment-gateway"),
    path("webhook/geniuspay/", GeniusPayWebhookView.as_view(), name="geniuspay-webhook"),
    # Wallet
    path("wallet/", WalletView.as_view(), name="wallet"),
    path("wallet/recharge/", WalletRechargeView.as_view(), name="wallet-recharge"),
    # Payouts
    path("payouts/", AdminPayoutListView.as_view(), name="payout-list"),
    path("payouts/request/", PayoutRequestView.as_view(), name="payout-request"),
    path("payouts/history/", PayoutHistoryView.as_view(), name="payout-history"),
    path("payouts/<uuid:pk>/approve/", PayoutApproveView.as_view(), name="payout-approve"),
    path("payouts/<uuid:pk>/reject/", PayoutRejectView.as_view(), name="payout-reject"),
]
