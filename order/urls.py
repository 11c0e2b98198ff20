from django.urls import path
from .views import *
urlpatterns = [
    path('checkout/', CheckoutView.as_view(), name='order-checkout'),
    path('orders/', ListOrdersView.as_view(), name='user-orders'),
    path('orders/<uuid:pk>/', OrderDetailView.as_view(), name='order-detail'),
    path('orders/<uuid:pk>/status/', OrderStatusUpdateView.as_view(), name='order-status-update'),
    path('orders/<uuid:pk>/release-payout/', ReleasePayoutView.as_view(), name='order-release-payout'),
    path('seller/orders/', SellerOrdersView.as_view(), name='seller-orders'),
    path('seller/escrow/', SellerEscrowView.as_view(), name='seller-escrow'),
]
