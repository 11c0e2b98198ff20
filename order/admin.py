from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from payment.services.ledger import LedgerError
from .escrow import EscrowService
from .exceptions import EscrowReleaseError
from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
	model = OrderItem
	extra = 0
	readonly_fields = ("product_id", "product_name", "seller", "price", "quantity", "total")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
	list_display = ("id", "buyer", "seller", "status", "payment_method", "total_amount", "payout_status", "escrow_amount", "payment_ref", "created_at")
	list_filter = ("status", "payout_status", "payment_method")
	search_fields = ("payment_ref", "buyer__email", "seller__email")
	readonly_fields = ("total_amount", "commission_amount", "seller_amount", "payout_status", "escrow_amount", "payment_ref")
	inlines = (OrderItemInline,)
	actions = ("retry_payout_release",)

	def retry_payout_release(self, request, queryset):
		"""Credit sellers for delivered orders whose payout is still pending."""
		released = 0
		failed = 0
		for order in queryset.filter(status=Order.Status.DELIVERED).exclude(payout_status=Order.PayoutStatus.PAID):
			try:
				if EscrowService.release_payout(order):
					released += 1
			except (EscrowReleaseError, LedgerError) as exc:
				failed += 1
				self.message_user(request, _("Failed to release order %(id)s: %(err)s") % {"id": order.id, "err": str(exc)}, messages.ERROR)
		self.message_user(request, _("Payouts released: %(ok)d, failed: %(bad)d") % {"ok": released, "bad": failed}, messages.INFO)

	retry_payout_release.short_description = "Retry payout release for delivered orders"
