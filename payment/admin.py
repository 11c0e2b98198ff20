from django.contrib import admin, messages
from django.utils.translation import gettext_lazy as _

from .models import PayoutRequest, WalletTransaction, WebhookLog
from .services.payouts import PayoutService, PayoutError
from .services.service import PaymentService


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
	list_display = ("id", "user", "type", "amount", "status", "reference_id", "payment_ref", "created_at")
	list_filter = ("type", "status")
	search_fields = ("user__email", "payment_ref", "reference_id")
	readonly_fields = ("user", "type", "amount", "reference_id", "payment_ref", "meta", "created_at", "updated_at")
	actions = ("confirm_payment_refs",)

	def confirm_payment_refs(self, request, queryset):
		"""Apply a manually confirmed recharge, as the gateway callback would."""
		service = PaymentService()
		confirmed = 0
		refs = set(
			queryset.filter(type=WalletTransaction.Type.RECHARGE, status=WalletTransaction.Status.PENDING)
			.exclude(payment_ref__isnull=True)
			.values_list("payment_ref", flat=True)
		)
		for ref in refs:
			try:
				confirmed += service.confirm_reference(ref)
			except Exception as exc:
				self.message_user(request, _("Failed to confirm %(ref)s: %(err)s") % {"ref": ref, "err": str(exc)}, messages.ERROR)
		self.message_user(request, _("%d recharge rows completed.") % confirmed, messages.INFO)

	confirm_payment_refs.short_description = "Confirm selected pending recharges"


@admin.register(PayoutRequest)
class PayoutRequestAdmin(admin.ModelAdmin):
	list_display = ("id", "seller", "amount", "method", "phone", "status", "processed_by", "processed_at", "created_at")
	list_filter = ("status", "method")
	search_fields = ("seller__email", "phone")
	readonly_fields = ("ledger_entry", "processed_by", "processed_at")
	actions = ("approve_payouts", "reject_payouts")

	def _process(self, request, queryset, handler, label):
		succeeded = 0
		failed = 0
		for payout in queryset.all():
			try:
				handler(payout, actor=request.user)
				succeeded += 1
			except PayoutError as exc:
				failed += 1
				self.message_user(request, _("Failed to %(label)s payout %(id)s: %(err)s") % {"label": label, "id": payout.id, "err": str(exc)}, messages.ERROR)
		self.message_user(request, _("Payouts processed: %(ok)d, failed: %(bad)d") % {"ok": succeeded, "bad": failed}, messages.INFO)

	def approve_payouts(self, request, queryset):
		self._process(request, queryset, PayoutService.approve, "approve")

	approve_payouts.short_description = "Approve selected payout requests"

	def reject_payouts(self, request, queryset):
		self._process(request, queryset, PayoutService.reject, "reject")

	reject_payouts.short_description = "Reject selected payout requests (refund wallet)"


@admin.register(WebhookLog)
class WebhookLogAdmin(admin.ModelAdmin):
	list_display = ("id", "provider", "event_type", "reference", "processed", "created_at")
	list_filter = ("provider", "processed")
	search_fields = ("reference",)
