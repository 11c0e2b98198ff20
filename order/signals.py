import logging

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from payment.services.ledger import LedgerError
from .escrow import EscrowService
from .exceptions import EscrowReleaseError
from .models import Order

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Order)
def _cache_previous_order_status(sender, instance: Order, **kwargs):
    if not instance.pk or instance._state.adding:
        instance._escrow_previous_status = None
        return
    instance._escrow_previous_status = (
        Order.objects.filter(pk=instance.pk).values_list("status", flat=True).first()
    )


@receiver(post_save, sender=Order)
def _settle_escrow_on_status_change(sender, instance: Order, created, **kwargs):
    if created:
        return
    previous = getattr(instance, "_escrow_previous_status", None)
    if previous == instance.status:
        return

    if instance.status == Order.Status.PAID:
        EscrowService.secure_escrow(instance)
    elif instance.status == Order.Status.DELIVERED:
        try:
            EscrowService.release_payout(instance)
        except (EscrowReleaseError, LedgerError):
            logger.exception("Failed to release payout for order=%s", instance.id)
