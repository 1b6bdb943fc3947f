from django.db.models.signals import post_save
from django.dispatch import receiver

from transactions.models import Transaction


@receiver(post_save, sender=Transaction)
def refresh_member_balances(sender, instance, created, **kwargs):
    if created:
        instance.member.refresh_balances()
