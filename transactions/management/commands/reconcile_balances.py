from django.core.management.base import BaseCommand
from django.db import transaction

from accounts.models import Account
from members.models import Member
from transactions.utils.ledger import compute_account_balance


class Command(BaseCommand):
    help = "Compare stored account balances with the balance replayed from transactions"

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Overwrite diverging stored balances with the replayed balance",
        )

    def handle(self, *args, **options):
        fix = options["fix"]
        self.stdout.write("Reconciling account balances...")

        checked = 0
        diverged = 0
        affected_members = set()

        for account in Account.objects.select_related("member").prefetch_related(
            "transactions"
        ):
            checked += 1
            calculated = compute_account_balance(
                account.transactions.all(), account.account_type
            )
            if calculated == account.balance:
                continue

            diverged += 1
            self.stdout.write(
                self.style.WARNING(
                    f"{account.account_no} ({account.member.member_no}, {account.account_type}): "
                    f"stored {account.balance}, calculated {calculated}"
                )
            )
            if fix:
                with transaction.atomic():
                    Account.objects.filter(pk=account.pk).update(balance=calculated)
                affected_members.add(account.member_id)

        if fix:
            for member in Member.objects.filter(pk__in=affected_members):
                member.refresh_balances()
            self.stdout.write(
                self.style.SUCCESS(
                    f"Checked {checked} accounts, fixed {diverged} balances for {len(affected_members)} members"
                )
            )
        elif diverged:
            self.stdout.write(
                self.style.WARNING(
                    f"Checked {checked} accounts, {diverged} diverge. Run with --fix to repair."
                )
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(f"Checked {checked} accounts, all balances agree")
            )
