from datetime import timedelta
from decimal import Decimal

from django.db.models import Sum
from django.utils import timezone

from accounts.models import Account
from members.models import Member
from transactions.models import Transaction
from transactions.utils.ledger import (
    DEPOSIT_ACCOUNT_TYPES,
    ZERO,
    aggregate_weekly_trend,
    compute_account_balance,
    compute_portfolio_summary,
    running_balances,
    start_of_week,
)


def _sum_amount(queryset):
    return queryset.aggregate(total=Sum("amount"))["total"] or Decimal("0")


class ReportingService:
    """
    Dashboard and report figures. Balances are always replayed from the
    transactions; the balance stored on an account is never read here.
    """

    @staticmethod
    def account_balances(accounts=None):
        """
        Rows of ``{"account", "account_type", "is_active", "balance"}`` with
        ``balance`` calculated from each account's transactions.
        """
        if accounts is None:
            accounts = Account.objects.filter(is_active=True)
        rows = []
        for account in accounts.prefetch_related("transactions"):
            rows.append(
                {
                    "account": account,
                    "account_type": account.account_type,
                    "is_active": account.is_active,
                    "balance": compute_account_balance(
                        account.transactions.all(), account.account_type
                    ),
                }
            )
        return rows

    @staticmethod
    def totals_by_type(balances):
        totals = {}
        for row in balances:
            totals[row["account_type"]] = (
                totals.get(row["account_type"], ZERO) + row["balance"]
            )
        return totals

    @classmethod
    def dashboard_stats(cls, today=None):
        today = today or timezone.localdate()
        start_of_month = today.replace(day=1)

        members = Member.objects.all()
        total_members = members.count()
        active_members = members.filter(status="active").count()
        new_members_this_month = members.filter(
            created_at__date__gte=start_of_month
        ).count()

        balances = cls.account_balances()
        totals = cls.totals_by_type(balances)
        total_loans = totals.get("loan", ZERO)
        total_deposits = sum(
            (totals.get(account_type, ZERO) for account_type in DEPOSIT_ACCOUNT_TYPES),
            ZERO,
        )
        active_loans_count = len(
            [
                row
                for row in balances
                if row["account_type"] == "loan" and row["balance"] > 0
            ]
        )

        this_week_start = start_of_week(today)
        last_week_start = this_week_start - timedelta(weeks=1)
        credits = Transaction.objects.filter(direction="credit")
        weekly_collections = _sum_amount(credits.filter(txn_date__gte=this_week_start))
        last_week_collections = _sum_amount(
            credits.filter(txn_date__gte=last_week_start, txn_date__lt=this_week_start)
        )
        if last_week_collections > 0:
            weekly_collections_change = (
                (weekly_collections - last_week_collections) / last_week_collections
            ) * 100
        else:
            weekly_collections_change = ZERO

        return {
            "total_members": total_members,
            "active_members": active_members,
            "new_members_this_month": new_members_this_month,
            "total_savings": totals.get("savings", ZERO),
            "total_shares": totals.get("shares", ZERO),
            "total_loans": total_loans,
            "cash_in_bank": total_deposits - total_loans,
            "weekly_collections": weekly_collections,
            "weekly_collections_change": weekly_collections_change,
            "active_loans_count": active_loans_count,
            "portfolio": compute_portfolio_summary(balances),
        }

    @classmethod
    def weekly_trends(cls, week_count=6, today=None):
        today = today or timezone.localdate()
        first_week_start = start_of_week(today) - timedelta(weeks=max(week_count - 1, 0))
        credits = Transaction.objects.filter(
            direction="credit", txn_date__gte=first_week_start
        ).values("txn_date", "amount", "direction")
        return aggregate_weekly_trend(
            credits, cls.account_balances(), week_count=week_count, today=today
        )

    @classmethod
    def loan_summary(cls, today=None):
        today = today or timezone.localdate()
        start_of_month = today.replace(day=1)

        loans = cls.account_balances(
            Account.objects.filter(account_type="loan", is_active=True)
        )
        loan_transactions = Transaction.objects.filter(
            account__account_type="loan", txn_date__gte=start_of_month
        )

        return {
            "total_outstanding": sum((row["balance"] for row in loans), ZERO),
            "active_loans": len([row for row in loans if row["balance"] > 0]),
            # Needs repayment schedules before it can be anything else.
            "overdue_loans": 0,
            "disbursed_this_month": _sum_amount(
                loan_transactions.filter(direction="debit")
            ),
            "repayments_this_month": _sum_amount(
                loan_transactions.filter(direction="credit")
            ),
        }

    @staticmethod
    def recent_transactions(limit=5):
        return Transaction.objects.select_related("member", "account")[:limit]

    @classmethod
    def member_portfolio(cls, member):
        balances = cls.account_balances(member.accounts.all())
        return balances, compute_portfolio_summary(
            [row for row in balances if row["is_active"]]
        )

    @staticmethod
    def member_statement(member, account_type=None, date_from=None, date_to=None):
        """
        Per-account passbook: opening balance at ``date_from``, every entry in
        the period with its running balance, and the closing balance.
        """
        accounts = member.accounts.all()
        if account_type:
            accounts = accounts.filter(account_type=account_type)

        statement = []
        for account in accounts:
            history = account.transactions.order_by("txn_date", "created_at")
            opening = ZERO
            if date_from:
                opening = compute_account_balance(
                    history.filter(txn_date__lt=date_from), account.account_type
                )
                history = history.filter(txn_date__gte=date_from)
            if date_to:
                history = history.filter(txn_date__lte=date_to)

            entries = []
            closing = opening
            for txn, balance in running_balances(
                history, account.account_type, opening_balance=opening
            ):
                entries.append(
                    {
                        "date": txn.txn_date,
                        "reference_no": txn.reference_no,
                        "narration": txn.narration,
                        "direction": txn.direction,
                        "amount": txn.amount,
                        "balance": balance,
                    }
                )
                closing = balance

            statement.append(
                {
                    "account_no": account.account_no,
                    "account_type": account.account_type,
                    "is_active": account.is_active,
                    "opening_balance": opening,
                    "closing_balance": closing,
                    "entries": entries,
                }
            )
        return statement
