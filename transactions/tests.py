import csv
import io
from datetime import date
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Account
from members.models import Member
from transactions.models import (
    DownloadLog,
    ImmutableTransactionError,
    RepaymentExceedsBalanceError,
    Transaction,
)
from transactions.utils.exports import EXPORT_HEADERS, export_row, write_transactions_csv
from transactions.utils.ledger import (
    WeeklyTrend,
    aggregate_weekly_trend,
    append_transaction,
    compute_account_balance,
    compute_portfolio_summary,
    running_balances,
    signed_amount,
    start_of_week,
    transaction_stats,
)
from transactions.utils.notifications import send_transaction_made_email
from transactions.utils.posting import post_transaction

User = get_user_model()


def entry(direction, amount, txn_date=None, **extra):
    return dict(
        direction=direction,
        amount=Decimal(amount),
        txn_date=txn_date or date(2026, 10, 21),
        **extra,
    )


class LedgerBalanceTests(SimpleTestCase):
    def test_savings_balance_is_credits_less_debits(self):
        transactions = [entry("credit", "500000"), entry("debit", "150000")]
        self.assertEqual(
            compute_account_balance(transactions, "savings"), Decimal("350000")
        )

    def test_loan_balance_is_debits_less_credits(self):
        transactions = [entry("debit", "10000000"), entry("credit", "2000000")]
        self.assertEqual(
            compute_account_balance(transactions, "loan"), Decimal("8000000")
        )

    def test_every_deposit_type_follows_the_savings_rule(self):
        transactions = [
            entry("credit", "300"),
            entry("credit", "200"),
            entry("debit", "50"),
        ]
        for account_type in ("shares", "fixed_deposit", "mm", "development_fund"):
            with self.subTest(account_type=account_type):
                self.assertEqual(
                    compute_account_balance(transactions, account_type),
                    Decimal("450"),
                )

    def test_empty_history_is_zero(self):
        self.assertEqual(compute_account_balance([], "savings"), Decimal("0"))
        self.assertEqual(compute_account_balance([], "loan"), Decimal("0"))

    def test_same_history_gives_same_balance(self):
        transactions = [entry("credit", "120.50"), entry("debit", "20.25")]
        first = compute_account_balance(transactions, "shares")
        second = compute_account_balance(transactions, "shares")
        self.assertEqual(first, second)
        self.assertEqual(first, Decimal("100.25"))

    def test_accepts_string_and_float_amounts(self):
        transactions = [
            {"direction": "credit", "amount": "100.10"},
            {"direction": "debit", "amount": 0.1},
        ]
        self.assertEqual(
            compute_account_balance(transactions, "savings"), Decimal("100.00")
        )

    def test_only_loan_uses_the_liability_rule(self):
        transactions = [entry("credit", "80"), entry("debit", "30")]
        self.assertEqual(
            compute_account_balance(transactions, "current"), Decimal("50")
        )
        self.assertEqual(compute_account_balance(transactions, "loan"), Decimal("-50"))

    def test_unknown_direction_is_rejected(self):
        with self.assertRaises(ValueError):
            signed_amount(Decimal("10"), "refund", "savings")

    def test_append_agrees_with_full_replay(self):
        transactions = [
            entry("debit", "5000"),
            entry("credit", "1200"),
            entry("credit", "800"),
            entry("debit", "300"),
        ]
        balance = Decimal("0")
        for txn in transactions:
            balance = append_transaction(
                balance, txn["amount"], txn["direction"], "loan"
            )
        self.assertEqual(balance, compute_account_balance(transactions, "loan"))
        self.assertEqual(balance, Decimal("3300"))

    def test_running_balances_start_from_opening_balance(self):
        transactions = [entry("credit", "100"), entry("debit", "40")]
        balances = [
            balance
            for _, balance in running_balances(
                transactions, "savings", opening_balance=Decimal("10")
            )
        ]
        self.assertEqual(balances, [Decimal("110"), Decimal("70")])


class PortfolioSummaryTests(SimpleTestCase):
    def test_loan_counts_as_liability_whatever_its_sign(self):
        accounts = [
            {"account_type": "loan", "balance": Decimal("-500")},
            {"account_type": "savings", "balance": Decimal("300")},
        ]
        self.assertEqual(
            compute_portfolio_summary(accounts),
            {
                "total_assets": Decimal("300"),
                "total_liabilities": Decimal("500"),
                "net_worth": Decimal("-200"),
            },
        )

    def test_empty_portfolio(self):
        summary = compute_portfolio_summary([])
        self.assertEqual(summary["total_assets"], Decimal("0"))
        self.assertEqual(summary["total_liabilities"], Decimal("0"))
        self.assertEqual(summary["net_worth"], Decimal("0"))

    def test_custom_balance_field(self):
        accounts = [
            {"account_type": "shares", "calculated": Decimal("75"), "balance": 0},
            {"account_type": "loan", "calculated": Decimal("25"), "balance": 0},
        ]
        summary = compute_portfolio_summary(accounts, balance_field="calculated")
        self.assertEqual(summary["net_worth"], Decimal("50"))

    def test_transaction_stats(self):
        stats = transaction_stats(
            [entry("credit", "500"), entry("credit", "250"), entry("debit", "100")]
        )
        self.assertEqual(stats["total_transactions"], 3)
        self.assertEqual(stats["total_credits"], Decimal("750"))
        self.assertEqual(stats["total_debits"], Decimal("100"))
        self.assertEqual(stats["net_flow"], Decimal("650"))


class WeeklyTrendTests(SimpleTestCase):
    today = date(2026, 10, 21)

    def test_weeks_start_on_monday(self):
        self.assertEqual(start_of_week(date(2026, 10, 21)), date(2026, 10, 19))
        self.assertEqual(start_of_week(date(2026, 10, 19)), date(2026, 10, 19))
        self.assertEqual(start_of_week(date(2026, 10, 25)), date(2026, 10, 19))

    def test_no_transactions_gives_zero_buckets(self):
        trend = aggregate_weekly_trend([], [], week_count=6, today=self.today)
        buckets = list(trend)
        self.assertEqual(len(trend), 6)
        self.assertEqual(len(buckets), 6)
        self.assertEqual([b["week"] for b in buckets], ["W1", "W2", "W3", "W4", "W5", "W6"])
        for bucket in buckets:
            self.assertEqual(bucket["collections"], Decimal("0"))

    def test_last_bucket_contains_today(self):
        buckets = list(WeeklyTrend([], [], week_count=6, today=self.today))
        self.assertEqual(buckets[-1]["week_start"], date(2026, 10, 19))
        self.assertEqual(buckets[-1]["week_end"], date(2026, 10, 26))
        self.assertEqual(buckets[0]["week_start"], date(2026, 9, 14))

    def test_credits_land_in_their_week(self):
        transactions = [
            entry("credit", "100", date(2026, 10, 18)),
            entry("credit", "200", date(2026, 10, 19)),
            entry("credit", "50", date(2026, 10, 21)),
            entry("debit", "999", date(2026, 10, 20)),
            entry("credit", "70", date(2026, 8, 1)),
        ]
        buckets = list(WeeklyTrend(transactions, [], week_count=6, today=self.today))
        self.assertEqual(buckets[-1]["collections"], Decimal("250"))
        self.assertEqual(buckets[-2]["collections"], Decimal("100"))
        self.assertEqual(
            sum(b["collections"] for b in buckets[:-2]), Decimal("0")
        )

    def test_cash_position_excludes_mm_and_closed_accounts(self):
        accounts = [
            {"account_type": "savings", "balance": Decimal("1000"), "is_active": True},
            {"account_type": "shares", "balance": Decimal("500"), "is_active": True},
            {"account_type": "mm", "balance": Decimal("300"), "is_active": True},
            {"account_type": "loan", "balance": Decimal("600"), "is_active": True},
            {"account_type": "savings", "balance": Decimal("80"), "is_active": False},
        ]
        buckets = list(WeeklyTrend([], accounts, week_count=2, today=self.today))
        for bucket in buckets:
            self.assertEqual(bucket["outstanding_loans"], Decimal("600"))
            self.assertEqual(bucket["cash_position"], Decimal("900"))

    def test_trend_can_be_iterated_again(self):
        trend = WeeklyTrend(
            [entry("credit", "10", date(2026, 10, 20))], [], week_count=3, today=self.today
        )
        self.assertEqual(list(trend), list(trend))

    def test_zero_weeks(self):
        self.assertEqual(list(WeeklyTrend([], [], week_count=0, today=self.today)), [])

    def test_negative_weeks_are_rejected(self):
        with self.assertRaises(ValueError):
            WeeklyTrend([], [], week_count=-1)


class ExportTests(SimpleTestCase):
    def test_header_row(self):
        buffer = io.StringIO()
        rows = write_transactions_csv([], buffer)
        self.assertEqual(rows, 0)
        self.assertEqual(buffer.getvalue().strip(), ",".join(EXPORT_HEADERS))

    def test_signed_amount_column_sums_to_balance(self):
        for account_type, transactions in (
            (
                "savings",
                [entry("credit", "500000"), entry("debit", "150000"), entry("credit", "25.50")],
            ),
            ("loan", [entry("debit", "10000000"), entry("credit", "2000000")]),
        ):
            with self.subTest(account_type=account_type):
                rows = []
                balance = Decimal("0")
                for txn in transactions:
                    balance = append_transaction(
                        balance, txn["amount"], txn["direction"], account_type
                    )
                    rows.append(dict(txn, account_type=account_type, balance_after=balance))

                buffer = io.StringIO()
                write_transactions_csv(rows, buffer)
                buffer.seek(0)
                exported = list(csv.DictReader(buffer))

                self.assertEqual(len(exported), len(rows))
                self.assertEqual(
                    sum(Decimal(row["Amount"]) for row in exported),
                    compute_account_balance(transactions, account_type),
                )
                self.assertEqual(Decimal(exported[-1]["Balance After"]), balance)

    def test_export_row_labels(self):
        row = export_row(
            entry("debit", "150", narration="Withdrawal", account_type="fixed_deposit", balance_after=0)
        )
        self.assertEqual(row["Date"], "2026-10-21")
        self.assertEqual(row["Account"], "Fixed Deposit")
        self.assertEqual(row["Type"], "Debit")
        self.assertEqual(row["Amount"], "-150.00")


class LedgerTestMixin:
    def create_member(self, **kwargs):
        defaults = {"first_name": "Jane", "last_name": "Nakato", "phone": "0772123456"}
        defaults.update(kwargs)
        return Member.objects.create(**defaults)


class PostingTests(LedgerTestMixin, TestCase):
    def setUp(self):
        self.clerk = User.objects.create_user(
            username="clerk", password="password", is_staff=True
        )
        self.member = self.create_member()

    def test_posting_opens_account_and_caches_balance(self):
        txn = post_transaction(
            self.member, "savings", "credit", Decimal("500000"), posted_by=self.clerk
        )
        account = Account.objects.get(member=self.member, account_type="savings")
        self.assertEqual(txn.account, account)
        self.assertEqual(txn.balance_after, Decimal("500000"))
        self.assertEqual(account.balance, Decimal("500000"))
        self.assertTrue(account.account_no.startswith("SAV"))
        self.assertTrue(txn.reference_no.startswith("SAV"))

        post_transaction(self.member, "savings", "debit", Decimal("150000"))
        account.refresh_from_db()
        self.member.refresh_from_db()
        self.assertEqual(account.balance, Decimal("350000"))
        self.assertEqual(account.get_calculated_balance(), Decimal("350000"))
        self.assertEqual(self.member.savings_balance, Decimal("350000"))
        self.assertEqual(Account.objects.filter(member=self.member).count(), 1)

    def test_loan_balance_is_amount_owed(self):
        post_transaction(self.member, "loan", "debit", Decimal("10000000"))
        post_transaction(self.member, "loan", "credit", Decimal("2000000"))
        self.member.refresh_from_db()
        self.assertEqual(self.member.loan_balance, Decimal("8000000"))

    def test_failed_insert_rolls_back_balance(self):
        account = Account.objects.create(member=self.member, account_type="shares")
        with mock.patch.object(
            Transaction.objects, "create", side_effect=RuntimeError("disk full")
        ):
            with self.assertRaises(RuntimeError):
                post_transaction(self.member, "shares", "credit", Decimal("100"))
        account.refresh_from_db()
        self.assertEqual(account.balance, Decimal("0"))

    def test_transactions_are_immutable(self):
        txn = post_transaction(self.member, "savings", "credit", Decimal("100"))
        txn.amount = Decimal("1")
        with self.assertRaises(ImmutableTransactionError):
            txn.save()
        with self.assertRaises(ImmutableTransactionError):
            txn.delete()
        self.assertEqual(Transaction.objects.get(pk=txn.pk).amount, Decimal("100"))

    def test_loan_credit_cannot_exceed_outstanding(self):
        post_transaction(self.member, "loan", "debit", Decimal("1000"))
        with self.assertRaises(RepaymentExceedsBalanceError) as raised:
            post_transaction(self.member, "loan", "credit", Decimal("1500"))
        self.assertEqual(raised.exception.outstanding, Decimal("1000"))
        loan = Account.objects.get(member=self.member, account_type="loan")
        self.assertEqual(loan.balance, Decimal("1000"))
        self.assertEqual(loan.transactions.count(), 1)

    def test_loan_credit_without_loan_opens_nothing(self):
        with self.assertRaises(RepaymentExceedsBalanceError):
            post_transaction(self.member, "loan", "credit", Decimal("100"))
        self.assertFalse(
            Account.objects.filter(member=self.member, account_type="loan").exists()
        )

    @mock.patch("transactions.models.timezone.localdate", return_value=date(2026, 1, 2))
    def test_reference_uses_local_date(self, localdate):
        txn = post_transaction(self.member, "savings", "credit", Decimal("1"))
        self.assertEqual(txn.reference_no, "SAV202601020001")

    def test_reference_numbers_are_sequential(self):
        first = post_transaction(self.member, "savings", "credit", Decimal("1"))
        second = post_transaction(self.member, "savings", "credit", Decimal("2"))
        self.assertEqual(first.reference_no[:-4], second.reference_no[:-4])
        self.assertEqual(int(second.reference_no[-4:]), int(first.reference_no[-4:]) + 1)

    def test_staff_reference_is_kept(self):
        txn = post_transaction(
            self.member, "savings", "credit", Decimal("1"), reference_no="RCPT-0042"
        )
        self.assertEqual(txn.reference_no, "RCPT-0042")


class NotificationTests(LedgerTestMixin, TestCase):
    def setUp(self):
        self.member = self.create_member(email="jane@example.com")
        self.txn = post_transaction(self.member, "savings", "credit", Decimal("5000"))

    @mock.patch("resend.Emails.send", return_value={"id": "email-1"})
    def test_sends_confirmation(self, send):
        response = send_transaction_made_email(self.member, self.txn)
        self.assertEqual(response, {"id": "email-1"})
        params = send.call_args[0][0]
        self.assertEqual(params["to"], ["jane@example.com"])
        self.assertIn(self.txn.reference_no, params["html"])

    @mock.patch("resend.Emails.send", side_effect=Exception("service down"))
    def test_failure_is_logged_not_raised(self, send):
        with self.assertLogs("transactions.utils.notifications", level="ERROR"):
            self.assertIsNone(send_transaction_made_email(self.member, self.txn))


class TransactionAPITests(LedgerTestMixin, APITestCase):
    url = "/api/v1/transactions/"

    def setUp(self):
        self.clerk = User.objects.create_user(
            username="clerk", password="password", is_staff=True
        )
        self.viewer = User.objects.create_user(username="viewer", password="password")
        self.member = self.create_member()
        self.client.force_authenticate(user=self.clerk)

    def post_entry(self, **data):
        payload = {
            "member": self.member.member_no,
            "account_type": "savings",
            "direction": "credit",
            "amount": "500000.00",
        }
        payload.update(data)
        return self.client.post(self.url, payload)

    def test_create_transaction(self):
        response = self.post_entry(narration="Weekly savings")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["account_type"], "savings")
        self.assertEqual(Decimal(response.data["balance_after"]), Decimal("500000"))
        self.assertEqual(response.data["created_by"], "clerk")

        txn = Transaction.objects.get()
        self.assertEqual(txn.created_by, self.clerk)
        self.member.refresh_from_db()
        self.assertEqual(self.member.savings_balance, Decimal("500000"))

    def test_amount_must_be_positive(self):
        for amount in ("0", "-10"):
            with self.subTest(amount=amount):
                response = self.post_entry(amount=amount)
                self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertIn("amount", response.data)
        self.assertFalse(Transaction.objects.exists())

    def test_unknown_account_type(self):
        response = self.post_entry(account_type="current")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("account_type", response.data)

    def test_inactive_member_cannot_transact(self):
        self.member.status = "suspended"
        self.member.save()
        response = self.post_entry()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("member", response.data)

    def test_non_staff_can_read_but_not_post(self):
        self.post_entry()
        self.client.force_authenticate(user=self.viewer)
        self.assertEqual(self.client.get(self.url).status_code, status.HTTP_200_OK)
        self.assertEqual(self.post_entry().status_code, status.HTTP_403_FORBIDDEN)

    def test_anonymous_is_rejected(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(self.url)
        self.assertIn(
            response.status_code,
            (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN),
        )

    @mock.patch("transactions.views.send_transaction_made_email")
    def test_member_with_email_is_notified(self, send_email):
        self.member.email = "jane@example.com"
        self.member.save()
        self.post_entry()
        send_email.assert_called_once()

    @mock.patch("transactions.views.send_transaction_made_email")
    def test_member_without_email_is_not_notified(self, send_email):
        self.post_entry()
        send_email.assert_not_called()

    def test_filters(self):
        other = self.create_member(first_name="Peter", last_name="Okello", phone="0701000000")
        post_transaction(self.member, "savings", "credit", Decimal("100"), txn_date=date(2026, 1, 10))
        post_transaction(self.member, "savings", "debit", Decimal("40"), txn_date=date(2026, 2, 10))
        post_transaction(other, "shares", "credit", Decimal("900"), txn_date=date(2026, 3, 10))

        def count(**params):
            response = self.client.get(self.url, params)
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            return response.data["count"]

        self.assertEqual(count(), 3)
        self.assertEqual(count(direction="credit"), 2)
        self.assertEqual(count(direction="all"), 3)
        self.assertEqual(count(account_type="shares"), 1)
        self.assertEqual(count(member_no=self.member.member_no), 2)
        self.assertEqual(count(search="okello"), 1)
        self.assertEqual(count(date_from="2026-02-01"), 2)
        self.assertEqual(count(date_from="2026-02-01", date_to="2026-02-28"), 1)
        self.assertEqual(count(min_amount="100"), 2)
        self.assertEqual(count(max_amount="100"), 2)

    def test_bad_filter_values(self):
        self.assertEqual(
            self.client.get(self.url, {"date_from": "10/01/2026"}).status_code,
            status.HTTP_400_BAD_REQUEST,
        )
        self.assertEqual(
            self.client.get(self.url, {"min_amount": "lots"}).status_code,
            status.HTTP_400_BAD_REQUEST,
        )
        for field in ("min_amount", "max_amount"):
            for value in ("NaN", "Infinity", "-Infinity", "1e999999"):
                with self.subTest(field=field, value=value):
                    for path in ("", "stats/", "download/"):
                        response = self.client.get(f"{self.url}{path}", {field: value})
                        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
                    self.assertIn(field, response.data)
        self.assertFalse(DownloadLog.objects.exists())

    def test_detail_by_reference_number(self):
        txn = post_transaction(self.member, "savings", "credit", Decimal("100"))
        response = self.client.get(f"{self.url}{txn.reference_no}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["reference_no"], txn.reference_no)
        self.assertEqual(
            self.client.get(f"{self.url}NOPE/").status_code, status.HTTP_404_NOT_FOUND
        )

    def test_transactions_cannot_be_edited_over_the_api(self):
        txn = post_transaction(self.member, "savings", "credit", Decimal("100"))
        detail = f"{self.url}{txn.reference_no}/"
        self.assertEqual(
            self.client.patch(detail, {"amount": "1"}).status_code,
            status.HTTP_405_METHOD_NOT_ALLOWED,
        )
        self.assertEqual(
            self.client.delete(detail).status_code, status.HTTP_405_METHOD_NOT_ALLOWED
        )

    def test_stats(self):
        post_transaction(self.member, "savings", "credit", Decimal("500"))
        post_transaction(self.member, "savings", "credit", Decimal("250"))
        post_transaction(self.member, "savings", "debit", Decimal("100"))
        response = self.client.get(f"{self.url}stats/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_transactions"], 3)
        self.assertEqual(response.data["total_credits"], 750.0)
        self.assertEqual(response.data["total_debits"], 100.0)
        self.assertEqual(response.data["net_flow"], 650.0)

        response = self.client.get(f"{self.url}stats/", {"direction": "debit"})
        self.assertEqual(response.data["total_transactions"], 1)

    def test_recent(self):
        for amount in ("1", "2", "3"):
            post_transaction(self.member, "savings", "credit", Decimal(amount))
        response = self.client.get(f"{self.url}recent/", {"limit": 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 2)

    @mock.patch(
        "cloudinary.uploader.upload",
        return_value={"secure_url": "https://res.cloudinary.com/demo/raw/upload/export.csv"},
    )
    def test_download(self, upload):
        post_transaction(self.member, "savings", "credit", Decimal("500000"))
        post_transaction(self.member, "savings", "debit", Decimal("150000"))
        post_transaction(self.member, "loan", "debit", Decimal("1000"))

        response = self.client.get(f"{self.url}download/", {"account_type": "savings"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], "text/csv")
        self.assertIn("attachment;", response["Content-Disposition"])

        content = b"".join(response.streaming_content).decode()
        rows = list(csv.DictReader(io.StringIO(content)))
        self.assertEqual(len(rows), 2)
        self.assertEqual(sum(Decimal(row["Amount"]) for row in rows), Decimal("350000"))

        log = DownloadLog.objects.get()
        self.assertEqual(log.admin, self.clerk)
        self.assertEqual(log.row_count, 2)
        self.assertEqual(log.cloudinary_url, upload.return_value["secure_url"])

    @mock.patch("cloudinary.uploader.upload", side_effect=Exception("no credentials"))
    def test_download_survives_archive_failure(self, upload):
        post_transaction(self.member, "savings", "credit", Decimal("10"))
        response = self.client.get(f"{self.url}download/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        content = b"".join(response.streaming_content).decode()
        self.assertTrue(content.startswith("Date,Account,Type,Narration,Amount,Balance After"))
        self.assertIsNone(DownloadLog.objects.get().cloudinary_url)

    def test_download_is_staff_only(self):
        self.client.force_authenticate(user=self.viewer)
        response = self.client.get(f"{self.url}download/")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class LoanAPITests(LedgerTestMixin, APITestCase):
    def setUp(self):
        self.clerk = User.objects.create_user(
            username="clerk", password="password", is_staff=True
        )
        self.member = self.create_member()
        self.client.force_authenticate(user=self.clerk)

    def disburse(self, amount):
        return self.client.post(
            "/api/v1/transactions/loans/disburse/",
            {"member": self.member.member_no, "amount": amount},
        )

    def repay(self, amount):
        return self.client.post(
            "/api/v1/transactions/loans/repay/",
            {"member": self.member.member_no, "amount": amount},
        )

    def test_disburse_then_repay(self):
        response = self.disburse("10000000")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["direction"], "debit")
        self.assertEqual(response.data["account_type"], "loan")

        response = self.repay("2000000")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data["balance_after"]), Decimal("8000000"))

        self.member.refresh_from_db()
        self.assertEqual(self.member.loan_balance, Decimal("8000000"))

    def test_repayment_cannot_exceed_outstanding(self):
        self.disburse("1000")
        response = self.repay("1500")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("amount", response.data)
        self.assertEqual(Transaction.objects.count(), 1)

    def test_repayment_without_loan(self):
        response = self.repay("100")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("member", response.data)

    def test_generic_loan_credit_is_bounded_like_a_repayment(self):
        self.disburse("1000")
        response = self.client.post(
            "/api/v1/transactions/",
            {
                "member": self.member.member_no,
                "account_type": "loan",
                "direction": "credit",
                "amount": "5000",
            },
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("amount", response.data)
        loan = Account.objects.get(member=self.member, account_type="loan")
        self.assertEqual(loan.balance, Decimal("1000"))

        response = self.client.get("/api/v1/dashboard/stats/")
        self.assertEqual(response.data["total_loans"], 1000.0)

    def test_generic_loan_credit_without_loan(self):
        response = self.client.post(
            "/api/v1/transactions/",
            {
                "member": self.member.member_no,
                "account_type": "loan",
                "direction": "credit",
                "amount": "100",
            },
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("member", response.data)
        self.assertFalse(Account.objects.filter(member=self.member).exists())

    def test_repayment_rechecked_when_posting(self):
        self.disburse("1000")
        # a competing repayment lands after validation has passed
        post_transaction(self.member, "loan", "credit", Decimal("800"))
        with mock.patch(
            "transactions.serializers.BasePostingSerializer.validate",
            side_effect=lambda attrs: attrs,
        ):
            response = self.repay("500")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("200", str(response.data["amount"]))
        loan = Account.objects.get(member=self.member, account_type="loan")
        self.assertEqual(loan.get_calculated_balance(), Decimal("200"))

    def test_full_repayment_clears_loan(self):
        self.disburse("1000")
        self.assertEqual(self.repay("1000").status_code, status.HTTP_201_CREATED)
        loan = Account.objects.get(member=self.member, account_type="loan")
        self.assertEqual(loan.get_calculated_balance(), Decimal("0"))


class MemberStatementTests(LedgerTestMixin, APITestCase):
    def setUp(self):
        self.viewer = User.objects.create_user(username="viewer", password="password")
        self.member = self.create_member()
        post_transaction(self.member, "savings", "credit", Decimal("500"), txn_date=date(2026, 1, 5))
        post_transaction(self.member, "savings", "debit", Decimal("200"), txn_date=date(2026, 2, 1))
        post_transaction(self.member, "savings", "credit", Decimal("100"), txn_date=date(2026, 3, 1))
        post_transaction(self.member, "loan", "debit", Decimal("1000"), txn_date=date(2026, 2, 15))
        self.url = f"/api/v1/transactions/statement/{self.member.member_no}/"
        self.client.force_authenticate(user=self.viewer)

    def test_full_statement(self):
        response = self.client.get(self.url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        accounts = {row["account_type"]: row for row in response.data["accounts"]}
        self.assertEqual(set(accounts), {"savings", "loan"})
        savings = accounts["savings"]
        self.assertEqual(
            [entry["balance"] for entry in savings["entries"]], [500.0, 300.0, 400.0]
        )
        self.assertEqual(savings["closing_balance"], 400.0)
        self.assertEqual(accounts["loan"]["closing_balance"], 1000.0)

    def test_statement_for_period(self):
        response = self.client.get(
            self.url, {"account_type": "savings", "date_from": "2026-02-01"}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        savings = response.data["accounts"][0]
        self.assertEqual(len(response.data["accounts"]), 1)
        self.assertEqual(savings["opening_balance"], 500.0)
        self.assertEqual(len(savings["entries"]), 2)
        self.assertEqual(savings["closing_balance"], 400.0)

    def test_unknown_member(self):
        response = self.client.get("/api/v1/transactions/statement/M9999/")
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unknown_account_type(self):
        response = self.client.get(self.url, {"account_type": "current"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ReconcileBalancesCommandTests(LedgerTestMixin, TestCase):
    def setUp(self):
        self.member = self.create_member()
        post_transaction(self.member, "savings", "credit", Decimal("500"))
        self.account = Account.objects.get(member=self.member, account_type="savings")

    def run_command(self, *args):
        out = io.StringIO()
        call_command("reconcile_balances", *args, stdout=out)
        return out.getvalue()

    def test_agreeing_balances(self):
        self.assertIn("all balances agree", self.run_command())

    def test_reports_divergence_without_fixing(self):
        Account.objects.filter(pk=self.account.pk).update(balance=Decimal("999"))
        output = self.run_command()
        self.assertIn(self.account.account_no, output)
        self.account.refresh_from_db()
        self.assertEqual(self.account.balance, Decimal("999"))

    def test_fix_rewrites_stored_balances(self):
        Account.objects.filter(pk=self.account.pk).update(balance=Decimal("999"))
        Member.objects.filter(pk=self.member.pk).update(savings_balance=Decimal("999"))
        self.run_command("--fix")
        self.account.refresh_from_db()
        self.member.refresh_from_db()
        self.assertEqual(self.account.balance, Decimal("500"))
        self.assertEqual(self.member.savings_balance, Decimal("500"))
