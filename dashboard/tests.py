from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from members.models import Member
from transactions.utils.ledger import start_of_week
from transactions.utils.posting import post_transaction

User = get_user_model()


class DashboardAPITests(APITestCase):
    url = "/api/v1/dashboard/"

    def setUp(self):
        self.viewer = User.objects.create_user(username="viewer", password="password")
        self.jane = Member.objects.create(
            first_name="Jane", last_name="Nakato", phone="0772123456"
        )
        Member.objects.create(
            first_name="Peter", last_name="Okello", phone="0701000000", status="inactive"
        )
        self.client.force_authenticate(user=self.viewer)

    def test_requires_login(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(f"{self.url}stats/")
        self.assertIn(
            response.status_code,
            (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN),
        )

    def test_stats(self):
        today = timezone.localdate()
        post_transaction(self.jane, "savings", "credit", Decimal("500000"), txn_date=today)
        post_transaction(self.jane, "shares", "credit", Decimal("200000"), txn_date=today)
        post_transaction(self.jane, "mm", "credit", Decimal("50000"), txn_date=today)
        post_transaction(self.jane, "loan", "debit", Decimal("1000000"), txn_date=today)

        response = self.client.get(f"{self.url}stats/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data
        self.assertEqual(data["total_members"], 2)
        self.assertEqual(data["active_members"], 1)
        self.assertEqual(data["new_members_this_month"], 2)
        self.assertEqual(data["total_savings"], 500000.0)
        self.assertEqual(data["total_shares"], 200000.0)
        self.assertEqual(data["total_loans"], 1000000.0)
        self.assertEqual(data["cash_in_bank"], -300000.0)
        self.assertEqual(data["weekly_collections"], 750000.0)
        self.assertEqual(data["weekly_collections_change"], 0.0)
        self.assertEqual(data["active_loans_count"], 1)
        self.assertEqual(
            data["portfolio"],
            {
                "total_assets": 750000.0,
                "total_liabilities": 1000000.0,
                "net_worth": -250000.0,
            },
        )

    def test_weekly_collections_change(self):
        this_week = start_of_week(timezone.localdate())
        post_transaction(
            self.jane, "savings", "credit", Decimal("100"), txn_date=this_week - timedelta(days=3)
        )
        post_transaction(self.jane, "savings", "credit", Decimal("150"), txn_date=this_week)
        response = self.client.get(f"{self.url}stats/")
        self.assertEqual(response.data["weekly_collections"], 150.0)
        self.assertEqual(response.data["weekly_collections_change"], 50.0)

    def test_weekly_trends(self):
        today = timezone.localdate()
        post_transaction(self.jane, "savings", "credit", Decimal("400"), txn_date=today)
        post_transaction(self.jane, "loan", "debit", Decimal("1000"), txn_date=today)

        response = self.client.get(f"{self.url}weekly-trends/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 6)
        self.assertEqual(response.data[-1]["week"], "W6")
        self.assertEqual(response.data[-1]["collections"], 400.0)
        self.assertEqual(response.data[-1]["outstanding_loans"], 1000.0)
        self.assertEqual(response.data[-1]["cash_position"], -600.0)
        self.assertEqual(
            sum(bucket["collections"] for bucket in response.data[:-1]), 0.0
        )

    def test_weekly_trends_week_count(self):
        response = self.client.get(f"{self.url}weekly-trends/", {"weeks": 3})
        self.assertEqual(len(response.data), 3)
        response = self.client.get(f"{self.url}weekly-trends/", {"weeks": "abc"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    @override_settings(WEEKLY_TREND_WEEKS=4)
    def test_weekly_trends_default_from_settings(self):
        response = self.client.get(f"{self.url}weekly-trends/")
        self.assertEqual(len(response.data), 4)

    def test_loan_summary(self):
        today = timezone.localdate()
        post_transaction(self.jane, "loan", "debit", Decimal("1000000"), txn_date=today)
        post_transaction(self.jane, "loan", "credit", Decimal("200000"), txn_date=today)

        response = self.client.get(f"{self.url}loan-summary/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.data,
            {
                "total_outstanding": 800000.0,
                "active_loans": 1,
                "overdue_loans": 0,
                "disbursed_this_month": 1000000.0,
                "repayments_this_month": 200000.0,
            },
        )

    def test_recent_transactions(self):
        for amount in ("1", "2", "3", "4", "5", "6"):
            post_transaction(self.jane, "savings", "credit", Decimal(amount))
        response = self.client.get(f"{self.url}recent-transactions/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 5)
        response = self.client.get(f"{self.url}recent-transactions/", {"limit": 2})
        self.assertEqual(len(response.data), 2)
        self.assertEqual(response.data[0]["member_no"], self.jane.member_no)
