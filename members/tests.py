from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Account
from members.models import Member
from transactions.utils.posting import post_transaction

User = get_user_model()


class MemberModelTests(TestCase):
    def test_member_numbers_are_sequential(self):
        first = Member.objects.create(first_name="Jane", last_name="Nakato", phone="0772123456")
        second = Member.objects.create(first_name="Peter", last_name="Okello", phone="0701000000")
        self.assertEqual(first.member_no, "M0001")
        self.assertEqual(second.member_no, "M0002")
        self.assertEqual(second.get_full_name(), "Peter Okello")

    def test_refresh_balances_uses_active_accounts(self):
        member = Member.objects.create(first_name="Jane", last_name="Nakato", phone="0772123456")
        post_transaction(member, "shares", "credit", Decimal("300"))
        post_transaction(member, "loan", "debit", Decimal("1000"))
        member.refresh_from_db()
        self.assertEqual(member.shares_balance, Decimal("300"))
        self.assertEqual(member.loan_balance, Decimal("1000"))
        self.assertEqual(member.savings_balance, Decimal("0"))


class MemberAPITests(APITestCase):
    url = "/api/v1/members/"

    def setUp(self):
        self.clerk = User.objects.create_user(
            username="clerk", password="password", is_staff=True
        )
        self.viewer = User.objects.create_user(username="viewer", password="password")
        self.jane = Member.objects.create(
            first_name="Jane", last_name="Nakato", phone="0772123456"
        )
        self.peter = Member.objects.create(
            first_name="Peter", last_name="Okello", phone="0701000000", status="inactive"
        )
        self.client.force_authenticate(user=self.clerk)

    def test_register_member(self):
        response = self.client.post(
            self.url,
            {
                "first_name": "Grace",
                "last_name": "Achieng",
                "phone": "+256 772 000111",
                "email": "grace@example.com",
            },
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data["member_no"], "M0003")
        self.assertEqual(response.data["status"], "active")
        self.assertEqual(response.data["full_name"], "Grace Achieng")
        member = Member.objects.get(member_no="M0003")
        self.assertEqual(member.created_by, self.clerk)

    def test_register_without_email(self):
        response = self.client.post(
            self.url, {"first_name": "Sam", "last_name": "Mugisha", "phone": "0782000222"}
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(Member.objects.get(member_no=response.data["member_no"]).email)

    def test_invalid_phone(self):
        response = self.client.post(
            self.url, {"first_name": "Sam", "last_name": "Mugisha", "phone": "12ab"}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("phone", response.data)

    def test_viewer_cannot_register(self):
        self.client.force_authenticate(user=self.viewer)
        response = self.client.post(
            self.url, {"first_name": "Sam", "last_name": "Mugisha", "phone": "0782000222"}
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_search_and_status_filter(self):
        response = self.client.get(self.url, {"search": "okello"})
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["member_no"], self.peter.member_no)

        response = self.client.get(self.url, {"search": "0772"})
        self.assertEqual(response.data["count"], 1)

        response = self.client.get(self.url, {"status": "active"})
        self.assertEqual(response.data["count"], 1)
        response = self.client.get(self.url, {"status": "all"})
        self.assertEqual(response.data["count"], 2)

    def test_detail_has_accounts_and_portfolio(self):
        post_transaction(self.jane, "savings", "credit", Decimal("300"))
        post_transaction(self.jane, "loan", "debit", Decimal("500"))
        # a stale cached balance must not leak into the response
        Account.objects.filter(member=self.jane, account_type="savings").update(
            balance=Decimal("1")
        )

        response = self.client.get(f"{self.url}{self.jane.member_no}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        accounts = {row["account_type"]: row for row in response.data["accounts"]}
        self.assertEqual(accounts["savings"]["calculated_balance"], 300.0)
        self.assertEqual(accounts["loan"]["calculated_balance"], 500.0)
        self.assertEqual(
            response.data["portfolio"],
            {"total_assets": 300.0, "total_liabilities": 500.0, "net_worth": -200.0},
        )

    def test_update_member(self):
        response = self.client.patch(
            f"{self.url}{self.jane.member_no}/", {"phone": "0772999888"}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.jane.refresh_from_db()
        self.assertEqual(self.jane.phone, "0772999888")

    def test_members_cannot_be_deleted(self):
        response = self.client.delete(f"{self.url}{self.jane.member_no}/")
        self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)
        self.assertTrue(Member.objects.filter(pk=self.jane.pk).exists())

    def test_change_status(self):
        response = self.client.patch(
            f"{self.url}{self.jane.member_no}/status/", {"status": "suspended"}
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.jane.refresh_from_db()
        self.assertEqual(self.jane.status, "suspended")

        response = self.client.patch(
            f"{self.url}{self.jane.member_no}/status/", {"status": "expelled"}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_options_list_active_members(self):
        response = self.client.get(f"{self.url}options/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [row["member_no"] for row in response.data], [self.jane.member_no]
        )
        self.assertEqual(response.data[0]["full_name"], "Jane Nakato")
