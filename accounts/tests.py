from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from accounts.models import Account
from accounts.utils import generate_account_number, generate_reference
from members.models import Member
from transactions.utils.posting import post_transaction

User = get_user_model()


class AccountModelTests(TestCase):
    def setUp(self):
        self.member = Member.objects.create(
            first_name="Jane", last_name="Nakato", phone="0772123456"
        )

    def test_account_number_format(self):
        account_no = generate_account_number("fixed_deposit")
        self.assertTrue(account_no.startswith("FXD"))
        self.assertEqual(len(account_no), 13)
        self.assertTrue(account_no[3:].isdigit())

    def test_reference_format(self):
        reference = generate_reference()
        self.assertEqual(len(reference), 12)
        self.assertEqual(reference, reference.upper())

    def test_one_active_account_per_type(self):
        Account.objects.create(member=self.member, account_type="savings")
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Account.objects.create(member=self.member, account_type="savings")

    def test_closed_account_can_be_replaced(self):
        account = Account.objects.create(member=self.member, account_type="mm")
        account.close()
        replacement = Account.objects.create(member=self.member, account_type="mm")
        self.assertNotEqual(account.account_no, replacement.account_no)
        self.assertIsNotNone(account.closed_date)

    def test_calculated_balance_ignores_stored_balance(self):
        post_transaction(self.member, "shares", "credit", Decimal("250"))
        account = Account.objects.get(member=self.member, account_type="shares")
        Account.objects.filter(pk=account.pk).update(balance=Decimal("1"))
        account.refresh_from_db()
        self.assertEqual(account.get_calculated_balance(), Decimal("250"))


class AccountAPITests(APITestCase):
    url = "/api/v1/accounts/"

    def setUp(self):
        self.clerk = User.objects.create_user(
            username="clerk", password="password", is_staff=True
        )
        self.viewer = User.objects.create_user(username="viewer", password="password")
        self.member = Member.objects.create(
            first_name="Jane", last_name="Nakato", phone="0772123456"
        )
        self.client.force_authenticate(user=self.clerk)

    def test_open_account(self):
        response = self.client.post(
            self.url, {"member": self.member.member_no, "account_type": "fixed_deposit"}
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data["account_no"].startswith("FXD"))
        self.assertTrue(response.data["is_active"])
        account = Account.objects.get(account_no=response.data["account_no"])
        self.assertEqual(account.opened_by, self.clerk)

    def test_second_active_account_is_rejected(self):
        Account.objects.create(member=self.member, account_type="savings")
        response = self.client.post(
            self.url, {"member": self.member.member_no, "account_type": "savings"}
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("account_type", response.data)

    def test_viewer_cannot_open_accounts(self):
        self.client.force_authenticate(user=self.viewer)
        response = self.client.post(
            self.url, {"member": self.member.member_no, "account_type": "savings"}
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filters(self):
        Account.objects.create(member=self.member, account_type="savings")
        closed = Account.objects.create(member=self.member, account_type="shares")
        closed.close()
        other = Member.objects.create(first_name="Peter", last_name="Okello", phone="0701000000")
        Account.objects.create(member=other, account_type="savings")

        response = self.client.get(self.url, {"member_no": self.member.member_no})
        self.assertEqual(response.data["count"], 2)
        response = self.client.get(self.url, {"account_type": "savings"})
        self.assertEqual(response.data["count"], 2)
        response = self.client.get(self.url, {"is_active": "false"})
        self.assertEqual(response.data["count"], 1)

    def test_detail_shows_calculated_balance(self):
        post_transaction(self.member, "savings", "credit", Decimal("500000"))
        post_transaction(self.member, "savings", "debit", Decimal("150000"))
        account = Account.objects.get(member=self.member, account_type="savings")
        response = self.client.get(f"{self.url}{account.account_no}/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data["calculated_balance"]), Decimal("350000"))
        self.assertEqual(response.data["member"], self.member.member_no)

    def test_close_empty_account(self):
        account = Account.objects.create(member=self.member, account_type="mm")
        response = self.client.post(f"{self.url}{account.account_no}/close/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        account.refresh_from_db()
        self.assertFalse(account.is_active)
        self.assertIsNotNone(account.closed_date)

        response = self.client.post(f"{self.url}{account.account_no}/close/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_close_account_holding_money(self):
        post_transaction(self.member, "savings", "credit", Decimal("10"))
        account = Account.objects.get(member=self.member, account_type="savings")
        response = self.client.post(f"{self.url}{account.account_no}/close/")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        account.refresh_from_db()
        self.assertTrue(account.is_active)
