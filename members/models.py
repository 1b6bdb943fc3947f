from decimal import Decimal

from django.db import models
from django.conf import settings
from django.utils import timezone

from accounts.abstracts import TimeStampedModel, UniversalIdModel, ReferenceModel
from members.utils import generate_member_number


class Member(TimeStampedModel, UniversalIdModel, ReferenceModel):
    STATUS_CHOICES = [
        ("active", "Active"),
        ("inactive", "Inactive"),
        ("suspended", "Suspended"),
    ]

    member_no = models.CharField(max_length=20, unique=True, blank=True)
    first_name = models.CharField(max_length=255)
    last_name = models.CharField(max_length=255)
    phone = models.CharField(max_length=25)
    email = models.EmailField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active")
    joined_date = models.DateField(default=timezone.localdate)

    # Summary of the member's accounts, refreshed after every posting.
    # loan_balance is the amount owed.
    shares_balance = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    savings_balance = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    loan_balance = models.DecimalField(max_digits=14, decimal_places=2, default=0)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="registered_members",
    )

    class Meta:
        verbose_name = "Member"
        verbose_name_plural = "Members"
        ordering = ["member_no"]
        indexes = [
            models.Index(fields=["status"], name="members_mem_status_6b1c2e_idx"),
        ]

    def __str__(self):
        return f"{self.member_no} - {self.get_full_name()}"

    def get_full_name(self):
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self):
        return self.status == "active"

    def refresh_balances(self):
        totals = {
            row["account_type"]: row["total"]
            for row in self.accounts.filter(is_active=True)
            .values("account_type")
            .order_by()
            .annotate(total=models.Sum("balance"))
        }
        self.shares_balance = totals.get("shares") or Decimal("0")
        self.savings_balance = totals.get("savings") or Decimal("0")
        self.loan_balance = totals.get("loan") or Decimal("0")
        self.save(
            update_fields=[
                "shares_balance",
                "savings_balance",
                "loan_balance",
                "updated_at",
            ]
        )

    def save(self, *args, **kwargs):
        if not self.member_no:
            self.member_no = generate_member_number(Member)
        super().save(*args, **kwargs)
