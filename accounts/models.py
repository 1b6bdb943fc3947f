from django.db import models
from django.db.models import Q
from django.conf import settings
from django.utils import timezone

from accounts.abstracts import TimeStampedModel, UniversalIdModel, ReferenceModel
from accounts.utils import generate_account_number
from transactions.utils.ledger import compute_account_balance


class Account(TimeStampedModel, UniversalIdModel, ReferenceModel):
    ACCOUNT_TYPE_CHOICES = [
        ("shares", "Shares"),
        ("savings", "Savings"),
        ("fixed_deposit", "Fixed Deposit"),
        ("loan", "Loan"),
        ("mm", "MM"),
        ("development_fund", "Development Fund"),
    ]

    member = models.ForeignKey(
        "members.Member", on_delete=models.PROTECT, related_name="accounts"
    )
    account_type = models.CharField(max_length=20, choices=ACCOUNT_TYPE_CHOICES)
    account_no = models.CharField(max_length=20, unique=True, blank=True)
    # Cached by the posting path; the ledger is the source of truth.
    balance = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    is_active = models.BooleanField(default=True)
    opened_date = models.DateField(default=timezone.localdate)
    closed_date = models.DateField(null=True, blank=True)
    opened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="opened_accounts",
    )

    class Meta:
        verbose_name = "Account"
        verbose_name_plural = "Accounts"
        ordering = ["account_type", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["member", "account_type"],
                condition=Q(is_active=True),
                name="unique_active_account_per_member_type",
            )
        ]
        indexes = [
            models.Index(
                fields=["account_type", "is_active"],
                name="accounts_ac_account_4f1d9a_idx",
            ),
        ]

    def __str__(self):
        return f"{self.account_no} - {self.get_account_type_display()}"

    def get_calculated_balance(self):
        return compute_account_balance(self.transactions.all(), self.account_type)

    def close(self):
        self.is_active = False
        self.closed_date = timezone.localdate()
        self.save(update_fields=["is_active", "closed_date", "updated_at"])

    def save(self, *args, **kwargs):
        if not self.account_no:
            self.account_no = generate_account_number(self.account_type)
        super().save(*args, **kwargs)
