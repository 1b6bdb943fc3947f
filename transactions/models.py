from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from django.utils import timezone

from accounts.abstracts import UniversalIdModel, TimeStampedModel, ReferenceModel
from accounts.models import Account

REFERENCE_PREFIXES = {
    "shares": "SHA",
    "savings": "SAV",
    "fixed_deposit": "FXD",
    "loan": "LON",
    "mm": "MMC",
    "development_fund": "DEV",
}


class ImmutableTransactionError(Exception):
    pass


class RepaymentExceedsBalanceError(Exception):
    def __init__(self, member_no, outstanding):
        self.member_no = member_no
        self.outstanding = outstanding
        super().__init__(
            f"Repayment exceeds the outstanding loan balance of {outstanding} for {member_no}."
        )


class Transaction(UniversalIdModel, TimeStampedModel, ReferenceModel):
    DIRECTION_CHOICES = [
        ("debit", "Debit"),
        ("credit", "Credit"),
    ]

    account = models.ForeignKey(
        Account, on_delete=models.PROTECT, related_name="transactions"
    )
    member = models.ForeignKey(
        "members.Member", on_delete=models.PROTECT, related_name="transactions"
    )
    txn_date = models.DateField(default=timezone.localdate)
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(0.01, message="Amount must be greater than 0")],
    )
    direction = models.CharField(max_length=10, choices=DIRECTION_CHOICES)
    narration = models.TextField(blank=True, null=True)
    reference_no = models.CharField(max_length=50, blank=True, db_index=True)
    balance_after = models.DecimalField(max_digits=14, decimal_places=2)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="posted_transactions",
    )

    class Meta:
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        ordering = ["-txn_date", "-created_at"]
        indexes = [
            models.Index(
                fields=["account", "txn_date"], name="transaction_account_8c2e41_idx"
            ),
            models.Index(
                fields=["member", "txn_date"], name="transaction_member__3a7f90_idx"
            ),
            models.Index(
                fields=["direction", "txn_date"], name="transaction_directi_d5b6c3_idx"
            ),
        ]

    def __str__(self):
        return f"{self.reference_no} - {self.direction} {self.amount} on {self.account}"

    def generate_reference_no(self):
        # Not unique: concurrent postings of one type on one day can share a
        # sequence number, and staff may supply their own reference.
        prefix = REFERENCE_PREFIXES.get(self.account.account_type, "TXN")
        date_str = timezone.localdate().strftime("%Y%m%d")
        posted_today = Transaction.objects.filter(
            reference_no__startswith=f"{prefix}{date_str}"
        ).count()
        self.reference_no = f"{prefix}{date_str}{posted_today + 1:04d}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableTransactionError(
                f"Transaction {self.reference_no} has been posted and cannot be changed."
            )
        if not self.reference_no:
            self.generate_reference_no()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableTransactionError(
            f"Transaction {self.reference_no} has been posted and cannot be deleted."
        )


class DownloadLog(UniversalIdModel, TimeStampedModel, ReferenceModel):
    admin = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    timestamp = models.DateTimeField(auto_now_add=True)
    file_name = models.CharField(max_length=100)
    row_count = models.PositiveIntegerField(default=0)
    cloudinary_url = models.URLField(blank=True, null=True)

    def __str__(self):
        return f"DownloadLog {self.file_name} by {self.admin} at {self.timestamp}"
