from django.contrib import admin

from transactions.models import Transaction, DownloadLog


class TransactionAdmin(admin.ModelAdmin):
    list_display = (
        "reference_no",
        "txn_date",
        "member",
        "account",
        "direction",
        "amount",
        "balance_after",
    )
    search_fields = ("reference_no", "member__member_no", "account__account_no")
    list_filter = ("direction", "account__account_type", "txn_date")
    ordering = ("-txn_date", "-created_at")

    # Postings go through the API so that balances stay in step.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class DownloadLogAdmin(admin.ModelAdmin):
    list_display = ("file_name", "admin", "row_count", "timestamp")
    ordering = ("-timestamp",)


admin.site.register(Transaction, TransactionAdmin)
admin.site.register(DownloadLog, DownloadLogAdmin)
