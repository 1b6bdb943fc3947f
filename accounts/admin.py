from django.contrib import admin

from accounts.models import Account


class AccountAdmin(admin.ModelAdmin):
    list_display = ("account_no", "member", "account_type", "balance", "is_active")
    search_fields = ("account_no", "member__member_no")
    list_filter = ("account_type", "is_active", "opened_date")
    ordering = ("-created_at",)
    readonly_fields = ("balance",)


admin.site.register(Account, AccountAdmin)
