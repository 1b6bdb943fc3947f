from django.contrib import admin

from members.models import Member


class MemberAdmin(admin.ModelAdmin):
    list_display = (
        "member_no",
        "first_name",
        "last_name",
        "phone",
        "status",
        "joined_date",
    )
    search_fields = ("member_no", "first_name", "last_name", "phone")
    list_filter = ("status", "joined_date")
    ordering = ("member_no",)
    readonly_fields = ("shares_balance", "savings_balance", "loan_balance")

    def has_delete_permission(self, request, obj=None):
        return False


admin.site.register(Member, MemberAdmin)
