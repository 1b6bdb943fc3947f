from rest_framework import serializers

from members.models import Member
from transactions.utils.reporting_service import ReportingService


class MemberSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source="get_full_name", read_only=True)
    email = serializers.EmailField(required=False, allow_null=True, allow_blank=True)

    class Meta:
        model = Member
        fields = (
            "id",
            "member_no",
            "first_name",
            "last_name",
            "full_name",
            "phone",
            "email",
            "status",
            "joined_date",
            "shares_balance",
            "savings_balance",
            "loan_balance",
            "reference",
            "created_at",
            "updated_at",
        )
        read_only_fields = (
            "member_no",
            "shares_balance",
            "savings_balance",
            "loan_balance",
        )

    def validate_phone(self, phone):
        phone = phone.strip()
        digits = phone.lstrip("+").replace(" ", "")
        if not digits.isdigit() or len(digits) < 9:
            raise serializers.ValidationError("Enter a valid phone number.")
        return phone

    def validate_email(self, email):
        return email or None


class MemberStatusSerializer(serializers.ModelSerializer):
    status = serializers.ChoiceField(choices=Member.STATUS_CHOICES)

    class Meta:
        model = Member
        fields = ("member_no", "status")
        read_only_fields = ("member_no",)


class MemberOptionSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source="get_full_name", read_only=True)

    class Meta:
        model = Member
        fields = ("id", "member_no", "full_name")


class MemberDetailSerializer(MemberSerializer):
    accounts = serializers.SerializerMethodField()
    portfolio = serializers.SerializerMethodField()

    class Meta(MemberSerializer.Meta):
        fields = MemberSerializer.Meta.fields + ("accounts", "portfolio")

    def _portfolio(self, obj):
        # accounts and portfolio share one replay of the member's ledger
        if not hasattr(self, "_portfolio_cache"):
            self._portfolio_cache = {}
        if obj.pk not in self._portfolio_cache:
            self._portfolio_cache[obj.pk] = ReportingService.member_portfolio(obj)
        return self._portfolio_cache[obj.pk]

    def get_accounts(self, obj):
        balances, _ = self._portfolio(obj)
        return [
            {
                "account_no": row["account"].account_no,
                "account_type": row["account_type"],
                "is_active": row["is_active"],
                "opened_date": row["account"].opened_date,
                "closed_date": row["account"].closed_date,
                "balance": float(row["account"].balance),
                "calculated_balance": float(row["balance"]),
            }
            for row in balances
        ]

    def get_portfolio(self, obj):
        _, summary = self._portfolio(obj)
        return {key: float(value) for key, value in summary.items()}
