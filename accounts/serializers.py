from rest_framework import serializers

from accounts.models import Account
from members.models import Member


class AccountSerializer(serializers.ModelSerializer):
    member = serializers.SlugRelatedField(
        slug_field="member_no", queryset=Member.objects.all()
    )
    member_name = serializers.CharField(source="member.get_full_name", read_only=True)
    calculated_balance = serializers.DecimalField(
        max_digits=14,
        decimal_places=2,
        source="get_calculated_balance",
        read_only=True,
    )

    class Meta:
        model = Account
        fields = [
            "id",
            "member",
            "member_name",
            "account_type",
            "account_no",
            "balance",
            "calculated_balance",
            "is_active",
            "opened_date",
            "closed_date",
            "reference",
            "created_at",
            "updated_at",
        ]
        # active-account uniqueness is checked in validate()
        validators = []
        read_only_fields = [
            "account_no",
            "balance",
            "is_active",
            "closed_date",
        ]

    def validate(self, attrs):
        member = attrs.get("member")
        account_type = attrs.get("account_type")
        if Account.objects.filter(
            member=member, account_type=account_type, is_active=True
        ).exists():
            raise serializers.ValidationError(
                {
                    "account_type": f"{member.member_no} already has an active {account_type} account."
                }
            )
        return attrs
