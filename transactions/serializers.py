from decimal import Decimal

from rest_framework import serializers

from accounts.models import Account
from members.models import Member
from transactions.models import RepaymentExceedsBalanceError, Transaction
from transactions.utils.ledger import compute_account_balance
from transactions.utils.posting import post_transaction


class TransactionSerializer(serializers.ModelSerializer):
    member_no = serializers.CharField(source="member.member_no", read_only=True)
    member_name = serializers.CharField(source="member.get_full_name", read_only=True)
    account_no = serializers.CharField(source="account.account_no", read_only=True)
    account_type = serializers.CharField(source="account.account_type", read_only=True)
    created_by = serializers.CharField(source="created_by.username", read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "reference_no",
            "txn_date",
            "member_no",
            "member_name",
            "account_no",
            "account_type",
            "direction",
            "amount",
            "narration",
            "balance_after",
            "created_by",
            "created_at",
            "reference",
        ]
        read_only_fields = fields


class BasePostingSerializer(serializers.Serializer):
    member = serializers.SlugRelatedField(
        slug_field="member_no", queryset=Member.objects.all()
    )
    amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, min_value=Decimal("0.01")
    )
    narration = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    txn_date = serializers.DateField(required=False)
    reference_no = serializers.CharField(
        required=False, allow_blank=True, max_length=50
    )

    posting_account_type = None
    posting_direction = None

    def validate_member(self, member):
        if member.status != "active":
            raise serializers.ValidationError(
                f"Member {member.member_no} is {member.status}; transactions can only be posted for active members."
            )
        return member

    def validate(self, attrs):
        if self.get_account_type(attrs) == "loan" and self.get_direction(attrs) == "credit":
            member = attrs["member"]
            loan = Account.objects.filter(
                member=member, account_type="loan", is_active=True
            ).first()
            outstanding = (
                compute_account_balance(loan.transactions.all(), "loan")
                if loan
                else Decimal("0")
            )
            if outstanding <= 0:
                raise serializers.ValidationError(
                    {"member": f"{member.member_no} has no outstanding loan."}
                )
            if attrs["amount"] > outstanding:
                raise serializers.ValidationError(
                    {
                        "amount": f"Repayment exceeds the outstanding loan balance of {outstanding}."
                    }
                )
        return attrs

    def get_account_type(self, validated_data):
        return self.posting_account_type

    def get_direction(self, validated_data):
        return self.posting_direction

    def create(self, validated_data):
        try:
            return post_transaction(
                member=validated_data["member"],
                account_type=self.get_account_type(validated_data),
                direction=self.get_direction(validated_data),
                amount=validated_data["amount"],
                narration=validated_data.get("narration"),
                txn_date=validated_data.get("txn_date"),
                reference_no=validated_data.get("reference_no", ""),
                posted_by=validated_data.get("posted_by"),
            )
        except RepaymentExceedsBalanceError as e:
            # another repayment landed between validation and posting
            raise serializers.ValidationError(
                {
                    "amount": f"Repayment exceeds the outstanding loan balance of {e.outstanding}."
                }
            )

    def to_representation(self, instance):
        return TransactionSerializer(instance, context=self.context).data


class TransactionCreateSerializer(BasePostingSerializer):
    account_type = serializers.ChoiceField(choices=Account.ACCOUNT_TYPE_CHOICES)
    direction = serializers.ChoiceField(choices=Transaction.DIRECTION_CHOICES)

    def get_account_type(self, validated_data):
        return validated_data["account_type"]

    def get_direction(self, validated_data):
        return validated_data["direction"]


class LoanDisbursementSerializer(BasePostingSerializer):
    posting_account_type = "loan"
    posting_direction = "debit"


class LoanRepaymentSerializer(BasePostingSerializer):
    posting_account_type = "loan"
    posting_direction = "credit"
