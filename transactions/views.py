import io
import logging

from django.db.models import Q
from django.http import Http404, StreamingHttpResponse
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from rest_framework import generics, serializers, status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import Account
from accounts.permissions import IsStaff, IsStaffOrReadOnly
from members.models import Member
from transactions.models import DownloadLog, Transaction
from transactions.serializers import (
    LoanDisbursementSerializer,
    LoanRepaymentSerializer,
    TransactionCreateSerializer,
    TransactionSerializer,
)
from transactions.utils.exports import (
    archive_export,
    export_file_name,
    write_transactions_csv,
)
from transactions.utils.ledger import transaction_stats
from transactions.utils.notifications import send_transaction_made_email
from transactions.utils.reporting_service import ReportingService

logger = logging.getLogger(__name__)


def _date_param(params, name):
    value = params.get(name)
    if not value:
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError({name: "Use the YYYY-MM-DD format."})
    return parsed


_AMOUNT_FILTER = serializers.DecimalField(max_digits=14, decimal_places=2)


def _amount_param(params, name):
    value = params.get(name)
    if not value:
        return None
    # rejects NaN, Infinity and values wider than the amount column
    try:
        return _AMOUNT_FILTER.to_internal_value(value)
    except ValidationError as e:
        raise ValidationError({name: e.detail})


class TransactionFilterMixin:
    """
    Query parameters: search, member_no, account_type, direction, date_from,
    date_to, min_amount, max_amount. "all" disables the choice filters.
    """

    def filter_transactions(self, queryset):
        params = self.request.query_params

        search = params.get("search", "").strip()
        if search:
            queryset = queryset.filter(
                Q(member__first_name__icontains=search)
                | Q(member__last_name__icontains=search)
                | Q(member__member_no__icontains=search)
                | Q(reference_no__icontains=search)
                | Q(narration__icontains=search)
            )

        member_no = params.get("member_no")
        if member_no:
            queryset = queryset.filter(member__member_no=member_no)

        account_type = params.get("account_type")
        if account_type and account_type != "all":
            queryset = queryset.filter(account__account_type=account_type)

        direction = params.get("direction")
        if direction and direction != "all":
            queryset = queryset.filter(direction=direction)

        date_from = _date_param(params, "date_from")
        if date_from:
            queryset = queryset.filter(txn_date__gte=date_from)
        date_to = _date_param(params, "date_to")
        if date_to:
            queryset = queryset.filter(txn_date__lte=date_to)

        min_amount = _amount_param(params, "min_amount")
        if min_amount is not None:
            queryset = queryset.filter(amount__gte=min_amount)
        max_amount = _amount_param(params, "max_amount")
        if max_amount is not None:
            queryset = queryset.filter(amount__lte=max_amount)

        return queryset


class TransactionListCreateView(TransactionFilterMixin, generics.ListCreateAPIView):
    queryset = Transaction.objects.select_related("member", "account", "created_by")
    permission_classes = [IsStaffOrReadOnly]

    def get_serializer_class(self):
        if self.request.method == "POST":
            return TransactionCreateSerializer
        return TransactionSerializer

    def get_queryset(self):
        return self.filter_transactions(super().get_queryset())

    def perform_create(self, serializer):
        txn = serializer.save(posted_by=self.request.user)
        if txn.member.email:
            send_transaction_made_email(txn.member, txn)


class TransactionDetailView(generics.RetrieveAPIView):
    queryset = Transaction.objects.select_related("member", "account", "created_by")
    serializer_class = TransactionSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_field = "reference_no"

    def get_object(self):
        # reference numbers supplied by staff are not unique; newest wins
        txn = (
            self.get_queryset()
            .filter(reference_no=self.kwargs[self.lookup_field])
            .first()
        )
        if txn is None:
            raise Http404("Transaction not found.")
        self.check_object_permissions(self.request, txn)
        return txn


class RecentTransactionsView(generics.ListAPIView):
    serializer_class = TransactionSerializer
    permission_classes = [IsStaffOrReadOnly]
    pagination_class = None

    def get_queryset(self):
        limit = self.request.query_params.get("limit", "5")
        if not limit.isdigit() or int(limit) < 1:
            raise ValidationError({"limit": "A positive whole number is required."})
        return ReportingService.recent_transactions(limit=int(limit))


class TransactionStatsView(TransactionFilterMixin, APIView):
    permission_classes = [IsStaffOrReadOnly]

    def get(self, request):
        queryset = self.filter_transactions(Transaction.objects.all())
        stats = transaction_stats(queryset.values("amount", "direction"))
        return Response(
            {
                "total_transactions": stats["total_transactions"],
                "total_credits": float(stats["total_credits"]),
                "total_debits": float(stats["total_debits"]),
                "net_flow": float(stats["net_flow"]),
            },
            status=status.HTTP_200_OK,
        )


class TransactionListDownloadView(TransactionFilterMixin, generics.ListAPIView):
    queryset = Transaction.objects.select_related("member", "account")
    serializer_class = TransactionSerializer
    permission_classes = [IsStaff]

    def get_queryset(self):
        return self.filter_transactions(super().get_queryset())

    def get(self, request, *args, **kwargs):
        buffer = io.StringIO()
        row_count = write_transactions_csv(self.get_queryset(), buffer)

        file_name = export_file_name()
        cloudinary_url = archive_export(buffer, file_name)

        DownloadLog.objects.create(
            admin=request.user,
            file_name=file_name,
            row_count=row_count,
            cloudinary_url=cloudinary_url,
        )
        logger.info(f"{request.user} exported {row_count} transactions to {file_name}")

        response = StreamingHttpResponse(buffer, content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="{file_name}"'
        return response


class LoanDisbursementView(generics.CreateAPIView):
    serializer_class = LoanDisbursementSerializer
    permission_classes = [IsStaffOrReadOnly]

    def perform_create(self, serializer):
        txn = serializer.save(posted_by=self.request.user)
        if txn.member.email:
            send_transaction_made_email(txn.member, txn)


class LoanRepaymentView(LoanDisbursementView):
    serializer_class = LoanRepaymentSerializer


class MemberStatementView(APIView):
    """
    Passbook for one member: running balance per account, optionally limited
    to one account type and a date range.
    """

    permission_classes = [IsStaffOrReadOnly]

    def get(self, request, member_no):
        member = get_object_or_404(Member, member_no=member_no)
        params = request.query_params

        account_type = params.get("account_type")
        if account_type and account_type not in dict(Account.ACCOUNT_TYPE_CHOICES):
            raise ValidationError({"account_type": f"Unknown account type {account_type}."})
        date_from = _date_param(params, "date_from")
        date_to = _date_param(params, "date_to")

        statement = ReportingService.member_statement(
            member, account_type=account_type, date_from=date_from, date_to=date_to
        )
        accounts = []
        for account in statement:
            accounts.append(
                {
                    "account_no": account["account_no"],
                    "account_type": account["account_type"],
                    "is_active": account["is_active"],
                    "opening_balance": float(account["opening_balance"]),
                    "closing_balance": float(account["closing_balance"]),
                    "entries": [
                        {
                            "date": entry["date"],
                            "reference_no": entry["reference_no"],
                            "narration": entry["narration"],
                            "direction": entry["direction"],
                            "amount": float(entry["amount"]),
                            "balance": float(entry["balance"]),
                        }
                        for entry in account["entries"]
                    ],
                }
            )

        return Response(
            {
                "member_no": member.member_no,
                "member_name": member.get_full_name(),
                "date_from": date_from,
                "date_to": date_to,
                "accounts": accounts,
            },
            status=status.HTTP_200_OK,
        )
