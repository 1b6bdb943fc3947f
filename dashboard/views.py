from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from transactions.serializers import TransactionSerializer
from transactions.utils.reporting_service import ReportingService


def _positive_int_param(params, name, default):
    value = params.get(name)
    if value is None or value == "":
        return default
    if not value.isdigit() or int(value) < 1:
        raise ValidationError({name: "A positive whole number is required."})
    return int(value)


class DashboardStatsView(APIView):
    """
    Headline figures for the dashboard. Balances are replayed from the
    ledger, not read from the stored account balances.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        stats = ReportingService.dashboard_stats()
        return Response(
            {
                "total_members": stats["total_members"],
                "active_members": stats["active_members"],
                "new_members_this_month": stats["new_members_this_month"],
                "total_savings": float(stats["total_savings"]),
                "total_shares": float(stats["total_shares"]),
                "total_loans": float(stats["total_loans"]),
                "cash_in_bank": float(stats["cash_in_bank"]),
                "weekly_collections": float(stats["weekly_collections"]),
                "weekly_collections_change": round(
                    float(stats["weekly_collections_change"]), 2
                ),
                "active_loans_count": stats["active_loans_count"],
                "portfolio": {
                    key: float(value) for key, value in stats["portfolio"].items()
                },
                "currency": settings.CURRENCY,
            },
            status=status.HTTP_200_OK,
        )


class WeeklyTrendsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        weeks = _positive_int_param(
            request.query_params, "weeks", settings.WEEKLY_TREND_WEEKS
        )
        trend = ReportingService.weekly_trends(week_count=weeks)
        return Response(
            [
                {
                    "week": bucket["week"],
                    "week_start": bucket["week_start"],
                    "week_end": bucket["week_end"],
                    "collections": float(bucket["collections"]),
                    "outstanding_loans": float(bucket["outstanding_loans"]),
                    "cash_position": float(bucket["cash_position"]),
                }
                for bucket in trend
            ],
            status=status.HTTP_200_OK,
        )


class LoanSummaryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        summary = ReportingService.loan_summary()
        return Response(
            {
                "total_outstanding": float(summary["total_outstanding"]),
                "active_loans": summary["active_loans"],
                "overdue_loans": summary["overdue_loans"],
                "disbursed_this_month": float(summary["disbursed_this_month"]),
                "repayments_this_month": float(summary["repayments_this_month"]),
            },
            status=status.HTTP_200_OK,
        )


class RecentTransactionsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        limit = _positive_int_param(request.query_params, "limit", 5)
        transactions = ReportingService.recent_transactions(limit=limit)
        serializer = TransactionSerializer(transactions, many=True)
        return Response(serializer.data, status=status.HTTP_200_OK)
