from django.urls import path

from transactions.views import (
    TransactionListCreateView,
    TransactionDetailView,
    TransactionStatsView,
    TransactionListDownloadView,
    LoanDisbursementView,
    LoanRepaymentView,
    MemberStatementView,
    RecentTransactionsView,
)

app_name = "transactions"

urlpatterns = [
    path("", TransactionListCreateView.as_view(), name="transaction-list-create"),
    path("stats/", TransactionStatsView.as_view(), name="transaction-stats"),
    path("recent/", RecentTransactionsView.as_view(), name="transaction-recent"),
    path(
        "download/",
        TransactionListDownloadView.as_view(),
        name="transaction-list-download",
    ),
    path("loans/disburse/", LoanDisbursementView.as_view(), name="loan-disburse"),
    path("loans/repay/", LoanRepaymentView.as_view(), name="loan-repay"),
    path(
        "statement/<str:member_no>/",
        MemberStatementView.as_view(),
        name="member-statement",
    ),
    path("<str:reference_no>/", TransactionDetailView.as_view(), name="transaction-detail"),
]
