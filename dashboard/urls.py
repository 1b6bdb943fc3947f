from django.urls import path

from dashboard.views import (
    DashboardStatsView,
    WeeklyTrendsView,
    LoanSummaryView,
    RecentTransactionsView,
)

app_name = "dashboard"

urlpatterns = [
    path("stats/", DashboardStatsView.as_view(), name="dashboard-stats"),
    path("weekly-trends/", WeeklyTrendsView.as_view(), name="weekly-trends"),
    path("loan-summary/", LoanSummaryView.as_view(), name="loan-summary"),
    path(
        "recent-transactions/",
        RecentTransactionsView.as_view(),
        name="recent-transactions",
    ),
]
