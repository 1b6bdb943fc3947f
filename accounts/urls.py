from django.urls import path

from accounts.views import AccountListCreateView, AccountDetailView, AccountCloseView

app_name = "accounts"

urlpatterns = [
    path("", AccountListCreateView.as_view(), name="account-list-create"),
    path("<str:account_no>/", AccountDetailView.as_view(), name="account-detail"),
    path("<str:account_no>/close/", AccountCloseView.as_view(), name="account-close"),
]
