from django.contrib import admin
from django.urls import path, include
from rest_framework.authtoken.views import obtain_auth_token

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/auth/token/", obtain_auth_token, name="token"),
    path("api/v1/members/", include("members.urls")),
    path("api/v1/accounts/", include("accounts.urls")),
    path("api/v1/transactions/", include("transactions.urls")),
    path("api/v1/dashboard/", include("dashboard.urls")),
]
