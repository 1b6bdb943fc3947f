from django.urls import path

from members.views import (
    MemberListCreateView,
    MemberDetailView,
    MemberStatusView,
    MemberOptionListView,
)

app_name = "members"

urlpatterns = [
    path("", MemberListCreateView.as_view(), name="member-list-create"),
    path("options/", MemberOptionListView.as_view(), name="member-options"),
    path("<str:member_no>/", MemberDetailView.as_view(), name="member-detail"),
    path("<str:member_no>/status/", MemberStatusView.as_view(), name="member-status"),
]
