import logging

from django.db.models import Q
from rest_framework import generics

from accounts.permissions import IsStaffOrReadOnly
from members.models import Member
from members.serializers import (
    MemberSerializer,
    MemberDetailSerializer,
    MemberStatusSerializer,
    MemberOptionSerializer,
)

logger = logging.getLogger(__name__)


class MemberListCreateView(generics.ListCreateAPIView):
    """
    Member registry. Supports ?search= (name, member number, phone) and
    ?status=.
    """

    queryset = Member.objects.all()
    serializer_class = MemberSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = super().get_queryset()
        search = self.request.query_params.get("search", "").strip()
        if search:
            queryset = queryset.filter(
                Q(first_name__icontains=search)
                | Q(last_name__icontains=search)
                | Q(member_no__icontains=search)
                | Q(phone__icontains=search)
            )
        member_status = self.request.query_params.get("status")
        if member_status and member_status != "all":
            queryset = queryset.filter(status=member_status)
        return queryset

    def perform_create(self, serializer):
        member = serializer.save(created_by=self.request.user)
        logger.info(f"Registered member {member.member_no} by {self.request.user}")


class MemberDetailView(generics.RetrieveUpdateAPIView):
    """Members are never deleted; use the status endpoint instead."""

    queryset = Member.objects.all()
    serializer_class = MemberDetailSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_field = "member_no"


class MemberStatusView(generics.UpdateAPIView):
    queryset = Member.objects.all()
    serializer_class = MemberStatusSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_field = "member_no"

    def perform_update(self, serializer):
        previous = serializer.instance.status
        member = serializer.save()
        logger.info(
            f"Member {member.member_no} status changed from {previous} to {member.status} by {self.request.user}"
        )


class MemberOptionListView(generics.ListAPIView):
    queryset = Member.objects.filter(status="active")
    serializer_class = MemberOptionSerializer
    permission_classes = [IsStaffOrReadOnly]
    pagination_class = None
