import logging

from rest_framework import generics, status
from rest_framework.response import Response

from accounts.models import Account
from accounts.permissions import IsStaffOrReadOnly
from accounts.serializers import AccountSerializer

logger = logging.getLogger(__name__)


class AccountListCreateView(generics.ListCreateAPIView):
    queryset = Account.objects.select_related("member")
    serializer_class = AccountSerializer
    permission_classes = [IsStaffOrReadOnly]

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("member_no"):
            queryset = queryset.filter(member__member_no=params["member_no"])
        if params.get("account_type"):
            queryset = queryset.filter(account_type=params["account_type"])
        if params.get("is_active") in ("true", "false"):
            queryset = queryset.filter(is_active=params["is_active"] == "true")
        return queryset

    def perform_create(self, serializer):
        account = serializer.save(opened_by=self.request.user)
        logger.info(
            f"Opened {account.account_type} account {account.account_no} for {account.member.member_no}"
        )


class AccountDetailView(generics.RetrieveAPIView):
    queryset = Account.objects.select_related("member")
    serializer_class = AccountSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_field = "account_no"


class AccountCloseView(generics.GenericAPIView):
    queryset = Account.objects.all()
    serializer_class = AccountSerializer
    permission_classes = [IsStaffOrReadOnly]
    lookup_field = "account_no"

    def post(self, request, account_no):
        account = self.get_object()
        if not account.is_active:
            return Response(
                {"detail": "Account is already closed."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        balance = account.get_calculated_balance()
        if balance != 0:
            return Response(
                {"detail": f"Account balance must be zero before closing (currently {balance})."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        account.close()
        account.member.refresh_balances()
        logger.info(f"Closed account {account.account_no} by {request.user}")
        return Response(self.get_serializer(account).data, status=status.HTTP_200_OK)
