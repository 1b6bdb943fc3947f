import logging

from django.db import transaction
from django.utils import timezone

from accounts.models import Account
from transactions.models import RepaymentExceedsBalanceError, Transaction
from transactions.utils.ledger import (
    append_transaction,
    compute_account_balance,
    is_liability,
    to_decimal,
)

logger = logging.getLogger(__name__)


def get_or_open_account(member, account_type, opened_by=None, for_update=False):
    """
    Return the member's active account of ``account_type``, opening one if
    the member has none yet.
    """
    accounts = Account.objects.filter(
        member=member, account_type=account_type, is_active=True
    )
    if for_update:
        accounts = accounts.select_for_update()
    account = accounts.first()
    if account is None:
        account = Account.objects.create(
            member=member, account_type=account_type, opened_by=opened_by
        )
        logger.info(
            f"Opened {account_type} account {account.account_no} for {member.member_no}"
        )
    return account


def post_transaction(
    member,
    account_type,
    direction,
    amount,
    narration=None,
    txn_date=None,
    reference_no="",
    posted_by=None,
):
    """
    Append one entry to the member's ledger.

    The account row is locked while the new balance is computed, so the
    stored balance and the transaction's balance_after are written together
    or not at all.

    A loan credit larger than the outstanding balance raises
    RepaymentExceedsBalanceError and nothing is written.
    """
    with transaction.atomic():
        account = get_or_open_account(
            member, account_type, opened_by=posted_by, for_update=True
        )
        if is_liability(account_type) and direction == "credit":
            # checked under the lock so concurrent repayments cannot overpay
            outstanding = compute_account_balance(
                account.transactions.all(), account_type
            )
            if to_decimal(amount) > outstanding:
                raise RepaymentExceedsBalanceError(member.member_no, outstanding)
        balance_after = append_transaction(
            account.balance, amount, direction, account_type
        )
        account.balance = balance_after
        account.save(update_fields=["balance", "updated_at"])

        txn = Transaction.objects.create(
            account=account,
            member=member,
            txn_date=txn_date or timezone.localdate(),
            amount=amount,
            direction=direction,
            narration=narration or None,
            reference_no=reference_no or "",
            balance_after=balance_after,
            created_by=posted_by,
        )

    logger.info(
        f"Posted {direction} {amount} to {account.account_no} "
        f"({member.member_no}), balance now {balance_after}"
    )
    return txn
