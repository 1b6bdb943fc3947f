"""
Ledger balance rules.

A credit grows an asset-type account (shares, savings, fixed deposit, MM,
development fund) and shrinks the loan account; a debit does the reverse.
A loan balance is therefore the amount owed, and every other balance is
the amount held.

Everything here is pure: records may be dicts or ORM rows, amounts are
returned as Decimal and nothing is written anywhere.
"""
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from dateutil.relativedelta import relativedelta, MO

LIABILITY_ACCOUNT_TYPES = ("loan",)
# Accounts counted as cash held by the SACCO. MM contributions are paid out
# every round and stay out of the cash position.
DEPOSIT_ACCOUNT_TYPES = ("savings", "shares", "fixed_deposit", "development_fund")
DIRECTIONS = ("debit", "credit")

ZERO = Decimal("0")


def get_field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def to_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def is_liability(account_type: str) -> bool:
    return account_type in LIABILITY_ACCOUNT_TYPES


def signed_amount(amount: Any, direction: str, account_type: str) -> Decimal:
    """Effect of a single entry on the balance of an account of ``account_type``."""
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown transaction direction: {direction!r}")
    amount = to_decimal(amount)
    increasing = "debit" if is_liability(account_type) else "credit"
    return amount if direction == increasing else -amount


def compute_account_balance(transactions: Iterable[Any], account_type: str) -> Decimal:
    return sum(
        (
            signed_amount(get_field(txn, "amount"), get_field(txn, "direction"), account_type)
            for txn in transactions
        ),
        ZERO,
    )


def append_transaction(
    current_balance: Any, amount: Any, direction: str, account_type: str
) -> Decimal:
    """
    Balance after posting one entry on top of ``current_balance``.

    This is the write-time twin of compute_account_balance and must agree
    with it: replaying an account's entries one by one through this function
    ends on the same figure as folding the whole list.
    """
    return to_decimal(current_balance) + signed_amount(amount, direction, account_type)


def running_balances(
    transactions: Iterable[Any], account_type: str, opening_balance: Any = ZERO
) -> Iterator[Tuple[Any, Decimal]]:
    """Yield ``(transaction, balance_after)`` replaying entries in the order given."""
    balance = to_decimal(opening_balance)
    for txn in transactions:
        balance = append_transaction(
            balance, get_field(txn, "amount"), get_field(txn, "direction"), account_type
        )
        yield txn, balance


def compute_portfolio_summary(
    accounts: Iterable[Any], balance_field: str = "balance"
) -> Dict[str, Decimal]:
    total_assets = ZERO
    total_liabilities = ZERO
    for account in accounts:
        balance = to_decimal(get_field(account, balance_field))
        if is_liability(get_field(account, "account_type")):
            total_liabilities += abs(balance)
        else:
            total_assets += balance
    return {
        "total_assets": total_assets,
        "total_liabilities": total_liabilities,
        "net_worth": total_assets - total_liabilities,
    }


def transaction_stats(transactions: Iterable[Any]) -> Dict[str, Any]:
    count = 0
    total_credits = ZERO
    total_debits = ZERO
    for txn in transactions:
        count += 1
        direction = get_field(txn, "direction")
        if direction == "credit":
            total_credits += to_decimal(get_field(txn, "amount"))
        elif direction == "debit":
            total_debits += to_decimal(get_field(txn, "amount"))
    return {
        "total_transactions": count,
        "total_credits": total_credits,
        "total_debits": total_debits,
        "net_flow": total_credits - total_debits,
    }


def start_of_week(day: date) -> date:
    """Monday on or before ``day``."""
    return day + relativedelta(weekday=MO(-1))


class WeeklyTrend:
    """
    Fixed-length sequence of weekly buckets, oldest first.

    Buckets are built on iteration, so the same object can be iterated any
    number of times. The last bucket is the week that contains ``today``.

    Loan and cash figures use the balances of the accounts as given for
    every bucket; they are not point-in-time balances.
    """

    def __init__(
        self,
        transactions: Iterable[Any],
        accounts: Iterable[Any],
        week_count: int = 6,
        today: Optional[date] = None,
        balance_field: str = "balance",
    ):
        if week_count < 0:
            raise ValueError("week_count must be >= 0")
        self._transactions = list(transactions)
        self._accounts = list(accounts)
        self.week_count = week_count
        self.today = today or date.today()
        self.balance_field = balance_field

    def __len__(self) -> int:
        return self.week_count

    def week_bounds(self) -> List[Tuple[str, date, date]]:
        """``(label, start, end)`` per bucket; ``end`` is the next Monday, exclusive."""
        current = start_of_week(self.today)
        bounds = []
        for index in range(self.week_count):
            start = current - timedelta(weeks=self.week_count - 1 - index)
            bounds.append((f"W{index + 1}", start, start + timedelta(weeks=1)))
        return bounds

    def _position(self) -> Tuple[Decimal, Decimal]:
        loans = ZERO
        deposits = ZERO
        for account in self._accounts:
            if not get_field(account, "is_active", True):
                continue
            account_type = get_field(account, "account_type")
            balance = to_decimal(get_field(account, self.balance_field))
            if account_type in LIABILITY_ACCOUNT_TYPES:
                loans += balance
            elif account_type in DEPOSIT_ACCOUNT_TYPES:
                deposits += balance
        return loans, deposits - loans

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        outstanding_loans, cash_position = self._position()
        for label, start, end in self.week_bounds():
            collections = ZERO
            for txn in self._transactions:
                if get_field(txn, "direction") != "credit":
                    continue
                txn_date = _as_date(get_field(txn, "txn_date", get_field(txn, "date")))
                if txn_date is not None and start <= txn_date < end:
                    collections += to_decimal(get_field(txn, "amount"))
            yield {
                "week": label,
                "week_start": start,
                "week_end": end,
                "collections": collections,
                "outstanding_loans": outstanding_loans,
                "cash_position": cash_position,
            }


def aggregate_weekly_trend(
    transactions: Iterable[Any],
    accounts: Iterable[Any],
    week_count: int = 6,
    today: Optional[date] = None,
    balance_field: str = "balance",
) -> WeeklyTrend:
    return WeeklyTrend(
        transactions,
        accounts,
        week_count=week_count,
        today=today,
        balance_field=balance_field,
    )
