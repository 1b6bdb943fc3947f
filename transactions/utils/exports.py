import csv
import logging
from datetime import datetime

import cloudinary.uploader

from transactions.utils.ledger import get_field, signed_amount, to_decimal

logger = logging.getLogger(__name__)

EXPORT_HEADERS = ["Date", "Account", "Type", "Narration", "Amount", "Balance After"]

ACCOUNT_LABELS = {
    "shares": "Shares",
    "savings": "Savings",
    "fixed_deposit": "Fixed Deposit",
    "loan": "Loan",
    "mm": "MM",
    "development_fund": "Development Fund",
}


def _account_type(txn):
    account = get_field(txn, "account")
    if account is not None and not isinstance(account, str):
        return get_field(account, "account_type")
    return get_field(txn, "account_type")


def export_row(txn):
    """
    One CSV row. Amount carries the entry's effect on its account: positive
    when it grows the balance, negative when it shrinks it.
    """
    account_type = _account_type(txn)
    direction = get_field(txn, "direction")
    txn_date = get_field(txn, "txn_date")
    return {
        "Date": txn_date.isoformat() if hasattr(txn_date, "isoformat") else txn_date,
        "Account": ACCOUNT_LABELS.get(account_type, account_type),
        "Type": direction.capitalize(),
        "Narration": get_field(txn, "narration") or "",
        "Amount": f"{signed_amount(get_field(txn, 'amount'), direction, account_type):.2f}",
        "Balance After": f"{to_decimal(get_field(txn, 'balance_after')):.2f}",
    }


def write_transactions_csv(transactions, buffer):
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_HEADERS, lineterminator="\n")
    writer.writeheader()
    rows = 0
    for txn in transactions:
        writer.writerow(export_row(txn))
        rows += 1
    return rows


def export_file_name(prefix="transactions"):
    return f"{prefix}_{datetime.now():%Y%m%d_%H%M%S}.csv"


def archive_export(buffer, file_name, folder="transaction_exports"):
    """Upload a copy of an export to Cloudinary; returns the URL or None."""
    buffer.seek(0)
    try:
        upload_result = cloudinary.uploader.upload(
            buffer,
            resource_type="raw",
            public_id=f"{folder}/{file_name}",
            format="csv",
        )
    except Exception as e:
        logger.error(f"Failed to archive export {file_name}: {str(e)}")
        return None
    finally:
        buffer.seek(0)
    return upload_result.get("secure_url")
