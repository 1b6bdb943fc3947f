import string
import secrets
from datetime import datetime

ACCOUNT_NUMBER_PREFIXES = {
    "shares": "SHA",
    "savings": "SAV",
    "fixed_deposit": "FXD",
    "loan": "LON",
    "mm": "MMC",
    "development_fund": "DEV",
}


def generate_reference():
    characters = string.ascii_letters + string.digits
    random_string = "".join(secrets.choice(characters) for _ in range(12))
    return random_string.upper()


def generate_account_number(account_type):
    """Generate an account number such as SAV2612345678 for a given account type."""
    prefix = ACCOUNT_NUMBER_PREFIXES.get(account_type, "ACC")
    year = datetime.now().year % 100
    random_number = "".join(secrets.choice(string.digits) for _ in range(8))
    return f"{prefix}{year:02d}{random_number}"
