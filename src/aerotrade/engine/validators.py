"""User input parsing for amounts and bank details."""

import re
from decimal import Decimal, InvalidOperation

from aerotrade.errors import ValidationError

ACCOUNT_NUMBER_RE = re.compile(r"^\d{10}$")
MIN_NAME_LENGTH = 5
MAX_WORDS = ("max", "all")


def parse_amount(text: str, fiat: bool = False) -> Decimal:
    """Parse a positive finite amount.

    For NGN amounts the naira sign and thousands separators are accepted
    ("₦10,000" -> 10000).

    Raises:
        ValidationError: If the text is not a positive number
    """
    cleaned = (text or "").strip()
    if fiat:
        cleaned = cleaned.replace("₦", "").replace(",", "").strip()
    try:
        amount = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        raise ValidationError("Please enter a valid number.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than zero.")
    return amount


def is_max_keyword(text: str) -> bool:
    return (text or "").strip().lower() in MAX_WORDS


def validate_account_number(text: str) -> str:
    """Return the 10-digit NUBAN account number.

    Raises:
        ValidationError: If it isn't exactly 10 digits
    """
    number = (text or "").strip()
    if not ACCOUNT_NUMBER_RE.match(number):
        raise ValidationError("Invalid account number. Please enter a 10-digit account number.")
    return number


def validate_account_name(text: str) -> str:
    """Return the trimmed account name.

    Raises:
        ValidationError: Fewer than two words or shorter than 5 characters
    """
    name = " ".join((text or "").split())
    if len(name.split(" ")) < 2 or len(name) < MIN_NAME_LENGTH:
        raise ValidationError(
            "Please enter your full account name (first and last name) "
            "exactly as it appears on your bank account."
        )
    return name


def normalize_name(name: str) -> str:
    """Case-fold and collapse whitespace for name comparison."""
    return " ".join((name or "").casefold().split())


def names_match(supplied: str, verified: str) -> bool:
    return normalize_name(supplied) == normalize_name(verified)
