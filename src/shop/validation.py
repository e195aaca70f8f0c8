import re
from typing import Dict

from db.models import Address

# local@domain.tld, no whitespace; good enough for a checkout form
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_EMAIL_RE = re.compile(EMAIL_PATTERN)

REQUIRED_CUSTOMER_FIELDS = {
    "first_name": "First name",
    "last_name": "Last name",
    "email": "Email",
}

REQUIRED_ADDRESS_FIELDS = {
    "first_name": "First name",
    "last_name": "Last name",
    "address_line_1": "Address",
    "city": "City",
    "state": "State",
    "postal_code": "ZIP code",
    "country": "Country",
}


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match((email or "").strip()))


def _blank(value) -> bool:
    return value is None or not str(value).strip()


def address_errors(address: Address, prefix: str) -> Dict[str, str]:
    """Missing required fields of `address`, keyed "<prefix>.<field>"."""
    errors: Dict[str, str] = {}
    for name, label in REQUIRED_ADDRESS_FIELDS.items():
        if _blank(getattr(address, name)):
            errors[f"{prefix}.{name}"] = f"{label} is required."
    return errors


def customer_errors(customer) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for name, label in REQUIRED_CUSTOMER_FIELDS.items():
        if _blank(getattr(customer, name)):
            errors[f"customer.{name}"] = f"{label} is required."
    if "customer.email" not in errors and not is_valid_email(customer.email):
        errors["customer.email"] = "Email address is not valid."
    return errors
