# exception hierarchy shared by the catalog store, the shop core and the views

from typing import Dict, Optional


class StorefrontError(Exception):
    """Base class for all storefront errors."""

    pass


class CatalogError(StorefrontError):
    """The catalog store could not complete a query or an insert."""

    pass


class CatalogReadError(CatalogError):
    """Raised when a catalog read fails (as opposed to returning no rows)."""

    pass


class CatalogWriteError(CatalogError):
    """Raised when a catalog insert/update fails."""

    pass


class CustomerExistsError(CatalogWriteError):
    """A customer with the same email was created concurrently."""

    def __init__(self, email: str):
        super().__init__(f"Customer with email {email!r} already exists.")
        self.email = email


class ValidationError(StorefrontError):
    """
    Checkout form data is missing or malformed.

    `errors` maps a dotted field name (e.g. "billing_address.city") to a
    human readable message. Never reaches the catalog store.
    """

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        fields = ", ".join(self.errors)
        super().__init__(f"Invalid checkout data: {fields}")


class OrderSubmissionError(StorefrontError):
    """
    Order submission failed somewhere between customer resolution and the
    order items insert. The cart is left as it was.
    """

    def __init__(self, message: str, order_number: Optional[str] = None):
        super().__init__(message)
        self.order_number = order_number


class SubmissionInProgressError(OrderSubmissionError):
    """A second submit was attempted while one is still in flight."""

    pass
