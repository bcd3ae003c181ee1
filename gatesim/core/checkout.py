"""Checkout rules shared by the order endpoint and the checkout session."""
import re
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from gatesim.schemas.order import ESIM_HOLDING_STATUSES

_EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class CheckoutState(str, Enum):
    DETAILS = "details"
    QR = "qr"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


TERMINAL_STATES = (CheckoutState.SUCCESS, CheckoutState.ERROR)


class TopUpRefusal(str, Enum):
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    NO_ESIM = "NO_ESIM"
    PROVIDER_MISMATCH = "PROVIDER_MISMATCH"


class CheckoutValidationError(Exception):
    """Checkout refused before any order was created."""

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or reason)


def is_valid_contact_email(email: Optional[str]) -> bool:
    return bool(email) and bool(_EMAIL_SHAPE.match(email.strip()))


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _status_value(order: Any) -> str:
    status = _field(order, "status", "")
    return getattr(status, "value", status) or ""


def providers_match(held: str, wanted: str) -> bool:
    held, wanted = (held or "").strip().lower(), (wanted or "").strip().lower()
    if not held or not wanted:
        return False
    return held in wanted or wanted in held


def _order_operators(order: Any) -> Iterable[str]:
    for item in _field(order, "items", None) or []:
        metadata = _field(item, "metadata", None) or {}
        operator = metadata.get("operator") or metadata.get("provider") or ""
        if operator:
            yield operator


def check_top_up_eligibility(provider: str, orders: Optional[Iterable[Any]]) -> Optional[TopUpRefusal]:
    """
    Decide whether a top-up for `provider` may be bought.

    `orders` is None for a guest. Only paid, provisioning or completed
    orders count as an eSIM the customer already holds. Returns None when
    the purchase is allowed, otherwise the refusal reason.
    """
    if orders is None:
        return TopUpRefusal.LOGIN_REQUIRED

    holding = [o for o in orders if _status_value(o) in ESIM_HOLDING_STATUSES]
    if not holding:
        return TopUpRefusal.NO_ESIM

    for order in holding:
        if any(providers_match(op, provider) for op in _order_operators(order)):
            return None
    return TopUpRefusal.PROVIDER_MISMATCH


def validate_checkout(contact_email: str, *, is_top_up: bool, provider: str, orders: Optional[Iterable[Any]]) -> None:
    """Raise CheckoutValidationError when the details step may not advance."""
    if not is_valid_contact_email(contact_email):
        raise CheckoutValidationError("INVALID_EMAIL", "A valid contact email is required.")
    if is_top_up:
        refusal = check_top_up_eligibility(provider, orders)
        if refusal is not None:
            raise CheckoutValidationError(refusal.value)
