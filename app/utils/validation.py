"""Validation helpers for user-submitted and payment-related data."""
import re

_RECEIPT_RE = re.compile(r"^[A-Z0-9]{10,12}$")
CHECKOUT_ID_PREFIX = "ws_co_"


def is_valid_mpesa_receipt(code: object) -> bool:
    """
    M-Pesa receipt codes are 10 uppercase alphanumerics (10-12 accepted for variants).
    Daraja CheckoutRequestIDs (ws_CO_...) are rejected even though they look similar.
    """
    if not code or not isinstance(code, str):
        return False
    trimmed = code.strip()
    if trimmed.lower().startswith(CHECKOUT_ID_PREFIX):
        return False
    return bool(_RECEIPT_RE.match(trimmed))


def is_valid_kenya_local_phone(text: object) -> bool:
    """User-entered local number: 10 digits starting with 07 or 01."""
    if not text:
        return False
    digits = re.sub(r"\D", "", str(text))
    return len(digits) == 10 and digits.startswith(("07", "01"))
