"""
Phone number normalization for M-Pesa (Safaricom/Airtel/Telkom Kenya).

Result format is E.164 without the plus: 2547XXXXXXXX / 2541XXXXXXXX.
Used both when initiating a payment and when matching a callback by MSISDN,
so the two sides always compare the same representation.
"""
import re

from app.core.config import settings

# Subscriber numbers without trunk prefix or country code: 7XXXXXXXX, 1XXXXXXXX
SUBSCRIBER_PREFIXES = ("7", "1")

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: object, country_code: str | None = None) -> str:
    """
    Normalize a user-entered or provider-sent number. Never raises.

    07XXXXXXXX / 7XXXXXXXX / +2547XXXXXXXX / 2540 7XXXXXXXX -> 2547XXXXXXXX.
    Unrecognized formats come back as bare digits; callers must not assume validity.
    """
    cc = country_code or settings.phone_country_code
    digits = _NON_DIGITS.sub("", "" if raw is None else str(raw))

    # Country code with a stray trunk zero: 2540XXXXXXXX -> 254XXXXXXXX
    if digits.startswith(cc + "0"):
        return cc + digits[len(cc) + 1:]
    if digits.startswith(cc):
        return digits
    if digits.startswith("0"):
        return cc + digits[1:]
    if digits.startswith(SUBSCRIBER_PREFIXES):
        return cc + digits
    return digits


def to_local_format(phone: str, country_code: str | None = None) -> str:
    """2547XXXXXXXX -> 07XXXXXXXX; anything else unchanged."""
    cc = country_code or settings.phone_country_code
    if phone.startswith(cc):
        return "0" + phone[len(cc):]
    return phone
