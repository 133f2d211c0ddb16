"""
Payment webhook bodies, normalized.

Two shapes arrive on /api/mpesa/callback: the flat aggregator body
(ResponseCode, TransactionID, ...) and Daraja's Body.stkCallback envelope.
Parsers are tried in order; the first that recognizes the body wins.
"""
from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class PaymentCallback:
    success: bool
    result_code: int | None
    description: str | None
    correlation_id: str | None  # CheckoutRequestID / TransactionID recorded at initiation
    receipt: str | None
    amount: int | None
    phone: str | None  # raw; normalized by the caller
    source: str


def _int_or_none(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return None


def _str_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_daraja_stk_callback(body: dict[str, Any]) -> PaymentCallback | None:
    envelope = body.get("Body")
    stk = envelope.get("stkCallback") if isinstance(envelope, dict) else None
    if not isinstance(stk, dict):
        return None

    items = (stk.get("CallbackMetadata") or {}).get("Item") or []
    metadata = {
        item.get("Name"): item.get("Value")
        for item in items
        if isinstance(item, dict) and item.get("Name")
    }
    result_code = _int_or_none(stk.get("ResultCode"))
    return PaymentCallback(
        success=result_code == 0,
        result_code=result_code,
        description=_str_or_none(stk.get("ResultDesc")),
        correlation_id=_str_or_none(stk.get("CheckoutRequestID")),
        receipt=_str_or_none(metadata.get("MpesaReceiptNumber")),
        amount=_int_or_none(metadata.get("Amount")),
        phone=_str_or_none(metadata.get("PhoneNumber")),
        source="daraja",
    )


def parse_flat_callback(body: dict[str, Any]) -> PaymentCallback | None:
    if "ResponseCode" not in body and "TransactionID" not in body:
        return None
    result_code = _int_or_none(body.get("ResponseCode"))
    return PaymentCallback(
        success=result_code == 0,
        result_code=result_code,
        description=_str_or_none(body.get("ResponseDescription")),
        correlation_id=_str_or_none(body.get("TransactionID")) or _str_or_none(body.get("CheckoutRequestID")),
        receipt=_str_or_none(body.get("TransactionReceipt")),
        amount=_int_or_none(body.get("TransactionAmount")),
        phone=_str_or_none(body.get("Msisdn")),
        source="flat",
    )


CALLBACK_PARSERS: list[Callable[[dict[str, Any]], PaymentCallback | None]] = [
    parse_daraja_stk_callback,
    parse_flat_callback,
]


def parse_payment_callback(body: Any) -> PaymentCallback | None:
    if not isinstance(body, dict):
        return None
    for parser in CALLBACK_PARSERS:
        parsed = parser(body)
        if parsed is not None:
            return parsed
    return None
