"""Tests for MpesaPaymentService: initiation pricing and callback reconciliation."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import GatewayError, NotFoundError, PersistenceError, ValidationError
from app.models.payment import Payment
from app.services.payments.repository import PaymentRepository


def _payment(**kwargs):
    return Payment(
        id=kwargs.get("id", "pay-1"),
        session_id=kwargs.get("session_id", "s1"),
        phone_number=kwargs.get("phone_number", "254712345678"),
        mpesa_code=kwargs.get("mpesa_code", "REQ123"),
        amount=kwargs.get("amount", 150),
        status=kwargs.get("status", "Pending"),
        provider="mpesa",
        created_at=kwargs.get("created_at", datetime.now(timezone.utc)),
    )


def _poster(template_id="12", template_uuid="tpl-uuid", image_url="https://cdn/p.png"):
    poster = MagicMock()
    poster.session_id = "s1"
    poster.template_id = template_id
    poster.template_uuid = template_uuid
    poster.image_url = image_url
    return poster


def _template(price=150):
    template = MagicMock()
    template.price = price
    return template


def _service(payments=None, poster=None, template=None, ack=None):
    from app.services.payments.mpesa import MpesaPaymentService

    db = MagicMock()
    posters = MagicMock()
    posters.get_by_session.return_value = poster
    templates = MagicMock()
    templates.resolve.return_value = template
    daraja = MagicMock()
    daraja.initiate_push.return_value = ack or {
        "CheckoutRequestID": "ws_CO_1",
        "MerchantRequestID": "m-1",
        "CustomerMessage": "Success. Request accepted for processing",
    }
    if payments is None:
        payments = MagicMock()
    return MpesaPaymentService(db, daraja=daraja, payments=payments, posters=posters, templates=templates)


def _repo(by_code=None, pending_for_phone=None, paid_by_receipt=None):
    """Real repository on a mock session, with the lookups stubbed."""
    repo = PaymentRepository(MagicMock())
    repo.find_by_code = MagicMock(return_value=by_code)
    repo.latest_pending_for_phone = MagicMock(return_value=pending_for_phone)
    repo.find_paid_by_receipt = MagicMock(return_value=paid_by_receipt)
    return repo


def _flat(code=0, txn="REQ123", receipt="ABC1234567", msisdn="254712345678", amount=150):
    return {
        "ResponseCode": code,
        "ResponseDescription": "Success" if code == 0 else "Request cancelled by user",
        "TransactionID": txn,
        "TransactionAmount": amount,
        "TransactionReceipt": receipt,
        "Msisdn": msisdn,
    }


class TestInitiate:
    def test_missing_fields(self):
        svc = _service()
        with pytest.raises(ValidationError):
            svc.initiate("s1", "")
        with pytest.raises(ValidationError):
            svc.initiate(None, "0712345678")

    def test_unknown_session(self):
        svc = _service(poster=None)
        with pytest.raises(NotFoundError):
            svc.initiate("missing", "0712345678")
        svc.payments.create.assert_not_called()

    @pytest.mark.parametrize("price", [None, 0, -5])
    def test_missing_or_non_positive_price(self, price):
        svc = _service(poster=_poster(), template=_template(price))
        with pytest.raises(ValidationError):
            svc.initiate("s1", "0712345678")
        svc.daraja.initiate_push.assert_not_called()

    def test_missing_template(self):
        svc = _service(poster=_poster(), template=None)
        with pytest.raises(ValidationError):
            svc.initiate("s1", "0712345678")

    def test_amount_comes_from_template(self):
        svc = _service(poster=_poster(), template=_template(250))
        payment = _payment(mpesa_code=None)
        svc.payments.create.return_value = payment

        result = svc.initiate("s1", "0712345678")

        svc.templates.resolve.assert_called_once_with("12", "tpl-uuid")
        svc.payments.create.assert_called_once_with(
            session_id="s1",
            phone_number="254712345678",
            amount=250,
            image_url="https://cdn/p.png",
        )
        push = svc.daraja.initiate_push.call_args.kwargs
        assert push["amount"] == 250
        assert push["phone_number"] == "254712345678"
        assert push["account_reference"] == "Poster Gen"
        assert push["transaction_desc"] == "Poster payment"
        svc.payments.set_code.assert_called_once_with(payment, "ws_CO_1")
        assert result == {
            "success": True,
            "session_id": "s1",
            "amount": 250,
            "phone": "254712345678",
            "CheckoutRequestID": "ws_CO_1",
            "MerchantRequestID": "m-1",
            "CustomerMessage": "Success. Request accepted for processing",
        }

    def test_gateway_failure_leaves_pending_row(self):
        svc = _service(poster=_poster(), template=_template())
        svc.payments.create.return_value = _payment(mpesa_code=None)
        svc.daraja.initiate_push.side_effect = GatewayError("STK Push failed", provider="mpesa", provider_status=500)

        with pytest.raises(GatewayError):
            svc.initiate("s1", "0712345678")

        svc.payments.set_code.assert_not_called()
        svc.payments.mark_failed.assert_not_called()

    def test_checkout_id_save_failure_still_succeeds(self):
        svc = _service(poster=_poster(), template=_template())
        svc.payments.create.return_value = _payment(mpesa_code=None)
        svc.payments.set_code.side_effect = PersistenceError("db down")

        result = svc.initiate("s1", "0712345678")

        assert result["CheckoutRequestID"] == "ws_CO_1"


@patch("app.services.payments.mpesa.emit_notification")
class TestCallbackSuccess:
    def test_match_by_transaction_id(self, mock_emit):
        payment = _payment(mpesa_code="REQ123")
        svc = _service(payments=_repo(by_code=payment))

        result = svc.handle_callback(_flat(txn="REQ123", receipt="ABC1234567", amount=150))

        assert result["success"] is True
        assert payment.status == "Paid"
        assert payment.mpesa_code == "ABC1234567"
        assert payment.amount == 150
        svc.posters.set_status.assert_called_once_with("s1", "COMPLETED")
        svc.payments.latest_pending_for_phone.assert_not_called()
        assert mock_emit.call_args.args[1] == "PAYMENT_SUCCESS"

    def test_daraja_envelope(self, mock_emit):
        payment = _payment(mpesa_code="ws_CO_1")
        svc = _service(payments=_repo(by_code=payment))
        body = {
            "Body": {
                "stkCallback": {
                    "ResultCode": 0,
                    "ResultDesc": "ok",
                    "CheckoutRequestID": "ws_CO_1",
                    "CallbackMetadata": {
                        "Item": [
                            {"Name": "Amount", "Value": 150},
                            {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
                            {"Name": "PhoneNumber", "Value": 254712345678},
                        ]
                    },
                }
            }
        }

        svc.handle_callback(body)

        assert payment.status == "Paid"
        assert payment.mpesa_code == "NLJ7RT61SV"

    def test_invalid_receipt_keeps_correlation_token(self, mock_emit):
        payment = _payment(mpesa_code="REQ123")
        svc = _service(payments=_repo(by_code=payment))

        svc.handle_callback(_flat(receipt="INVALID_RECEIPT"))

        assert payment.status == "Paid"
        assert payment.mpesa_code == "REQ123"

    def test_fallback_to_latest_pending_for_phone(self, mock_emit):
        payment = _payment(id="pay-new", mpesa_code=None)
        repo = _repo(by_code=None, pending_for_phone=payment)
        svc = _service(payments=repo)

        svc.handle_callback(_flat(txn="UNKNOWN", msisdn="0712345678"))

        repo.latest_pending_for_phone.assert_called_once_with("254712345678")
        assert payment.status == "Paid"
        assert payment.mpesa_code == "ABC1234567"
        svc.posters.set_status.assert_called_once_with("s1", "COMPLETED")

    def test_duplicate_success_is_a_no_op(self, mock_emit):
        repo = _repo(paid_by_receipt=_payment(status="Paid", mpesa_code="ABC1234567"))
        svc = _service(payments=repo)

        result = svc.handle_callback(_flat())

        assert result == {"success": True, "message": "Payment already recorded"}
        repo.find_by_code.assert_not_called()
        repo.db.commit.assert_not_called()
        svc.posters.set_status.assert_not_called()
        mock_emit.assert_not_called()

    def test_matched_row_that_is_final_is_left_alone(self, mock_emit):
        payment = _payment(status="Failed", mpesa_code="REQ123")
        svc = _service(payments=_repo(by_code=payment))

        svc.handle_callback(_flat())

        assert payment.status == "Failed"
        svc.posters.set_status.assert_not_called()

    def test_no_match_is_still_acknowledged(self, mock_emit):
        svc = _service(payments=_repo())

        result = svc.handle_callback(_flat(txn="UNKNOWN"))

        assert result == {"success": True, "message": "No matching payment"}
        svc.posters.set_status.assert_not_called()

    def test_persistence_error_is_acknowledged(self, mock_emit):
        repo = _repo(by_code=_payment())
        repo.db.commit.side_effect = OperationalError("UPDATE", {}, Exception("down"))
        svc = _service(payments=repo)

        result = svc.handle_callback(_flat())

        assert result["success"] is True

    def test_unparseable_body(self, mock_emit):
        svc = _service(payments=_repo())
        assert svc.handle_callback({"foo": "bar"})["success"] is True
        assert svc.handle_callback(None)["success"] is True


@patch("app.services.payments.mpesa.emit_notification")
class TestCallbackFailure:
    def test_mark_failed_by_id(self, mock_emit):
        payment = _payment(mpesa_code="REQ123")
        svc = _service(payments=_repo(by_code=payment))

        result = svc.handle_callback(_flat(code=1032, receipt=None))

        assert result["success"] is True
        assert payment.status == "Failed"
        assert payment.mpesa_code == "REQ123"
        svc.posters.set_status.assert_not_called()
        assert mock_emit.call_args.args[1] == "PAYMENT_FAILED"

    def test_mark_failed_by_phone(self, mock_emit):
        payment = _payment(mpesa_code=None)
        repo = _repo(by_code=None, pending_for_phone=payment)
        svc = _service(payments=repo)

        svc.handle_callback(_flat(code=1, txn=None, receipt=None, msisdn="+254 712 345 678"))

        repo.latest_pending_for_phone.assert_called_once_with("254712345678")
        assert payment.status == "Failed"

    def test_paid_payment_is_never_failed(self, mock_emit):
        payment = _payment(status="Paid", mpesa_code="REQ123")
        svc = _service(payments=_repo(by_code=payment))

        svc.handle_callback(_flat(code=1, receipt=None))

        assert payment.status == "Paid"
        mock_emit.assert_not_called()


class TestLatestPendingQuery:
    def test_orders_newest_first_and_takes_one(self):
        db = MagicMock()
        newest = _payment(id="new", created_at=datetime.now(timezone.utc))
        chain = db.query.return_value.filter.return_value.order_by.return_value
        chain.first.return_value = newest

        result = PaymentRepository(db).latest_pending_for_phone("254712345678")

        assert result is newest
        order_clause = db.query.return_value.filter.return_value.order_by.call_args.args[0]
        assert "created_at DESC" in str(order_clause)
        chain.first.assert_called_once()
