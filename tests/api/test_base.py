"""Tests for api/base.py - Unified API response format."""

from datetime import timezone
from decimal import Decimal

from api.base import (
    success_response,
    error_response,
    ErrorCodes,
    ReconciliationDetails,
)
from core.exceptions import ReconciliationRequiredError
from factories import make_payment


class TestSuccessResponse:
    """Tests for success_response()."""

    def test_structure(self):
        resp = success_response({"foo": "bar"})
        assert resp.success is True
        assert resp.data == {"foo": "bar"}
        assert resp.error is None

    def test_request_id_generated(self):
        resp = success_response({})
        assert resp.meta.request_id is not None
        assert len(resp.meta.request_id) > 0

    def test_timestamp_is_utc(self):
        resp = success_response({})
        assert resp.meta.timestamp.tzinfo == timezone.utc


class TestErrorResponse:
    """Tests for error_response()."""

    def test_structure(self):
        resp = error_response("TEST_ERROR", "Something went wrong")
        assert resp.success is False
        assert resp.data is None
        assert resp.error.code == "TEST_ERROR"
        assert resp.error.message == "Something went wrong"
        assert resp.error.details is None

    def test_details_carried(self):
        resp = error_response(ErrorCodes.RECONCILIATION_REQUIRED, "msg", {"excess_amount": "45.00"})
        assert resp.error.details == {"excess_amount": "45.00"}


class TestReconciliationDetails:

    def test_amounts_are_two_place_strings(self):
        payment = make_payment("100.00")
        exc = ReconciliationRequiredError(
            payments=[payment], excess_amount=Decimal("45"), new_total=Decimal("55.0"),
        )

        details = ReconciliationDetails.from_error(exc)

        assert details.new_total == "55.00"
        assert details.excess_amount == "45.00"
        assert details.payments[0]["id"] == str(payment.id)
        assert details.payments[0]["amount"] == "100.00"
