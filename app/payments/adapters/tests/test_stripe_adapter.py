"""
Tests for Stripe adapter.

Tests cover:
- Idempotency key generation
- Error translation for each exception type
- Charge, refund and transfer calls
- Refund and transfer lookups used by reconciliation
"""

import uuid
from datetime import datetime, timezone

import pytest
import stripe
from django.test import override_settings

from payments.adapters import (
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
)
from payments.adapters.tests.conftest import MockStripeList
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    def test_format(self):
        entity_id = uuid.UUID("550e8400-e29b-41d4-a716-446655440000")

        key = IdempotencyKeyGenerator.generate("refund", entity_id)

        operation, entity, attempt, short_hash = key.split(":")
        assert operation == "refund"
        assert entity == str(entity_id)
        assert attempt == "1"
        assert len(short_hash) == 8

    def test_deterministic(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "payout_transfer", entity_id
        ) == IdempotencyKeyGenerator.generate("payout_transfer", str(entity_id))

    def test_differs_by_operation_and_attempt(self):
        entity_id = uuid.uuid4()

        keys = {
            IdempotencyKeyGenerator.generate("refund", entity_id),
            IdempotencyKeyGenerator.generate("payout_transfer", entity_id),
            IdempotencyKeyGenerator.generate("refund", entity_id, attempt=2),
        }

        assert len(keys) == 3

    def test_hash_depends_on_secret_key(self):
        entity_id = uuid.uuid4()
        original = IdempotencyKeyGenerator.generate("refund", entity_id)

        with override_settings(SECRET_KEY="another-secret"):
            rotated = IdempotencyKeyGenerator.generate("refund", entity_id)

        assert original != rotated


# =============================================================================
# Error Translation Tests
# =============================================================================


class TestErrorTranslation:
    def test_card_declined(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            StripeAdapter.charge(10000, "pm_card_visa", "charge:key")

        assert exc_info.value.error_code == "CARD_DECLINED"
        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds(self, mock_stripe_payment_intent, card_error):
        mock_stripe_payment_intent.create.side_effect = card_error(
            message="Your card has insufficient funds.",
            decline_code="insufficient_funds",
        )

        with pytest.raises(StripeInsufficientFundsError):
            StripeAdapter.charge(10000, "pm_card_visa", "charge:key")

    def test_invalid_request(self, mock_stripe_refund, invalid_request_error):
        mock_stripe_refund.create.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.refund("pi_123", 5000, "refund:key")

        assert exc_info.value.stripe_code == "charge_already_refunded"
        assert exc_info.value.outcome_unknown is False

    def test_invalid_account(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such destination account: acct_gone",
            param="destination",
            code="resource_missing",
        )

        with pytest.raises(StripeInvalidAccountError) as exc_info:
            StripeAdapter.transfer("acct_gone", 8500, "payout_transfer:key")

        assert exc_info.value.error_code == "INVALID_STRIPE_ACCOUNT"

    def test_rate_limit_is_retryable(self, mock_stripe_payment_intent, rate_limit_error):
        mock_stripe_payment_intent.create.side_effect = rate_limit_error

        with pytest.raises(StripeRateLimitError) as exc_info:
            StripeAdapter.charge(10000, "pm_card_visa", "charge:key")

        assert exc_info.value.is_retryable is True
        assert exc_info.value.outcome_unknown is False

    def test_connection_error_has_unknown_outcome(
        self, mock_stripe_transfer, api_connection_error
    ):
        mock_stripe_transfer.create.side_effect = api_connection_error

        with pytest.raises(StripeTimeoutError) as exc_info:
            StripeAdapter.transfer("acct_dest123", 8500, "payout_transfer:key")

        assert exc_info.value.outcome_unknown is True
        assert exc_info.value.is_retryable is True

    def test_api_error(self, mock_stripe_refund, api_error):
        mock_stripe_refund.create.side_effect = api_error

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            StripeAdapter.refund("pi_123", 5000, "refund:key")

        assert exc_info.value.is_retryable is True

    def test_authentication_error(self, mock_stripe_payment_intent, authentication_error):
        mock_stripe_payment_intent.create.side_effect = authentication_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.charge(10000, "pm_card_visa", "charge:key")

        assert exc_info.value.stripe_code == "authentication_error"

    def test_unknown_error(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = RuntimeError("Unexpected")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            StripeAdapter.charge(10000, "pm_card_visa", "charge:key")

        assert exc_info.value.stripe_code == "unknown_error"
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# =============================================================================
# Operation Tests
# =============================================================================


class TestCharge:
    def test_confirms_payment_intent(self, mock_stripe_payment_intent, mock_payment_intent):
        mock_stripe_payment_intent.create.return_value = mock_payment_intent(
            id="pi_session", metadata={"session_id": "abc"}
        )

        result = StripeAdapter.charge(
            amount_cents=10000,
            payment_method_id="pm_card_visa",
            idempotency_key="charge:abc",
            metadata={"session_id": "abc"},
        )

        assert isinstance(result, PaymentIntentResult)
        assert result.id == "pi_session"
        assert result.status == "succeeded"
        assert result.amount_cents == 10000
        assert result.metadata == {"session_id": "abc"}

        call_kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert call_kwargs["confirm"] is True
        assert call_kwargs["payment_method"] == "pm_card_visa"
        assert call_kwargs["idempotency_key"] == "charge:abc"

    @pytest.mark.parametrize("amount", [0, -100])
    def test_rejects_non_positive_amount(self, mock_stripe_payment_intent, amount):
        with pytest.raises(ValueError, match="amount_cents must be positive"):
            StripeAdapter.charge(amount, "pm_card_visa", "charge:key")

        mock_stripe_payment_intent.create.assert_not_called()


class TestRefund:
    def test_partial_refund(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.create.return_value = mock_refund(id="re_half", amount=5000)

        result = StripeAdapter.refund(
            payment_intent_id="pi_test123456",
            amount_cents=5000,
            idempotency_key="refund:abc",
            metadata={"session_id": "abc"},
        )

        assert isinstance(result, RefundResult)
        assert result.id == "re_half"
        assert result.amount_cents == 5000
        assert result.payment_intent_id == "pi_test123456"

        call_kwargs = mock_stripe_refund.create.call_args.kwargs
        assert call_kwargs["payment_intent"] == "pi_test123456"
        assert call_kwargs["amount"] == 5000
        assert call_kwargs["reason"] == "requested_by_customer"
        assert call_kwargs["idempotency_key"] == "refund:abc"

    def test_reason_omitted_when_none(self, mock_stripe_refund):
        StripeAdapter.refund("pi_123", 5000, "refund:key", reason=None)

        assert "reason" not in mock_stripe_refund.create.call_args.kwargs


class TestTransfer:
    def test_transfer_to_connected_account(self, mock_stripe_transfer, mock_transfer):
        mock_stripe_transfer.create.return_value = mock_transfer(
            id="tr_payout", metadata={"payout_id": "p1"}
        )

        result = StripeAdapter.transfer(
            destination_account_id="acct_dest123",
            amount_cents=8500,
            idempotency_key="payout_transfer:p1",
            metadata={"payout_id": "p1"},
        )

        assert isinstance(result, TransferResult)
        assert result.id == "tr_payout"
        assert result.destination_account == "acct_dest123"
        assert result.metadata == {"payout_id": "p1"}

        call_kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert call_kwargs["destination"] == "acct_dest123"
        assert call_kwargs["amount"] == 8500
        assert call_kwargs["idempotency_key"] == "payout_transfer:p1"


class TestLookups:
    def test_list_refunds(self, mock_stripe_refund, mock_refund):
        mock_stripe_refund.list.return_value = MockStripeList(
            items=[mock_refund(id="re_1"), mock_refund(id="re_2", amount=2500)]
        )

        results = StripeAdapter.list_refunds("pi_test123456")

        assert [r.id for r in results] == ["re_1", "re_2"]
        assert results[1].amount_cents == 2500
        mock_stripe_refund.list.assert_called_once_with(
            payment_intent="pi_test123456", limit=100
        )

    def test_list_recent_transfers(self, mock_stripe_transfer, mock_transfer):
        mock_stripe_transfer.list.return_value = MockStripeList(
            items=[mock_transfer(id="tr_1")]
        )
        since = datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)

        results = StripeAdapter.list_recent_transfers(created_after=since)

        assert [t.id for t in results] == ["tr_1"]
        mock_stripe_transfer.list.assert_called_once_with(
            created={"gte": int(since.timestamp())}, limit=100
        )

    def test_lookup_errors_are_translated(self, mock_stripe_refund, api_connection_error):
        mock_stripe_refund.list.side_effect = api_connection_error

        with pytest.raises(StripeTimeoutError):
            StripeAdapter.list_refunds("pi_test123456")


class TestConfiguration:
    @override_settings(STRIPE_SECRET_KEY="sk_test_configured", STRIPE_API_TIMEOUT_SECONDS=7)
    def test_applies_settings(self, mock_stripe_http_client, mock_stripe_payment_intent):
        StripeAdapter.charge(10000, "pm_card_visa", "charge:key")

        assert stripe.api_key == "sk_test_configured"
        mock_stripe_http_client.assert_called_once_with(timeout=7)
