"""
Unit tests for API error decoding and the error taxonomy.
"""
import pytest

from csfloat_api.core.errors import (
    APIError,
    DecodingError,
    ErrorCode,
    MalformedQuotaError,
    MarketClientError,
    RateWaitError,
    RateWaitTimeoutError,
    TransportError,
    WaitCancelledError,
    decode_api_error,
)


class TestDecodeAPIError:
    """Test decoding of non-success response bodies."""

    def test_decode_known_code(self):
        error = decode_api_error(b'{"code": 4, "message": "item already sold"}', 400)

        assert error.http_status == 400
        assert error.code == 4
        assert error.message == "item already sold"
        assert error.known_code is ErrorCode.ALREADY_SOLD

    def test_decode_unknown_code(self):
        error = decode_api_error('{"code": 31337, "message": "something new"}', 500)

        assert error.code == 31337
        assert error.known_code is None

    def test_extra_fields_are_ignored(self):
        error = decode_api_error('{"code": 15, "message": "price changed", "details": {}}', 409)

        assert error.known_code is ErrorCode.PRICE_CHANGED

    @pytest.mark.parametrize(
        "body",
        [
            "",
            "Bad Gateway",
            "[1, 2]",
            '"just a string"',
            '{"message": "no code"}',
            '{"code": "6", "message": "string code"}',
            '{"code": true, "message": "bool code"}',
            '{"code": 6}',
            '{"code": 6, "message": null}',
        ],
    )
    def test_undecodable_bodies(self, body):
        with pytest.raises(DecodingError) as exc_info:
            decode_api_error(body, 502)

        assert exc_info.value.http_status == 502
        assert not isinstance(exc_info.value, APIError)


class TestAPIError:
    """Test APIError behaviour."""

    def test_message_includes_code_and_status(self):
        error = APIError(422, 6, "invalid state")

        assert "6" in str(error)
        assert "422" in str(error)
        assert "invalid state" in str(error)

    def test_equality_ignores_envelope(self):
        assert APIError(422, 6, "x", envelope=object()) == APIError(422, 6, "x")
        assert APIError(422, 6, "x") != APIError(400, 6, "x")
        assert len({APIError(422, 6, "x"), APIError(422, 6, "x")}) == 1

    def test_only_price_change_is_retryable(self):
        assert APIError(409, ErrorCode.PRICE_CHANGED, "").is_retryable
        assert not APIError(400, ErrorCode.ALREADY_SOLD, "").is_retryable
        assert not APIError(500, 1, "").is_retryable


class TestTaxonomy:
    """Test that every error shares the client base class."""

    @pytest.mark.parametrize(
        "error",
        [
            TransportError("down"),
            DecodingError("bad"),
            MalformedQuotaError("X-Ratelimit-Limit", "is missing"),
            RateWaitTimeoutError("late", bucket_key="k"),
            WaitCancelledError("stop", bucket_key="k"),
            APIError(400, 1, "bad"),
        ],
    )
    def test_base_class(self, error):
        assert isinstance(error, MarketClientError)
        assert error.envelope is None

    def test_wait_errors(self):
        error = RateWaitTimeoutError("late", bucket_key="GET /me #abc")

        assert isinstance(error, RateWaitError)
        assert error.bucket_key == "GET /me #abc"

    def test_malformed_quota_names_header(self):
        error = MalformedQuotaError("X-Ratelimit-Reset", "is missing")

        assert error.header == "X-Ratelimit-Reset"
        assert "X-Ratelimit-Reset" in str(error)
