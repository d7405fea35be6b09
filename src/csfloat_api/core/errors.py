"""
Error taxonomy for the marketplace client.

Every failure path of the dispatcher raises one of these. Errors raised
during an exchange carry the envelope of that exchange, so callers keep
whatever quota or server error was populated before the failure.
"""
import json
from enum import IntEnum
from typing import Any, Optional


class MarketClientError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, *, envelope: Any = None):
        super().__init__(message)
        self.envelope = envelope


class TransportError(MarketClientError):
    """Network, TLS or timeout failure. Callers may retry with backoff."""


class EncodingError(MarketClientError):
    """Request payload could not be serialized. Not retryable."""


class DecodingError(MarketClientError):
    """Response body could not be decoded."""

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        envelope: Any = None,
    ):
        super().__init__(message, envelope=envelope)
        self.http_status = http_status


class MalformedQuotaError(MarketClientError):
    """Rate limit headers were missing or unparsable."""

    def __init__(self, header: str, reason: str, *, envelope: Any = None):
        super().__init__(f"rate limit header {header!r} {reason}", envelope=envelope)
        self.header = header
        self.reason = reason


class RateWaitError(MarketClientError):
    """A wait on a rate limit bucket was abandoned."""

    def __init__(self, message: str, *, bucket_key: str = "", envelope: Any = None):
        super().__init__(message, envelope=envelope)
        self.bucket_key = bucket_key


class RateWaitTimeoutError(RateWaitError):
    """The bucket deadline lies further out than the caller is willing to wait."""


class WaitCancelledError(RateWaitError):
    """The caller cancelled a wait through its cancel event."""


class ErrorCode(IntEnum):
    """Error codes reported by the API that callers commonly branch on."""

    ALREADY_SOLD = 4
    # Sent along with HTTP 422, seems to mean the listing was pulled.
    INVALID_PURCHASE_STATE = 6
    PRICE_CHANGED = 15
    # Sales history is disabled for some items, cases for example.
    SALES_HISTORY_NOT_AVAILABLE = 200


class APIError(MarketClientError):
    """
    Structured error reported by the server.

    Attributes:
        http_status: HTTP status of the response
        code: Machine readable error code from the body
        message: Human readable message from the body
    """

    def __init__(
        self,
        http_status: int,
        code: int,
        message: str,
        *,
        envelope: Any = None,
    ):
        super().__init__(
            f"API error {code} (HTTP {http_status}): {message}",
            envelope=envelope,
        )
        self.http_status = http_status
        self.code = code
        self.message = message

    @property
    def known_code(self) -> Optional[ErrorCode]:
        """Return the matching ErrorCode, or None for codes we don't know."""
        try:
            return ErrorCode(self.code)
        except ValueError:
            return None

    @property
    def is_retryable(self) -> bool:
        """Price changes can be retried after refreshing the listing."""
        return self.code == ErrorCode.PRICE_CHANGED

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, APIError):
            return NotImplemented
        return (self.http_status, self.code, self.message) == (
            other.http_status,
            other.code,
            other.message,
        )

    def __hash__(self) -> int:
        return hash((self.http_status, self.code, self.message))

    def __repr__(self) -> str:
        return (
            f"APIError(http_status={self.http_status}, code={self.code}, "
            f"message={self.message!r})"
        )


def decode_api_error(body: bytes | str, http_status: int) -> APIError:
    """
    Decode a non-success response body into an APIError.

    Args:
        body: Raw response body
        http_status: Status code from the transport layer

    Returns:
        APIError carrying the server supplied code and message

    Raises:
        DecodingError: If the body is not a JSON object with an integer
            ``code`` and a string ``message``
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise DecodingError(
            f"error body for HTTP {http_status} is not JSON: {e}",
            http_status=http_status,
        ) from e

    if not isinstance(data, dict):
        raise DecodingError(
            f"error body for HTTP {http_status} is not a JSON object",
            http_status=http_status,
        )

    code = data.get("code")
    message = data.get("message")
    # bool is an int subclass, reject it explicitly
    if not isinstance(code, int) or isinstance(code, bool):
        raise DecodingError(
            f"error body for HTTP {http_status} has no integer 'code'",
            http_status=http_status,
        )
    if not isinstance(message, str):
        raise DecodingError(
            f"error body for HTTP {http_status} has no string 'message'",
            http_status=http_status,
        )

    return APIError(http_status=http_status, code=code, message=message)
