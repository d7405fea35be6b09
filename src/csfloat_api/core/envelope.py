"""
Response envelope shared by every response type.

The dispatcher fills in the quota and the server error; subclasses that
carry a body opt in through ``decodes_body`` and receive the decoded JSON
in ``load_body``.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import APIError, MalformedQuotaError
from .quota import RateQuota


@dataclass
class ResponseEnvelope:
    """
    Base for all responses.

    Attributes:
        quota: Quota of the exchange, zero value if the server was never reached
        error: Server reported error, only set when the server was reached
            and answered with a non-success status
        quota_error: Set when the rate limit headers could not be parsed
    """

    quota: RateQuota = field(default_factory=RateQuota)
    error: Optional[APIError] = None
    quota_error: Optional[MalformedQuotaError] = None

    # Envelopes without a body skip reading the response entirely.
    decodes_body = False

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.decodes_body and cls.load_body is ResponseEnvelope.load_body:
            raise TypeError(f"{cls.__name__} sets decodes_body but does not override load_body")

    def set_quota(self, quota: RateQuota) -> None:
        self.quota = quota

    def set_error(self, error: APIError) -> None:
        self.error = error

    def set_quota_error(self, error: MalformedQuotaError) -> None:
        self.quota_error = error

    def load_body(self, data: Any) -> None:
        """Receive the decoded JSON body of a successful response. Ignored by default."""

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EmptyResponse(ResponseEnvelope):
    """Response of endpoints with no meaningful body (delete, update, buy)."""


@dataclass
class JSONResponse(ResponseEnvelope):
    """Response keeping the decoded body as opaque JSON."""

    data: Any = None

    decodes_body = True

    def load_body(self, data: Any) -> None:
        self.data = data
