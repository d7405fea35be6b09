"""Core dispatch, quota tracking and error types."""

from csfloat_api.core.config import (
    ClientConfig,
    ConfigValidationError,
    HeaderConfig,
    load_config,
    validate_config,
)
from csfloat_api.core.dispatcher import RequestDispatcher
from csfloat_api.core.envelope import EmptyResponse, JSONResponse, ResponseEnvelope
from csfloat_api.core.errors import (
    APIError,
    DecodingError,
    EncodingError,
    ErrorCode,
    MalformedQuotaError,
    MarketClientError,
    RateWaitError,
    RateWaitTimeoutError,
    TransportError,
    WaitCancelledError,
    decode_api_error,
)
from csfloat_api.core.exchange import PendingExchange
from csfloat_api.core.quota import RateQuota, parse_quota
from csfloat_api.core.rate_tracker import (
    BucketState,
    FakeTimeProvider,
    RateTracker,
    RateTrackerStats,
    SystemTimeProvider,
    TimeProvider,
)

__all__ = [
    # config
    "ClientConfig",
    "ConfigValidationError",
    "HeaderConfig",
    "load_config",
    "validate_config",
    # dispatcher
    "RequestDispatcher",
    "PendingExchange",
    # envelope
    "EmptyResponse",
    "JSONResponse",
    "ResponseEnvelope",
    # errors
    "APIError",
    "DecodingError",
    "EncodingError",
    "ErrorCode",
    "MalformedQuotaError",
    "MarketClientError",
    "RateWaitError",
    "RateWaitTimeoutError",
    "TransportError",
    "WaitCancelledError",
    "decode_api_error",
    # quota
    "RateQuota",
    "parse_quota",
    # rate_tracker
    "BucketState",
    "FakeTimeProvider",
    "RateTracker",
    "RateTrackerStats",
    "SystemTimeProvider",
    "TimeProvider",
]
