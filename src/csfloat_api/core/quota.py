"""
Rate limit quota parsed from response headers.

The server advertises its budget on every response through three headers:
the request limit, the remaining request count and the reset timestamp in
integer seconds since the epoch.
"""
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Optional

from .config import HeaderConfig
from .errors import MalformedQuotaError


@dataclass(frozen=True)
class RateQuota:
    """
    Quota advertised by the server for one exchange.

    Attributes:
        limit: Requests allowed per window
        remaining: Requests left in the current window
        reset_at: Epoch seconds at which the window resets
        suggested_wait: Epoch seconds before which the next request
            should not be sent, spreading the remaining budget evenly
    """

    limit: int = 0
    remaining: int = 0
    reset_at: float = 0.0
    suggested_wait: float = 0.0

    @property
    def is_empty(self) -> bool:
        """True for the zero value, i.e. the server was never reached."""
        return self == RateQuota()


def _get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    # Plain dicts are case sensitive, aiohttp's multidicts are not.
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def _parse_count(headers: Mapping[str, str], name: str) -> int:
    raw = _get_header(headers, name)
    if raw is None:
        raise MalformedQuotaError(name, "is missing")
    try:
        value = int(raw.strip())
    except ValueError:
        raise MalformedQuotaError(name, f"is not an integer: {raw!r}") from None
    if value < 0:
        raise MalformedQuotaError(name, f"is negative: {raw!r}")
    return value


def parse_quota(
    headers: Mapping[str, str],
    header_config: Optional[HeaderConfig] = None,
    now: Optional[float] = None,
) -> RateQuota:
    """
    Parse the rate limit headers of a response.

    Either all three fields are produced or the call fails; the result is
    never partially populated.

    Args:
        headers: Response headers
        header_config: Header names, defaults to the X-Ratelimit-* set
        now: Current epoch seconds, defaults to the system clock

    Returns:
        RateQuota with suggested_wait computed from the other fields

    Raises:
        MalformedQuotaError: Naming the header that is missing or unparsable
    """
    header_config = header_config or HeaderConfig()

    limit = _parse_count(headers, header_config.limit)
    remaining = _parse_count(headers, header_config.remaining)
    reset_at = float(_parse_count(headers, header_config.reset))

    if now is None:
        now = time.time()

    if remaining == 0:
        # Nothing left to spread, the next slot opens at reset.
        suggested_wait = reset_at
    else:
        suggested_wait = now + (reset_at - now) / remaining

    return RateQuota(
        limit=limit,
        remaining=remaining,
        reset_at=reset_at,
        suggested_wait=suggested_wait,
    )
