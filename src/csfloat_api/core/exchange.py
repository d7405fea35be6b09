"""
A single pending request/response exchange.

A PendingExchange captures everything the dispatcher needs to send one
request. It lives only for the duration of one dispatch call.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from .errors import EncodingError


def credential_fingerprint(credential: str) -> str:
    """Return a short, non-reversible identifier for a credential."""
    return hashlib.sha256(credential.encode("utf-8")).hexdigest()[:12]


@dataclass
class PendingExchange:
    """
    Specification for one authenticated HTTP exchange.

    Attributes:
        method: HTTP method (GET, POST, PATCH, DELETE)
        url: URL without query string
        credential: API key sent in the Authorization header
        query: Query string parameters, always applied
        payload: Optional JSON-encodable request body
        bucket_key: Rate limit bucket, derived from method, path and
            credential when not given
    """
    method: str
    url: str
    credential: str = field(repr=False)
    query: dict[str, Any] = field(default_factory=dict)
    payload: Any = None
    bucket_key: str = ""

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if not self.bucket_key:
            path = urlsplit(self.url).path or "/"
            self.bucket_key = (
                f"{self.method} {path} #{credential_fingerprint(self.credential)}"
            )

    @property
    def endpoint(self) -> str:
        """URL without any query string, safe for logs."""
        parts = urlsplit(self.url)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))

    def full_url(self) -> str:
        """
        Build the request URL with the query applied.

        The query replaces anything already present in the URL, even when
        it is empty.
        """
        parts = urlsplit(self.url)
        query = urlencode(self.query, doseq=True)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, ""))

    def encode_body(self) -> Optional[bytes]:
        """
        Serialize the payload to JSON.

        Returns:
            Encoded body, or None when there is no payload

        Raises:
            EncodingError: If the payload is not JSON serializable
        """
        if self.payload is None or (
            isinstance(self.payload, (dict, list)) and not self.payload
        ):
            return None
        try:
            return json.dumps(self.payload, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodingError(
                f"error encoding payload for {self.method} {self.endpoint}: {e}"
            ) from e

    def build_headers(self, body: Optional[bytes], user_agent: str = "") -> dict[str, str]:
        """Build request headers, including authentication."""
        headers = {
            "Authorization": self.credential,
            "Accept": "application/json",
        }
        if user_agent:
            headers["User-Agent"] = user_agent
        if body is not None:
            headers["Content-Type"] = "application/json"
            headers["Content-Length"] = str(len(body))
        return headers
