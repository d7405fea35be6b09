"""
Unit tests for PendingExchange request construction.
"""
import json

import pytest

from csfloat_api.core.errors import EncodingError
from csfloat_api.core.exchange import PendingExchange, credential_fingerprint

API_KEY = "very-secret-key"
BASE = "https://csfloat.com/api/v1"


class TestBucketKey:
    """Test default bucket key derivation."""

    def test_default_key_from_method_path_and_credential(self):
        exchange = PendingExchange("get", f"{BASE}/me", API_KEY)

        assert exchange.method == "GET"
        assert exchange.bucket_key == f"GET /api/v1/me #{credential_fingerprint(API_KEY)}"

    def test_key_never_contains_credential(self):
        exchange = PendingExchange("GET", f"{BASE}/me", API_KEY)

        assert API_KEY not in exchange.bucket_key
        assert API_KEY not in repr(exchange)

    def test_query_does_not_change_key(self):
        a = PendingExchange("GET", f"{BASE}/listings", API_KEY, query={"page": 1})
        b = PendingExchange("GET", f"{BASE}/listings", API_KEY, query={"page": 2})

        assert a.bucket_key == b.bucket_key

    def test_credentials_get_distinct_keys(self):
        a = PendingExchange("GET", f"{BASE}/me", "key-a")
        b = PendingExchange("GET", f"{BASE}/me", "key-b")

        assert a.bucket_key != b.bucket_key

    def test_explicit_key_is_kept(self):
        exchange = PendingExchange("GET", f"{BASE}/me", API_KEY, bucket_key="me")

        assert exchange.bucket_key == "me"


class TestURL:
    """Test URL handling."""

    def test_query_is_applied(self):
        exchange = PendingExchange(
            "GET", f"{BASE}/listings", API_KEY, query={"limit": 40, "type": "buy_now"}
        )

        assert exchange.full_url() == f"{BASE}/listings?limit=40&type=buy_now"

    def test_query_replaces_existing(self):
        exchange = PendingExchange("GET", f"{BASE}/listings?limit=1", API_KEY, query={"limit": 2})

        assert exchange.full_url() == f"{BASE}/listings?limit=2"

    def test_empty_query_clears_existing(self):
        exchange = PendingExchange("GET", f"{BASE}/listings?limit=1", API_KEY)

        assert exchange.full_url() == f"{BASE}/listings"
        assert exchange.endpoint == f"{BASE}/listings"

    def test_sequence_values(self):
        exchange = PendingExchange("GET", f"{BASE}/me/trades", API_KEY, query={"state": ["a", "b"]})

        assert exchange.full_url() == f"{BASE}/me/trades?state=a&state=b"


class TestBody:
    """Test payload encoding and headers."""

    def test_encode_payload(self):
        exchange = PendingExchange("POST", f"{BASE}/listings", API_KEY, payload={"price": 100})

        body = exchange.encode_body()

        assert json.loads(body) == {"price": 100}

    @pytest.mark.parametrize("payload", [None, {}, []])
    def test_no_body(self, payload):
        exchange = PendingExchange("POST", f"{BASE}/listings", API_KEY, payload=payload)

        assert exchange.encode_body() is None

    @pytest.mark.parametrize("payload", [{"price": object()}, {"price": float("nan")}])
    def test_unencodable_payload(self, payload):
        exchange = PendingExchange("POST", f"{BASE}/listings", API_KEY, payload=payload)

        with pytest.raises(EncodingError):
            exchange.encode_body()

    def test_headers_with_body(self):
        exchange = PendingExchange("POST", f"{BASE}/listings", API_KEY, payload={"a": 1})
        body = exchange.encode_body()

        headers = exchange.build_headers(body, "csfloat-api")

        assert headers["Authorization"] == API_KEY
        assert headers["Accept"] == "application/json"
        assert headers["User-Agent"] == "csfloat-api"
        assert headers["Content-Type"] == "application/json"
        assert headers["Content-Length"] == str(len(body))

    def test_headers_without_body(self):
        exchange = PendingExchange("GET", f"{BASE}/me", API_KEY)

        headers = exchange.build_headers(None)

        assert "Content-Type" not in headers
        assert "Content-Length" not in headers
        assert "User-Agent" not in headers
