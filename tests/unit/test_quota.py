"""
Unit tests for rate limit header parsing.
"""
import pytest

from csfloat_api.core import HeaderConfig, MalformedQuotaError, RateQuota, parse_quota

NOW = 1_700_000_000.0


def headers(limit="50", remaining="49", reset=str(int(NOW) + 60)):
    result = {}
    if limit is not None:
        result["X-Ratelimit-Limit"] = limit
    if remaining is not None:
        result["X-Ratelimit-Remaining"] = remaining
    if reset is not None:
        result["X-Ratelimit-Reset"] = reset
    return result


class TestParseQuota:
    """Test parsing of valid headers."""

    def test_parse_standard_headers(self):
        quota = parse_quota(headers(), now=NOW)

        assert quota.limit == 50
        assert quota.remaining == 49
        assert quota.reset_at == NOW + 60
        assert quota.remaining <= quota.limit

    def test_suggested_wait_spreads_remaining_budget(self):
        quota = parse_quota(headers(remaining="10"), now=NOW)

        assert quota.suggested_wait == pytest.approx(NOW + 6.0)

    def test_zero_remaining_waits_until_reset(self):
        quota = parse_quota(headers(remaining="0"), now=NOW)

        assert quota.remaining == 0
        assert quota.suggested_wait == NOW + 60

    def test_header_names_are_case_insensitive(self):
        lowered = {k.lower(): v for k, v in headers().items()}

        quota = parse_quota(lowered, now=NOW)

        assert quota.limit == 50

    def test_custom_header_names(self):
        config = HeaderConfig(limit="RateLimit-Limit", remaining="RateLimit-Remaining", reset="RateLimit-Reset")
        raw = {
            "RateLimit-Limit": "100",
            "RateLimit-Remaining": "25",
            "RateLimit-Reset": str(int(NOW) + 10),
        }

        quota = parse_quota(raw, config, now=NOW)

        assert quota.limit == 100
        assert quota.remaining == 25

    def test_whitespace_is_tolerated(self):
        quota = parse_quota(headers(limit=" 50 "), now=NOW)

        assert quota.limit == 50


class TestMalformedQuota:
    """Test that parsing fails cleanly and names the offending header."""

    @pytest.mark.parametrize(
        "missing, header",
        [
            ("limit", "X-Ratelimit-Limit"),
            ("remaining", "X-Ratelimit-Remaining"),
            ("reset", "X-Ratelimit-Reset"),
        ],
    )
    def test_missing_header(self, missing, header):
        with pytest.raises(MalformedQuotaError) as exc_info:
            parse_quota(headers(**{missing: None}), now=NOW)

        assert exc_info.value.header == header
        assert "missing" in str(exc_info.value)

    def test_unparsable_header(self):
        with pytest.raises(MalformedQuotaError) as exc_info:
            parse_quota(headers(remaining="lots"), now=NOW)

        assert exc_info.value.header == "X-Ratelimit-Remaining"
        assert "lots" in str(exc_info.value)

    def test_negative_count(self):
        with pytest.raises(MalformedQuotaError, match="negative"):
            parse_quota(headers(limit="-1"), now=NOW)

    def test_fractional_reset_is_rejected(self):
        with pytest.raises(MalformedQuotaError) as exc_info:
            parse_quota(headers(reset="1700000060.5"), now=NOW)

        assert exc_info.value.header == "X-Ratelimit-Reset"


class TestRateQuota:
    """Test the quota value type."""

    def test_zero_value_is_empty(self):
        assert RateQuota().is_empty
        assert not parse_quota(headers(), now=NOW).is_empty

    def test_is_immutable(self):
        quota = RateQuota(limit=1)

        with pytest.raises(AttributeError):
            quota.limit = 2
