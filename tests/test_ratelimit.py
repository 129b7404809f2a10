"""Tests for rate limit header parsing."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from ghc_api.github.ratelimit import RateLimitInfo, parse_reset, parse_retry_after


class TestParseReset:
    """Tests for parse_reset."""

    def test_epoch_seconds(self) -> None:
        assert parse_reset("1700000000") == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    @pytest.mark.parametrize("value", [None, "", "soon", "1.5", "99999999999999999999"])
    def test_unparsable(self, value: str | None) -> None:
        assert parse_reset(value) is None


class TestParseRetryAfter:
    """Tests for parse_retry_after."""

    def test_relative_to_now(self) -> None:
        now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        assert parse_retry_after("30", now) == now + timedelta(seconds=30)

    @pytest.mark.parametrize("value", [None, "-1", "Wed, 21 Oct 2015 07:28:00 GMT"])
    def test_ignored(self, value: str | None) -> None:
        assert parse_retry_after(value) is None


class TestRateLimitInfo:
    """Tests for RateLimitInfo.from_headers."""

    def test_from_headers(self) -> None:
        headers = httpx.Headers(
            {
                "X-RateLimit-Limit": "5000",
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": "1700000000",
                "X-RateLimit-Used": "5000",
                "X-RateLimit-Resource": "graphql",
            }
        )
        info = RateLimitInfo.from_headers(headers)

        assert info is not None
        assert info.limit == 5000
        assert info.used == 5000
        assert info.resource == "graphql"
        assert info.is_exhausted

    def test_defaults(self) -> None:
        info = RateLimitInfo.from_headers(
            httpx.Headers({"x-ratelimit-limit": "60", "x-ratelimit-remaining": "59", "x-ratelimit-reset": "1"})
        )
        assert info is not None
        assert info.resource == "core"
        assert not info.is_exhausted

    def test_missing_headers(self) -> None:
        assert RateLimitInfo.from_headers(httpx.Headers({"x-ratelimit-limit": "60"})) is None

    def test_invalid_headers(self) -> None:
        headers = httpx.Headers({"x-ratelimit-limit": "lots", "x-ratelimit-remaining": "1", "x-ratelimit-reset": "1"})
        assert RateLimitInfo.from_headers(headers) is None
