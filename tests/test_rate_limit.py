import pytest

from discordrest.core.models import RateLimitInfo
from discordrest.core.rate_limit import Bucket, BucketState, GlobalLock, parse_rate_limit_headers


def test_parse_reads_bucket_headers():
    headers = {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset-After": "1.25",
        "X-RateLimit-Bucket": "abcd1234",
    }

    info = parse_rate_limit_headers(headers, 200)

    assert info == RateLimitInfo(limit=5, remaining=4, reset_after=1.25, bucket="abcd1234")
    assert info.has_bucket_info


def test_parse_converts_absolute_reset_with_wall_clock():
    headers = {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "1000.5"}

    info = parse_rate_limit_headers(headers, 200, wall_clock=lambda: 998.0)

    assert info.remaining == 0
    assert info.reset_after == pytest.approx(2.5)


def test_parse_global_429_from_headers_and_body():
    headers = {"X-RateLimit-Global": "true"}
    body = b'{"message": "You are being rate limited.", "retry_after": 0.75, "global": true}'

    info = parse_rate_limit_headers(headers, 429, body)

    assert info.is_global
    assert info.retry_after == 0.75
    assert not info.has_bucket_info


def test_parse_prefers_retry_after_header():
    info = parse_rate_limit_headers({"Retry-After": "2"}, 429, b'{"retry_after": 9}')

    assert info.retry_after == 2.0
    assert not info.is_global


def test_parse_tolerates_missing_headers_and_non_json_body():
    info = parse_rate_limit_headers({}, 429, b"<html>slow down</html>")

    assert info == RateLimitInfo()


def test_parse_drops_only_the_malformed_field():
    headers = {"X-RateLimit-Limit": "5", "X-RateLimit-Remaining": "lots", "X-RateLimit-Bucket": "abcd"}

    info = parse_rate_limit_headers(headers, 200)

    assert info.limit == 5
    assert info.remaining is None
    assert info.bucket == "abcd"


@pytest.mark.parametrize("raw", ["inf", "-inf", "nan", "1e999"])
def test_parse_rejects_non_finite_values(raw):
    info = parse_rate_limit_headers({"X-RateLimit-Remaining": raw, "X-RateLimit-Reset-After": raw}, 200)

    assert info == RateLimitInfo()


def test_bad_retry_after_keeps_global_flag():
    info = parse_rate_limit_headers({"Retry-After": "soon", "X-RateLimit-Global": "true"}, 429)

    assert info.is_global
    assert info.retry_after is None


def test_bad_body_retry_after_is_ignored():
    info = parse_rate_limit_headers({}, 429, b'{"retry_after": "later", "global": true}')

    assert info.is_global
    assert info.retry_after is None


def test_fresh_bucket_allows_one_request_at_a_time():
    bucket = Bucket()

    assert bucket.state is BucketState.FRESH
    assert bucket.can_dispatch(0.0)
    bucket.begin()
    assert not bucket.can_dispatch(0.0)


def test_bucket_learns_limits_and_exhausts_until_reset():
    bucket = Bucket()
    bucket.begin()
    bucket.finish()

    bucket.apply(RateLimitInfo(limit=2, remaining=0, reset_after=0.5), now=10.0)

    assert bucket.state is BucketState.EXHAUSTED
    assert not bucket.can_dispatch(10.4)
    assert bucket.can_dispatch(10.5)
    assert bucket.remaining == 2
    assert bucket.state is BucketState.KNOWN


def test_bucket_records_server_bucket_hash():
    bucket = Bucket()

    bucket.apply(RateLimitInfo(bucket="abcd"), now=0.0)
    assert bucket.server_bucket == "abcd"
    assert bucket.state is BucketState.FRESH

    bucket.apply(RateLimitInfo(limit=5, remaining=4, reset_after=1.0, bucket="efgh"), now=0.0)
    assert bucket.server_bucket == "efgh"
    assert bucket.remaining == 4


def test_same_window_replies_only_lower_remaining():
    bucket = Bucket()
    bucket.apply(RateLimitInfo(limit=5, remaining=2, reset_after=1.0), now=0.0)

    bucket.apply(RateLimitInfo(limit=5, remaining=4, reset_after=0.9), now=0.1)
    assert bucket.remaining == 2

    bucket.apply(RateLimitInfo(limit=5, remaining=4, reset_after=1.0), now=0.5)
    assert bucket.remaining == 4


def test_capacity_bounded_by_remaining():
    bucket = Bucket()
    bucket.apply(RateLimitInfo(limit=3, remaining=2, reset_after=5.0), now=0.0)

    bucket.begin()
    assert bucket.can_dispatch(0.1)
    bucket.begin()
    assert not bucket.can_dispatch(0.1)


def test_zero_remaining_without_reset_uses_fallback():
    bucket = Bucket()

    bucket.apply(RateLimitInfo(limit=1, remaining=0), now=3.0, fallback_reset=2.0)

    assert bucket.reset_at == 5.0


def test_inconsistent_headers_degrade_to_fresh():
    bucket = Bucket()
    bucket.apply(RateLimitInfo(limit=5, remaining=3, reset_after=1.0), now=0.0)

    bucket.apply(RateLimitInfo(limit=2, remaining=9, reset_after=1.0), now=0.1)

    assert bucket.state is BucketState.FRESH
    assert bucket.limit is None


def test_exhaust_after_local_429_without_known_limit_returns_to_fresh():
    bucket = Bucket()

    bucket.exhaust(until=1.0)

    assert bucket.state is BucketState.EXHAUSTED
    assert not bucket.can_dispatch(0.5)
    assert bucket.can_dispatch(1.0)
    assert bucket.state is BucketState.FRESH


def test_global_lock_clears_itself():
    lock = GlobalLock()
    lock.engage(resume_at=2.0)
    lock.engage(resume_at=1.0)

    assert lock.resume_at == 2.0
    assert lock.is_locked(1.9)
    assert not lock.is_locked(2.0)
    assert not lock.locked
