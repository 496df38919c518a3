"""Throttling engine: token buckets and per-tenant dual throttles."""

from iolimit.throttle.dual import Domain, DualThrottle
from iolimit.throttle.token_bucket import BucketSnapshot, TokenBucket

__all__ = [
    "BucketSnapshot",
    "Domain",
    "DualThrottle",
    "TokenBucket",
]
