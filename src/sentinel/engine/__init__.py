"""
Managed send engine: batching, pacing and retries
"""

from .managed_send import ManagedSend, partition
from .rate_limiter import RateLimiter

__all__ = [
    "ManagedSend",
    "RateLimiter",
    "partition",
]
