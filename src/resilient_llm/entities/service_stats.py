"""Aggregate request statistics."""

import threading
from dataclasses import dataclass, field


@dataclass
class ServiceStats:
    """Track request outcomes for the request service.

    Counters only grow; `reset()` is the single way back to zero. All
    mutations go through the record_* methods, which serialize on an
    internal lock.
    """

    total_requests: int = 0
    successful: int = 0
    failed: int = 0
    cached: int = 0
    total_response_time_ms: float = 0.0
    total_tokens_processed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def average_response_time_ms(self) -> float:
        """Calculate average response time across all requests."""
        if self.total_requests == 0:
            return 0.0
        return self.total_response_time_ms / self.total_requests

    def record_request(self) -> None:
        with self._lock:
            self.total_requests += 1

    def record_cache_hit(self, response_time_ms: float) -> None:
        """Record a request served from the cache."""
        with self._lock:
            self.cached += 1
            self.successful += 1
            self.total_response_time_ms += response_time_ms

    def record_success(self, response_time_ms: float, tokens: int) -> None:
        """Record a request served by the upstream API."""
        with self._lock:
            self.successful += 1
            self.total_tokens_processed += tokens
            self.total_response_time_ms += response_time_ms

    def record_failure(self, response_time_ms: float) -> None:
        with self._lock:
            self.failed += 1
            self.total_response_time_ms += response_time_ms

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.successful = 0
            self.failed = 0
            self.cached = 0
            self.total_response_time_ms = 0.0
            self.total_tokens_processed = 0

    def to_dict(self, total_tokens_saved: int = 0, cache_hit_rate: float = 0.0) -> dict[str, dict]:
        """Convert stats to dictionary.

        Args:
            total_tokens_saved: Token savings reported by the response cache
            cache_hit_rate: Hit rate reported by the response cache

        Returns:
            Dict with "requests" and "performance" sections
        """
        with self._lock:
            return {
                "requests": {
                    "total": self.total_requests,
                    "successful": self.successful,
                    "failed": self.failed,
                    "cached": self.cached,
                },
                "performance": {
                    "average_response_time_ms": self.average_response_time_ms,
                    "total_tokens_processed": self.total_tokens_processed,
                    "total_tokens_saved": total_tokens_saved,
                    "cache_hit_rate": cache_hit_rate,
                },
            }
