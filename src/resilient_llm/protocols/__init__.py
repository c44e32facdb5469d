"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (memory -> Redis, Anthropic -> any other API)
- Unit testing with fake implementations
- Clear separation of concerns
"""

from .cache_store import CacheStore
from .session_observer import SessionContextObserver
from .upstream_client import UpstreamClient

__all__ = [
    "CacheStore",
    "SessionContextObserver",
    "UpstreamClient",
]
