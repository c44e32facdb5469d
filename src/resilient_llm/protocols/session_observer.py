"""Session-context observer protocol.

The observer tracks cumulative token usage per conversation for downstream
features such as automatic compaction.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class SessionContextObserver(Protocol):
    """Receives "session X consumed N tokens" notifications.

    Delivery is best-effort: the request service logs and ignores any
    exception raised here.
    """

    async def update_session_context(self, session_id: str, tokens: int) -> None:
        ...
