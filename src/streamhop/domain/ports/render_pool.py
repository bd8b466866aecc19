"""Port for bounded rendering-engine capacity."""

from __future__ import annotations

from typing import Any, AsyncContextManager, Protocol, runtime_checkable


@runtime_checkable
class RenderPoolPort(Protocol):
    """Counting pool of render slots shared across all requests.

    ``slot()`` is an async context manager yielding the shared browser
    handle.  The slot is released on every exit path, including
    cancellation.  Raises ``RenderBusyError`` when no slot frees up in time.
    """

    def slot(self) -> AsyncContextManager[Any]:
        ...

    def snapshot(self) -> dict[str, int]:
        """Current slot utilisation (for metrics)."""
        ...
