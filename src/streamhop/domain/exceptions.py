"""Resolution exceptions.

Strategies raise these inside a hop and convert them into a failed
``ExtractionResult`` at the hop boundary; only ``InvalidRequestError`` is
allowed to reach the orchestrator's caller path unconverted.
"""

from __future__ import annotations

from streamhop.domain.entities.resolution import ErrorKind, ResolutionError


class StreamhopError(Exception):
    """Base class for all resolution errors."""

    kind: ErrorKind = ErrorKind.UPSTREAM_HTTP_ERROR

    def to_error(self) -> ResolutionError:
        return ResolutionError(kind=self.kind, message=str(self))


class InvalidRequestError(StreamhopError):
    """Raised when identifiers are missing or malformed."""

    kind = ErrorKind.INVALID_REQUEST


class UnknownServerError(InvalidRequestError):
    """Raised when the requested server has no chain definition."""


class RenderBusyError(StreamhopError):
    """Raised when no render slot frees up within the queue timeout."""

    kind = ErrorKind.BUSY


class HopError(StreamhopError):
    """Failure of one hop, tagged with its error kind.

    ``content_size`` is the size of whatever the hop did receive, so the
    trace shows e.g. a 2 KB challenge stub instead of an empty body.
    """

    def __init__(self, kind: ErrorKind, message: str, *, content_size: int = 0) -> None:
        super().__init__(message)
        self.kind = kind
        self.content_size = content_size
