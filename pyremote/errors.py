"""Error types raised by pyremote."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._internal.messages import ExecutionRecord


class RemoteError(Exception):
    """Base class for all pyremote errors."""


class BuildError(RemoteError):
    """Raised synchronously when a call cannot be rendered as a statement."""


class OrderingViolation(RemoteError):
    """Raised when a statement would reference a name the engine cannot have yet."""


class SessionClosedError(RemoteError):
    """Raised for statements or handles that outlived their session."""


class ExecutionError(RemoteError):
    """Raised when the engine reports a failure for a submitted statement.

    The full record is kept on ``record`` so callers can inspect the code
    that failed and the engine's error detail.
    """

    record: ExecutionRecord

    def __init__(self, record: ExecutionRecord) -> None:
        self.record = record
        super().__init__(f"Remote execution failed: {record.get('error')}\nCode: {record['code']}")
