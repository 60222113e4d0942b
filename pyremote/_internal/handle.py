"""Remote handle: local proxy for a variable living in the engine session.

A handle carries two futures that are never merged:

- ``identity`` resolves with the remote variable name. Names are allocated
  client-side when the statement is built, so it is already done when the
  handle is returned.
- ``ready`` resolves with the owning session once the engine confirms the
  defining statement ran, or fails with the ExecutionError it reported.
  A failure on ``ready`` counts as retrieved, so handles that are never
  awaited do not trigger asyncio's "exception was never retrieved" log.

Further calls on a handle may be issued before ``ready`` resolves; the
channel queues them behind the defining statement.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Generator
from typing import TYPE_CHECKING, Any, TypeVar

from .messages import ExecutionRecord
from .statement import Expression, RemoteRef

if TYPE_CHECKING:
    from ..session import RemoteSession

logger = logging.getLogger(__name__)

H = TypeVar("H", bound="RemoteHandle")


class RemoteHandle(RemoteRef):
    """Handle to an object created by a statement in a remote session.

    Attributes:
        session: The session that created the handle. The handle is only
            valid there, and only until that session stops.
        name: Remote variable name, e.g. ``dataFrame1``.
        category: Kind of remote object; picks the name prefix.
        record: ExecutionRecord of the defining statement once it succeeded.
    """

    category: str = "Object"

    def __init__(
        self,
        session: RemoteSession,
        name: str,
        defined_by: asyncio.Future[ExecutionRecord] | None = None,
        *,
        category: str | None = None,
    ) -> None:
        self.session = session
        self.name = name
        if category is not None:
            self.category = category
        self.record: ExecutionRecord | None = None

        loop = session.loop
        self.identity: asyncio.Future[str] = loop.create_future()
        self.identity.set_result(name)
        self.ready: asyncio.Future[RemoteSession] = loop.create_future()
        if defined_by is None:
            self.ready.set_result(session)
        else:
            defined_by.add_done_callback(self._on_defined)

    def _on_defined(self, future: asyncio.Future[ExecutionRecord]) -> None:
        if self.ready.done():
            return
        if future.cancelled():
            self.ready.cancel()
            return
        exc = future.exception()
        if exc is not None:
            logger.debug("Definition of %s failed: %s", self.name, exc)
            self.ready.set_exception(exc)
            # Mark as retrieved
            self.ready.exception()
            return
        self.record = future.result()
        self.ready.set_result(self.session)

    @property
    def valid(self) -> bool:
        """False once the owning session has stopped."""
        return not self.session.closed

    async def wait(self: H) -> H:
        """Wait until the engine confirmed this handle's definition."""
        await self.ready
        return self

    def __await__(self: H) -> Generator[Any, None, H]:
        return self.wait().__await__()

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    def invoke(
        self,
        method: str,
        *args: Any,
        category: str | None = None,
        handle_type: type[H] | None = None,
    ) -> Any:
        """Derive a new handle from ``self.<method>(*args)``."""
        return self.session.call(self, method, *args, category=category, handle_type=handle_type)

    def action(self, method: str, *args: Any) -> asyncio.Future[Any]:
        """Run ``self.<method>(*args)`` without keeping a result; returns its output."""
        return self.session.action(self, method, *args)

    def retrieve(self, method: str, *args: Any) -> asyncio.Future[Any]:
        """Run ``self.<method>(*args)`` and return its JSON-decoded output."""
        return self.session.retrieve(self, method, *args)

    def defer(
        self,
        method: str,
        *args: Any,
        category: str | None = None,
        handle_type: type[RemoteHandle] | None = None,
    ) -> Expression:
        """Describe ``self.<method>(*args)`` without submitting it."""
        return self.session.defer(self, method, *args, category=category, handle_type=handle_type)

    def _derive(self, handle_type: type[H], method: str, *args: Any) -> H:
        return self.session.call(self, method, *args, handle_type=handle_type)

    def __repr__(self) -> str:
        if self.ready.done() and not self.ready.cancelled() and self.ready.exception() is None:
            state = "ready"
        elif self.ready.done():
            state = "failed"
        else:
            state = "pending"
        return f"<{type(self).__name__} {self.name} category={self.category} {state}>"
