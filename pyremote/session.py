"""Remote session: the binding between local handles and one engine instance.

A session owns the name counters, the listener registry and the execution
channel. Every handle it creates is valid only while it runs; stopping it
fails everything still queued and invalidates all handles.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, TypeVar, cast

from ._internal.channel import ExecutionChannel
from ._internal.handle import RemoteHandle
from ._internal.listeners import ExecuteListener, ListenerRegistry
from ._internal.messages import ExecutionRecord
from ._internal.naming import NameAllocator
from ._internal.statement import CallKind, Expression, Receiver, Statement, StatementBuilder
from ._internal.transports import EngineTransport
from .config import SessionConfig, resolve_session_config
from .errors import BuildError, SessionClosedError

__all__ = ["RemoteSession"]

logger = logging.getLogger(__name__)

H = TypeVar("H", bound=RemoteHandle)


class RemoteSession:
    """Session bound to one remote engine.

    Example:
        >>> async def main(transport):
        ...     async with RemoteSession(transport) as session:
        ...         sc = session.handle("SparkContext", "sc")
        ...         lines = sc.invoke("textFile", "/tmp/dream.txt", category="RDD")
        ...         print(await lines.action("count"))
    """

    def __init__(self, transport: EngineTransport, config: SessionConfig | None = None) -> None:
        """Create a session; call :meth:`start` (or use ``async with``) before issuing calls.

        Args:
            transport: Connection to the engine.
            config: Optional session settings, see :class:`SessionConfig`.
        """
        self.id = str(uuid.uuid4())
        self.config = resolve_session_config(config)
        self.allocator = NameAllocator()
        self.listeners = ListenerRegistry()
        self.builder = StatementBuilder(self.allocator, self)
        self.loop: asyncio.AbstractEventLoop | None = None
        self._channel = ExecutionChannel(
            transport,
            self.listeners,
            max_in_flight=self.config["max_in_flight"],
            debug_statements=self.config["debug_statements"],
        )
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> RemoteSession:
        """Bind to *loop* (default: the running loop) and open the channel."""
        if self._closed:
            raise RuntimeError(f"Session {self.id} was stopped; create a new session")
        if self._started:
            raise RuntimeError(f"Session {self.id} is already started")
        self.loop = loop if loop is not None else asyncio.get_running_loop()
        self._channel.start(self.loop)
        self._started = True
        logger.debug("Session %s started", self.id)
        return self

    def stop(self) -> None:
        """Tear down the channel. Outstanding statements fail with SessionClosedError."""
        if self._closed:
            return
        self._closed = True
        self._channel.stop()
        logger.debug("Session %s stopped", self.id)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed or self._channel.stopped

    async def drain(self) -> None:
        """Wait until every statement submitted so far has completed (ok or error)."""
        futures = self._channel.pending_futures()
        if futures:
            await asyncio.gather(*futures, return_exceptions=True)

    async def __aenter__(self) -> RemoteSession:
        if not self._started:
            self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            if exc_type is None and not self.closed:
                await self.drain()
        finally:
            self.stop()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_execute_listener(self, listener: ExecuteListener) -> None:
        """Call *listener* with every ExecutionRecord, in submission order."""
        self.listeners.add(listener)

    def remove_execute_listener(self, listener: ExecuteListener) -> bool:
        return self.listeners.remove(listener)

    # ------------------------------------------------------------------
    # Statement entry points
    # ------------------------------------------------------------------

    def execute(self, code: str) -> asyncio.Future[ExecutionRecord]:
        """Submit raw statement text as-is."""
        self._check_open()
        return self._channel.submit(code)

    def handle(self, category: str, name: str, handle_type: type[H] | None = None) -> H:
        """Wrap a variable that already exists in the engine (e.g. ``sc``)."""
        self._check_open()
        if not name.isidentifier():
            raise BuildError(f"Invalid remote variable name: {name!r}")
        cls = cast("type[H]", handle_type or RemoteHandle)
        return cls(self, name, None, category=category)

    def call(
        self,
        receiver: Receiver,
        method: str,
        *args: Any,
        category: str | None = None,
        handle_type: type[H] | None = None,
    ) -> H:
        """Submit ``var <name> = receiver.method(*args);`` and return the new handle."""
        cls, category = self._result_type(category, handle_type)
        statements = self._build(receiver, method, args, CallKind.ASSIGN, category)
        future = self._submit(statements)
        return cast(H, self._make_handle(cls, category, statements[-1], future))

    def construct(
        self,
        class_name: str,
        *args: Any,
        category: str | None = None,
        handle_type: type[H] | None = None,
    ) -> H:
        """Submit ``var <name> = new class_name(*args);`` and return the new handle."""
        self._check_open()
        cls, category = self._result_type(category, handle_type)
        statements = self.builder.build_constructor(class_name, args, category=category)
        future = self._submit(statements)
        return cast(H, self._make_handle(cls, category, statements[-1], future))

    def action(self, receiver: Receiver, method: str, *args: Any) -> asyncio.Future[Any]:
        """Submit ``receiver.method(*args);``; the future resolves with the engine output."""
        statements = self._build(receiver, method, args, CallKind.ACTION, None)
        return self._output(self._submit(statements))

    def retrieve(self, receiver: Receiver, method: str, *args: Any) -> asyncio.Future[Any]:
        """Submit ``JSON.stringify(receiver.method(*args));``; resolves with the decoded value."""
        statements = self._build(receiver, method, args, CallKind.RETRIEVE, None)
        return self._output(self._submit(statements))

    def defer(
        self,
        receiver: Receiver,
        method: str,
        *args: Any,
        category: str | None = None,
        handle_type: type[RemoteHandle] | None = None,
    ) -> Expression:
        """Describe a call to be emitted when first used as an argument or receiver."""
        self._check_open()
        cls, category = self._result_type(category, handle_type)
        return Expression(self, receiver, method, args, category, cls)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self.closed:
            raise SessionClosedError(f"Session {self.id} is stopped; its handles are no longer valid")
        if not self._started:
            raise RuntimeError(f"Session {self.id} has not been started")

    @staticmethod
    def _result_type(
        category: str | None, handle_type: type[RemoteHandle] | None
    ) -> tuple[type[RemoteHandle], str]:
        cls = handle_type or RemoteHandle
        resolved = category or (handle_type.category if handle_type is not None else None)
        if not resolved:
            raise BuildError("A category or a typed handle class is required for calls that keep a result")
        return cls, resolved

    def _build(
        self,
        receiver: Receiver,
        method: str,
        args: tuple[Any, ...],
        kind: CallKind,
        category: str | None,
    ) -> list[Statement]:
        self._check_open()
        if isinstance(receiver, RemoteHandle) and receiver.session is not self:
            if receiver.session.closed:
                raise SessionClosedError(f"{receiver!r} belongs to a stopped session")
        return self.builder.build(receiver, method, args, kind=kind, category=category)

    def _submit(self, statements: list[Statement]) -> asyncio.Future[ExecutionRecord]:
        """Submit a batch in order; returns the future of the last statement."""
        future: asyncio.Future[ExecutionRecord] | None = None
        for stmt in statements:
            decode = stmt.kind is CallKind.RETRIEVE and self.config["decode_json_output"]
            future = self._channel.submit(stmt.text, decode_json=decode)
            if stmt.expression is not None:
                expr = stmt.expression
                cls = expr.handle_type or RemoteHandle
                expr._bind(self._make_handle(cls, expr.category, stmt, future))
        assert future is not None
        return future

    def _make_handle(
        self,
        cls: type[RemoteHandle],
        category: str,
        stmt: Statement,
        future: asyncio.Future[ExecutionRecord],
    ) -> RemoteHandle:
        assert stmt.result_name is not None
        return cls(self, stmt.result_name, future, category=category)

    def _output(self, future: asyncio.Future[ExecutionRecord]) -> asyncio.Future[Any]:
        assert self.loop is not None
        output: asyncio.Future[Any] = self.loop.create_future()

        def _on_done(f: asyncio.Future[ExecutionRecord]) -> None:
            if output.done():
                return
            if f.cancelled():
                output.cancel()
            elif f.exception() is not None:
                output.set_exception(cast(BaseException, f.exception()))
            else:
                output.set_result(f.result()["output"])

        future.add_done_callback(_on_done)
        return output

    def __repr__(self) -> str:
        state = "closed" if self.closed else ("running" if self._started else "new")
        return f"<RemoteSession {self.id[:8]} {state}>"
