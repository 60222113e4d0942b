"""
Ordered execution channel.

ExecutionChannel is the only place that orders statements. Callers submit
from the event loop thread and get a future back immediately; a send thread
drains the outbox in submission order and a receive thread matches engine
responses to their futures by call_id.

With ``max_in_flight=1`` (the default) the send thread waits for each
acknowledgment before putting the next statement on the wire, so the engine
can never overlap two statements. Larger values pipeline requests and rely on
the engine executing them in arrival order. Either way listeners see records
in submission order: responses that overtake an earlier statement are held
back until the gap is filled.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import queue
import threading
import uuid
from typing import Any, Callable

from ..errors import ExecutionError, OrderingViolation, SessionClosedError
from .listeners import ListenerRegistry
from .messages import (
    ExecuteRequest,
    ExecuteResponse,
    ExecutionRecord,
    PendingStatement,
    record_from_response,
)
from .transports import EngineTransport

logger = logging.getLogger(__name__)


class ExecutionChannel:
    """Ordered submission/response pipe to one engine."""

    def __init__(
        self,
        transport: EngineTransport,
        listeners: ListenerRegistry | None = None,
        *,
        max_in_flight: int = 1,
        debug_statements: bool = False,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError(f"max_in_flight must be >= 1, got {max_in_flight}")
        self.id = str(uuid.uuid4())
        self.listeners = listeners if listeners is not None else ListenerRegistry()
        self.max_in_flight = max_in_flight
        self.debug_statements = debug_statements
        self.default_loop: asyncio.AbstractEventLoop | None = None

        self._transport = transport
        self.lock = threading.Lock()
        self._slots = threading.Condition(self.lock)
        self.pending: dict[int, PendingStatement] = {}
        self.outbox: queue.Queue[PendingStatement | None] = queue.Queue()
        self._next_call_id = 0
        self._last_sent = -1
        self._in_flight = 0
        # Completed records waiting for an earlier statement before listeners see them
        self._arrived: dict[int, ExecutionRecord] = {}
        self._next_notify = 0
        self._threads: list[threading.Thread] = []
        self._started = False
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._started and not self._stopping

    @property
    def stopped(self) -> bool:
        return self._stopping

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind the caller's event loop and start the send/receive threads."""
        if self._stopping:
            raise RuntimeError(f"Channel {self.id} was stopped and cannot be restarted")
        if self._started:
            raise RuntimeError(f"Channel {self.id} is already running")
        self.default_loop = loop if loop is not None else asyncio.get_running_loop()
        self._threads = [
            threading.Thread(target=self._recv_thread, name=f"pyremote-recv-{self.id[:8]}", daemon=True),
            threading.Thread(target=self._send_thread, name=f"pyremote-send-{self.id[:8]}", daemon=True),
        ]
        self._started = True
        for t in self._threads:
            t.start()
        logger.debug("Channel %s started (max_in_flight=%d)", self.id, self.max_in_flight)

    def submit(self, code: str, *, decode_json: bool = False) -> asyncio.Future[ExecutionRecord]:
        """Queue *code* for execution and return a future for its record.

        Never blocks. The future fails with :class:`ExecutionError` when the
        engine reports an error, and with :class:`SessionClosedError` when the
        channel stops before the statement completes.
        """
        if self._stopping:
            raise SessionClosedError(f"Channel {self.id} is stopped")
        if not self._started or self.default_loop is None:
            raise RuntimeError(f"Channel {self.id} has not been started")

        loop = self.default_loop
        future: asyncio.Future[ExecutionRecord] = loop.create_future()
        with self.lock:
            call_id = self._next_call_id
            self._next_call_id += 1
            pending = PendingStatement(
                call_id=call_id,
                code=code,
                decode_json=decode_json,
                calling_loop=loop,
                future=future,
            )
            self.pending[call_id] = pending

        if self.debug_statements:
            logger.debug("Channel %s queued #%d: %s", self.id[:8], call_id, code)
        self.outbox.put(pending)
        return future

    def pending_futures(self) -> list[asyncio.Future[ExecutionRecord]]:
        """Futures of every statement that has not completed yet, in submission order."""
        with self.lock:
            return [self.pending[call_id]["future"] for call_id in sorted(self.pending)]

    def stop(self) -> None:
        """Abandon the queue and fail every outstanding future. Idempotent.

        Listeners still receive one record per submitted statement, in
        submission order: records held back behind an unfinished statement,
        and an error record for each abandoned one. After that the registry
        is empty.
        """
        with self._slots:
            if self._stopping:
                return
            self._stopping = True
            abandoned = [self.pending[call_id] for call_id in sorted(self.pending)]
            self.pending.clear()

            final = dict(self._arrived)
            self._arrived.clear()
            for pending in abandoned:
                final[pending["call_id"]] = ExecutionRecord(
                    code=pending["code"],
                    status="error",
                    output=None,
                    error="Session stopped before statement completed",
                )
            loop = self.default_loop
            if loop is not None and not loop.is_closed():
                for call_id in sorted(final):
                    self._call_soon(loop, self.listeners.notify, final[call_id])
                # Queued behind every notification scheduled so far
                self._call_soon(loop, self.listeners.clear)
            else:
                self.listeners.clear()
            self._slots.notify_all()

        self.outbox.put(None)
        for pending in abandoned:
            self._call_soon(
                pending["calling_loop"],
                self._reject,
                pending["future"],
                SessionClosedError(f"Session stopped before statement completed: {pending['code']}"),
            )
        with contextlib.suppress(Exception):
            self._transport.close()
        logger.debug("Channel %s stopped, %d statement(s) abandoned", self.id, len(abandoned))

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _complete(self, call_id: int, record: ExecutionRecord) -> None:
        with self._slots:
            pending = self.pending.pop(call_id, None)
            if pending is None:
                if self._stopping:
                    logger.debug("Channel %s dropping late response for #%s", self.id, call_id)
                else:
                    logger.warning("Channel %s received response for unknown call_id %r", self.id, call_id)
                return
            self._in_flight -= 1
            self._slots.notify()

            record = self._finalize(pending, record)
            self._arrived[call_id] = record
            loop = pending["calling_loop"]
            # Scheduled under the lock: callback order must equal _next_notify order
            while self._next_notify in self._arrived:
                self._call_soon(loop, self.listeners.notify, self._arrived.pop(self._next_notify))
                self._next_notify += 1
            self._call_soon(loop, self._resolve, pending["future"], record)

    def _finalize(self, pending: PendingStatement, record: ExecutionRecord) -> ExecutionRecord:
        if record["code"] != pending["code"]:
            logger.warning(
                "Engine echoed different code for #%d: sent %r, got %r",
                pending["call_id"], pending["code"], record["code"],
            )
        record = ExecutionRecord(
            code=pending["code"],
            status=record["status"],
            output=record.get("output"),
            error=record.get("error"),
        )
        if record["status"] == "ok" and pending["decode_json"] and isinstance(record["output"], str):
            try:
                record["output"] = json.loads(record["output"])
            except ValueError as exc:
                record["status"] = "error"
                record["error"] = f"Engine output is not valid JSON: {exc}"
        return record

    @staticmethod
    def _resolve(future: asyncio.Future[ExecutionRecord], record: ExecutionRecord) -> None:
        if future.done():
            return
        if record["status"] == "error":
            future.set_exception(ExecutionError(record))
        else:
            future.set_result(record)

    @staticmethod
    def _reject(future: asyncio.Future[Any], exc: BaseException) -> None:
        if not future.done():
            future.set_exception(exc)

    def _call_soon(self, loop: asyncio.AbstractEventLoop, callback: Callable[..., Any], *args: Any) -> None:
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError as e:
            if "closed" in str(e):
                logger.warning("Channel %s: event loop closed, dropping %s", self.id, callback)
            else:
                raise

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    def _send_thread(self) -> None:
        while True:
            try:
                item = self.outbox.get()
                if item is None:
                    break

                with self._slots:
                    while self._in_flight >= self.max_in_flight and not self._stopping:
                        self._slots.wait()
                    if self._stopping:
                        break
                    if item["call_id"] not in self.pending:
                        continue
                    if item["call_id"] <= self._last_sent:
                        raise OrderingViolation(
                            f"Statement #{item['call_id']} dequeued after #{self._last_sent}"
                        )
                    self._last_sent = item["call_id"]
                    self._in_flight += 1

                request = ExecuteRequest(kind="execute", call_id=item["call_id"], code=item["code"])
                try:
                    self._transport.send(request)
                except Exception as exc:
                    if self._stopping:
                        logger.debug("Channel %s send aborted by shutdown (%s)", self.id, exc)
                        break
                    logger.error("Statement send failed (call_id=%d): %s", item["call_id"], exc)
                    self._complete(
                        item["call_id"],
                        ExecutionRecord(code=item["code"], status="error", output=None, error=f"Send failed: {exc}"),
                    )

            except OrderingViolation:
                logger.exception("Channel %s ordering invariant broken; stopping", self.id)
                self.stop()
                break

    def _recv_thread(self) -> None:
        while True:
            try:
                message = self._transport.recv()
            except Exception as exc:
                if self._stopping:
                    logger.debug(f"Channel {self.id} shutting down ({exc})")
                else:
                    logger.error(f"Engine recv failed (channel_id={self.id}): {exc}")
                    self.stop()
                break

            if message is None:
                if not self._stopping:
                    logger.warning("Channel %s: engine closed the connection", self.id)
                    self.stop()
                break

            if not isinstance(message, dict) or message.get("kind") != "response":
                logger.warning("Channel %s ignoring unexpected engine message: %r", self.id, message)
                continue

            try:
                response: ExecuteResponse = message  # type: ignore[assignment]
                call_id = response["call_id"]
                record = record_from_response(response)
            except KeyError as exc:
                logger.warning("Channel %s ignoring malformed response (missing %s): %r", self.id, exc, message)
                continue

            self._complete(call_id, record)
