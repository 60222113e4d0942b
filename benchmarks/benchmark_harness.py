"""Loopback engine used by the benchmark scripts.

LoopbackEngine answers every ExecuteRequest with status ok on a background
thread, over either a queue pair or a socketpair with JSON framing, so the
measured cost is the client side: statement building, the ordered channel,
and the transport.
"""

from __future__ import annotations

import queue
import socket
import threading
from typing import Any

from pyremote import EngineTransport, JSONSocketTransport, QueueTransport


class LoopbackEngine:
    def __init__(self, kind: str = "queue", output: Any = None) -> None:
        self.kind = kind
        self.output = output
        self.executed = 0
        self._thread: threading.Thread | None = None
        self._engine_side: EngineTransport | None = None
        self._client_side: EngineTransport | None = None

    def start(self) -> EngineTransport:
        """Start answering requests; returns the transport for the session."""
        if self.kind == "queue":
            to_engine: queue.Queue[Any] = queue.Queue()
            from_engine: queue.Queue[Any] = queue.Queue()
            self._client_side = QueueTransport(to_engine, from_engine)
            self._engine_side = QueueTransport(from_engine, to_engine)
        elif self.kind == "socket":
            client, engine = socket.socketpair()
            self._client_side = JSONSocketTransport(client)
            self._engine_side = JSONSocketTransport(engine)
        else:
            raise ValueError(f"Unknown transport kind: {self.kind}")

        self._thread = threading.Thread(target=self._serve, name=f"loopback-{self.kind}", daemon=True)
        self._thread.start()
        return self._client_side

    def stop(self) -> None:
        # Closing the engine side wakes its blocked recv() for both kinds
        if self._engine_side is not None:
            self._engine_side.close()
        if self._thread is not None:
            self._thread.join(timeout=2)

    def _serve(self) -> None:
        assert self._engine_side is not None
        while True:
            try:
                message = self._engine_side.recv()
            except OSError:
                break
            if message is None:
                break
            self.executed += 1
            try:
                self._engine_side.send(
                    {
                        "kind": "response",
                        "call_id": message["call_id"],
                        "code": message["code"],
                        "status": "ok",
                        "output": self.output,
                        "error": None,
                    }
                )
            except (OSError, ConnectionError):
                break
