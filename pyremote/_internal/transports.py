"""
Engine transport layer.

This module contains:
- EngineTransport Protocol
- QueueTransport
- ConnectionTransport
- JSONSocketTransport

A transport moves ExecuteRequest dicts to the engine and ExecuteResponse
dicts back. It makes no ordering promise of its own; ordering is enforced by
the ExecutionChannel.
"""

from __future__ import annotations

import base64
import contextlib
import json
import logging
import socket
import struct
import threading
from typing import (
    TYPE_CHECKING,
    Any,
    Protocol,
    runtime_checkable,
)

if TYPE_CHECKING:
    from multiprocessing.connection import Connection

logger = logging.getLogger(__name__)

_MAX_MESSAGE_BYTES = 100 * 1024 * 1024


@runtime_checkable
class EngineTransport(Protocol):
    """Protocol for engine transport mechanisms.

    Implementations must provide thread-safe send/recv operations. ``recv``
    returns None once the engine side has closed the stream.
    """

    def send(self, obj: Any) -> None:
        """Send an object to the engine."""
        ...

    def recv(self) -> Any:
        """Receive an object from the engine. Blocks until available."""
        ...

    def close(self) -> None:
        """Close the transport. Further send/recv calls may fail."""
        ...


class QueueTransport:
    """Transport over a pair of queues (``queue.Queue`` or ``multiprocessing.Queue``)."""

    def __init__(self, send_queue: Any, recv_queue: Any) -> None:
        self._send_queue = send_queue
        self._recv_queue = recv_queue
        self._closed = False

    def send(self, obj: Any) -> None:
        if self._closed:
            raise ConnectionError("Transport closed")
        self._send_queue.put(obj)

    def recv(self) -> Any:
        return self._recv_queue.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake our own receiver, which may be blocked in get()
        with contextlib.suppress(Exception):
            self._recv_queue.put(None)


class ConnectionTransport:
    """Transport over a ``multiprocessing.connection.Connection``."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    def send(self, obj: Any) -> None:
        with self._lock:
            self._conn.send(obj)

    def recv(self) -> Any:
        try:
            return self._conn.recv()
        except EOFError:
            return None

    def close(self) -> None:
        with contextlib.suppress(Exception):
            self._conn.close()


class JSONSocketTransport:
    """Transport over a stream socket with length-prefixed JSON frames.

    Each frame is a 4-byte big-endian length followed by UTF-8 JSON. Engine
    outputs that are not plain JSON come back as whatever the engine encoded;
    bytes are carried as base64 on the way out.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._lock = threading.Lock()
        self._recv_lock = threading.Lock()

    def send(self, obj: Any) -> None:
        """Serialize to JSON with length prefix."""
        try:
            data = json.dumps(obj, default=self._json_default).encode("utf-8")
        except TypeError as e:
            type_name = type(obj).__name__
            logger.error("Cannot serialize %s for the engine: %s", type_name, e)
            raise TypeError(f"Cannot JSON-serialize {type_name}: {e}") from e

        msg = struct.pack(">I", len(data)) + data
        with self._lock:
            self._sock.sendall(msg)

    def recv(self) -> Any:
        """Receive one length-prefixed JSON message, or None on clean EOF."""
        with self._recv_lock:
            raw_len = self._recvall(4)
            if not raw_len:
                return None
            if len(raw_len) < 4:
                raise ConnectionError("Socket closed inside length header")
            msg_len = struct.unpack(">I", raw_len)[0]
            if msg_len > _MAX_MESSAGE_BYTES:
                raise ValueError(f"Message too large: {msg_len} bytes")
            data = self._recvall(msg_len)
            if len(data) < msg_len:
                raise ConnectionError(f"Incomplete message: got {len(data)}/{msg_len} bytes")
            return json.loads(data.decode("utf-8"), object_hook=self._json_object_hook)

    def _recvall(self, n: int) -> bytes:
        """Receive exactly n bytes from the socket."""
        chunks = []
        remaining = n
        while remaining > 0:
            chunk = self._sock.recv(min(remaining, 65536))
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        """Close the underlying socket."""
        with contextlib.suppress(Exception):
            self._sock.shutdown(socket.SHUT_RDWR)
        with contextlib.suppress(Exception):
            self._sock.close()

    @staticmethod
    def _json_default(obj: Any) -> Any:
        if isinstance(obj, bytes):
            return {"__pyremote_bytes__": True, "data": base64.b64encode(obj).decode("ascii")}
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=repr)
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")

    @staticmethod
    def _json_object_hook(dct: dict[str, Any]) -> Any:
        if dct.get("__pyremote_bytes__"):
            return base64.b64decode(dct["data"])
        return dct
