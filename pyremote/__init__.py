"""
pyremote - Drive a remote, stateful execution engine through local method chaining.

Every call on a handle is turned into one line of engine source code, assigned
to a fresh variable in the engine's persistent session, and submitted without
blocking. The caller gets a new handle back immediately; the engine runs the
statements strictly in the order they were issued.

Key Features:
    - Deterministic per-category variable names (``dataFrame1``, ``column2``)
    - Byte-exact statement text, including verbatim function bodies
    - Strict FIFO execution with out-of-order response handling
    - Execute listeners for introspection and diagnostics

Basic Usage:
    >>> import asyncio
    >>> import pyremote
    >>> from pyremote.dataframe import DataFrame
    >>> async def main(transport):
    ...     async with pyremote.RemoteSession(transport) as session:
    ...         session.add_execute_listener(lambda record: print(record["code"]))
    ...         df = session.handle("DataFrame", "people", DataFrame)
    ...         adults = df.filter("age > 20")
    ...         print(await adults.count())
"""

from ._internal.handle import RemoteHandle
from ._internal.messages import ExecutionRecord
from ._internal.statement import CallKind, Expression, SourceFragment, Statement
from ._internal.transports import ConnectionTransport, EngineTransport, JSONSocketTransport, QueueTransport
from .config import SessionConfig, load_session_config
from .errors import BuildError, ExecutionError, OrderingViolation, RemoteError, SessionClosedError
from .session import RemoteSession

__version__ = "0.1.0"

__all__ = [
    "RemoteSession",
    "RemoteHandle",
    "Expression",
    "SourceFragment",
    "Statement",
    "CallKind",
    "ExecutionRecord",
    "SessionConfig",
    "load_session_config",
    "EngineTransport",
    "QueueTransport",
    "ConnectionTransport",
    "JSONSocketTransport",
    "RemoteError",
    "BuildError",
    "ExecutionError",
    "OrderingViolation",
    "SessionClosedError",
    "source",
]


def source(text: str) -> SourceFragment:
    """Wrap engine source text (e.g. a function literal) to pass it through verbatim."""
    return SourceFragment(text)
