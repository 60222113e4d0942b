"""
Wire messages and execution records.

This module contains:
1. Wire TypedDicts: ExecuteRequest, ExecuteResponse
2. Caller-side records: ExecutionRecord, PendingStatement
"""

from __future__ import annotations

import asyncio
from typing import Any, Literal, TypedDict, Union

ExecutionStatus = Literal["ok", "error"]


class ExecuteRequest(TypedDict):
    kind: Literal["execute"]
    call_id: int
    code: str


class ExecuteResponse(TypedDict):
    kind: Literal["response"]
    call_id: int
    code: str
    status: ExecutionStatus
    output: Any
    error: str | None


class ExecutionRecord(TypedDict):
    """Outcome of one statement, as seen by listeners and the submitting caller.

    ``code`` is the exact text that was submitted.
    """

    code: str
    status: ExecutionStatus
    output: Any
    error: str | None


class PendingStatement(TypedDict):
    call_id: int
    code: str
    decode_json: bool
    calling_loop: asyncio.AbstractEventLoop
    future: asyncio.Future[Any]


WireMessage = Union[ExecuteRequest, ExecuteResponse]


def record_from_response(response: ExecuteResponse) -> ExecutionRecord:
    return ExecutionRecord(
        code=response["code"],
        status=response["status"],
        output=response.get("output"),
        error=response.get("error"),
    )
