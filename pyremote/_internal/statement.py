"""
Statement synthesis.

Turns a method invocation (receiver, method name, arguments) into the exact
source text the remote engine runs. The generated text is a contract:
listeners and tests byte-compare it, so argument rendering never adds
whitespace and embedded function bodies are reproduced verbatim.

Statement shapes::

    var <name> = <receiver>.<method>(<args>);        CallKind.ASSIGN
    <receiver>.<method>(<args>);                     CallKind.ACTION
    JSON.stringify(<receiver>.<method>(<args>));     CallKind.RETRIEVE
    var <name> = new <Class>(<args>);                CallKind.CONSTRUCT

Deferred expressions used as arguments are emitted before the statement that
consumes them. The receiver expression goes first, then the arguments left to
right, each inner expression ahead of the expression that uses it.
"""

from __future__ import annotations

import inspect
import json
import logging
import math
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Union

from ..errors import BuildError
from .naming import NameAllocator

if TYPE_CHECKING:
    from .handle import RemoteHandle

logger = logging.getLogger(__name__)


class CallKind(Enum):
    """How the result of a generated call is kept."""

    ASSIGN = "assign"  # result stored in a fresh remote variable
    ACTION = "action"  # result returned once, nothing retained
    RETRIEVE = "retrieve"  # result serialized to JSON and returned
    CONSTRUCT = "construct"  # `new Class(...)` stored in a fresh remote variable


@dataclass(frozen=True)
class SourceFragment:
    """Verbatim source text passed through to the engine unchanged.

    Used for function arguments: the engine recompiles the text, so it is
    never reformatted, minified or renamed.
    """

    text: str

    @classmethod
    def from_callable(cls, func: Callable[..., Any]) -> SourceFragment:
        """Capture the source of *func* as it appears in its file.

        The common leading indentation of a nested ``def`` is removed; every
        other character is kept. Lambdas are rejected because their source is
        the whole enclosing line; wrap the text with ``pyremote.source()``.
        """
        name = getattr(func, "__qualname__", repr(func))
        if getattr(func, "__name__", None) == "<lambda>":
            raise BuildError(
                f"Cannot capture source of lambda {name}: pass the function text via pyremote.source(...)"
            )
        try:
            text = inspect.getsource(func)
        except (OSError, TypeError) as exc:
            raise BuildError(f"Cannot capture source of {name}: {exc}") from exc
        text = textwrap.dedent(text)
        # getsource keeps the trailing newline of the last line
        if text.endswith("\n"):
            text = text[:-1]
        return cls(text)

    def __str__(self) -> str:
        return self.text


class RemoteRef:
    """Base for values rendered as a bare remote variable name."""

    name: str
    session: Any


class Expression:
    """A call that has been described but not submitted yet.

    The expression is emitted the first time it is used as an argument or
    receiver of a submitted call. From then on it is bound to the handle that
    call produced and renders as that handle's name.
    """

    def __init__(
        self,
        session: Any,
        receiver: Receiver,
        method: str,
        args: Sequence[Any],
        category: str,
        handle_type: type[RemoteHandle] | None = None,
    ) -> None:
        self.session = session
        self.receiver = receiver
        self.method = method
        self.args = tuple(args)
        self.category = category
        self.handle_type = handle_type
        self.handle: RemoteHandle | None = None

    def defer(
        self,
        method: str,
        *args: Any,
        category: str | None = None,
        handle_type: type[RemoteHandle] | None = None,
    ) -> Expression:
        """Describe a further call on the result of this expression.

        *category* defaults to the category of *handle_type*.
        """
        if category is None:
            if handle_type is None:
                raise BuildError(f"Deferred call {method!r} needs a category or a typed handle class")
            category = handle_type.category
        return Expression(self.session, self, method, args, category, handle_type)

    def _bind(self, handle: RemoteHandle) -> None:
        self.handle = handle

    def __repr__(self) -> str:
        bound = f" -> {self.handle.name}" if self.handle is not None else ""
        return f"<Expression {self.method}() category={self.category}{bound}>"


Receiver = Union[str, RemoteRef, Expression]


@dataclass(frozen=True)
class Statement:
    """One unit of generated source text.

    ``result_name`` is None when the statement retains no result.
    ``expression`` is set when the statement emits a deferred expression.
    """

    result_name: str | None
    text: str
    category: str | None = None
    kind: CallKind = CallKind.ACTION
    expression: Expression | None = None

    @property
    def retains_result(self) -> bool:
        return self.result_name is not None


class StatementBuilder:
    """Renders calls into statements, allocating result names as it goes.

    The builder validates every argument before it allocates any name, so a
    call that fails with :class:`BuildError` leaves the counters untouched.
    """

    def __init__(self, allocator: NameAllocator, session: Any = None) -> None:
        self.allocator = allocator
        self.session = session

    def build(
        self,
        receiver: Receiver,
        method: str,
        args: Sequence[Any] = (),
        *,
        kind: CallKind = CallKind.ACTION,
        category: str | None = None,
    ) -> list[Statement]:
        """Render ``receiver.method(*args)``.

        Returns the statements to submit, in order. The last one is the call
        itself; any before it emit deferred expressions found in the receiver
        or arguments.
        """
        if kind is CallKind.CONSTRUCT:
            raise ValueError("Use build_constructor() for CallKind.CONSTRUCT")
        self._check_method(method)
        self._check_receiver(receiver)
        args = self._normalize(args)
        self._check_kind(kind, category)

        statements: list[Statement] = []
        emitted: dict[int, str] = {}
        receiver_text = self._render_receiver(receiver, statements, emitted)
        args_text = self._render_args(args, statements, emitted)
        call = f"{receiver_text}.{method}({args_text})"
        statements.append(self._finish(call, kind, category))
        return statements

    def build_constructor(
        self,
        class_name: str,
        args: Sequence[Any] = (),
        *,
        category: str,
    ) -> list[Statement]:
        """Render ``var <name> = new <class_name>(<args>);``."""
        if not all(part.isidentifier() for part in class_name.split(".")):
            raise BuildError(f"Invalid class name: {class_name!r}")
        args = self._normalize(args)
        self._check_kind(CallKind.CONSTRUCT, category)

        statements: list[Statement] = []
        emitted: dict[int, str] = {}
        args_text = self._render_args(args, statements, emitted)
        statements.append(self._finish(f"new {class_name}({args_text})", CallKind.CONSTRUCT, category))
        return statements

    # ------------------------------------------------------------------
    # Validation (no side effects)
    # ------------------------------------------------------------------

    def _check_method(self, method: str) -> None:
        if not isinstance(method, str) or not method.isidentifier():
            raise BuildError(f"Invalid method name: {method!r}")

    @staticmethod
    def _check_kind(kind: CallKind, category: str | None) -> None:
        retains = kind in (CallKind.ASSIGN, CallKind.CONSTRUCT)
        if retains and not category:
            raise BuildError(f"{kind.name} calls need a result category")
        if not retains and category:
            raise BuildError(f"{kind.name} calls do not retain a result, got category {category!r}")

    def _check_receiver(self, receiver: Receiver) -> None:
        if isinstance(receiver, str):
            if not all(part.isidentifier() for part in receiver.split(".")):
                raise BuildError(f"Invalid receiver expression: {receiver!r}")
        elif isinstance(receiver, (RemoteRef, Expression)):
            self._check_value(receiver)
        else:
            raise BuildError(f"Unsupported receiver type: {type(receiver).__name__}")

    def _normalize(self, args: Sequence[Any]) -> tuple[Any, ...]:
        """Validate *args*, capturing callables as source fragments."""
        normalized = tuple(self._capture(arg) for arg in args)
        for arg in normalized:
            self._check_value(arg)
        return normalized

    def _capture(self, value: Any) -> Any:
        if isinstance(value, (RemoteRef, Expression, SourceFragment, type)):
            return value
        if callable(value):
            return SourceFragment.from_callable(value)
        return value

    def _check_value(self, value: Any) -> None:
        if value is None or isinstance(value, (bool, int, str, SourceFragment)):
            return
        if isinstance(value, float):
            if not math.isfinite(value):
                raise BuildError(f"Cannot render non-finite float {value!r}")
            return
        if isinstance(value, RemoteRef):
            self._check_same_session(value)
            return
        if isinstance(value, Expression):
            self._check_same_session(value)
            if value.handle is None:
                self._check_method(value.method)
                self._check_receiver(value.receiver)
                self._check_kind(CallKind.ASSIGN, value.category)
                for arg in value.args:
                    self._check_value(self._capture(arg))
            return
        if isinstance(value, (list, tuple)):
            for item in value:
                self._check_value(self._capture(item))
            return
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise BuildError(f"Mapping keys must be strings, got {type(key).__name__}")
                self._check_value(self._capture(item))
            return
        raise BuildError(f"Unsupported argument type: {type(value).__name__}")

    def _check_same_session(self, value: RemoteRef | Expression) -> None:
        if self.session is not None and value.session is not self.session:
            raise BuildError(f"{value!r} belongs to a different session")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _finish(self, call: str, kind: CallKind, category: str | None) -> Statement:
        if kind is CallKind.ASSIGN or kind is CallKind.CONSTRUCT:
            assert category is not None
            name = self.allocator.next(category)
            return Statement(name, f"var {name} = {call};", category, kind)
        if kind is CallKind.RETRIEVE:
            return Statement(None, f"JSON.stringify({call});", None, kind)
        return Statement(None, f"{call};", None, kind)

    def _render_receiver(self, receiver: Receiver, statements: list[Statement], emitted: dict[int, str]) -> str:
        if isinstance(receiver, str):
            return receiver
        return self._render(receiver, statements, emitted)

    def _render_args(self, args: Sequence[Any], statements: list[Statement], emitted: dict[int, str]) -> str:
        return ",".join(self._render(arg, statements, emitted) for arg in args)

    def _render(self, value: Any, statements: list[Statement], emitted: dict[int, str]) -> str:
        value = self._capture(value)
        if isinstance(value, SourceFragment):
            return value.text
        if isinstance(value, RemoteRef):
            return value.name
        if isinstance(value, Expression):
            return self._emit(value, statements, emitted)
        if value is None:
            return "null"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float, str)):
            return json.dumps(value, ensure_ascii=False)
        if isinstance(value, (list, tuple)):
            return "[" + ",".join(self._render(item, statements, emitted) for item in value) + "]"
        if isinstance(value, dict):
            items = (
                f"{json.dumps(key, ensure_ascii=False)}:{self._render(item, statements, emitted)}"
                for key, item in value.items()
            )
            return "{" + ",".join(items) + "}"
        raise BuildError(f"Unsupported argument type: {type(value).__name__}")

    def _emit(self, expr: Expression, statements: list[Statement], emitted: dict[int, str]) -> str:
        if expr.handle is not None:
            return expr.handle.name
        if id(expr) in emitted:
            return emitted[id(expr)]

        receiver_text = self._render_receiver(expr.receiver, statements, emitted)
        args_text = self._render_args(expr.args, statements, emitted)
        stmt = self._finish(f"{receiver_text}.{expr.method}({args_text})", CallKind.ASSIGN, expr.category)
        statements.append(
            Statement(stmt.result_name, stmt.text, stmt.category, stmt.kind, expression=expr)
        )
        assert stmt.result_name is not None
        emitted[id(expr)] = stmt.result_name
        logger.debug("Emitting deferred %r as %s", expr, stmt.result_name)
        return stmt.result_name
