from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, TypedDict

import yaml

logger = logging.getLogger(__name__)

_DEFAULT_MAX_IN_FLIGHT = 1


class SessionConfig(TypedDict, total=False):
    """Configuration for a :class:`~pyremote.session.RemoteSession`.

    Every key is optional; :func:`resolve_session_config` fills in defaults.
    """

    max_in_flight: int
    """Unacknowledged statements allowed on the wire. 1 means stop-and-wait."""

    debug_statements: bool
    """Log every submitted statement at DEBUG level."""

    decode_json_output: bool
    """Decode the output of retrieval statements (``JSON.stringify(...)``) as JSON."""


def resolve_session_config(config: SessionConfig | None = None) -> SessionConfig:
    """Return a complete config with defaults applied and values validated."""
    resolved = SessionConfig(
        max_in_flight=_DEFAULT_MAX_IN_FLIGHT,
        debug_statements=bool(os.environ.get("PYREMOTE_DEBUG_STATEMENTS")),
        decode_json_output=True,
    )
    if config:
        unknown = set(config) - set(SessionConfig.__annotations__)
        if unknown:
            raise ValueError(f"Unknown session config keys: {sorted(unknown)}")
        resolved.update(config)

    max_in_flight = resolved["max_in_flight"]
    if isinstance(max_in_flight, bool) or not isinstance(max_in_flight, int) or max_in_flight < 1:
        raise ValueError(f"max_in_flight must be a positive integer, got {max_in_flight!r}")
    return resolved


def load_session_config(path: str | os.PathLike[str]) -> SessionConfig:
    """Load a session config from a YAML mapping file.

    Example file::

        max_in_flight: 4
        debug_statements: true
    """
    with open(Path(path)) as f:
        data: Any = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError(f"Session config {path} must be a mapping, got {type(data).__name__}")

    logger.debug("Loaded session config from %s: %s", path, data)
    return resolve_session_config(SessionConfig(**data))  # type: ignore[typeddict-item]
