"""Per-session variable naming for remote objects."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


def category_prefix(category: str) -> str:
    """Return the variable prefix used for *category*.

    The leading run of capitals is lowercased, except for the last capital of
    a run that starts the next word: ``RDD`` -> ``rdd``, ``DataFrame`` ->
    ``dataFrame``, ``SQLContext`` -> ``sqlContext``, ``Table`` -> ``table``.
    """
    if not category or not category.isidentifier():
        raise ValueError(f"Category must be a non-empty identifier, got {category!r}")
    run = 0
    while run < len(category) and category[run].isupper():
        run += 1
    if run == len(category):
        return category.lower()
    if run > 1:
        run -= 1
    return category[:run].lower() + category[run:]


class NameAllocator:
    """Hands out ``<prefix><n>`` names, one independent counter per prefix.

    Counters start at 1 and only ever grow, so a name is never reused while
    the allocator lives. Counters are kept per prefix: categories that map to
    the same prefix (``Table``, ``TABLE``) share one sequence. Each session owns
    exactly one allocator.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()

    def next(self, category: str) -> str:
        prefix = category_prefix(category)
        with self._lock:
            count = self._counters.get(prefix, 0) + 1
            self._counters[prefix] = count
        return f"{prefix}{count}"

    def peek(self, category: str) -> int:
        """Number of names issued so far for the prefix of *category*."""
        prefix = category_prefix(category)
        with self._lock:
            return self._counters.get(prefix, 0)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
        logger.debug("Name counters reset")
