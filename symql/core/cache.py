"""Statement memoization cache.

Compiled statements are keyed by statement *shape*: the clause and
expression structure with template slots left symbolic. Call arguments are
never part of the key, so every call of a statement reuses one compiled
result. The cache is unbounded; shapes are few compared to calls.

Components:
- shape_key: Hashable shape of a structured statement
- CacheStats: Hit and miss counters
- StatementCache: Thread-safe shape -> CompiledStatement map
- get_statement_cache: Process-wide default cache
"""

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Optional

from mypy_extensions import mypyc_attr

from symql.utils.logging import get_logger

if TYPE_CHECKING:
    from symql.core.compiler import CompiledStatement
    from symql.core.dialect import Dialect

__all__ = ("CacheStats", "StatementCache", "get_statement_cache", "reset_statement_cache", "shape_key")

logger = get_logger("symql.core.cache")


def shape_key(node: Any) -> Any:
    """Return the hashable shape of ``node``.

    Lists and tuples keep their container kind, strings (directives,
    identifiers and slots) are kept as they are, and every other leaf is
    tagged with its type and printed form so that ``1``, ``1.0`` and
    ``True`` stay distinct.
    """
    if isinstance(node, list):
        return ("[", *(shape_key(element) for element in node))
    if isinstance(node, tuple):
        return ("(", *(shape_key(element) for element in node))
    if isinstance(node, str):
        return node
    return (type(node).__qualname__, repr(node))


@mypyc_attr(allow_interpreted_subclasses=False)
class CacheStats:
    """Cache statistics tracking."""

    __slots__ = ("hits", "misses")

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0

    def __repr__(self) -> str:
        return f"CacheStats(hit_rate={self.hit_rate:.1f}%, hits={self.hits}, misses={self.misses})"


@mypyc_attr(allow_interpreted_subclasses=False)
class StatementCache:
    """Unbounded, thread-safe cache of compiled statements.

    Compilation runs outside the lock. When two threads compile the same
    shape at once the first stored result wins; both results are equal.
    """

    __slots__ = ("_cache", "_lock", "_stats")

    def __init__(self) -> None:
        self._cache: "dict[Any, CompiledStatement]" = {}
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def get(self, key: Any) -> "Optional[CompiledStatement]":
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._stats.record_miss()
            else:
                self._stats.record_hit()
            return entry

    def set(self, key: Any, value: "CompiledStatement") -> "CompiledStatement":
        """Store ``value`` unless ``key`` is already present; return the stored entry."""
        with self._lock:
            return self._cache.setdefault(key, value)

    def get_or_compile(
        self, dialect: "Dialect", statement: "list[Any]", compile_statement: "Callable[[list[Any]], CompiledStatement]"
    ) -> "CompiledStatement":
        key = (dialect, shape_key(statement))
        entry = self.get(key)
        if entry is not None:
            return entry
        logger.debug("Statement cache miss for dialect %r", dialect.name)
        return self.set(key, compile_statement(statement))

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._stats.reset()

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        return key in self._cache


_default_cache: Optional[StatementCache] = None
_default_cache_lock = threading.Lock()


def get_statement_cache() -> StatementCache:
    """Return the process-wide statement cache, creating it on first use."""
    global _default_cache  # noqa: PLW0603
    if _default_cache is None:
        with _default_cache_lock:
            if _default_cache is None:
                _default_cache = StatementCache()
    return _default_cache


def reset_statement_cache() -> None:
    """Drop every entry of the process-wide cache."""
    get_statement_cache().clear()
