"""
Query descriptors: one query's key, compute function and staleness window.
"""

import asyncio
import json
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Sequence, TypeVar, TYPE_CHECKING

from ..shared.config import DEFAULT_STALE_MS
from ..shared.errors import KeyEncodingError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..host.cancellation import CancellationToken


T = TypeVar("T")
K = TypeVar("K", bound=Sequence[Any])

ComputeFn = Callable[[Optional["CancellationToken"], K], Awaitable[T]]
Clock = Callable[[], float]


def wall_clock_ms() -> float:
    """Milliseconds since the epoch."""
    return time.time() * 1000


def encode_key(key: Sequence[Any]) -> str:
    """
    Encode a hierarchical key into its canonical string.

    The encoding is compact JSON of the fragment list. Object fragments keep
    their insertion order, so {"a": 1, "b": 2} and {"b": 2, "a": 1} are
    different keys.
    """
    if isinstance(key, (str, bytes)) or not isinstance(key, (list, tuple)):
        raise KeyEncodingError(
            "Query key must be a list or tuple of fragments",
            details={"type": type(key).__name__},
        )
    _check_object_keys(key, set())
    try:
        return json.dumps(list(key), separators=(",", ":"), allow_nan=False, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        # TypeError: unsupported type, ValueError: cycle or NaN/Infinity
        raise KeyEncodingError(str(exc), details={"key": repr(key)}) from exc


def _check_object_keys(value: Any, seen: set) -> None:
    """Reject object fragments with non-string keys; JSON would coerce them to strings."""
    if not isinstance(value, (dict, list, tuple)) or id(value) in seen:
        return
    seen.add(id(value))
    if isinstance(value, dict):
        for field, item in value.items():
            if not isinstance(field, str):
                raise KeyEncodingError(
                    "Object fragments must use string keys",
                    details={"field": repr(field), "type": type(field).__name__},
                )
            _check_object_keys(item, seen)
    else:
        for item in value:
            _check_object_keys(item, seen)


def encode_key_prefix(key_prefix: Sequence[Any]) -> str:
    """
    Encode a key prefix so that plain string prefixing matches whole fragments.

    The closing bracket is dropped and, for a non-empty prefix, replaced by
    the fragment separator. An empty prefix encodes to "[" which every
    canonical key starts with.
    """
    encoded = encode_key(key_prefix)[:-1]
    return encoded + "," if len(key_prefix) else encoded


def query_options(
    key: K,
    compute: ComputeFn,
    stale_after_ms: Optional[float] = None,
) -> Dict[str, Any]:
    """Bundle query options; exists so the key type flows into compute for type checkers."""
    options: Dict[str, Any] = {"key": key, "compute": compute}
    if stale_after_ms is not None:
        options["stale_after_ms"] = stale_after_ms
    return options


class QueryDescriptor(Generic[T]):
    """Immutable description of a single query."""

    __slots__ = ("_canonical_key", "_compute", "_stale_after_ms", "_clock")

    def __init__(
        self,
        key: Sequence[Any],
        compute: ComputeFn,
        stale_after_ms: Optional[float] = None,
        *,
        default_stale_ms: float = DEFAULT_STALE_MS,
        clock: Clock = wall_clock_ms,
    ):
        resolved = default_stale_ms if stale_after_ms is None else stale_after_ms
        if resolved < 0:
            raise ValueError(f"stale_after_ms must be non-negative, got {resolved}")

        self._canonical_key = encode_key(key)
        self._compute = compute
        self._stale_after_ms = resolved
        self._clock = clock

    @classmethod
    def from_options(cls, options: Dict[str, Any], **kwargs) -> "QueryDescriptor[T]":
        """Build a descriptor from a mapping produced by query_options."""
        return cls(
            options["key"],
            options["compute"],
            options.get("stale_after_ms"),
            **kwargs,
        )

    @property
    def canonical_key(self) -> str:
        return self._canonical_key

    @property
    def original_key(self) -> list:
        """Key decoded from the canonical form; a fresh structure on every access."""
        return json.loads(self._canonical_key)

    @property
    def stale_after_ms(self) -> float:
        return self._stale_after_ms

    def is_stale(self, last_updated: float) -> bool:
        """True once strictly more than stale_after_ms has passed since last_updated."""
        return self._clock() - last_updated > self._stale_after_ms

    def invoke(self, signal: Optional["CancellationToken"] = None) -> "asyncio.Future[T]":
        """
        Run the compute function and return its deferred value.

        Coroutines are scheduled as tasks on the running loop so the result can
        be awaited by many callers; futures are returned as they are.
        """
        return asyncio.ensure_future(self._compute(signal, self.original_key))

    def __repr__(self) -> str:
        return f"QueryDescriptor(key={self._canonical_key}, stale_after_ms={self._stale_after_ms})"
