"""Core probe utilities.

Design by Contract (P1 - MANDATORY):
- Durations MUST be non-negative (clamped at the clock, asserted on Results)
- Every Probe registers exactly one Result, however it is finalized
- Instrumentation never raises into the host program once a Probe exists
- Programming errors (wrong types, bad config) fail fast

Public methods use beartype for runtime type enforcement.
Instants and durations are integer nanoseconds from time.perf_counter_ns().
"""

import functools
import json
import threading
import time
from collections.abc import Callable, Generator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

from beartype import beartype
from loguru import logger

DEFAULT_LOCK_TIMEOUT = 1.0

F = TypeVar("F", bound=Callable[..., Any])


@beartype
def format_duration(nanoseconds: int) -> str:
    """Render a nanosecond duration with the largest fitting unit."""
    if nanoseconds >= 1_000_000_000:
        return f"{nanoseconds / 1_000_000_000:.3f}s"
    if nanoseconds >= 1_000_000:
        return f"{nanoseconds / 1_000_000:.3f}ms"
    if nanoseconds >= 1_000:
        return f"{nanoseconds / 1_000:.3f}µs"
    return f"{nanoseconds}ns"


class Clock:
    """Monotonic time source.

    Subclass and override ``now`` to script instants (tests do this).

    Design by Contract:
        - duration_between() >= 0 always (a backwards reading clamps to 0)
    """

    def now(self) -> int:
        return time.perf_counter_ns()

    @staticmethod
    def duration_between(start: int, end: int) -> int:
        return max(end - start, 0)


@dataclass(frozen=True)
class Checkpoint:
    """A labelled instant captured mid-probe. Labels need not be unique."""

    label: str
    timestamp: int


@dataclass(frozen=True)
class Segment:
    """Time spent between a checkpoint and the one before it (or the start)."""

    label: str
    duration: int

    def __post_init__(self) -> None:
        assert self.duration >= 0, f"Segment duration must be non-negative: {self.duration}"

    def to_dict(self) -> dict[str, Any]:
        return {"label": self.label, "duration": self.duration}


@dataclass(frozen=True)
class Result:
    """Immutable summary of a finalized Probe.

    Attributes:
        name: Probe name
        total_duration: Nanoseconds from probe start to finalization (MUST be >= 0)
        segments: One Segment per checkpoint, in checkpoint order

    Example:
        >>> str(result)
        'job_a: total=20.153ms [step1: 10.071ms, step2: 10.082ms]'
    """

    name: str
    total_duration: int
    segments: tuple[Segment, ...] = ()

    def __post_init__(self) -> None:
        assert self.total_duration >= 0, (
            f"Total duration must be non-negative: {self.total_duration}"
        )

    @classmethod
    def from_checkpoints(
        cls,
        name: str,
        start: int,
        checkpoints: Sequence[Checkpoint],
        end: int,
        clock: Clock,
    ) -> "Result":
        """Derive a Result by taking successive deltas between checkpoints."""
        segments = []
        previous = start
        for checkpoint in checkpoints:
            segments.append(
                Segment(checkpoint.label, clock.duration_between(previous, checkpoint.timestamp))
            )
            previous = checkpoint.timestamp
        return cls(name, clock.duration_between(start, end), tuple(segments))

    @property
    def total_seconds(self) -> float:
        return self.total_duration / 1_000_000_000

    def to_dict(self) -> dict[str, Any]:
        """Structured record; durations are integer nanoseconds."""
        return {
            "name": self.name,
            "total_duration": self.total_duration,
            "segments": [segment.to_dict() for segment in self.segments],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        parts = ", ".join(
            f"{segment.label}: {format_duration(segment.duration)}" for segment in self.segments
        )
        return f"{self.name}: total={format_duration(self.total_duration)} [{parts}]"


class RegistryError(Exception):
    """Base class for failures of the shared result registry."""


class LockFailure(RegistryError):
    """The registry lock could not be acquired."""


class Registry:
    """Thread-safe, append-only store of probe Results.

    All operations share one critical section. Lock acquisition is bounded by
    ``lock_timeout`` seconds; a timeout raises LockFailure instead of blocking.

    Args:
        lock_timeout: Seconds to wait for the lock (MUST be > 0)

    Example:
        registry = Registry()
        Probe("load", registry=registry).stop()
        for result in registry.fetch_results(clear=True):
            print(result)
    """

    @beartype
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        assert lock_timeout > 0, f"Lock timeout must be positive: {lock_timeout}"
        self.lock_timeout = lock_timeout
        self._results: list[Result] = []
        # Reentrant: a probe collected by the GC may finalize on a thread
        # that already holds the lock.
        self._lock = threading.RLock()

    @contextmanager
    def _locked(self, operation: str) -> Generator[None, None, None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise LockFailure(
                f"Registry lock not acquired within {self.lock_timeout}s during {operation}"
            )
        try:
            yield
        finally:
            self._lock.release()

    @beartype
    def register(self, result: Result) -> None:
        """Append a Result (thread-safe)."""
        with self._locked("register"):
            self._results.append(result)

    @beartype
    def fetch_results(self, clear: bool = False) -> list[Result]:
        """Snapshot of all registered Results in registration order.

        Args:
            clear: If True, empty the store in the same critical section

        Raises:
            LockFailure: The lock could not be acquired; skip this reporting cycle.
        """
        with self._locked("fetch_results"):
            if clear:
                snapshot, self._results = self._results, []
            else:
                snapshot = list(self._results)
        return snapshot

    @beartype
    def clear(self) -> None:
        with self._locked("clear"):
            dropped = len(self._results)
            self._results = []
        logger.debug(f"Registry cleared ({dropped} results dropped)")

    def __len__(self) -> int:
        with self._locked("len"):
            return len(self._results)


_default_registry: Registry | None = None
# Reentrant for the same reason as Registry._lock: building the Registry may
# trigger a collection that finalizes a probe, which calls back in here.
_default_registry_lock = threading.RLock()


def get_registry() -> Registry:
    """Return the process-wide Registry, creating it on first use."""
    global _default_registry
    if _default_registry is None:
        with _default_registry_lock:
            if _default_registry is None:
                registry = Registry()
                # A reentrant call may have published one while we were building.
                if _default_registry is None:
                    _default_registry = registry
    return _default_registry


class Probe:
    """Records named checkpoints along one code path.

    The probe starts timing on construction. Each ``add_point`` closes a
    segment. Finalization (``stop``, leaving a ``with`` block, or garbage
    collection of an unfinished probe) happens once and registers the Result.

    Args:
        name: Display name, any string (empty allowed)
        registry: Target Registry (default: the process-wide one)
        clock: Time source (default: Clock())

    Example:
        with Probe("load_bars") as probe:
            bars = fetch()
            probe.add_point("fetch")
            frame = to_frame(bars)
            probe.add_point("convert")

    Design by Contract:
        - len(result.segments) == number of add_point calls before finalization
        - add_point after finalization is ignored with a warning
        - stop() is idempotent and registers at most once
    """

    @beartype
    def __init__(
        self,
        name: str,
        registry: Registry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._name = name
        self._registry = registry
        self._clock = clock if clock is not None else Clock()
        self._checkpoints: list[Checkpoint] = []
        self._result: Result | None = None
        self._start = self._clock.now()

    @property
    def name(self) -> str:
        return self._name

    @property
    def start(self) -> int:
        return self._start

    @property
    def finished(self) -> bool:
        return self._result is not None

    @property
    def checkpoints(self) -> tuple[Checkpoint, ...]:
        return tuple(self._checkpoints)

    @property
    def result(self) -> Result | None:
        return self._result

    @beartype
    def add_point(self, label: str) -> None:
        """Close the current segment under ``label``."""
        if self._result is not None:
            logger.warning(f"Probe '{self._name}' already finished; ignoring point '{label}'")
            return
        self._checkpoints.append(Checkpoint(label, self._clock.now()))

    def stop(self) -> Result:
        """Finalize, register and return the Result.

        Repeated calls return the first Result without registering again. A
        registry failure is logged and swallowed so the caller keeps running;
        the Result is still returned.
        """
        if self._result is not None:
            return self._result

        end = self._clock.now()
        self._result = Result.from_checkpoints(
            self._name, self._start, self._checkpoints, end, self._clock
        )
        logger.debug(
            f"Probe '{self._name}' finalized: "
            f"{format_duration(self._result.total_duration)}, "
            f"{len(self._result.segments)} segments"
        )

        registry = self._registry if self._registry is not None else get_registry()
        try:
            registry.register(self._result)
        except RegistryError as exc:
            logger.warning(f"Probe '{self._name}' result not registered: {exc}")
        return self._result

    def __enter__(self) -> "Probe":
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()

    def __del__(self) -> None:
        # __init__ may have failed its type check before any state was set.
        if "_result" in self.__dict__ and self._result is None:
            self.stop()

    def __repr__(self) -> str:
        state = "finished" if self.finished else "running"
        return f"Probe(name={self._name!r}, points={len(self._checkpoints)}, {state})"


@beartype
def probed(name: str | None = None) -> Callable[[F], F]:
    """Decorator timing every call of a function with its own Probe.

    Args:
        name: Probe name (default: the function's __qualname__)

    Usage:
        @probed()
        def rebalance(portfolio): ...
    """

    def decorator(func: F) -> F:
        probe_name = name if name is not None else func.__qualname__

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with Probe(probe_name):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


@beartype
def fetch_results(clear: bool = False) -> list[Result]:
    """Snapshot of the process-wide Registry (see Registry.fetch_results)."""
    return get_registry().fetch_results(clear=clear)


def clear_results() -> None:
    """Empty the process-wide Registry."""
    get_registry().clear()
