"""Registry of processed results with rolling statistics and age-based eviction.

The registry is the only shared mutable state in the pipeline. Every mutation
(insert, cleanup, counter updates) happens under one lock, so concurrent
`process()` calls never interleave partial writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
import secrets
import threading
import time
from typing import TYPE_CHECKING

from castor.errors import InvariantViolationError
from castor.types import ProcessedResult, ProcessingStatistics

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)


def generate_result_id(clock: Callable[[], float] = time.time) -> str:
    """Return a fresh id: epoch milliseconds plus a random suffix."""
    return f"tool_result_{int(clock() * 1000)}_{secrets.token_hex(5)}"


@dataclass
class ResultRegistry:
    """Registry of `ProcessedResult`s keyed by id."""

    clock: Callable[[], float] = time.time
    _entries: dict[str, ProcessedResult] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)
    _total: int = 0
    _successes: int = 0
    _errors: int = 0
    _average_ms: float = 0.0
    _last_processed_at: float | None = None
    _cleanup_thread: threading.Thread | None = None
    _cleanup_stop: threading.Event = field(default_factory=threading.Event)

    def insert(self, result: ProcessedResult) -> ProcessedResult:
        """Store *result* and update the counters atomically.

        The stored copy is stamped with the insertion time used by `cleanup`.

        Returns:
            The stored result.

        Raises:
            InvariantViolationError: If the id is already registered.
        """
        with self._lock:
            if result.id in self._entries:
                raise InvariantViolationError(
                    f"Duplicate result id {result.id!r}", stage_name="registry"
                )
            now = self.clock()
            stored = replace(result, inserted_at=now)
            self._entries[result.id] = stored
            self._total += 1
            if result.error is None:
                self._successes += 1
            else:
                self._errors += 1
            duration = max(0.0, result.debug.duration_ms)
            self._average_ms += (duration - self._average_ms) / self._total
            self._last_processed_at = now
        return stored

    def get(self, result_id: str) -> ProcessedResult | None:
        with self._lock:
            return self._entries.get(result_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, result_id: object) -> bool:
        with self._lock:
            return result_id in self._entries

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def cleanup(self, max_age_ms: float) -> int:
        """Remove entries inserted more than *max_age_ms* ago.

        Exactly the entries with ``inserted_at < now - max_age_ms`` are
        removed; repeated calls are idempotent. Counters are not rolled back.

        Returns:
            Number of entries removed.
        """
        if max_age_ms < 0:
            raise ValueError(f"max_age_ms must be >= 0, got {max_age_ms}")
        with self._lock:
            cutoff = self.clock() - max_age_ms / 1000
            stale = [rid for rid, r in self._entries.items() if r.inserted_at < cutoff]
            for rid in stale:
                del self._entries[rid]
        if stale:
            log.debug("Registry cleanup removed %d result(s)", len(stale))
        return len(stale)

    def stats(self) -> ProcessingStatistics:
        """Return a consistent snapshot of the aggregate counters."""
        with self._lock:
            return ProcessingStatistics(
                total_processed=self._total,
                success_count=self._successes,
                error_count=self._errors,
                average_duration_ms=self._average_ms,
                last_processed_at=self._last_processed_at,
            )

    # --- Background cleanup ---

    def start_cleanup(self, interval_s: float, max_age_ms: float) -> None:
        """Run `cleanup(max_age_ms)` every *interval_s* seconds on a daemon thread."""
        if interval_s <= 0:
            raise ValueError(f"interval_s must be > 0, got {interval_s}")
        with self._lock:
            if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
                return
            self._cleanup_stop.clear()
            self._cleanup_thread = threading.Thread(
                target=self._cleanup_loop,
                args=(interval_s, max_age_ms),
                name="castor-registry-cleanup",
                daemon=True,
            )
            self._cleanup_thread.start()

    def stop_cleanup(self, timeout: float | None = None) -> None:
        """Stop the background cleanup thread, if running."""
        self._cleanup_stop.set()
        thread = self._cleanup_thread
        if thread is not None:
            thread.join(timeout)
        self._cleanup_thread = None

    def _cleanup_loop(self, interval_s: float, max_age_ms: float) -> None:
        while not self._cleanup_stop.wait(interval_s):
            try:
                self.cleanup(max_age_ms)
            except Exception:
                log.exception("Background registry cleanup failed")
