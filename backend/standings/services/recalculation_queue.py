"""
Background ranking recalculation, one logical task per tournament.

Requests for a tournament that is already pending or running are merged:
the worker finishes its current pass, then runs once more over the union of
everything requested meanwhile, always against the latest committed results.
A request for "all weeks" absorbs any week-specific requests.

Each pass gets a hard deadline (RECALC_TIMEOUT_SECONDS). Scopes that finished
before the deadline stay committed; the remaining ones are skipped and logged.
Failures are logged and not retried: the next write or an explicit
recalculation recomputes from current state.
"""
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, Optional, Set

from sqlmodel import Session

from standings.services.recalculation_service import recalculate_all, recalculate_weeks

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = float(os.getenv("RECALC_TIMEOUT_SECONDS", "60"))
DEFAULT_MAX_WORKERS = int(os.getenv("RECALC_MAX_WORKERS", "2"))

# Pending scopes per tournament: None = everything, otherwise a set of week labels
_ALL = None


class RecalculationQueue:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        synchronous: bool = False,
    ):
        self._session_factory = session_factory
        self._timeout_seconds = timeout_seconds
        self._synchronous = synchronous
        self._executor = None if synchronous else ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="recalc"
        )
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending: Dict[int, Optional[Set[str]]] = {}
        self._active: Set[int] = set()
        self.completed_runs = 0
        self.failed_runs = 0

    def request(self, tournament_id: int, weeks: Optional[Iterable[Optional[str]]] = None) -> None:
        """Schedule recalculation of cumulative plus `weeks` (None = all weeks)."""
        requested = None if weeks is None else {w for w in weeks if w}
        with self._lock:
            if tournament_id in self._pending:
                current = self._pending[tournament_id]
                if current is _ALL or requested is _ALL:
                    self._pending[tournament_id] = _ALL
                else:
                    current.update(requested)
            else:
                self._pending[tournament_id] = requested

            if tournament_id in self._active:
                logger.debug("Recalculation for tournament %s coalesced into running task", tournament_id)
                return
            self._active.add(tournament_id)

        if self._synchronous:
            self._drain(tournament_id)
            return
        try:
            self._executor.submit(self._drain, tournament_id)
        except RuntimeError:
            # Executor already shut down; nothing will drain this tournament
            with self._lock:
                self._active.discard(tournament_id)
                self._pending.pop(tournament_id, None)
                self._idle.notify_all()
            self.failed_runs += 1
            logger.exception("Could not schedule ranking recalculation | tournament=%s", tournament_id)

    def _drain(self, tournament_id: int) -> None:
        while True:
            with self._lock:
                if tournament_id not in self._pending:
                    self._active.discard(tournament_id)
                    self._idle.notify_all()
                    return
                weeks = self._pending.pop(tournament_id)
            self._run(tournament_id, weeks)

    def _run(self, tournament_id: int, weeks: Optional[Set[str]]) -> None:
        deadline = time.monotonic() + self._timeout_seconds
        scope = "all weeks" if weeks is _ALL else f"weeks {sorted(weeks)}"
        logger.info("Starting background ranking recalculation | tournament=%s scope=%s", tournament_id, scope)
        try:
            with self._session_factory() as session:
                if weeks is _ALL:
                    summary = recalculate_all(session, tournament_id, deadline=deadline)
                else:
                    summary = recalculate_weeks(session, tournament_id, weeks, deadline=deadline)
        except Exception:
            self.failed_runs += 1
            logger.exception("Error during background ranking recalculation | tournament=%s", tournament_id)
            return
        self.completed_runs += 1
        logger.info(
            "Completed background ranking recalculation | tournament=%s rankings=%d",
            tournament_id,
            summary.total_rankings_updated,
        )

    def is_idle(self) -> bool:
        with self._lock:
            return not self._active and not self._pending

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no tournament is pending or running. False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._active and not self._pending, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


_queue: Optional[RecalculationQueue] = None
_queue_lock = threading.Lock()


def get_recalculation_queue() -> RecalculationQueue:
    """FastAPI dependency: process-wide queue bound to the application engine"""
    global _queue
    with _queue_lock:
        if _queue is None:
            from standings.database import session_factory

            _queue = RecalculationQueue(session_factory)
    return _queue


def shutdown_recalculation_queue(wait: bool = True) -> None:
    global _queue
    if _queue is not None:
        _queue.shutdown(wait=wait)
        _queue = None
