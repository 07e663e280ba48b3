# greyhole/convergence.py
from __future__ import annotations
import logging
from threading import Lock
from typing import Dict, Iterable, Optional, Set

from greyhole.errors import NotAttached

logger = logging.getLogger(__name__)


class ConvergenceTracker:
    """
    Network-wide record of which watchdogs have produced non-neutral evidence,
    and of the first instant at which all of them had.

    Shared by every watchdog in a run. `converged` flips False -> True at most
    once and `convergence_time` is written only on that transition.
    """

    def __init__(self, node_ids: Iterable[int] = ()):
        self._lock = Lock()
        self._tracked: Set[int] = set(node_ids)
        self._decided: Set[int] = set()
        self._converged = False
        self._convergence_time: Optional[float] = None

    def track(self, node_id: int):
        with self._lock:
            self._tracked.add(node_id)

    def mark_decided(self, node_id: int):
        with self._lock:
            if node_id not in self._tracked:
                raise NotAttached(f"node {node_id} is not tracked")
            self._decided.add(node_id)

    def is_decided(self, node_id: int) -> bool:
        with self._lock:
            return node_id in self._decided

    def _all_decided_locked(self) -> bool:
        # nothing tracked -> nothing to agree on
        return bool(self._tracked) and self._tracked <= self._decided

    def all_decided(self) -> bool:
        with self._lock:
            return self._all_decided_locked()

    def try_converge(self, now: float) -> bool:
        """Returns True only for the caller that performed the transition."""
        with self._lock:
            if self._converged:
                return False
            self._converged = True
            self._convergence_time = float(now)
        logger.info("all nodes have converged at time %.3f", now)
        return True

    def mark_decided_and_try_converge(self, node_id: int, now: float, decided: bool = True) -> bool:
        """
        Mark, check and maybe converge as one critical section.
        decided=False only checks, for rounds that produced no decisive evidence.
        Returns True only for the caller that performed the transition.
        """
        with self._lock:
            if node_id not in self._tracked:
                raise NotAttached(f"node {node_id} is not tracked")
            if decided:
                self._decided.add(node_id)
            if self._converged or not self._all_decided_locked():
                return False
            self._converged = True
            self._convergence_time = float(now)
        logger.info("all nodes have converged at time %.3f", now)
        return True

    @property
    def converged(self) -> bool:
        with self._lock:
            return self._converged

    @property
    def convergence_time(self) -> Optional[float]:
        with self._lock:
            return self._convergence_time

    @property
    def tracked(self) -> Set[int]:
        with self._lock:
            return set(self._tracked)

    @property
    def decided(self) -> Set[int]:
        with self._lock:
            return set(self._decided)

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "tracked": len(self._tracked),
                "decided": len(self._decided),
                "converged": self._converged,
                "convergence_time": self._convergence_time,
            }
