# simclock.py
from __future__ import annotations
import heapq
import itertools
from typing import Callable, List, Optional


class SimClock:
    def __init__(self):
        self.t = 0.0

    def advance(self, delta: float):
        self.t += max(0.0, float(delta))

    def advance_to(self, t: float):
        # never moves backwards
        self.t = max(self.t, float(t))

    def now(self) -> float:
        return self.t


class TimerHandle:
    __slots__ = ("time", "seq", "callback", "cancelled", "fired")

    def __init__(self, time: float, seq: int, callback: Callable[[], None]):
        self.time = time
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def __lt__(self, other: "TimerHandle") -> bool:
        return (self.time, self.seq) < (other.time, other.seq)

    def __repr__(self):
        state = "pending" if self.pending else ("fired" if self.fired else "cancelled")
        return f"TimerHandle(t={self.time:.4f}, seq={self.seq}, {state})"


class Scheduler:
    """
    Discrete-event scheduler on top of SimClock.
    - callbacks run one at a time, to completion
    - same-instant callbacks fire in insertion order
    """
    def __init__(self, clock: Optional[SimClock] = None):
        self.clock = clock if clock is not None else SimClock()
        self._heap: List[TimerHandle] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self.clock.now()

    def schedule(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        if delay < 0:
            raise ValueError(f"delay must be non-negative, got {delay}")
        return self.schedule_at(self.now() + float(delay), callback)

    def schedule_at(self, t: float, callback: Callable[[], None]) -> TimerHandle:
        if t < self.now():
            raise ValueError(f"cannot schedule in the past (t={t}, now={self.now()})")
        handle = TimerHandle(float(t), next(self._seq), callback)
        heapq.heappush(self._heap, handle)
        return handle

    def cancel(self, handle: Optional[TimerHandle]):
        # fired / cancelled / None -> no-op
        if handle is None or not handle.pending:
            return
        handle.cancelled = True

    def pending_count(self) -> int:
        return sum(1 for h in self._heap if h.pending)

    def _peek(self) -> Optional[TimerHandle]:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0] if self._heap else None

    def step(self) -> bool:
        """Run the next pending callback. Returns False when nothing is left."""
        handle = self._peek()
        if handle is None:
            return False
        heapq.heappop(self._heap)
        self.clock.advance_to(handle.time)
        handle.fired = True
        handle.callback()
        return True

    def run(self, until: Optional[float] = None) -> int:
        executed = 0
        while True:
            handle = self._peek()
            if handle is None or (until is not None and handle.time > until):
                break
            self.step()
            executed += 1
        if until is not None:
            self.clock.advance_to(until)
        return executed
