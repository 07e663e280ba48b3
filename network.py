# network.py
from __future__ import annotations
import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

from simclock import Scheduler

logger = logging.getLogger(__name__)


@dataclass
class Packet:
    seq: int
    source: int
    destination: int
    size_bytes: int = 1024
    created_at: float = 0.0
    hops: Tuple[int, ...] = field(default_factory=tuple)


@dataclass
class NetConfig:
    loss: float = 0.0          # per-link drop probability
    base_delay: float = 0.002  # seconds
    jitter: float = 0.001      # +/- seconds


ReceiveCallback = Callable[[Packet], None]


class Network:
    """
    Minimal application-layer substrate: node ids, receive endpoints,
    lossy delayed delivery through the shared Scheduler.
    """
    def __init__(self, cfg: NetConfig, scheduler: Scheduler, seed: int = 42):
        if not 0.0 <= cfg.loss <= 1.0:
            raise ValueError(f"loss must be in [0, 1], got {cfg.loss}")
        self.cfg = cfg
        self.scheduler = scheduler
        self.rng = random.Random(seed)
        self._next_id = 0
        self._nodes: List[int] = []
        self._endpoints: Dict[int, ReceiveCallback] = {}
        self._send_taps: Dict[int, List[ReceiveCallback]] = defaultdict(list)
        self._recv_taps: Dict[int, List[ReceiveCallback]] = defaultdict(list)
        self.link_dropped = 0
        self.undeliverable = 0

    # ---- identity ----
    def add_node(self) -> int:
        node_id = self._next_id
        self._next_id += 1
        self._nodes.append(node_id)
        return node_id

    @property
    def nodes(self) -> List[int]:
        return list(self._nodes)

    def _check(self, node_id: int):
        if not 0 <= node_id < self._next_id:
            raise KeyError(f"unknown node {node_id}")

    # ---- endpoints ----
    def bind(self, node_id: int, callback: ReceiveCallback):
        self._check(node_id)
        if node_id in self._endpoints:
            raise ValueError(f"node {node_id} already has a bound endpoint")
        self._endpoints[node_id] = callback

    def unbind(self, node_id: int):
        self._endpoints.pop(node_id, None)

    def is_bound(self, node_id: int) -> bool:
        return node_id in self._endpoints

    def observe_send(self, node_id: int, callback: ReceiveCallback):
        self._check(node_id)
        self._send_taps[node_id].append(callback)

    def observe_receive(self, node_id: int, callback: ReceiveCallback):
        self._check(node_id)
        self._recv_taps[node_id].append(callback)

    # ---- link model ----
    def sample_delay(self) -> float:
        # non-negative delay
        d = self.cfg.base_delay + self.rng.uniform(-self.cfg.jitter, self.cfg.jitter)
        return max(0.0, d)

    def should_drop(self) -> bool:
        if self.cfg.loss <= 0:
            return False
        return self.rng.random() < self.cfg.loss

    def send(self, src: int, dst: int, packet: Packet) -> bool:
        """
        Returns True if the packet was put on the link, False if the link lost it.
        Delivery itself happens later, via the scheduler.
        """
        self._check(src)
        self._check(dst)
        for tap in self._send_taps.get(src, ()):
            tap(packet)

        if self.should_drop():
            self.link_dropped += 1
            logger.debug("link %s->%s lost packet %s", src, dst, packet.seq)
            return False

        self.scheduler.schedule(self.sample_delay(), lambda: self._deliver(dst, packet))
        return True

    def _deliver(self, dst: int, packet: Packet):
        endpoint = self._endpoints.get(dst)
        if endpoint is None:
            # nobody listening: discarded without notice
            self.undeliverable += 1
            return
        for tap in self._recv_taps.get(dst, ()):
            tap(packet)
        endpoint(packet)
