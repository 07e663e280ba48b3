# greyhole/attacker.py
from __future__ import annotations
import logging
import random
from dataclasses import dataclass
from typing import Optional

from analysis.metrics import PacketAccounting
from greyhole.errors import AlreadyAttached, InvalidConfiguration, NotAttached
from network import Network, Packet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GreyholeConfig:
    drop_probability: float = 0.5

    def __post_init__(self):
        p = self.drop_probability
        if not isinstance(p, (int, float)) or not 0.0 <= p <= 1.0:
            raise InvalidConfiguration(f"drop_probability must be in [0, 1], got {p!r}")


class GreyholeBehavior:
    """
    Malicious relay: forwards most packets, silently discards a fraction.
    - drop_probability=0 -> behaves like an honest relay
    - drop_probability=1 -> blackhole
    The sender is never told about a drop.
    """
    def __init__(self, network: Network, seed: int = 42,
                 rng: Optional[random.Random] = None,
                 accounting: Optional[PacketAccounting] = None):
        self.network = network
        self.rng = rng if rng is not None else random.Random(seed)
        self.accounting = accounting
        self.cfg: Optional[GreyholeConfig] = None
        self.node_id: Optional[int] = None
        self.forwarded = 0
        self.dropped = 0
        self._listening = False

    def setup(self, node_id: int, drop_probability: float):
        if self.node_id is not None:
            raise AlreadyAttached(f"greyhole already set up on node {self.node_id}")
        self.cfg = GreyholeConfig(drop_probability=drop_probability)
        self.node_id = node_id

    @property
    def drop_probability(self) -> float:
        if self.cfg is None:
            raise NotAttached("greyhole is not set up")
        return self.cfg.drop_probability

    def start(self):
        if self.node_id is None:
            raise NotAttached("greyhole is not set up")
        logger.info("starting greyhole on node %s (drop_probability=%.3f)",
                    self.node_id, self.drop_probability)
        if not self._listening:
            self.network.bind(self.node_id, self.on_receive)
            self._listening = True

    def stop(self):
        if self.node_id is None:
            return
        logger.info("stopping greyhole on node %s (forwarded=%d dropped=%d)",
                    self.node_id, self.forwarded, self.dropped)
        if self._listening:
            self.network.unbind(self.node_id)
            self._listening = False

    def should_drop(self) -> bool:
        p = self.drop_probability
        if p <= 0:
            return False
        return self.rng.random() < p

    def on_receive(self, packet: Packet):
        if not self._listening:
            return
        if self.should_drop():
            self.dropped += 1
            if self.accounting is not None:
                self.accounting.record_dropped(packet)
            logger.debug("packet %s dropped by greyhole node %s", packet.seq, self.node_id)
            return

        self.forwarded += 1
        # relay towards the destination, or echo back when we are the destination
        next_hop = packet.destination if packet.destination != self.node_id else packet.source
        packet.hops = packet.hops + (self.node_id,)
        self.network.send(self.node_id, next_hop, packet)
