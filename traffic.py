# traffic.py
# Background echo traffic: a source pushing packets through a relay to a sink.
from __future__ import annotations
import logging
from typing import Optional

from network import Network, Packet
from simclock import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class EchoClient:
    def __init__(self, network: Network, scheduler: Scheduler, node_id: int,
                 relay: int, sink: int, max_packets: int = 1000,
                 interval: float = 0.01, packet_size: int = 1024):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.network = network
        self.scheduler = scheduler
        self.node_id = node_id
        self.relay = relay
        self.sink = sink
        self.max_packets = int(max_packets)
        self.interval = float(interval)
        self.packet_size = int(packet_size)
        self.sent = 0
        self._event: Optional[TimerHandle] = None
        self._running = False

    def start(self):
        logger.info("starting echo client on node %s", self.node_id)
        self._running = True
        self._event = self.scheduler.schedule(0.0, self._send_next)

    def stop(self):
        logger.info("stopping echo client on node %s (sent=%d)", self.node_id, self.sent)
        self._running = False
        self.scheduler.cancel(self._event)
        self._event = None

    def _send_next(self):
        if not self._running or self.sent >= self.max_packets:
            return
        pkt = Packet(
            seq=self.sent,
            source=self.node_id,
            destination=self.sink,
            size_bytes=self.packet_size,
            created_at=self.scheduler.now(),
        )
        self.sent += 1
        self.network.send(self.node_id, self.relay, pkt)
        if self.sent < self.max_packets:
            self._event = self.scheduler.schedule(self.interval, self._send_next)


class EchoServer:
    def __init__(self, network: Network, node_id: int):
        self.network = network
        self.node_id = node_id
        self.received = 0
        self.echoed = 0

    def start(self):
        logger.info("starting echo server on node %s", self.node_id)
        self.network.bind(self.node_id, self._on_packet)

    def stop(self):
        logger.info("stopping echo server on node %s (received=%d)", self.node_id, self.received)
        self.network.unbind(self.node_id)

    def _on_packet(self, packet: Packet):
        self.received += 1
        reply = Packet(
            seq=packet.seq,
            source=self.node_id,
            destination=packet.source,
            size_bytes=packet.size_bytes,
            created_at=packet.created_at,
            hops=packet.hops + (self.node_id,),
        )
        self.echoed += 1
        self.network.send(self.node_id, packet.source, reply)
