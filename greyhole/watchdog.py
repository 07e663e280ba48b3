# greyhole/watchdog.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from analysis.metrics import format_loss_rate, loss_rate
from greyhole.convergence import ConvergenceTracker
from greyhole.errors import AlreadyAttached, InvalidConfiguration, InvariantViolation, NotAttached
from greyhole.evidence import EvidenceSource
from greyhole.status import NodeStatus, classify, describe, is_decisive, reputation_delta
from network import Network, Packet
from simclock import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchdogConfig:
    threshold: float = 1.0
    max_rounds: int = 10
    initial_delay: float = 1.0
    round_interval: float = 1.0
    gamma: float = 0.5  # sensitivity, stored for tuning; not used by scoring

    def __post_init__(self):
        self.validate()

    def validate(self):
        if self.threshold < 0:
            raise InvalidConfiguration(f"threshold must be >= 0, got {self.threshold}")
        if self.max_rounds <= 0:
            raise InvalidConfiguration(f"max_rounds must be positive, got {self.max_rounds}")
        if self.initial_delay < 0 or self.round_interval <= 0:
            raise InvalidConfiguration("initial_delay must be >= 0 and round_interval > 0")


class ProtocolState(Enum):
    IDLE = "idle"              # attached, not started
    ACTIVE = "active"
    TERMINATED = "terminated"  # absorbing


@dataclass
class WatchdogState:
    reputation: float = 0.0
    threshold: float = 1.0
    round_count: int = 0
    sent_count: int = 0
    received_count: int = 0
    status: NodeStatus = NodeStatus.UNKNOWN
    evidence_log: List[NodeStatus] = field(default_factory=list)
    packet_loss_rate: Optional[float] = None
    terminated_reason: Optional[str] = None


@dataclass(frozen=True)
class RoundRecord:
    time: float
    node_id: int
    round: int
    evidence: NodeStatus
    reputation: float
    status: NodeStatus
    decided: bool
    converged: bool

    def as_row(self):
        return {
            "time": self.time,
            "node_id": self.node_id,
            "round": self.round,
            "evidence": self.evidence.value,
            "reputation": self.reputation,
            "status": self.status.value,
            "decided": int(self.decided),
            "converged": int(self.converged),
        }


class WatchdogProtocol:
    """
    Periodic monitoring process co-located with one node.

    Every round draws one piece of evidence, moves the reputation by +/-1,
    reclassifies the node against +/-threshold and updates the shared
    ConvergenceTracker. It reschedules itself until `max_rounds` rounds have
    run or the whole network has converged, then records its packet loss rate
    and terminates.
    """

    def __init__(self, scheduler: Scheduler, tracker: ConvergenceTracker,
                 evidence: EvidenceSource, network: Optional[Network] = None,
                 config: Optional[WatchdogConfig] = None,
                 on_round: Optional[Callable[[RoundRecord], None]] = None):
        self.config = config if config is not None else WatchdogConfig()
        self.scheduler = scheduler
        self.tracker = tracker
        self.evidence = evidence
        self.network = network
        self.on_round = on_round

        self.state = WatchdogState(threshold=self.config.threshold)
        self.gamma = self.config.gamma
        self._node_id: Optional[int] = None
        self._proto_state = ProtocolState.IDLE
        self._event: Optional[TimerHandle] = None

    # ---- setup / lifetime ----
    @property
    def node_id(self) -> Optional[int]:
        return self._node_id

    @property
    def protocol_state(self) -> ProtocolState:
        return self._proto_state

    @property
    def pending_event(self) -> Optional[TimerHandle]:
        return self._event

    def attach(self, node_id: int, gamma: Optional[float] = None):
        if self._node_id is not None:
            raise AlreadyAttached(f"watchdog already attached to node {self._node_id}")
        self._node_id = node_id
        if gamma is not None:
            self.gamma = float(gamma)
        self.tracker.track(node_id)
        if self.network is not None:
            self.network.observe_send(node_id, self._on_sent)
            self.network.observe_receive(node_id, self._on_received)

    def _require_attached(self) -> int:
        if self._node_id is None:
            raise NotAttached("watchdog is not attached to a node")
        return self._node_id

    def start(self):
        node_id = self._require_attached()
        if self._proto_state is not ProtocolState.IDLE:
            logger.warning("watchdog node %s already %s, start ignored",
                           node_id, self._proto_state.value)
            return
        logger.info("starting watchdog on node %s", node_id)
        self._proto_state = ProtocolState.ACTIVE
        self._event = self.scheduler.schedule(self.config.initial_delay, self.run_round)

    def stop(self):
        if self._node_id is not None:
            logger.info("stopping watchdog on node %s", self._node_id)
        self.scheduler.cancel(self._event)
        self._event = None
        if self._proto_state is not ProtocolState.TERMINATED:
            self._terminate("stopped")

    # ---- rounds ----
    def _should_terminate(self) -> bool:
        return self.state.round_count >= self.config.max_rounds or self.tracker.converged

    def _termination_reason(self) -> str:
        if self.tracker.converged:
            return "converged"
        return "max_rounds"

    def run_round(self):
        # a timer that fires after stop()/termination must not touch state
        if self._proto_state is not ProtocolState.ACTIVE:
            return
        self._event = None
        node_id = self._require_attached()

        if self._should_terminate():
            self._terminate(self._termination_reason())
            return

        logger.debug("watchdog node %s monitoring neighbors", node_id)
        try:
            evidence = self.evidence.sample()
            self.process_evidence(evidence)
        except InvariantViolation:
            logger.exception("watchdog node %s hit an invariant violation", node_id)
            self._terminate("fault")
            return

        self.state.round_count += 1
        if self.on_round is not None:
            self.on_round(RoundRecord(
                time=self.scheduler.now(),
                node_id=node_id,
                round=self.state.round_count,
                evidence=evidence,
                reputation=self.state.reputation,
                status=self.state.status,
                decided=self.tracker.is_decided(node_id),
                converged=self.tracker.converged,
            ))

        if self._should_terminate():
            self._terminate(self._termination_reason())
            return
        self._event = self.scheduler.schedule(self.config.round_interval, self.run_round)

    def process_evidence(self, evidence: NodeStatus) -> NodeStatus:
        """Apply one observation: reputation, decided flag, band, global convergence."""
        node_id = self._require_attached()
        st = self.state

        st.reputation += reputation_delta(evidence)
        st.evidence_log.append(evidence)
        decisive = is_decisive(evidence)
        if decisive:
            logger.debug("watchdog node %s detected a %s event. reputation: %s",
                         node_id, evidence.value, st.reputation)
        else:
            logger.debug("watchdog node %s has no sufficient information", node_id)

        # recomputed every round, no ratchet
        st.status = classify(st.reputation, st.threshold)
        logger.debug("node %s state: %s", node_id, describe(st.status))

        self.tracker.mark_decided_and_try_converge(node_id, self.scheduler.now(), decided=decisive)
        return st.status

    def _terminate(self, reason: str):
        node_id = self._node_id
        self._proto_state = ProtocolState.TERMINATED
        self.state.terminated_reason = reason
        self.scheduler.cancel(self._event)
        self._event = None
        try:
            self.state.packet_loss_rate = self.packet_loss_rate()
        except InvariantViolation:
            logger.exception("watchdog node %s has inconsistent packet counters", node_id)
            self.state.terminated_reason = "fault"
        logger.info("watchdog node %s terminated (%s), packet loss rate: %s",
                    node_id, self.state.terminated_reason,
                    format_loss_rate(self.state.packet_loss_rate))

    # ---- accounting ----
    def packet_loss_rate(self) -> Optional[float]:
        return loss_rate(self.state.sent_count, self.state.received_count)

    def _on_sent(self, packet: Packet):
        if self._proto_state is not ProtocolState.TERMINATED:
            self.state.sent_count += 1

    def _on_received(self, packet: Packet):
        if self._proto_state is not ProtocolState.TERMINATED:
            self.state.received_count += 1
