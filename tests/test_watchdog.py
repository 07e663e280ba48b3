import dataclasses

import pytest

from greyhole.convergence import ConvergenceTracker
from greyhole.errors import AlreadyAttached, InvalidConfiguration, NotAttached
from greyhole.evidence import EvidenceSource, SequenceEvidenceSource
from greyhole.status import NodeStatus
from greyhole.watchdog import ProtocolState, WatchdogConfig, WatchdogProtocol
from network import NetConfig, Network, Packet
from simclock import Scheduler

P, N, U = NodeStatus.POSITIVE, NodeStatus.NEGATIVE, NodeStatus.UNKNOWN


class CountingSource(EvidenceSource):
    def __init__(self, value=U):
        self.value = value
        self.calls = 0

    def sample(self):
        self.calls += 1
        return self.value


class BrokenSource(EvidenceSource):
    def sample(self):
        return "garbage"


def make_watchdog(evidence, tracker=None, node_id=0, config=None, scheduler=None, **kw):
    s = scheduler if scheduler is not None else Scheduler()
    t = tracker if tracker is not None else ConvergenceTracker()
    wd = WatchdogProtocol(s, t, evidence, config=config, **kw)
    wd.attach(node_id, 0.5)
    return s, t, wd


class TestProcessEvidence:
    def test_reputation_is_signed_sum(self):
        _, _, wd = make_watchdog(CountingSource())
        for e in [P, P, N, U]:
            wd.process_evidence(e)
        assert wd.state.reputation == 1.0
        assert wd.state.status is NodeStatus.POSITIVE

    def test_unknown_does_not_mark_decided(self):
        _, t, wd = make_watchdog(CountingSource())
        t.track(1)
        wd.process_evidence(U)
        assert not t.is_decided(0)
        wd.process_evidence(N)
        assert t.is_decided(0)

    def test_decided_survives_return_to_band(self):
        _, t, wd = make_watchdog(CountingSource())
        t.track(1)
        wd.process_evidence(P)
        assert wd.state.status is NodeStatus.POSITIVE
        wd.process_evidence(N)
        assert wd.state.status is NodeStatus.UNKNOWN
        assert t.is_decided(0)

    def test_reputation_is_not_clamped(self):
        _, _, wd = make_watchdog(CountingSource())
        for _ in range(50):
            wd.process_evidence(N)
        assert wd.state.reputation == -50.0
        assert wd.state.status is NodeStatus.NEGATIVE

    def test_requires_attach(self):
        wd = WatchdogProtocol(Scheduler(), ConvergenceTracker(), CountingSource())
        with pytest.raises(NotAttached):
            wd.process_evidence(P)


class TestLifecycle:
    def test_attach_twice_rejected(self):
        _, _, wd = make_watchdog(CountingSource())
        with pytest.raises(AlreadyAttached):
            wd.attach(1)

    def test_start_before_attach_rejected(self):
        wd = WatchdogProtocol(Scheduler(), ConvergenceTracker(), CountingSource())
        with pytest.raises(NotAttached):
            wd.start()

    def test_gamma_is_stored(self):
        _, _, wd = make_watchdog(CountingSource())
        assert wd.gamma == 0.5

    def test_invalid_config(self):
        with pytest.raises(InvalidConfiguration):
            WatchdogProtocol(Scheduler(), ConvergenceTracker(), CountingSource(),
                             config=WatchdogConfig(max_rounds=0))

    def test_config_is_immutable(self):
        cfg = WatchdogConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.max_rounds = 99

    def test_shared_config_between_watchdogs(self):
        cfg = WatchdogConfig(max_rounds=2)
        s = Scheduler()
        t = ConvergenceTracker([9])
        a_src, b_src = CountingSource(U), CountingSource(U)
        _, _, a = make_watchdog(a_src, tracker=t, node_id=0, config=cfg, scheduler=s)
        _, _, b = make_watchdog(b_src, tracker=t, node_id=1, config=cfg, scheduler=s)
        a.start()
        b.start()
        s.run()
        assert a.config is b.config
        assert a_src.calls == b_src.calls == 2

    def test_first_round_after_initial_delay(self):
        src = CountingSource()
        s, _, wd = make_watchdog(src)
        wd.start()
        assert wd.protocol_state is ProtocolState.ACTIVE
        s.run(until=0.999)
        assert src.calls == 0
        s.run(until=1.0)
        assert src.calls == 1
        assert wd.state.round_count == 1


class TestRoundScheduling:
    def test_never_more_than_max_rounds(self):
        src = CountingSource(U)
        s, t, wd = make_watchdog(src)
        wd.start()
        s.run(until=100.0)
        assert src.calls == 10
        assert wd.state.round_count == 10
        assert wd.protocol_state is ProtocolState.TERMINATED
        assert wd.state.terminated_reason == "max_rounds"
        assert wd.pending_event is None
        assert s.pending_count() == 0
        assert not t.converged

    def test_tenth_round_leaves_no_timer(self):
        s, _, wd = make_watchdog(CountingSource(U))
        wd.start()
        s.run(until=10.0)
        assert wd.state.round_count == 10
        assert s.pending_count() == 0

    def test_custom_max_rounds(self):
        src = CountingSource(U)
        s, _, wd = make_watchdog(src, config=WatchdogConfig(max_rounds=3))
        wd.start()
        s.run()
        assert src.calls == 3

    def test_stop_cancels_pending_round(self):
        src = CountingSource(P)
        s, t, wd = make_watchdog(src)
        t.track(1)  # keeps the network from converging
        wd.start()
        s.run(until=2.5)
        rounds, rep = wd.state.round_count, wd.state.reputation
        wd.stop()
        s.run(until=20.0)
        assert wd.state.round_count == rounds
        assert wd.state.reputation == rep
        assert src.calls == rounds
        assert s.pending_count() == 0
        assert wd.state.terminated_reason == "stopped"

    def test_stop_is_idempotent(self):
        s, _, wd = make_watchdog(CountingSource())
        wd.start()
        wd.stop()
        wd.stop()
        assert wd.protocol_state is ProtocolState.TERMINATED

    def test_late_timer_after_stop_mutates_nothing(self):
        src = CountingSource(P)
        s, t, wd = make_watchdog(src)
        t.track(1)
        wd.start()
        wd.stop()
        wd.run_round()  # fired late anyway
        assert src.calls == 0
        assert wd.state.round_count == 0
        assert wd.state.reputation == 0.0

    def test_terminates_after_network_converges(self):
        s = Scheduler()
        t = ConvergenceTracker()
        a_src, b_src = CountingSource(P), CountingSource(U)
        _, _, a = make_watchdog(a_src, tracker=t, node_id=0, scheduler=s)
        _, _, b = make_watchdog(b_src, tracker=t, node_id=1, scheduler=s)
        a.start()
        b.start()
        s.run(until=3.0)
        b_src.value = N
        s.run(until=30.0)
        assert t.converged
        assert t.convergence_time == 4.0
        assert a.state.terminated_reason == "converged"
        assert b.state.terminated_reason == "converged"
        assert a.state.round_count == 4
        assert b.state.round_count == 4

    def test_fault_terminates_only_that_watchdog(self):
        s = Scheduler()
        t = ConvergenceTracker()
        good_src = CountingSource(U)
        _, _, good = make_watchdog(good_src, tracker=t, node_id=0, scheduler=s)
        _, _, bad = make_watchdog(BrokenSource(), tracker=t, node_id=1, scheduler=s)
        good.start()
        bad.start()
        s.run(until=50.0)
        assert bad.state.terminated_reason == "fault"
        assert bad.state.round_count == 0
        assert good.state.round_count == 10

    def test_round_records(self):
        records = []
        s, _, wd = make_watchdog(SequenceEvidenceSource([P, N, N]),
                                 tracker=ConvergenceTracker([1]), on_round=records.append)
        wd.start()
        s.run()
        assert [r.round for r in records] == list(range(1, 11))
        assert [r.reputation for r in records[:3]] == [1.0, 0.0, -1.0]
        assert records[0].time == 1.0
        assert records[0].as_row()["evidence"] == "positive"


class TestWatchdogLossRate:
    def test_undefined_without_traffic(self):
        s, _, wd = make_watchdog(CountingSource(U), config=WatchdogConfig(max_rounds=1))
        wd.start()
        s.run()
        assert wd.state.packet_loss_rate is None
        assert wd.packet_loss_rate() is None

    def test_counts_node_traffic(self):
        s = Scheduler()
        net = Network(NetConfig(), s, seed=3)
        me, peer = net.add_node(), net.add_node()
        net.bind(peer, lambda p: net.send(peer, me, p) if p.seq % 2 == 0 else None)
        wd = WatchdogProtocol(s, ConvergenceTracker(), CountingSource(U), network=net,
                              config=WatchdogConfig(max_rounds=3))
        wd.attach(me)
        net.bind(me, lambda p: None)
        for i in range(4):
            net.send(me, peer, Packet(seq=i, source=me, destination=peer))
        wd.start()
        s.run()
        assert wd.state.sent_count == 4
        assert wd.state.received_count == 2
        assert wd.state.packet_loss_rate == pytest.approx(0.5)
