# experiments/run_greyhole.py
from __future__ import annotations
import argparse
import csv
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from analysis.metrics import PacketAccounting, format_loss_rate, reputation_summary
from greyhole.attacker import GreyholeBehavior
from greyhole.convergence import ConvergenceTracker
from greyhole.evidence import EvidenceSource, RandomEvidenceSource
from greyhole.watchdog import RoundRecord, WatchdogConfig, WatchdogProtocol
from network import NetConfig, Network
from simclock import Scheduler
from traffic import EchoClient, EchoServer

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    n_watchdogs: int = 24
    drop_probability: float = 0.05
    gamma: float = 0.5
    threshold: float = 1.0
    max_rounds: int = 10
    app_start: float = 1.0
    client_start: float = 2.0
    stop_time: float = 30.0
    max_packets: int = 1000
    packet_interval: float = 0.01
    packet_size: int = 1024
    link_loss: float = 0.0
    seed: int = 1


@dataclass
class ScenarioResult:
    converged: bool
    convergence_time: Optional[float]
    sent: int
    received: int
    dropped_by_greyhole: int
    loss_rate: Optional[float]
    reputations: Dict[int, float]
    statuses: Dict[int, str]
    rounds: List[RoundRecord] = field(default_factory=list)

    def as_row(self) -> Dict[str, object]:
        summary = reputation_summary(self.reputations.values())
        return {
            "converged": int(self.converged),
            "convergence_time": self.convergence_time if self.converged else "",
            "sent": self.sent,
            "received": self.received,
            "dropped_by_greyhole": self.dropped_by_greyhole,
            "loss_rate": "" if self.loss_rate is None else self.loss_rate,
            "rep_mean": summary["mean"],
            "rep_std": summary["std"],
            "n_positive": summary["n_positive"],
            "n_negative": summary["n_negative"],
            "n_unknown": summary["n_unknown"],
        }


def _install(scheduler: Scheduler, app, start: float, stop: float):
    # lifetime hooks bound to simulated time
    scheduler.schedule_at(start, app.start)
    scheduler.schedule_at(stop, app.stop)


def scenario_seeds(seed: int) -> Tuple[int, int, int]:
    """Independent seeds for the link model, the greyhole and the evidence stream."""
    children = np.random.SeedSequence(seed).spawn(3)
    return tuple(int(c.generate_state(1)[0]) for c in children)


def run_scenario(cfg: SimulationConfig, evidence: Optional[EvidenceSource] = None) -> ScenarioResult:
    net_seed, greyhole_seed, evidence_seed = scenario_seeds(cfg.seed)
    scheduler = Scheduler()
    net = Network(NetConfig(loss=cfg.link_loss), scheduler, seed=net_seed)
    tracker = ConvergenceTracker()
    if evidence is None:
        evidence = RandomEvidenceSource(seed=evidence_seed)  # shared by all watchdogs
    accounting = PacketAccounting()
    rounds: List[RoundRecord] = []

    wd_cfg = WatchdogConfig(threshold=cfg.threshold, max_rounds=cfg.max_rounds, gamma=cfg.gamma)

    # node layout: watchdogs, then source, greyhole, sink
    watchdogs: List[WatchdogProtocol] = []
    for _ in range(cfg.n_watchdogs):
        node_id = net.add_node()
        wd = WatchdogProtocol(scheduler, tracker, evidence, network=net,
                              config=wd_cfg, on_round=rounds.append)
        wd.attach(node_id, cfg.gamma)
        watchdogs.append(wd)
    source_id = net.add_node()
    greyhole_id = net.add_node()
    sink_id = net.add_node()

    greyhole = GreyholeBehavior(net, seed=greyhole_seed, accounting=accounting)
    greyhole.setup(greyhole_id, cfg.drop_probability)

    server = EchoServer(net, sink_id)
    client = EchoClient(net, scheduler, source_id, relay=greyhole_id, sink=sink_id,
                        max_packets=cfg.max_packets, interval=cfg.packet_interval,
                        packet_size=cfg.packet_size)
    net.observe_send(source_id, accounting.record_sent)
    net.observe_receive(sink_id, accounting.record_received)

    _install(scheduler, greyhole, cfg.app_start, cfg.stop_time)
    for wd in watchdogs:
        _install(scheduler, wd, cfg.app_start, cfg.stop_time)
    _install(scheduler, server, cfg.app_start, cfg.stop_time)
    _install(scheduler, client, cfg.client_start, cfg.stop_time)

    scheduler.run(until=cfg.stop_time)

    return ScenarioResult(
        converged=tracker.converged,
        convergence_time=tracker.convergence_time,
        sent=accounting.sent,
        received=accounting.received,
        dropped_by_greyhole=greyhole.dropped,
        loss_rate=accounting.loss_rate(),
        reputations={wd.node_id: wd.state.reputation for wd in watchdogs},
        statuses={wd.node_id: wd.state.status.value for wd in watchdogs},
        rounds=rounds,
    )


def write_rounds_csv(path: str, rounds: List[RoundRecord]):
    fieldnames = ["time", "node_id", "round", "evidence", "reputation", "status", "decided", "converged"]
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=fieldnames)
        w.writeheader()
        for r in rounds:
            w.writerow(r.as_row())


def write_summary_csv(path: str, result: ScenarioResult):
    row = result.as_row()
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=list(row.keys()))
        w.writeheader()
        w.writerow(row)


def format_summary(result: ScenarioResult) -> str:
    if result.converged:
        conv = f"{result.convergence_time:.3f} s"
    else:
        conv = "not converged"
    return (
        f"Simulation finished. Convergence time: {conv}\n"
        f"Total packets sent from source node: {result.sent}\n"
        f"Total packets received by sink node: {result.received}\n"
        f"Packets dropped by greyhole: {result.dropped_by_greyhole}\n"
        f"Packet loss rate: {format_loss_rate(result.loss_rate)}"
    )


def build_parser() -> argparse.ArgumentParser:
    d = SimulationConfig()
    ap = argparse.ArgumentParser(description="Greyhole detection with reputation watchdogs")
    ap.add_argument("--watchdogs", type=int, default=d.n_watchdogs)
    ap.add_argument("--drop-probability", type=float, default=d.drop_probability)
    ap.add_argument("--stop-time", type=float, default=d.stop_time)
    ap.add_argument("--seed", type=int, default=d.seed)
    ap.add_argument("--max-rounds", type=int, default=d.max_rounds)
    ap.add_argument("--threshold", type=float, default=d.threshold)
    ap.add_argument("--loss", type=float, default=d.link_loss, help="per-link loss probability")
    ap.add_argument("--outdir", type=str, default=None)
    ap.add_argument("--log-level", type=str, default="WARNING")
    return ap


def config_from_args(args: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        n_watchdogs=args.watchdogs,
        drop_probability=args.drop_probability,
        stop_time=args.stop_time,
        seed=args.seed,
        max_rounds=args.max_rounds,
        threshold=args.threshold,
        link_loss=args.loss,
    )


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    result = run_scenario(config_from_args(args))

    if args.outdir:
        os.makedirs(args.outdir, exist_ok=True)
        write_rounds_csv(os.path.join(args.outdir, "rounds.csv"), result.rounds)
        write_summary_csv(os.path.join(args.outdir, "summary.csv"), result)

    print(format_summary(result))
    if args.outdir:
        print("Wrote:", args.outdir)


if __name__ == "__main__":
    main()
