# experiments/run_drop_sweep.py
from __future__ import annotations
import argparse
import csv
import logging
import os
from typing import Dict, List, Sequence

from experiments.run_greyhole import SimulationConfig, run_scenario

logging.getLogger().setLevel(logging.WARNING)


def ensure_dir(p: str):
    if p:
        os.makedirs(p, exist_ok=True)


def sweep(drop_probabilities: Sequence[float], repeats: int, n_watchdogs: int = 24,
          stop_time: float = 30.0) -> List[Dict[str, object]]:
    rows = []
    for p in drop_probabilities:
        for r in range(repeats):
            seed = 1000 + r + int(p * 100)
            cfg = SimulationConfig(
                n_watchdogs=n_watchdogs,
                drop_probability=p,
                stop_time=stop_time,
                seed=seed,
            )
            result = run_scenario(cfg)
            row = {"drop_probability": p, "repeat": r, "seed": seed}
            row.update(result.as_row())
            rows.append(row)
            print(f"[p={p:.2f} seed={seed}] converged={result.converged} "
                  f"sent={result.sent} received={result.received}")
    return rows


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--out", default="results_sweep/drop_sweep.csv")
    ap.add_argument("--watchdogs", type=int, default=24)
    ap.add_argument("--repeats", type=int, default=5)
    ap.add_argument("--stop-time", type=float, default=30.0)
    ap.add_argument("--probabilities", type=float, nargs="+",
                    default=[0.0, 0.05, 0.10, 0.20, 0.50])
    args = ap.parse_args()

    ensure_dir(os.path.dirname(args.out))
    rows = sweep(args.probabilities, args.repeats, args.watchdogs, args.stop_time)

    with open(args.out, "w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        w.writeheader()
        w.writerows(rows)

    print("Wrote:", args.out)


if __name__ == "__main__":
    main()
