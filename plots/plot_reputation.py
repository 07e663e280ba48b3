# plots/plot_reputation.py
from __future__ import annotations
import argparse
import os
from typing import List

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd


def load_rounds(path: str) -> pd.DataFrame:
    return pd.read_csv(path)


def decided_over_time(df: pd.DataFrame) -> pd.DataFrame:
    """Number of distinct watchdogs that had produced decisive evidence by each instant."""
    first = df[df["decided"] == 1].groupby("node_id")["time"].min()
    times = sorted(df["time"].unique())
    counts = [int((first <= t).sum()) for t in times]
    return pd.DataFrame({"time": times, "decided": counts})


def plot_reputation(df: pd.DataFrame, outdir: str) -> List[str]:
    os.makedirs(outdir, exist_ok=True)
    written = []

    # reputation trajectory per watchdog
    plt.figure()
    for nid, g in df.groupby("node_id"):
        g = g.sort_values("time")
        plt.step(g["time"], g["reputation"], where="post", linewidth=0.8, alpha=0.7)
    plt.axhline(1.0, linestyle="--", color="gray")
    plt.axhline(-1.0, linestyle="--", color="gray")
    plt.xlabel("Simulated time (s)")
    plt.ylabel("Reputation")
    plt.title("Watchdog reputation per round")
    plt.tight_layout()
    path = os.path.join(outdir, "fig_reputation.png")
    plt.savefig(path, dpi=200)
    plt.close()
    written.append(path)

    # convergence progress
    d = decided_over_time(df)
    plt.figure()
    plt.step(d["time"], d["decided"], where="post")
    plt.axhline(df["node_id"].nunique(), linestyle="--", color="gray")
    plt.xlabel("Simulated time (s)")
    plt.ylabel("Decided watchdogs")
    plt.title("Convergence progress")
    plt.tight_layout()
    path = os.path.join(outdir, "fig_decided.png")
    plt.savefig(path, dpi=200)
    plt.close()
    written.append(path)
    return written


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--csv", type=str, required=True)  # rounds.csv
    ap.add_argument("--outdir", type=str, default="plots_out")
    args = ap.parse_args()

    for p in plot_reputation(load_rounds(args.csv), args.outdir):
        print("Wrote:", p)


if __name__ == "__main__":
    main()
