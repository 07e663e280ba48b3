# analysis/metrics.py
from __future__ import annotations
from typing import Dict, Iterable, Optional

import numpy as np

from greyhole.errors import InvariantViolation


def loss_rate(sent: int, received: int) -> Optional[float]:
    """
    1 - received/sent.
    sent == 0 -> None (undefined), never NaN.
    """
    if sent < 0 or received < 0:
        raise InvariantViolation(f"negative packet count (sent={sent}, received={received})")
    if received > sent:
        raise InvariantViolation(f"received {received} packets but only {sent} were sent")
    if sent == 0:
        return None
    return 1.0 - (float(received) / float(sent))


def format_loss_rate(rate: Optional[float]) -> str:
    return "undefined" if rate is None else f"{rate:.4f}"


class PacketAccounting:
    """Passive counters fed by send/receive observers."""

    def __init__(self):
        self.sent = 0
        self.received = 0
        self.dropped = 0

    def record_sent(self, *_):
        self.sent += 1

    def record_received(self, *_):
        self.received += 1

    def record_dropped(self, *_):
        self.dropped += 1

    def loss_rate(self) -> Optional[float]:
        return loss_rate(self.sent, self.received)

    def as_dict(self) -> Dict[str, object]:
        return {
            "sent": self.sent,
            "received": self.received,
            "dropped": self.dropped,
            "loss_rate": self.loss_rate(),
        }


def reputation_summary(values: Iterable[float], threshold: float = 1.0) -> Dict[str, float]:
    x = np.asarray(list(values), dtype=float)
    if x.size == 0:
        return {
            "count": 0, "mean": 0.0, "std": 0.0, "min": 0.0, "max": 0.0,
            "n_positive": 0, "n_negative": 0, "n_unknown": 0,
        }
    n_pos = int(np.count_nonzero(x >= threshold))
    n_neg = int(np.count_nonzero(x < -threshold))
    return {
        "count": int(x.size),
        "mean": float(x.mean()),
        "std": float(x.std()),
        "min": float(x.min()),
        "max": float(x.max()),
        "n_positive": n_pos,
        "n_negative": n_neg,
        "n_unknown": int(x.size) - n_pos - n_neg,
    }
