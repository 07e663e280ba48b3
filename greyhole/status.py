# greyhole/status.py
from __future__ import annotations
from enum import Enum

from greyhole.errors import InvariantViolation


class NodeStatus(Enum):
    UNKNOWN = "unknown"
    POSITIVE = "positive"
    NEGATIVE = "negative"


_DELTAS = {
    NodeStatus.POSITIVE: 1.0,
    NodeStatus.NEGATIVE: -1.0,
    NodeStatus.UNKNOWN: 0.0,
}

_WORDING = {
    NodeStatus.POSITIVE: "trustworthy",
    NodeStatus.NEGATIVE: "malicious",
    NodeStatus.UNKNOWN: "undecided",
}


def classify(reputation: float, threshold: float) -> NodeStatus:
    """
    Three-way band:
    - reputation >= threshold   -> POSITIVE
    - reputation < -threshold   -> NEGATIVE (exactly -threshold is not malicious)
    - otherwise                 -> UNKNOWN
    """
    if reputation >= threshold:
        return NodeStatus.POSITIVE
    if reputation < -threshold:
        return NodeStatus.NEGATIVE
    return NodeStatus.UNKNOWN


def reputation_delta(evidence: NodeStatus) -> float:
    try:
        return _DELTAS[evidence]
    except (KeyError, TypeError):
        raise InvariantViolation(f"not a NodeStatus: {evidence!r}") from None


def is_decisive(evidence: NodeStatus) -> bool:
    return evidence is not NodeStatus.UNKNOWN


def describe(status: NodeStatus) -> str:
    return _WORDING[status]
