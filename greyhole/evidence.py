# greyhole/evidence.py
from __future__ import annotations
from typing import Iterable, Iterator, Optional

import numpy as np

from greyhole.status import NodeStatus


class EvidenceSource:
    """Supplies one observation per monitoring round."""

    def sample(self) -> NodeStatus:
        raise NotImplementedError


class RandomEvidenceSource(EvidenceSource):
    """
    Uniform draw r in [0, 1):
    - r < 1/3        -> POSITIVE
    - 1/3 <= r < 2/3 -> NEGATIVE
    - else           -> UNKNOWN
    """
    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    def sample(self) -> NodeStatus:
        r = float(self.rng.random())
        if r < 1.0 / 3.0:
            return NodeStatus.POSITIVE
        if r < 2.0 / 3.0:
            return NodeStatus.NEGATIVE
        return NodeStatus.UNKNOWN


class SequenceEvidenceSource(EvidenceSource):
    """Replays a fixed sequence, then reports UNKNOWN forever."""

    def __init__(self, items: Iterable[NodeStatus]):
        self._it: Iterator[NodeStatus] = iter(list(items))

    def sample(self) -> NodeStatus:
        return next(self._it, NodeStatus.UNKNOWN)
