"""Nearest-neighbor ranking of source profiles against a target."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import DistanceConfig
from .dataset import Dataset, aggregate_by_key
from .exceptions import InvalidInputError
from .vector_math import euclidean

logger = logging.getLogger(__name__)


@dataclass
class RankedSource:
    """One row of a distance ranking."""
    rank: int
    name: str
    distance: float


@dataclass
class DistanceResult:
    """Sources ordered closest first."""
    target: str
    entries: List[RankedSource]
    total: int
    aggregated: bool = False
    top_n: Optional[int] = None
    kind: str = field(default="distance", init=False)

    @property
    def shown(self) -> int:
        return len(self.entries)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(e.rank, e.name, e.distance) for e in self.entries],
            columns=["rank", "name", "distance"],
        )


def rank_distances(
    target_vector: Sequence[float],
    source_names: Sequence[str],
    source_vectors: np.ndarray,
    aggregate: bool = False,
    top_n: Optional[int] = None,
    target_name: str = "",
) -> DistanceResult:
    """Rank sources by Euclidean distance to a target vector.

    With ``aggregate`` set, rows sharing an aggregation key collapse to the
    closest member. Ties keep insertion order.

    Args:
        target_vector: Target profile of length D
        source_names: One name per source row
        source_vectors: (n, D) source matrix
        aggregate: Merge sources by aggregation key
        top_n: Keep only the closest ``top_n`` entries
        target_name: Label carried into the result

    Returns:
        DistanceResult with entries ascending by distance
    """
    if len(source_names) == 0:
        raise InvalidInputError("Source set is empty")
    if len(source_names) != len(source_vectors):
        raise InvalidInputError(
            f"Got {len(source_names)} source names for {len(source_vectors)} vectors"
        )
    if top_n is not None and top_n < 1:
        raise InvalidInputError(f"top_n must be at least 1, got {top_n}")

    names = list(source_names)
    dists = [euclidean(target_vector, vector) for vector in source_vectors]

    if aggregate:
        names, dists = aggregate_by_key(names, dists, reducer="min")

    # stable sort keeps first-encountered order for equal distances
    order = sorted(range(len(names)), key=lambda i: dists[i])
    total = len(order)
    if top_n is not None:
        order = order[:top_n]

    entries = [
        RankedSource(rank=rank, name=names[i], distance=float(dists[i]))
        for rank, i in enumerate(order, start=1)
    ]
    logger.debug(f"Ranked {total} sources against {target_name!r}, showing {len(entries)}")
    return DistanceResult(
        target=target_name,
        entries=entries,
        total=total,
        aggregated=aggregate,
        top_n=top_n,
    )


def rank_target(dataset: Dataset, target_name: str, config: DistanceConfig) -> DistanceResult:
    """Rank the dataset's sources against the named target row."""
    index = dataset.target.index_of(target_name)
    return rank_distances(
        dataset.target.vectors[index],
        dataset.source.names,
        dataset.source.vectors,
        aggregate=config.aggregate,
        top_n=config.top_n,
        target_name=target_name,
    )
