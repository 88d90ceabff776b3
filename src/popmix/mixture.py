"""Mixture modelling of targets as weighted blends of sources.

This module provides:
- Single-target mixture fits with optional permutation importance
- Multi-target fits summarised as a weight matrix
- Optional merging of sources by aggregation key
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import MixtureConfig
from .dataset import Dataset, aggregate_by_key, aggregation_key
from .exceptions import InvalidInputError
from .importance import ImportanceReport, permutation_importance
from .jobs import CancellationToken, still_current
from .logging_config import PerformanceLogger
from .solver import scale_vectors, solve_mixture

logger = logging.getLogger(__name__)

USED_WEIGHT_THRESHOLD = 1e-6


@dataclass
class MixtureEntry:
    """One source (or aggregation key) in a fitted mixture."""
    name: str
    weight: float
    importance: Optional[float] = None


@dataclass
class MixtureResult:
    """Single-target mixture fit."""
    target: str
    distance: float
    entries: List[MixtureEntry]
    weights: np.ndarray
    source_names: List[str]
    aggregated: bool = False
    importance: Optional[ImportanceReport] = None
    kind: str = field(default="mixture", init=False)

    def to_frame(self, include_zeroes: bool = True) -> pd.DataFrame:
        frame = pd.DataFrame(
            [(e.name, e.weight, e.importance) for e in self.entries],
            columns=["name", "weight", "importance"],
        )
        if not include_zeroes:
            frame = frame[frame["weight"] != 0].reset_index(drop=True)
        return frame


@dataclass
class MixtureSummary:
    """Weights of every target, columns ordered by average weight."""
    weights: pd.DataFrame
    distances: pd.Series
    average: pd.Series
    aggregated: bool = False
    kind: str = field(default="mixture_summary", init=False)

    @property
    def mean_distance(self) -> float:
        return float(self.distances.mean()) if len(self.distances) else 0.0


def _aggregate_importance(names: Sequence[str], report: ImportanceReport) -> List[Optional[float]]:
    _, sums = aggregate_by_key(names, report.deltas, reducer="sum")
    _, counts = aggregate_by_key(names, report.evaluated.astype(float), reducer="sum")
    return [total if count > 0 else None for total, count in zip(sums, counts)]


def run_mixture(
    dataset: Dataset,
    target_index: int,
    config: MixtureConfig,
    rng: np.random.Generator,
    token: Optional[CancellationToken] = None,
    progress: Optional[Callable[[str], None]] = None,
    allowed: Optional[Sequence] = None,
) -> Optional[MixtureResult]:
    """Fit one target as a mixture of all sources.

    Args:
        dataset: Validated dataset
        target_index: Row of ``dataset.target`` to fit
        config: Mixture configuration
        rng: Random generator for the solver
        token: Optional cancellation token
        progress: Optional callback receiving status messages
        allowed: Optional mask of sources allowed to hold slots during
            importance reruns

    Returns:
        MixtureResult, or None if the job was superseded
    """
    dataset.validate()
    if not 0 <= target_index < len(dataset.target):
        raise InvalidInputError(
            f"Target index {target_index} out of range for {len(dataset.target)} targets"
        )

    source_names = list(dataset.source.names)
    target_name = dataset.target.names[target_index]
    sources_scaled = scale_vectors(dataset.source.vectors, config.slots)
    target_scaled = scale_vectors(dataset.target.vectors[target_index], config.slots)

    with PerformanceLogger(logger, f"mixture fit of {target_name!r}"):
        solved = solve_mixture(
            target_scaled, sources_scaled, config.slots, config.cycles_multiplier,
            rng, token=token,
        )
    if solved is None:
        return None

    report = None
    imp_config = config.importance
    if imp_config.enabled:
        if not still_current(token):
            return None
        evaluate = solved.weights > USED_WEIGHT_THRESHOLD if imp_config.used_only else None
        scope = "(used sources only)" if imp_config.used_only else "(all sources)"
        if progress:
            progress(f"Computing permutation importance... perms={imp_config.permutations} {scope}")

        with PerformanceLogger(logger, f"permutation importance of {target_name!r}"):
            report = permutation_importance(
                target_scaled, sources_scaled, config.slots, config.cycles_multiplier,
                solved.distance, imp_config.permutations, rng,
                evaluate=evaluate, allowed=allowed, token=token,
            )
        if report is None:
            return None
        if progress:
            progress(f"Permutation importance computed (perms={imp_config.permutations}).")

    names = source_names
    values = list(solved.weights)
    deltas = report.as_optional() if report is not None else [None] * len(names)
    if config.aggregate:
        names, values = aggregate_by_key(source_names, values, reducer="sum")
        if report is not None:
            deltas = _aggregate_importance(source_names, report)
        else:
            deltas = [None] * len(names)

    entries = [
        MixtureEntry(name=name, weight=float(value), importance=delta)
        for name, value, delta in zip(names, values, deltas)
    ]
    entries.sort(key=lambda e: e.weight, reverse=True)

    return MixtureResult(
        target=target_name,
        distance=solved.distance,
        entries=entries,
        weights=solved.weights,
        source_names=source_names,
        aggregated=config.aggregate,
        importance=report,
    )


def build_summary(
    target_names: Sequence[str],
    source_names: Sequence[str],
    weights: np.ndarray,
    distances: Sequence[float],
    aggregate: bool = False,
) -> MixtureSummary:
    """Assemble per-target weights into a summary matrix.

    With ``aggregate`` set, columns sharing an aggregation key are summed.
    Columns are ordered by their average weight across targets, largest first.
    """
    matrix = pd.DataFrame(np.asarray(weights, dtype=np.float64), index=list(target_names))
    columns = list(source_names)
    if aggregate:
        keys = [aggregation_key(name) for name in columns]
        matrix = matrix.T.groupby(keys, sort=False).sum().T
    else:
        matrix.columns = columns

    average = matrix.mean(axis=0).to_numpy()
    order = np.argsort(-average, kind="stable")
    matrix = matrix.iloc[:, order]
    average = pd.Series(average[order], index=matrix.columns, name="average")

    return MixtureSummary(
        weights=matrix,
        distances=pd.Series(list(distances), index=list(target_names), name="distance", dtype=float),
        average=average,
        aggregated=aggregate,
    )


def run_all_mixtures(
    dataset: Dataset,
    config: MixtureConfig,
    rng: np.random.Generator,
    token: Optional[CancellationToken] = None,
) -> Optional[MixtureSummary]:
    """Fit every target and summarise the weights.

    Permutation importance is not computed in this mode.

    Returns:
        MixtureSummary, or None if the job was superseded
    """
    dataset.validate()
    sources_scaled = scale_vectors(dataset.source.vectors, config.slots)

    weights = []
    distances = []
    with PerformanceLogger(logger, f"mixture fit of {len(dataset.target)} targets"):
        for t_idx, target_name in enumerate(dataset.target.names):
            target_scaled = scale_vectors(dataset.target.vectors[t_idx], config.slots)
            solved = solve_mixture(
                target_scaled, sources_scaled, config.slots, config.cycles_multiplier,
                rng, token=token,
            )
            if solved is None or not still_current(token):
                return None
            weights.append(solved.weights)
            distances.append(solved.distance)
            logger.debug(f"Target {target_name!r}: distance={solved.distance:.8f}")

    return build_summary(
        dataset.target.names,
        dataset.source.names,
        np.vstack(weights),
        distances,
        aggregate=config.aggregate,
    )
