"""Permutation importance for fitted mixtures.

A source's importance is the mean increase in residual distance when its own
vector components are shuffled and the mixture is solved again from scratch,
with every other source left untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .exceptions import InvalidInputError
from .jobs import CancellationToken, still_current
from .rng import permutation_rng
from .solver import solve_mixture

logger = logging.getLogger(__name__)


@dataclass
class ImportanceReport:
    """Mean distance increase per source; unevaluated sources hold 0 with count 0."""
    deltas: np.ndarray
    counts: np.ndarray
    permutations: int
    base_distance: float
    kind: str = field(default="importance", init=False)

    @property
    def evaluated(self) -> np.ndarray:
        return self.counts > 0

    def as_optional(self) -> List[Optional[float]]:
        """Deltas with ``None`` for sources that were not evaluated."""
        return [
            float(delta) if count > 0 else None
            for delta, count in zip(self.deltas, self.counts)
        ]


def permutation_importance(
    target_scaled,
    sources_scaled,
    slots: int,
    cycles_multiplier: int,
    base_distance: float,
    permutations: int,
    rng: np.random.Generator,
    evaluate: Optional[Sequence[bool]] = None,
    allowed: Optional[Sequence] = None,
    token: Optional[CancellationToken] = None,
) -> Optional[ImportanceReport]:
    """Estimate how much each source contributes to a mixture fit.

    Args:
        target_scaled: Target vector already divided by ``slots``
        sources_scaled: (n, D) scaled source matrix
        slots: Solver slot count
        cycles_multiplier: Solver sweep multiplier
        base_distance: Residual distance of the unperturbed solve
        permutations: Shuffled reruns per evaluated source
        rng: Generator used by the solver reruns
        evaluate: Mask of sources to compute importance for (default all)
        allowed: Mask or indices of sources allowed to compete for slots
            in the reruns (default all)
        token: Optional cancellation token checked after every trial

    Returns:
        ImportanceReport, or None if the job was superseded
    """
    if permutations < 1:
        raise InvalidInputError(f"permutations must be at least 1, got {permutations}")

    sources = np.asarray(sources_scaled, dtype=np.float64)
    n_sources = sources.shape[0]
    if evaluate is not None:
        evaluate = np.asarray(evaluate, dtype=bool)
        if evaluate.shape[0] != n_sources:
            raise InvalidInputError(
                f"evaluate mask has length {evaluate.shape[0]}, expected {n_sources}"
            )

    deltas = np.zeros(n_sources, dtype=np.float64)
    counts = np.zeros(n_sources, dtype=np.int64)

    for i in range(n_sources):
        if evaluate is not None and not evaluate[i]:
            continue

        shuffle_rng = permutation_rng(i)
        total = 0.0
        for _ in range(permutations):
            perturbed = sources.copy()
            perturbed[i] = shuffle_rng.permutation(sources[i])

            rerun = solve_mixture(
                target_scaled, perturbed, slots, cycles_multiplier, rng,
                allowed=allowed, token=token,
            )
            if rerun is None or not still_current(token):
                return None
            total += rerun.distance - base_distance

        deltas[i] = total / permutations
        counts[i] = permutations
        logger.debug(f"Importance of source {i}: {deltas[i]:.8f}")

    return ImportanceReport(
        deltas=deltas,
        counts=counts,
        permutations=permutations,
        base_distance=float(base_distance),
    )
