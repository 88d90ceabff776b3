"""Slot-based stochastic local search over mixture weights.

The target is approximated by ``slots`` discrete units, each assigned to one
source. The objective is the squared norm of the summed per-unit residuals
``(source - target) / slots``, so the assignment counts divided by ``slots``
form a non-negative weight vector that sums to one.

Each sweep visits every slot in order and proposes moving it to a different,
uniformly drawn source. A proposal is accepted only if it strictly lowers the
objective; equal-distance proposals are rejected.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from .exceptions import InvalidInputError
from .jobs import CancellationToken, still_current

logger = logging.getLogger(__name__)

# Proposals are scored this many at a time against the current state.
# Scoring stops at the first improving proposal, so results match a
# one-at-a-time sweep exactly.
PROPOSAL_CHUNK = 64


@dataclass
class SolverResult:
    """Raw solver output."""
    weights: np.ndarray
    distance: float
    cycles: int
    accepted: int
    trace: List[float] = field(default_factory=list)


def scale_vectors(vectors, slots: int) -> np.ndarray:
    """Divide profile values by the slot count."""
    return np.asarray(vectors, dtype=np.float64) / float(slots)


def cycle_count(n_sources: int, cycles_multiplier: int) -> int:
    """Number of full sweeps for ``n_sources`` competing sources."""
    return max(1, math.ceil(n_sources * cycles_multiplier / 4))


def _candidate_indices(n_sources: int, allowed: Optional[Sequence]) -> np.ndarray:
    if allowed is None:
        return np.arange(n_sources)
    allowed = np.asarray(allowed)
    if allowed.dtype == bool:
        if allowed.shape[0] != n_sources:
            raise InvalidInputError(
                f"allowed mask has length {allowed.shape[0]}, expected {n_sources}"
            )
        return np.flatnonzero(allowed)
    indices = np.unique(allowed.astype(int))
    out_of_range = indices[(indices < 0) | (indices >= n_sources)]
    if out_of_range.size:
        raise InvalidInputError(
            f"allowed source indices out of range for {n_sources} sources: {out_of_range.tolist()}",
            {"indices": out_of_range.tolist(), "n_sources": n_sources},
        )
    return indices


def solve_mixture(
    target_scaled,
    sources_scaled,
    slots: int,
    cycles_multiplier: int,
    rng: np.random.Generator,
    allowed: Optional[Sequence] = None,
    token: Optional[CancellationToken] = None,
) -> Optional[SolverResult]:
    """Fit non-negative, sum-to-one weights of sources to a target.

    Args:
        target_scaled: Target vector already divided by ``slots``
        sources_scaled: (n, D) source matrix already divided by ``slots``
        slots: Number of discrete weight units
        cycles_multiplier: Sweep count is ``ceil(n * cycles_multiplier / 4)``
        rng: Random generator for initial draws and proposals
        allowed: Optional boolean mask or index list restricting which
            sources may hold slots; excluded sources get weight 0
        token: Optional cancellation token checked after every sweep

    Returns:
        SolverResult, or None if the job was superseded
    """
    target = np.asarray(target_scaled, dtype=np.float64).ravel()
    sources = np.asarray(sources_scaled, dtype=np.float64)
    if sources.ndim != 2 or sources.shape[0] == 0:
        raise InvalidInputError("Mixture solver needs at least one source")
    if sources.shape[1] != target.shape[0]:
        raise InvalidInputError(
            f"Vector length mismatch: sources have {sources.shape[1]}, target has {target.shape[0]}"
        )
    if slots < 1:
        raise InvalidInputError(f"slots must be positive, got {slots}")

    n_sources = sources.shape[0]
    candidates = _candidate_indices(n_sources, allowed)
    if candidates.size == 0:
        raise InvalidInputError("No sources are allowed to compete for slots")

    m = candidates.size
    diffs = sources[candidates] - target

    current_slots = rng.integers(0, m, size=slots)
    current_point = diffs[current_slots].sum(axis=0)
    current_dist = float(current_point @ current_point)

    cycles = cycle_count(m, cycles_multiplier) if m > 1 else 0
    trace = [current_dist]
    accepted = 0

    if m > 1:
        for _ in range(cycles):
            # (old + offset) % m is uniform over the other m - 1 sources
            offsets = rng.integers(1, m, size=slots)
            s = 0
            while s < slots:
                stop = min(s + PROPOSAL_CHUNK, slots)
                old_idx = current_slots[s:stop]
                new_idx = (old_idx + offsets[s:stop]) % m
                proposed = current_point - diffs[old_idx] + diffs[new_idx]
                new_dists = np.einsum("ij,ij->i", proposed, proposed)

                improving = np.flatnonzero(new_dists < current_dist)
                if improving.size == 0:
                    s = stop
                    continue

                j = int(improving[0])
                current_point = proposed[j].copy()
                current_dist = float(new_dists[j])
                current_slots[s + j] = new_idx[j]
                accepted += 1
                s += j + 1

            trace.append(current_dist)
            if not still_current(token):
                return None
    elif not still_current(token):
        return None

    weights = np.zeros(n_sources, dtype=np.float64)
    weights[candidates] = np.bincount(current_slots, minlength=m) / slots

    distance = math.sqrt(current_dist)
    logger.debug(
        f"Solver finished: sources={m} slots={slots} cycles={cycles} "
        f"accepted={accepted} distance={distance:.8f}"
    )
    return SolverResult(
        weights=weights,
        distance=distance,
        cycles=cycles,
        accepted=accepted,
        trace=trace,
    )
