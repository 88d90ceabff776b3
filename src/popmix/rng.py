"""Deterministic random utilities."""

from __future__ import annotations

import numpy as np

PERMUTATION_BASE_SEED = 123456789
PERMUTATION_SEED_STRIDE = 97


def choose_rng(seed: int | None = None) -> np.random.Generator:
    """Convenience helper returning a seeded ``numpy`` generator.

    ``None`` draws fresh entropy from the operating system.
    """

    return np.random.default_rng(seed)


def permutation_rng(source_index: int) -> np.random.Generator:
    """Generator for shuffling one source's vector.

    Seeded from a fixed base plus an offset derived from the source index, so
    the same source is always shuffled the same way across runs.
    """

    return np.random.default_rng(PERMUTATION_BASE_SEED + PERMUTATION_SEED_STRIDE * source_index)
