"""Named numeric profiles and the source/target dataset."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

import numpy as np

from .exceptions import InvalidInputError

KEY_SEPARATOR = ":"
MIN_DIMENSION = 2


def aggregation_key(name: str) -> str:
    """Group key for a row name: everything before the first ``:``."""
    return str(name).split(KEY_SEPARATOR, 1)[0]


def aggregate_by_key(
    names: Sequence[str],
    values: Sequence[float],
    reducer: str = "sum",
) -> Tuple[List[str], List[float]]:
    """Merge values whose names share an aggregation key.

    Keys keep the order in which they are first encountered.

    Args:
        names: Row names
        values: One value per name
        reducer: ``"sum"`` (mixture weights) or ``"min"`` (distances)

    Returns:
        Tuple of (keys, merged values)
    """
    if len(names) != len(values):
        raise InvalidInputError(
            f"Got {len(names)} names for {len(values)} values"
        )
    if reducer not in ("sum", "min"):
        raise ValueError("reducer must be 'sum' or 'min'")

    merged: Dict[str, float] = {}
    for name, value in zip(names, values):
        key = aggregation_key(name)
        value = float(value)
        if key not in merged:
            merged[key] = value
        elif reducer == "sum":
            merged[key] += value
        else:
            merged[key] = min(merged[key], value)

    keys = list(merged.keys())
    return keys, [merged[key] for key in keys]


@dataclass(frozen=True)
class Row:
    """A named profile vector."""
    name: str
    vector: np.ndarray


@dataclass(frozen=True)
class ProfileSet:
    """One side of a dataset: row names plus an (n, D) matrix."""

    names: Tuple[str, ...]
    vectors: np.ndarray

    @classmethod
    def from_rows(cls, rows: Sequence[Tuple[str, Sequence[float]]]) -> "ProfileSet":
        names = tuple(str(name) for name, _ in rows)
        if not rows:
            return cls(names=names, vectors=np.empty((0, 0), dtype=np.float64))
        lengths = {len(vector) for _, vector in rows}
        if len(lengths) != 1:
            raise InvalidInputError(
                f"Rows have inconsistent lengths: {sorted(lengths)}"
            )
        vectors = np.array([list(vector) for _, vector in rows], dtype=np.float64)
        return cls(names=names, vectors=vectors)

    def __post_init__(self) -> None:
        vectors = np.array(self.vectors, dtype=np.float64, copy=True)
        if vectors.ndim != 2:
            raise InvalidInputError(f"Profile matrix must be 2-D, got shape {vectors.shape}")
        if vectors.shape[0] != len(self.names):
            raise InvalidInputError(
                f"Got {len(self.names)} names for {vectors.shape[0]} vectors"
            )
        vectors.setflags(write=False)
        object.__setattr__(self, "names", tuple(self.names))
        object.__setattr__(self, "vectors", vectors)

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self) -> Iterator[Row]:
        for name, vector in zip(self.names, self.vectors):
            yield Row(name, vector)

    @property
    def dimension(self) -> int:
        return int(self.vectors.shape[1])

    def index_of(self, name: str) -> int:
        """Position of the first row called ``name``."""
        try:
            return self.names.index(name)
        except ValueError:
            raise InvalidInputError(f"Unknown profile name: {name!r}") from None


@dataclass(frozen=True)
class Dataset:
    """Source and target profiles sharing one dimensionality."""

    source: ProfileSet
    target: ProfileSet

    @property
    def dimension(self) -> int:
        return self.source.dimension

    def validate(self) -> "Dataset":
        """Check the invariants every engine relies on.

        Raises:
            InvalidInputError: On empty sides, D < 2, mismatched D
                or non-finite values
        """
        if len(self.source) == 0:
            raise InvalidInputError("Source set is empty")
        if len(self.target) == 0:
            raise InvalidInputError("Target set is empty")

        s_dim = self.source.dimension
        t_dim = self.target.dimension
        if s_dim != t_dim:
            raise InvalidInputError(
                f"Dimension mismatch: source has {s_dim}, target has {t_dim}.",
                {"source": s_dim, "target": t_dim},
            )
        if s_dim < MIN_DIMENSION:
            raise InvalidInputError(f"Need at least {MIN_DIMENSION} dimensions, got {s_dim}")

        for side, profiles in (("source", self.source), ("target", self.target)):
            bad = ~np.isfinite(profiles.vectors).all(axis=1)
            if bad.any():
                first = profiles.names[int(np.argmax(bad))]
                raise InvalidInputError(
                    f"Non-finite value in {side} row {first!r}",
                    {"side": side, "row": first},
                )
        return self

    def pooled(self) -> Tuple[List[str], np.ndarray]:
        """All rows as unlabeled points, sources first, names tagged by side."""
        names = [f"{name} (source)" for name in self.source.names]
        names += [f"{name} (target)" for name in self.target.names]
        points = np.vstack([self.source.vectors, self.target.vectors])
        return names, points
