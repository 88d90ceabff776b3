"""Vector and matrix primitives shared by the modeling engines."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .exceptions import InvalidInputError

PIVOT_EPSILON = 1e-12


def _as_vector(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float64).ravel()


def _check_same_length(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[0] != b.shape[0]:
        raise InvalidInputError(
            f"Vector length mismatch: {a.shape[0]} != {b.shape[0]}",
            {"left": int(a.shape[0]), "right": int(b.shape[0])},
        )


def euclidean(a, b) -> float:
    """Euclidean distance between two equal-length vectors."""
    a = _as_vector(a)
    b = _as_vector(b)
    _check_same_length(a, b)
    diff = a - b
    return float(np.sqrt(np.dot(diff, diff)))


def cosine_similarity(a, b) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm."""
    a = _as_vector(a)
    b = _as_vector(b)
    _check_same_length(a, b)
    norm_a = float(np.sqrt(np.dot(a, a)))
    norm_b = float(np.sqrt(np.dot(b, b)))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def invert_with_log_det(matrix) -> Tuple[np.ndarray, float]:
    """Invert a square matrix by Gauss-Jordan elimination.

    Rows are swapped so the pivot is the largest absolute entry remaining
    in the column. The log-determinant is accumulated as the sum of
    ``log|pivot|`` so it stays finite for badly scaled covariances. A pivot
    that is exactly zero is replaced by ``PIVOT_EPSILON`` instead of failing.

    Args:
        matrix: Square (n, n) array-like

    Returns:
        Tuple of (inverse, log_det)
    """
    a = np.array(matrix, dtype=np.float64, copy=True)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise InvalidInputError(f"Expected a square matrix, got shape {a.shape}")

    n = a.shape[0]
    inv = np.eye(n, dtype=np.float64)
    log_det = 0.0

    for i in range(n):
        pivot_row = i + int(np.argmax(np.abs(a[i:, i])))
        pivot_val = abs(a[pivot_row, i])

        if pivot_val == 0.0:
            a[i, i] = PIVOT_EPSILON
            pivot_row = i

        if pivot_row != i:
            a[[i, pivot_row]] = a[[pivot_row, i]]
            inv[[i, pivot_row]] = inv[[pivot_row, i]]

        pivot = a[i, i]
        log_det += float(np.log(abs(pivot)))

        a[i] /= pivot
        inv[i] /= pivot

        factors = a[:, i].copy()
        factors[i] = 0.0
        nonzero = factors != 0.0
        if np.any(nonzero):
            a[nonzero] -= np.outer(factors[nonzero], a[i])
            inv[nonzero] -= np.outer(factors[nonzero], inv[i])

    return inv, log_det


def mean_vector(points: np.ndarray) -> np.ndarray:
    """Column means of an (n, d) point matrix."""
    return np.asarray(points, dtype=np.float64).mean(axis=0)


def variance_vector(points: np.ndarray, mean: np.ndarray, floor: float) -> np.ndarray:
    """Population variance per dimension, floored at ``floor``."""
    diff = np.asarray(points, dtype=np.float64) - mean
    variances = (diff * diff).mean(axis=0)
    return np.maximum(variances, floor)


def covariance_matrix(points: np.ndarray, mean: np.ndarray, floor: float) -> np.ndarray:
    """Population covariance matrix with the diagonal floored at ``floor``."""
    diff = np.asarray(points, dtype=np.float64) - mean
    cov = diff.T @ diff / diff.shape[0]
    np.fill_diagonal(cov, np.maximum(np.diag(cov), floor))
    return cov
