"""
Bayesian Gaussian mixture model fitted by EM.

This module provides:
- k-means++ seeding of component means
- MAP-regularised EM with diagonal or full covariances
- Model-order selection by AIC or BIC over a range of component counts

Priors are always active: a Normal prior on each mean centred on the global
mean with strength kappa0, an Inverse-Gamma (diag) or Inverse-Wishart (full)
prior on the covariances scaled from the global (co)variance, and an additive
prior on the mixture weights, ``(n_k + alpha) / (N + k * alpha)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.special import logsumexp

from .config import GMMConfig
from .dataset import Dataset
from .exceptions import InvalidInputError
from .jobs import CancellationToken, still_current
from .logging_config import PerformanceLogger
from .vector_math import covariance_matrix, invert_with_log_det, mean_vector, variance_vector

logger = logging.getLogger(__name__)

LOG_2PI = float(np.log(2 * np.pi))
MIN_DENOMINATOR = 1e-12
MIN_WEIGHT = 1e-12


@dataclass
class GMMPriors:
    """Hyperparameters derived from the pooled data."""
    weight_prior: float
    mean_prior_strength: float
    mean_prior: np.ndarray
    var_prior_alpha: float
    var_prior_beta: np.ndarray
    cov_prior: np.ndarray
    cov_prior_nu: float
    cov_prior_scale: float
    cov_prior_df: float

    def summary(self) -> Dict[str, float]:
        return {
            'weight_prior': self.weight_prior,
            'mean_prior_strength': self.mean_prior_strength,
            'cov_prior_scale': self.cov_prior_scale,
            'cov_prior_df': self.cov_prior_df,
        }


@dataclass
class GMMModel:
    """Fitted mixture parameters and diagnostics."""
    k: int
    covariance_type: str
    weights: np.ndarray
    means: np.ndarray
    covariances: np.ndarray
    log_likelihood: float
    bic: float
    aic: float
    converged: bool
    iterations: int
    n_parameters: int
    priors: Dict[str, float]
    log_likelihood_trace: List[float] = field(default_factory=list)
    bayesian: bool = True


@dataclass
class GMMResult:
    """Clustering of pooled points under a fitted model."""
    model: GMMModel
    labels: np.ndarray
    responsibilities: np.ndarray
    sample_names: List[str]
    criterion: str = "none"
    candidates: List[Dict[str, float]] = field(default_factory=list)
    kind: str = field(default="gmm", init=False)

    @property
    def max_probability(self) -> np.ndarray:
        """Responsibility of each point's assigned component."""
        return self.responsibilities[np.arange(len(self.labels)), self.labels]

    @property
    def average_responsibility(self) -> np.ndarray:
        return self.responsibilities.mean(axis=0)

    @property
    def component_order(self) -> np.ndarray:
        """Component indices by average responsibility, largest first."""
        return np.argsort(-self.average_responsibility, kind="stable")

    def responsibility_frame(self) -> pd.DataFrame:
        columns = [f"C{c + 1}" for c in range(self.model.k)]
        frame = pd.DataFrame(self.responsibilities, index=self.sample_names, columns=columns)
        frame.insert(0, "cluster", [columns[label] for label in self.labels])
        return frame


def kmeans_plus_plus(points: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """Pick ``k`` initial centres, favouring points far from chosen ones."""
    n = points.shape[0]
    centers = [points[rng.integers(0, n)].copy()]
    best = np.full(n, np.inf)
    while len(centers) < k:
        diff = points - centers[-1]
        best = np.minimum(best, np.einsum('ij,ij->i', diff, diff))
        total = float(best.sum())
        r = rng.random() * total
        idx = int(np.searchsorted(np.cumsum(best), r, side='left'))
        centers.append(points[min(idx, n - 1)].copy())
    return np.array(centers)


def build_priors(points: np.ndarray, config: GMMConfig) -> Tuple[GMMPriors, np.ndarray, np.ndarray]:
    """Derive priors plus the global variance vector and covariance matrix."""
    d = points.shape[1]
    floor = config.variance_floor
    overall_mean = mean_vector(points)

    base_var = variance_vector(points, overall_mean, floor)
    prior_var = np.maximum(base_var * config.cov_prior_scale, floor)
    var_prior_alpha = max(2.0, config.cov_prior_df + 2.0)
    var_prior_beta = prior_var * (var_prior_alpha + 1.0)

    base_cov = covariance_matrix(points, overall_mean, floor)
    prior_nu = max(d + 2.0, d + config.cov_prior_df + 2.0)
    cov_prior = base_cov * config.cov_prior_scale * (prior_nu + d + 1.0)

    priors = GMMPriors(
        weight_prior=max(1e-6, config.weight_prior),
        mean_prior_strength=max(1e-6, config.mean_prior_strength),
        mean_prior=overall_mean,
        var_prior_alpha=var_prior_alpha,
        var_prior_beta=var_prior_beta,
        cov_prior=cov_prior,
        cov_prior_nu=prior_nu,
        cov_prior_scale=config.cov_prior_scale,
        cov_prior_df=config.cov_prior_df,
    )
    return priors, base_var, base_cov


def log_gaussian_diag(points: np.ndarray, means: np.ndarray, variances: np.ndarray) -> np.ndarray:
    """Log-density of every point under every diagonal component, shape (n, k)."""
    d = points.shape[1]
    log_det = np.sum(np.log(variances), axis=1)
    diff = points[:, None, :] - means[None, :, :]
    quad = np.sum(diff * diff / variances[None, :, :], axis=2)
    return -0.5 * (d * LOG_2PI + log_det[None, :] + quad)


def log_gaussian_full(points: np.ndarray, mean: np.ndarray, cov_inv: np.ndarray, log_det: float) -> np.ndarray:
    """Log-density of every point under one full-covariance component."""
    d = points.shape[1]
    diff = points - mean
    quad = np.einsum('ij,ij->i', diff @ cov_inv, diff)
    return -0.5 * (d * LOG_2PI + log_det + quad)


def expectation(
    points: np.ndarray,
    weights: np.ndarray,
    means: np.ndarray,
    covariances: np.ndarray,
    covariance_type: str,
) -> Tuple[np.ndarray, float]:
    """E-step: responsibilities and total data log-likelihood."""
    if covariance_type == 'full':
        log_gauss = np.empty((points.shape[0], weights.shape[0]))
        for c in range(weights.shape[0]):
            inverse, log_det = invert_with_log_det(covariances[c])
            log_gauss[:, c] = log_gaussian_full(points, means[c], inverse, log_det)
    else:
        log_gauss = log_gaussian_diag(points, means, covariances)

    log_probs = np.log(weights)[None, :] + log_gauss
    log_norm = logsumexp(log_probs, axis=1, keepdims=True)
    responsibilities = np.exp(log_probs - log_norm)
    return responsibilities, float(np.sum(log_norm))


def maximization(
    points: np.ndarray,
    responsibilities: np.ndarray,
    covariance_type: str,
    variance_floor: float,
    priors: GMMPriors,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """M-step: MAP updates of means, covariances and weights."""
    n, d = points.shape
    k = responsibilities.shape[1]

    nk = responsibilities.sum(axis=0)
    xbars = responsibilities.T @ points / np.where(nk > 0, nk, 1.0)[:, None]

    kappa0 = priors.mean_prior_strength
    mu0 = priors.mean_prior
    kappa_n = np.maximum(kappa0 + nk, MIN_DENOMINATOR)
    means = (kappa0 * mu0[None, :] + nk[:, None] * xbars) / kappa_n[:, None]
    shrink = kappa0 * nk / kappa_n
    offsets = xbars - mu0[None, :]

    if covariance_type == 'full':
        covariances = np.empty((k, d, d))
        for c in range(k):
            centered = points - xbars[c]
            scatter = (responsibilities[:, c, None] * centered).T @ centered
            psi = priors.cov_prior + scatter + shrink[c] * np.outer(offsets[c], offsets[c])
            denom = max(MIN_DENOMINATOR, priors.cov_prior_nu + nk[c] + d + 1.0)
            cov = psi / denom
            np.fill_diagonal(cov, np.maximum(np.diag(cov), variance_floor))
            covariances[c] = cov
    else:
        centered = points[:, None, :] - xbars[None, :, :]
        scatter = np.einsum('nk,nkd->kd', responsibilities, centered * centered)
        alpha_n = priors.var_prior_alpha + nk / 2.0
        beta_n = (
            priors.var_prior_beta[None, :]
            + 0.5 * scatter
            + shrink[:, None] * offsets * offsets / 2.0
        )
        mode = beta_n / np.maximum(MIN_DENOMINATOR, alpha_n + 1.0)[:, None]
        covariances = np.maximum(mode, variance_floor)

    alpha = priors.weight_prior
    weights = np.maximum((nk + alpha) / (n + k * alpha), MIN_WEIGHT)
    return means, covariances, weights


def count_parameters(k: int, d: int, covariance_type: str) -> int:
    """Free parameters: means, (co)variances and k - 1 weights."""
    if covariance_type == 'full':
        cov_params = k * (d * (d + 1) // 2)
    else:
        cov_params = k * d
    return k * d + cov_params + (k - 1)


def _check_points(points) -> np.ndarray:
    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[0] == 0:
        raise InvalidInputError("GMM needs a non-empty (n, d) point matrix")
    if not np.isfinite(points).all():
        raise InvalidInputError("GMM points contain non-finite values")
    return points


def fit_gmm(
    points,
    k: int,
    config: GMMConfig,
    rng: np.random.Generator,
    sample_names: Optional[Sequence[str]] = None,
) -> GMMResult:
    """Fit a k-component Bayesian GMM.

    Args:
        points: (n, d) matrix of unlabeled points
        k: Number of components, between 1 and n
        config: Model options (covariance type, priors, tolerance)
        rng: Random generator for k-means++ seeding
        sample_names: Optional point labels carried into the result

    Returns:
        GMMResult with the fitted model and responsibilities

    Raises:
        InvalidInputError: If k is outside [1, n], max_iter is below 1,
            or the points are unusable
    """
    points = _check_points(points)
    n, d = points.shape
    if isinstance(k, bool) or int(k) != k or not 1 <= k <= n:
        raise InvalidInputError(f"k must be an integer in [1, {n}], got {k}", {"k": k, "n": n})
    k = int(k)
    if config.covariance_type not in ('diag', 'full'):
        raise InvalidInputError(f"Unknown covariance type: {config.covariance_type!r}")
    if config.max_iter < 1:
        raise InvalidInputError(f"max_iter must be at least 1, got {config.max_iter}")

    priors, base_var, base_cov = build_priors(points, config)

    means = kmeans_plus_plus(points, k, rng)
    floor = config.variance_floor
    if config.covariance_type == 'full':
        init_cov = base_cov * config.cov_prior_scale
        np.fill_diagonal(init_cov, np.maximum(np.diag(init_cov), floor))
        covariances = np.repeat(init_cov[None, :, :], k, axis=0)
    else:
        init_var = np.maximum(base_var * config.cov_prior_scale, floor)
        covariances = np.repeat(init_var[None, :], k, axis=0)
    weights = np.full(k, 1.0 / k)

    prev_log_lik = -np.inf
    responsibilities = None
    converged = False
    iterations = 0
    trace: List[float] = []

    for iteration in range(config.max_iter):
        responsibilities, log_lik = expectation(
            points, weights, means, covariances, config.covariance_type
        )
        means, covariances, weights = maximization(
            points, responsibilities, config.covariance_type, floor, priors
        )

        iterations = iteration + 1
        trace.append(log_lik)
        logger.debug(f"GMM k={k} iteration {iterations}: logL={log_lik:.6f}")
        if abs(log_lik - prev_log_lik) < config.tol:
            converged = True
            prev_log_lik = log_lik
            break
        prev_log_lik = log_lik

    n_params = count_parameters(k, d, config.covariance_type)
    bic = -2.0 * prev_log_lik + n_params * np.log(n)
    aic = -2.0 * prev_log_lik + 2.0 * n_params

    model = GMMModel(
        k=k,
        covariance_type=config.covariance_type,
        weights=weights,
        means=means,
        covariances=covariances,
        log_likelihood=float(prev_log_lik),
        bic=float(bic),
        aic=float(aic),
        converged=converged,
        iterations=iterations,
        n_parameters=n_params,
        priors=priors.summary(),
        log_likelihood_trace=trace,
    )
    if not converged:
        logger.info(f"GMM k={k} did not converge within {config.max_iter} iterations")

    names = list(sample_names) if sample_names is not None else [str(i) for i in range(n)]
    return GMMResult(
        model=model,
        labels=np.argmax(responsibilities, axis=1),
        responsibilities=responsibilities,
        sample_names=names,
    )


def _candidate_summary(result: GMMResult) -> Dict[str, Any]:
    model = result.model
    return {
        'k': model.k,
        'log_likelihood': model.log_likelihood,
        'bic': model.bic,
        'aic': model.aic,
        'converged': model.converged,
    }


def select_gmm(
    points,
    config: GMMConfig,
    rng: np.random.Generator,
    token: Optional[CancellationToken] = None,
    sample_names: Optional[Sequence[str]] = None,
) -> Optional[GMMResult]:
    """Fit one model, or pick the best order by AIC/BIC.

    With ``criterion`` set to ``'aic'`` or ``'bic'`` every k in
    ``[min_k, max_k]`` (bounds swapped if reversed, and capped at the number
    of points) is fitted independently and the lowest score wins; ties keep
    the smaller k.

    Returns:
        GMMResult, or None if the job was superseded
    """
    points = _check_points(points)
    n = points.shape[0]
    criterion = config.criterion

    if criterion not in ('aic', 'bic'):
        if criterion != 'none':
            raise InvalidInputError(f"Unknown model selection criterion: {criterion!r}")
        with PerformanceLogger(logger, f"GMM fit k={config.k}"):
            result = fit_gmm(points, config.k, config, rng, sample_names)
        result.candidates = [_candidate_summary(result)]
        return result

    low = min(config.min_k, config.max_k)
    high = max(config.min_k, config.max_k)
    results: List[GMMResult] = []
    with PerformanceLogger(logger, f"GMM model selection k={low}..{high} by {criterion}"):
        for k in range(low, high + 1):
            if k > n:
                break
            results.append(fit_gmm(points, k, config, rng, sample_names))
            if not still_current(token):
                return None

    if not results:
        raise InvalidInputError(
            f"No model order in [{low}, {high}] fits {n} points", {"n": n}
        )

    best = results[0]
    for result in results[1:]:
        if getattr(result.model, criterion) < getattr(best.model, criterion):
            best = result
    best.criterion = criterion
    best.candidates = [_candidate_summary(r) for r in results]
    logger.info(f"Selected k={best.model.k} by {criterion.upper()}")
    return best


def run_gmm(
    dataset: Dataset,
    config: GMMConfig,
    rng: np.random.Generator,
    token: Optional[CancellationToken] = None,
) -> Optional[GMMResult]:
    """Cluster the pooled source and target rows."""
    dataset.validate()
    names, points = dataset.pooled()
    return select_gmm(points, config, rng, token=token, sample_names=names)
