"""popmix: distance ranking, mixture fitting and Bayesian GMM clustering of numeric profiles."""

from __future__ import annotations

__version__ = "0.1.0"

# Data model
from .dataset import Dataset, ProfileSet, Row, aggregate_by_key, aggregation_key
from .io import load_dataset, read_profiles

# Engines
from .vector_math import cosine_similarity, euclidean, invert_with_log_det
from .distance import DistanceResult, rank_distances, rank_target
from .solver import SolverResult, solve_mixture
from .importance import ImportanceReport, permutation_importance
from .mixture import MixtureResult, MixtureSummary, run_all_mixtures, run_mixture
from .gmm import GMMModel, GMMResult, fit_gmm, run_gmm, select_gmm

# Configuration, cancellation and errors
from .config import AnalysisConfig, DistanceConfig, GMMConfig, ImportanceConfig, MixtureConfig, MIXTURE_PRESETS, load_config, dump_config
from .jobs import CancellationToken, JobTracker
from .exceptions import ConfigurationError, FileFormatError, InvalidInputError, PopMixError
from .rng import choose_rng

__all__ = [
    "__version__",
    # Data model
    "Dataset",
    "ProfileSet",
    "Row",
    "aggregate_by_key",
    "aggregation_key",
    "load_dataset",
    "read_profiles",
    # Engines
    "cosine_similarity",
    "euclidean",
    "invert_with_log_det",
    "DistanceResult",
    "rank_distances",
    "rank_target",
    "SolverResult",
    "solve_mixture",
    "ImportanceReport",
    "permutation_importance",
    "MixtureResult",
    "MixtureSummary",
    "run_all_mixtures",
    "run_mixture",
    "GMMModel",
    "GMMResult",
    "fit_gmm",
    "run_gmm",
    "select_gmm",
    # Configuration
    "AnalysisConfig",
    "DistanceConfig",
    "GMMConfig",
    "ImportanceConfig",
    "MixtureConfig",
    "MIXTURE_PRESETS",
    "load_config",
    "dump_config",
    # Cancellation and errors
    "CancellationToken",
    "JobTracker",
    "ConfigurationError",
    "FileFormatError",
    "InvalidInputError",
    "PopMixError",
    "choose_rng",
]
