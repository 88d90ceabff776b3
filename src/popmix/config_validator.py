"""
Configuration validation for the popmix engines.

Validates every section of an analysis configuration and collects
errors (settings the engines cannot run with) separately from
warnings (legal settings that are likely to be slow or surprising).
"""

from typing import Dict, Any, List, Tuple
import logging
from pathlib import Path

from .exceptions import ConfigurationError

SLOTS_RANGE = (100, 100000)
CYCLES_RANGE = (100, 100000)
CRITERIA = ('none', 'aic', 'bic')
COVARIANCE_TYPES = ('diag', 'full')


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ConfigValidator:
    """Validate configuration parameters for the engines."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.errors = []
        self.warnings = []

    def validate_config(self, config: Dict[str, Any]) -> Tuple[bool, List[str], List[str]]:
        """Validate complete configuration.

        Args:
            config: Configuration dictionary to validate

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors = []
        self.warnings = []

        if 'distance' in config:
            self._validate_distance_config(config['distance'] or {})

        if 'mixture' in config:
            self._validate_mixture_config(config['mixture'] or {})

        if 'gmm' in config:
            self._validate_gmm_config(config['gmm'] or {})

        self._validate_general_config(config)

        for warning in self.warnings:
            self.logger.debug(f"Configuration warning: {warning}")

        is_valid = len(self.errors) == 0
        return is_valid, self.errors, self.warnings

    def _validate_distance_config(self, dist_config: Dict[str, Any]) -> None:
        """Validate distance configuration."""
        if 'aggregate' in dist_config and not isinstance(dist_config['aggregate'], bool):
            self.errors.append("distance.aggregate must be a boolean")

        if 'top_n' in dist_config:
            top_n = dist_config['top_n']
            if not _is_int(top_n):
                self.errors.append("distance.top_n must be an integer")
            elif top_n < 1:
                self.errors.append("distance.top_n must be at least 1")

    def _validate_mixture_config(self, mix_config: Dict[str, Any]) -> None:
        """Validate mixture configuration."""
        if 'preset' in mix_config:
            from .config import MIXTURE_PRESETS

            if mix_config['preset'] not in MIXTURE_PRESETS:
                self.errors.append(
                    f"mixture.preset must be one of {sorted(MIXTURE_PRESETS)}"
                )

        for key, (low, high) in (('slots', SLOTS_RANGE), ('cycles_multiplier', CYCLES_RANGE)):
            if key not in mix_config:
                continue
            value = mix_config[key]
            if not _is_int(value):
                self.errors.append(f"mixture.{key} must be an integer")
            elif not low <= value <= high:
                self.errors.append(f"mixture.{key} must be between {low} and {high}")

        slots = mix_config.get('slots')
        cycles = mix_config.get('cycles_multiplier')
        if _is_int(slots) and _is_int(cycles) and slots * cycles > 10**8:
            self.warnings.append(
                f"mixture.slots * mixture.cycles_multiplier is very high ({slots * cycles}), may be slow"
            )

        if 'aggregate' in mix_config and not isinstance(mix_config['aggregate'], bool):
            self.errors.append("mixture.aggregate must be a boolean")

        if 'importance' in mix_config:
            self._validate_importance_config(mix_config['importance'] or {})

    def _validate_importance_config(self, imp_config: Dict[str, Any]) -> None:
        """Validate permutation importance configuration."""
        for key in ('enabled', 'used_only'):
            if key in imp_config and not isinstance(imp_config[key], bool):
                self.errors.append(f"mixture.importance.{key} must be a boolean")

        if 'permutations' in imp_config:
            perms = imp_config['permutations']
            if not _is_int(perms):
                self.errors.append("mixture.importance.permutations must be an integer")
            elif perms < 1:
                self.errors.append("mixture.importance.permutations must be at least 1")
            elif perms > 10:
                self.warnings.append(
                    f"mixture.importance.permutations is high ({perms}), each one reruns the solver per source"
                )

        if imp_config.get('enabled') and imp_config.get('used_only') is False:
            self.warnings.append("mixture.importance on all sources reruns the solver for every source")

    def _validate_gmm_config(self, gmm_config: Dict[str, Any]) -> None:
        """Validate GMM configuration."""
        for key in ('k', 'min_k', 'max_k'):
            if key in gmm_config:
                value = gmm_config[key]
                if not _is_int(value):
                    self.errors.append(f"gmm.{key} must be an integer")
                elif value < 1:
                    self.errors.append(f"gmm.{key} must be at least 1")

        min_k = gmm_config.get('min_k')
        max_k = gmm_config.get('max_k')
        if _is_int(min_k) and _is_int(max_k) and min_k > max_k:
            self.warnings.append("gmm.min_k exceeds gmm.max_k, the range will be swapped")

        criterion = gmm_config.get('criterion', 'none')
        if criterion not in CRITERIA:
            self.errors.append("gmm.criterion must be 'none', 'aic', or 'bic'")

        cov_type = gmm_config.get('covariance_type', 'diag')
        if cov_type not in COVARIANCE_TYPES:
            self.errors.append("gmm.covariance_type must be 'diag' or 'full'")

        if 'max_iter' in gmm_config:
            max_iter = gmm_config['max_iter']
            if not _is_int(max_iter):
                self.errors.append("gmm.max_iter must be an integer")
            elif max_iter < 5:
                self.errors.append("gmm.max_iter must be at least 5")

        if 'tol' in gmm_config:
            tol = gmm_config['tol']
            if not _is_number(tol):
                self.errors.append("gmm.tol must be numeric")
            elif not 0.0 < tol <= 1.0:
                self.errors.append("gmm.tol must be in (0, 1]")

        for key in ('weight_prior', 'mean_prior_strength', 'cov_prior_scale', 'variance_floor'):
            if key in gmm_config:
                value = gmm_config[key]
                if not _is_number(value):
                    self.errors.append(f"gmm.{key} must be numeric")
                elif value <= 0:
                    self.errors.append(f"gmm.{key} must be positive")

        if 'cov_prior_df' in gmm_config:
            df = gmm_config['cov_prior_df']
            if not _is_number(df):
                self.errors.append("gmm.cov_prior_df must be numeric")
            elif df < 0:
                self.errors.append("gmm.cov_prior_df must be non-negative")

    def _validate_general_config(self, config: Dict[str, Any]) -> None:
        """Validate general configuration parameters."""
        if 'run_id' in config:
            run_id = config['run_id']
            if not isinstance(run_id, str):
                self.errors.append("run_id must be a string")
            elif not run_id.strip():
                self.errors.append("run_id cannot be empty")

        seed = config.get('seed')
        if seed is not None:
            if not _is_int(seed):
                self.errors.append("seed must be an integer")
            elif seed < 0:
                self.errors.append("seed must be non-negative")


def validate_config_file(config_path: Path) -> Tuple[bool, List[str], List[str]]:
    """Validate a configuration file.

    Args:
        config_path: Path to configuration YAML file

    Returns:
        Tuple of (is_valid, errors, warnings)

    Raises:
        ConfigurationError: If file cannot be read or parsed
    """
    import yaml

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e
    except (IOError, OSError) as e:
        raise ConfigurationError(f"Cannot read configuration file: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError("Configuration file must contain a dictionary")

    validator = ConfigValidator()
    return validator.validate_config(config)
