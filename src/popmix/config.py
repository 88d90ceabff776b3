"""Configuration management for the popmix engines."""

from __future__ import annotations

import hashlib
import json
import yaml
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .config_validator import CYCLES_RANGE, SLOTS_RANGE
from .exceptions import ConfigurationError

# Named solver settings: (slots, cycles_multiplier, permutations).
# Values outside the accepted ranges are clamped when a preset is applied.
MIXTURE_PRESETS: Dict[str, Tuple[int, int, int]] = {
    "fast": (2500, 2, 100),
    "balanced": (6000, 400, 3),
    "thorough": (12000, 2000, 4),
}


def _clamp(value: int, bounds: Tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


@dataclass
class DistanceConfig:
    """Configuration for distance ranking."""
    aggregate: bool = False
    top_n: int = 25


@dataclass
class ImportanceConfig:
    """Configuration for permutation importance."""
    enabled: bool = False
    permutations: int = 3
    used_only: bool = True


@dataclass
class MixtureConfig:
    """Configuration for the slot-based mixture solver."""
    slots: int = 10000
    cycles_multiplier: int = 6000
    aggregate: bool = False
    importance: ImportanceConfig = field(default_factory=ImportanceConfig)

    def apply_preset(self, name: str) -> "MixtureConfig":
        """Overwrite slots, cycles and permutations with a named preset."""
        if name not in MIXTURE_PRESETS:
            raise ConfigurationError(
                f"Unknown mixture preset: {name!r}",
                {"presets": sorted(MIXTURE_PRESETS)},
            )
        slots, cycles, permutations = MIXTURE_PRESETS[name]
        self.slots = _clamp(slots, SLOTS_RANGE)
        self.cycles_multiplier = _clamp(cycles, CYCLES_RANGE)
        self.importance.permutations = permutations
        return self

    @classmethod
    def from_preset(cls, name: str) -> "MixtureConfig":
        return cls().apply_preset(name)


@dataclass
class GMMConfig:
    """Configuration for the Bayesian Gaussian mixture model."""
    k: int = 3
    min_k: int = 2
    max_k: int = 8
    criterion: str = "none"
    covariance_type: str = "diag"
    max_iter: int = 100
    tol: float = 1e-4
    variance_floor: float = 1e-6
    weight_prior: float = 1.1
    mean_prior_strength: float = 0.01
    cov_prior_scale: float = 1.0
    cov_prior_df: float = 2.0


@dataclass
class AnalysisConfig:
    """Main analysis configuration."""
    run_id: str = "popmix"
    seed: Optional[int] = None
    distance: DistanceConfig = field(default_factory=DistanceConfig)
    mixture: MixtureConfig = field(default_factory=MixtureConfig)
    gmm: GMMConfig = field(default_factory=GMMConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    def config_hash(self) -> str:
        """Compute deterministic hash of configuration."""
        config_str = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    def validate(self) -> "AnalysisConfig":
        """Raise ``ConfigurationError`` if any setting is out of range."""
        from .config_validator import ConfigValidator

        is_valid, errors, _ = ConfigValidator().validate_config(self.to_dict())
        if not is_valid:
            raise ConfigurationError(
                "Invalid configuration: " + "; ".join(errors),
                {"errors": errors},
            )
        return self


def config_from_dict(data: Dict[str, Any]) -> AnalysisConfig:
    """Build a config from a plain mapping, filling omitted sections with defaults."""
    data = dict(data or {})
    try:
        mixture = dict(data.get('mixture') or {})
        preset = mixture.pop('preset', None)
        importance = dict(mixture.pop('importance', None) or {})
        mixture_config = MixtureConfig()
        if preset is not None:
            mixture_config.apply_preset(preset)
        # explicit keys win over the preset
        for key, value in mixture.items():
            if not hasattr(mixture_config, key):
                raise TypeError(f"MixtureConfig got an unexpected keyword argument '{key}'")
            setattr(mixture_config, key, value)
        for key, value in importance.items():
            if not hasattr(mixture_config.importance, key):
                raise TypeError(f"ImportanceConfig got an unexpected keyword argument '{key}'")
            setattr(mixture_config.importance, key, value)
        return AnalysisConfig(
            run_id=data.get('run_id', 'popmix'),
            seed=data.get('seed'),
            distance=DistanceConfig(**(data.get('distance') or {})),
            mixture=mixture_config,
            gmm=GMMConfig(**(data.get('gmm') or {})),
        )
    except TypeError as e:
        raise ConfigurationError(f"Unknown configuration key: {e}") from e


def load_config(path: str | Path) -> AnalysisConfig:
    """Load configuration from YAML file."""
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError("Configuration file must contain a dictionary")
    return config_from_dict(data or {})


def dump_config(config: AnalysisConfig, path: str | Path) -> None:
    """Save configuration to YAML file."""
    with open(path, 'w') as f:
        yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
