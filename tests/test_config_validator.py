"""
Tests for configuration validation.
"""

import copy

import pytest
import yaml

from popmix.config import AnalysisConfig
from popmix.config_validator import ConfigValidator, validate_config_file
from popmix.exceptions import ConfigurationError


class TestConfigValidator:
    """Test configuration validation."""

    def setup_method(self):
        """Setup test fixtures."""
        self.validator = ConfigValidator()
        self.valid_config = {
            'run_id': 'test_run',
            'seed': 42,
            'distance': {'aggregate': False, 'top_n': 25},
            'mixture': {
                'slots': 1000,
                'cycles_multiplier': 600,
                'aggregate': True,
                'importance': {'enabled': True, 'permutations': 3, 'used_only': True},
            },
            'gmm': {
                'k': 3,
                'min_k': 2,
                'max_k': 6,
                'criterion': 'bic',
                'covariance_type': 'full',
                'max_iter': 100,
                'tol': 1e-4,
                'variance_floor': 1e-6,
                'weight_prior': 1.1,
                'mean_prior_strength': 0.01,
                'cov_prior_scale': 1.0,
                'cov_prior_df': 2.0,
            },
        }

    def _check(self, config):
        return self.validator.validate_config(config)

    def test_valid_config(self):
        """Test validation of a valid configuration."""
        is_valid, errors, warnings = self._check(self.valid_config)
        assert is_valid
        assert len(errors) == 0
        assert len(warnings) == 0

    def test_defaults_are_valid(self):
        is_valid, errors, _ = self._check(AnalysisConfig().to_dict())
        assert is_valid, errors

    def test_sections_are_optional(self):
        is_valid, errors, _ = self._check({'run_id': 'minimal'})
        assert is_valid, errors

    @pytest.mark.parametrize("key, value", [
        ('slots', 50),
        ('slots', 200000),
        ('cycles_multiplier', 99),
        ('slots', 1000.0),
    ])
    def test_invalid_mixture_ranges(self, key, value):
        config = copy.deepcopy(self.valid_config)
        config['mixture'][key] = value
        is_valid, errors, _ = self._check(config)
        assert not is_valid
        assert any(f'mixture.{key}' in error for error in errors)

    def test_expensive_mixture_warns(self):
        config = copy.deepcopy(self.valid_config)
        config['mixture']['slots'] = 100000
        config['mixture']['cycles_multiplier'] = 100000
        is_valid, _, warnings = self._check(config)
        assert is_valid
        assert any('very high' in warning for warning in warnings)

    def test_mixture_preset_name(self):
        config = copy.deepcopy(self.valid_config)
        config['mixture']['preset'] = 'fast'
        is_valid, errors, _ = self._check(config)
        assert is_valid, errors

        config['mixture']['preset'] = 'quick'
        is_valid, errors, _ = self._check(config)
        assert not is_valid
        assert any('mixture.preset' in error for error in errors)

    def test_importance_settings(self):
        config = copy.deepcopy(self.valid_config)
        config['mixture']['importance']['permutations'] = 0
        is_valid, errors, _ = self._check(config)
        assert not is_valid
        assert any('permutations must be at least 1' in error for error in errors)

        config['mixture']['importance']['permutations'] = 20
        config['mixture']['importance']['used_only'] = False
        is_valid, _, warnings = self._check(config)
        assert is_valid
        assert len(warnings) == 2

    def test_invalid_top_n(self):
        config = copy.deepcopy(self.valid_config)
        config['distance']['top_n'] = 0
        is_valid, errors, _ = self._check(config)
        assert not is_valid
        assert any('top_n must be at least 1' in error for error in errors)

    @pytest.mark.parametrize("key, value, message", [
        ('criterion', 'dic', "criterion must be"),
        ('covariance_type', 'spherical', "covariance_type must be"),
        ('max_iter', 3, "max_iter must be at least 5"),
        ('tol', 0, "tol must be in (0, 1]"),
        ('tol', 2.0, "tol must be in (0, 1]"),
        ('k', 0, "k must be at least 1"),
        ('weight_prior', -1.0, "weight_prior must be positive"),
        ('variance_floor', 0.0, "variance_floor must be positive"),
        ('cov_prior_df', -0.5, "cov_prior_df must be non-negative"),
    ])
    def test_invalid_gmm_settings(self, key, value, message):
        config = copy.deepcopy(self.valid_config)
        config['gmm'][key] = value
        is_valid, errors, _ = self._check(config)
        assert not is_valid
        assert any(message in error for error in errors)

    def test_swapped_k_range_warns(self):
        config = copy.deepcopy(self.valid_config)
        config['gmm']['min_k'] = 8
        config['gmm']['max_k'] = 2
        is_valid, _, warnings = self._check(config)
        assert is_valid
        assert any('swapped' in warning for warning in warnings)

    def test_general_settings(self):
        config = copy.deepcopy(self.valid_config)
        config['run_id'] = ''
        config['seed'] = -1
        is_valid, errors, _ = self._check(config)
        assert not is_valid
        assert "run_id cannot be empty" in errors
        assert "seed must be non-negative" in errors

    def test_boolean_is_not_an_integer(self):
        config = copy.deepcopy(self.valid_config)
        config['seed'] = True
        is_valid, errors, _ = self._check(config)
        assert not is_valid
        assert "seed must be an integer" in errors


class TestValidateConfigFile:

    def test_valid_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({'run_id': 'x', 'mixture': {'slots': 500}}))
        is_valid, errors, _ = validate_config_file(path)
        assert is_valid, errors

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            validate_config_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("mixture: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            validate_config_file(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="dictionary"):
            validate_config_file(path)
