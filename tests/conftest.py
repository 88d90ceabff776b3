"""
Test configuration and fixtures for popmix tests.
"""

import pytest
import numpy as np

from popmix.config import GMMConfig, MixtureConfig
from popmix.dataset import Dataset, ProfileSet
from popmix.rng import choose_rng


@pytest.fixture
def seed():
    """Fixed random seed for reproducible tests."""
    return 42


@pytest.fixture
def rng(seed):
    """Seeded generator."""
    return choose_rng(seed)


@pytest.fixture
def simple_dataset():
    """Two sources on a diagonal with targets between them."""
    source = ProfileSet.from_rows([("A", [0.0, 0.0]), ("B", [10.0, 10.0])])
    target = ProfileSet.from_rows([("T1", [5.0, 5.0]), ("T2", [2.0, 2.0])])
    return Dataset(source=source, target=target)


@pytest.fixture
def grouped_dataset():
    """Sources whose names share aggregation keys."""
    source = ProfileSet.from_rows([
        ("Pop1:a", [0.0, 0.0, 1.0]),
        ("Pop1:b", [1.0, 0.0, 0.0]),
        ("Pop2:a", [0.0, 1.0, 0.0]),
        ("Pop3", [5.0, 5.0, 5.0]),
    ])
    target = ProfileSet.from_rows([
        ("T1", [0.4, 0.3, 0.3]),
        ("T2", [0.1, 0.8, 0.1]),
    ])
    return Dataset(source=source, target=target)


@pytest.fixture
def fast_mixture_config():
    """Small solver settings so tests stay quick."""
    return MixtureConfig(slots=100, cycles_multiplier=100)


@pytest.fixture
def two_cluster_points():
    """Two well separated 2-D clusters of 40 points each."""
    gen = np.random.default_rng(7)
    first = gen.normal(loc=[0.0, 0.0], scale=0.3, size=(40, 2))
    second = gen.normal(loc=[10.0, 10.0], scale=0.3, size=(40, 2))
    return np.vstack([first, second])


@pytest.fixture
def gmm_config():
    """Default priors with a fixed k of 2."""
    return GMMConfig(k=2)


# Utility functions for tests
def write_profiles(path, rows):
    """Write ``name,v1,v2,...`` rows to ``path``."""
    lines = [",".join([name] + [repr(float(v)) for v in values]) for name, values in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def profile_writer():
    """Helper writing profile rows to a file."""
    return write_profiles
