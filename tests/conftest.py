"""
Pytest configuration and shared fixtures for hierbayes tests.
"""

import pytest

import hierbayes  # noqa: F401  (enables float64 before any test touches JAX)
from hierbayes.model import build
from hierbayes.prior_config import PriorConfig
from hierbayes.synthetic import make_grouped_data


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def prior_config():
    """Default priors."""
    return PriorConfig()


@pytest.fixture
def small_observations():
    """Three groups of different sizes with well-separated means."""
    observations, _ = make_grouped_data([5, 8, 3], mu0=2.0, tau=1.0, sigma=0.5, seed=3)
    return observations


@pytest.fixture
def small_model(small_observations):
    return build(small_observations, shared_sigma=True)


@pytest.fixture
def small_model_per_group(small_observations):
    return build(small_observations, shared_sigma=False)


@pytest.fixture
def fast_config():
    """Short run for tests that only check bookkeeping."""
    return {
        'chains': 2,
        'iterations': 300,
        'warmup': 100,
        'thin': 1,
        'seed': 42,
        'chunk_size': 100,
        'tune_interval': 50,
    }

