"""
Prior configuration.

The hierarchical normal model has a fixed prior structure:

    mu0   ~ Normal(mu0_mean, mu0_sd)
    tau   ~ HalfCauchy(tau_prior_scale)      (or Gamma(gamma_shape, tau_prior_scale))
    sigma ~ HalfCauchy(sigma_prior_scale)    (or Gamma(gamma_shape, sigma_prior_scale))

PriorConfig holds these values on the host. PriorParams is the array form
passed into compiled kernels. Prior blocks can be saved to and loaded from
JSON so a run's priors can be recorded next to its outputs.
"""

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import NamedTuple

import jax.numpy as jnp

from .error_handling import ConfigurationError, collect_prior_errors


DEFAULT_PRIORS = {
    'mu0_prior': (0.0, 10.0),
    'tau_prior_scale': 2.5,
    'sigma_prior_scale': 2.5,
    'scale_prior_family': 'half_cauchy',
    'gamma_shape': 2.0,
}


class PriorParams(NamedTuple):
    """Prior hyperparameters as traced scalars (a JAX pytree)."""
    mu0_mean: jnp.ndarray
    mu0_sd: jnp.ndarray
    tau_scale: jnp.ndarray
    sigma_scale: jnp.ndarray
    gamma_shape: jnp.ndarray


@dataclass(frozen=True)
class PriorConfig:
    mu0_mean: float = 0.0
    mu0_sd: float = 10.0
    tau_prior_scale: float = 2.5
    sigma_prior_scale: float = 2.5
    scale_prior_family: str = 'half_cauchy'
    gamma_shape: float = 2.0

    @classmethod
    def from_dict(cls, priors):
        """
        Build from the 'priors' block of a sampler configuration.

        Missing keys take the DEFAULT_PRIORS values.

        Raises:
            ConfigurationError: If any prior value is invalid
        """
        priors = dict(priors or {})
        for key, value in DEFAULT_PRIORS.items():
            priors.setdefault(key, value)

        errors = collect_prior_errors(priors)
        if errors:
            raise ConfigurationError("Invalid priors:\n  " + "\n  ".join(errors))

        mu0_mean, mu0_sd = priors['mu0_prior']
        return cls(
            mu0_mean=float(mu0_mean),
            mu0_sd=float(mu0_sd),
            tau_prior_scale=float(priors['tau_prior_scale']),
            sigma_prior_scale=float(priors['sigma_prior_scale']),
            scale_prior_family=priors['scale_prior_family'],
            gamma_shape=float(priors['gamma_shape']),
        )

    def to_dict(self):
        return {
            'mu0_prior': (self.mu0_mean, self.mu0_sd),
            'tau_prior_scale': self.tau_prior_scale,
            'sigma_prior_scale': self.sigma_prior_scale,
            'scale_prior_family': self.scale_prior_family,
            'gamma_shape': self.gamma_shape,
        }

    def to_params(self) -> PriorParams:
        return PriorParams(
            mu0_mean=jnp.asarray(self.mu0_mean, dtype=jnp.float64),
            mu0_sd=jnp.asarray(self.mu0_sd, dtype=jnp.float64),
            tau_scale=jnp.asarray(self.tau_prior_scale, dtype=jnp.float64),
            sigma_scale=jnp.asarray(self.sigma_prior_scale, dtype=jnp.float64),
            gamma_shape=jnp.asarray(self.gamma_shape, dtype=jnp.float64),
        )


def save_prior_config(path, prior_config: PriorConfig):
    """
    Save a prior configuration to JSON.

    Args:
        path: Destination file path
        prior_config: PriorConfig to save

    Returns:
        Path to saved config file
    """
    config_path = Path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w') as f:
        json.dump(asdict(prior_config), f, indent=2)

    return str(config_path)


def load_prior_config(path):
    """
    Load a prior configuration from JSON.

    Returns:
        PriorConfig, or None if the file doesn't exist
    """
    config_path = Path(path)
    if not config_path.exists():
        return None

    with open(config_path, 'r') as f:
        raw = json.load(f)

    return PriorConfig.from_dict({
        'mu0_prior': (raw['mu0_mean'], raw['mu0_sd']),
        'tau_prior_scale': raw['tau_prior_scale'],
        'sigma_prior_scale': raw['sigma_prior_scale'],
        'scale_prior_family': raw['scale_prior_family'],
        'gamma_shape': raw['gamma_shape'],
    })
