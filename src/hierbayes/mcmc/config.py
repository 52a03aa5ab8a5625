"""
MCMC Configuration and Initialization.

This module handles setting up and validating sampler configurations:
- configure_sampler: Main configuration entry point
- build_run_params: Static run parameters for the compiled kernel
- chain_keys: One JAX random key per chain
- initial_state_from_prior / initial_state_jitter / initial_state_from_values:
  Starting states for a chain
- resolve_initial_state: Pick the starting state of one chain from the 'init' setting

All config keys use lowercase with underscores (e.g., 'chains', 'thin').
"""

from typing import Any, Dict, Tuple

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..distributions import normal_sample, scale_prior_sample
from ..error_handling import ConfigurationError, validate_sampler_config
from ..model import ModelSpec
from ..prior_config import PriorConfig
from .types import ChainState, RunParams, make_chain_state
from .utils import clean_config


def chain_keys(rng_seed: int, num_chains: int):
    """
    One independent key per chain.

    Chain c always gets fold_in(PRNGKey(seed), c), so its draw sequence does
    not depend on how many chains run or in which order they are scheduled.
    """
    master_key = jax.random.PRNGKey(rng_seed)
    return [random.fold_in(master_key, c) for c in range(num_chains)]


def configure_sampler(config: Dict[str, Any], model: ModelSpec) -> Tuple[Dict[str, Any], PriorConfig, RunParams]:
    """
    Configure the sampler from a config dict and a model.

    Args:
        config: User configuration (missing keys take clean_config defaults)
        model: ModelSpec to sample

    Returns:
        user_config: Cleaned config dict
        prior_config: PriorConfig
        run_params: RunParams for the compiled kernel

    Raises:
        ConfigurationError: If the configuration is invalid or disagrees with the model
    """
    user_config = clean_config(config)
    validate_sampler_config(user_config)

    if 'shared_sigma' in user_config and bool(user_config['shared_sigma']) != model.shared_sigma:
        raise ConfigurationError(
            f"Config shared_sigma={user_config['shared_sigma']} disagrees with the model "
            f"(built with shared_sigma={model.shared_sigma})"
        )

    init = user_config['init']
    if isinstance(init, (list, tuple)):
        for values in init:
            validate_initial_values(values, model)
    elif isinstance(init, dict):
        validate_initial_values(init, model)

    prior_config = PriorConfig.from_dict(user_config['priors'])
    run_params = build_run_params(model, user_config, prior_config)
    return user_config, prior_config, run_params


def build_run_params(model: ModelSpec, user_config: Dict[str, Any], prior_config: PriorConfig) -> RunParams:
    return RunParams(
        WARMUP=int(user_config['warmup']),
        SHARED_SIGMA=model.shared_sigma,
        SCALE_FAMILY=prior_config.scale_prior_family,
        TUNE_INTERVAL=int(user_config['tune_interval']),
        ADAPT_STEP_SIZE=bool(user_config['adapt_step_size']),
    )


def initial_state_from_prior(key, model: ModelSpec, prior_config: PriorConfig) -> ChainState:
    """
    Draw a starting state from the priors.

    mu0 ~ Normal prior, tau and sigma ~ scale prior, mu[j] ~ Normal(mu0, tau).
    """
    mu0_key, tau_key, sigma_key, mu_key = random.split(key, 4)
    family = prior_config.scale_prior_family

    mu0 = normal_sample(mu0_key, prior_config.mu0_mean, prior_config.mu0_sd)
    tau = scale_prior_sample(tau_key, family, prior_config.tau_prior_scale, prior_config.gamma_shape)
    sigma = scale_prior_sample(
        sigma_key, family, prior_config.sigma_prior_scale, prior_config.gamma_shape,
        shape=(model.n_sigma,)
    )
    mu = normal_sample(mu_key, mu0, tau, shape=(model.n_groups,))
    return make_chain_state(mu, mu0, tau, sigma)


def initial_state_jitter(key, model: ModelSpec, spread: float = 0.5) -> ChainState:
    """
    Data-centred starting state with random perturbations.

    Group means start near their sample means, mu0 near the grand mean and
    the scales near the pooled sd, each jittered so chains start apart.
    """
    mu_key, mu0_key, tau_key, sigma_key = random.split(key, 4)
    scale = model.grand_sd if model.grand_sd > 0 else 1.0

    mu = jnp.asarray(model.means) + spread * scale * random.normal(mu_key, shape=(model.n_groups,))
    mu0 = model.grand_mean + spread * scale * random.normal(mu0_key, shape=())
    tau = scale * jnp.exp(spread * random.normal(tau_key, shape=()))
    sigma = scale * jnp.exp(spread * random.normal(sigma_key, shape=(model.n_sigma,)))
    return make_chain_state(mu, mu0, tau, sigma)


def validate_initial_values(values: Dict[str, Any], model: ModelSpec) -> None:
    """
    Check a dict of natural-scale starting values.

    Expected keys: 'mu' (n_groups values), 'mu0', 'tau', 'sigma'
    (a scalar for shared sigma, n_groups values otherwise).
    """
    errors = []
    missing = [k for k in ('mu', 'mu0', 'tau', 'sigma') if k not in values]
    if missing:
        raise ConfigurationError(f"Initial values missing keys: {missing}")

    mu = np.atleast_1d(np.asarray(values['mu'], dtype=np.float64))
    sigma = np.atleast_1d(np.asarray(values['sigma'], dtype=np.float64))
    tau = np.asarray(values['tau'], dtype=np.float64)

    if mu.shape != (model.n_groups,):
        errors.append(f"mu needs {model.n_groups} values, got shape {mu.shape}")
    if sigma.shape != (model.n_sigma,):
        errors.append(f"sigma needs {model.n_sigma} value(s), got shape {sigma.shape}")
    if tau.size != 1:
        errors.append(f"tau must be a scalar, got shape {tau.shape}")
    if not np.all(np.isfinite(mu)) or not np.isfinite(float(np.asarray(values['mu0']))):
        errors.append("mu and mu0 must be finite")
    if not (np.all(np.isfinite(tau)) and np.all(tau > 0)):
        errors.append(f"tau must be finite and > 0, got {values['tau']}")
    if not (np.all(np.isfinite(sigma)) and np.all(sigma > 0)):
        errors.append(f"sigma must be finite and > 0, got {values['sigma']}")

    if errors:
        raise ConfigurationError("Invalid initial values:\n  " + "\n  ".join(errors))


def initial_state_from_values(values: Dict[str, Any], model: ModelSpec) -> ChainState:
    validate_initial_values(values, model)
    return make_chain_state(values['mu'], values['mu0'], values['tau'], values['sigma'])


def resolve_initial_state(init, chain_id: int, key, model: ModelSpec, prior_config: PriorConfig) -> ChainState:
    """
    Starting state of one chain from the 'init' setting.

    Args:
        init: 'prior', 'jitter', a dict of values (used for every chain),
            or a list with one dict per chain
        chain_id: Index of the chain
        key: The chain's initialization key
    """
    if isinstance(init, str):
        if init == 'prior':
            return initial_state_from_prior(key, model, prior_config)
        if init == 'jitter':
            return initial_state_jitter(key, model)
        raise ConfigurationError(f"Unknown init mode '{init}'")
    if isinstance(init, dict):
        return initial_state_from_values(init, model)
    return initial_state_from_values(init[chain_id], model)
