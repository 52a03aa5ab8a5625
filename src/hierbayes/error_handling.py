"""
Error Handling and Validation Utilities for the Sampler

This module defines the error taxonomy of the package and the validation
functions that run before any sampling starts:

- ConfigurationError: invalid model or sampler configuration (fatal)
- NumericInstability: non-finite proposal or density (recovered in the kernel)
- ConvergenceWarning: diagnostics flagged a problem (non-fatal)
- CancellationError: a chain was cancelled by the caller
"""

from typing import Any, Dict

import numpy as np


class ConfigurationError(ValueError):
    """Invalid model specification or sampler configuration."""


# Chain-manager configuration problems use the same exception type.
InvalidConfiguration = ConfigurationError


class NumericInstability(ArithmeticError):
    """
    A proposal or density evaluation produced a non-finite value.

    The kernel never raises this: non-finite proposals are rejected in place.
    It is exported so callers writing their own update steps can use the
    same name for the condition.
    """


class ConvergenceWarning(UserWarning):
    """R-hat, effective sample size or chain lengths indicate a problem."""


class CancellationError(RuntimeError):
    """
    Raised when a chain is cancelled before it reached its iteration count.

    Attributes:
        result: Partial ChainResult of the cancelled chain (None when raised
            by the chain manager after discarding every chain)
    """

    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result


VALID_SCALE_FAMILIES = ('half_cauchy', 'gamma')
VALID_INIT_MODES = ('prior', 'jitter')


def validate_sampler_config(config: Dict[str, Any]) -> None:
    """
    Validates that the sampler configuration is sensible.

    Every problem found is collected so the caller sees them all at once.

    Args:
        config: Configuration dictionary (after clean_config)

    Raises:
        ConfigurationError: If configuration is invalid
    """
    errors = []

    required_keys = ['chains', 'iterations', 'warmup', 'thin', 'seed']
    for key in required_keys:
        if key not in config:
            errors.append(f"Missing required config key: '{key}'")

    chains = config.get('chains')
    iterations = config.get('iterations')
    warmup = config.get('warmup')
    thin = config.get('thin')

    if chains is not None and chains < 1:
        errors.append(f"chains must be >= 1, got {chains}")

    if iterations is not None and iterations < 1:
        errors.append(f"iterations must be >= 1, got {iterations}")

    if warmup is not None:
        if warmup < 0:
            errors.append(f"warmup must be >= 0, got {warmup}")
        if iterations is not None and warmup >= iterations:
            errors.append(f"warmup ({warmup}) must be < iterations ({iterations})")

    if thin is not None and thin < 1:
        errors.append(f"thin must be >= 1, got {thin}")

    if config.get('chunk_size', 1) < 1:
        errors.append(f"chunk_size must be >= 1, got {config['chunk_size']}")

    if config.get('tune_interval', 1) < 1:
        errors.append(f"tune_interval must be >= 1, got {config['tune_interval']}")

    if config.get('initial_step_size', 1.0) <= 0:
        errors.append(f"initial_step_size must be > 0, got {config['initial_step_size']}")

    max_workers = config.get('max_workers')
    if max_workers is not None and max_workers < 1:
        errors.append(f"max_workers must be >= 1, got {max_workers}")

    timeout = config.get('timeout')
    if timeout is not None and timeout <= 0:
        errors.append(f"timeout must be > 0 seconds, got {timeout}")

    if config.get('max_lag', 1) < 1:
        errors.append(f"max_lag must be >= 1, got {config['max_lag']}")

    if config.get('rhat_threshold', 1.1) <= 1.0:
        errors.append(f"rhat_threshold must be > 1, got {config['rhat_threshold']}")

    init = config.get('init', 'prior')
    if isinstance(init, str) and init not in VALID_INIT_MODES:
        errors.append(f"init must be one of {VALID_INIT_MODES} or explicit values, got '{init}'")
    if isinstance(init, (list, tuple)) and chains is not None and len(init) != chains:
        errors.append(f"init lists {len(init)} initial states but chains is {chains}")

    priors = config.get('priors', {})
    errors.extend(collect_prior_errors(priors))

    if errors:
        raise ConfigurationError("Invalid sampler configuration:\n  " + "\n  ".join(errors))


def collect_prior_errors(priors: Dict[str, Any]):
    errors = []

    mu0_prior = priors.get('mu0_prior')
    if mu0_prior is not None:
        if len(mu0_prior) != 2:
            errors.append(f"mu0_prior must be (mean, sd), got {mu0_prior}")
        elif not (np.isfinite(mu0_prior[0]) and np.isfinite(mu0_prior[1])) or mu0_prior[1] <= 0:
            errors.append(f"mu0_prior needs a finite mean and sd > 0, got {tuple(mu0_prior)}")

    for key in ('tau_prior_scale', 'sigma_prior_scale', 'gamma_shape'):
        value = priors.get(key)
        if value is not None and not (np.isfinite(value) and value > 0):
            errors.append(f"{key} must be a finite value > 0, got {value}")

    family = priors.get('scale_prior_family')
    if family is not None and family not in VALID_SCALE_FAMILIES:
        errors.append(f"scale_prior_family must be one of {VALID_SCALE_FAMILIES}, got '{family}'")

    return errors


def diagnose_sampler_issues(history: np.ndarray, diagnostics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyzes retained draws to identify common issues.

    Args:
        history: Draw array (n_draws, n_chains, n_params)
        diagnostics: Existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = diagnostics | {
        'issues': [],
        'warnings': [],
        'info': []
    }

    # Check for NaN/Inf in history
    if not np.all(np.isfinite(history)):
        diagnostics['issues'].append(
            "Draws contain NaN or Inf values - sampler became unstable"
        )

    # Check for stuck chains (variance near zero)
    if history.shape[0] > 1:
        chain_vars = np.var(history, axis=0)
        stuck_chains = int(np.sum(np.all(chain_vars < 1e-12, axis=1)))
        if stuck_chains > 0:
            diagnostics['warnings'].append(
                f"{stuck_chains} chain(s) appear stuck (near-zero variance)"
            )

    diagnostics['info'].append(f"Total draws: {history.shape[0] * history.shape[1]}")
    diagnostics['info'].append(f"Number of chains: {history.shape[1]}")
    diagnostics['info'].append(f"Number of parameters: {history.shape[2]}")

    return diagnostics
