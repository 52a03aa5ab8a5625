"""
hierbayes - Metropolis-within-Gibbs sampling for hierarchical normal models

Public API:
    Model:
        build - Build a ModelSpec from (group, value) observations
        build_from_frame - Build a ModelSpec from a DataFrame and ModelRoles
        ModelSpec - Per-group sufficient statistics and parameter names
        ModelRoles - Outcome / group column binding

    Priors:
        PriorConfig - Prior hyperparameters (Normal mu0, half-Cauchy or Gamma scales)
        save_prior_config / load_prior_config - JSON round-trip of the prior block

    Sampling:
        ChainManager - Multi-chain run with cancellation and timeout
        run_chains - Run a ModelSpec with a config dict
        sample - Build and run in one call
        GibbsKernel - Single-chain kernel (UNINITIALIZED -> RUNNING -> STOPPED)
        PosteriorSamples - Retained draws of all chains

    Diagnostics:
        diagnose - DiagnosticReport (R-hat, ESS, autocorrelation, warnings)
        effective_sample_size, compute_rhat, autocorrelation

    Summaries:
        summarize - SummaryReport (intervals, shrinkage, variance ratio)
        credible_interval, shrinkage, variance_ratio, trace_summary

    Errors:
        ConfigurationError (alias InvalidConfiguration), NumericInstability,
        ConvergenceWarning, CancellationError

Example:
    from hierbayes import sample, diagnose, summarize

    samples = sample(observations, {'chains': 2, 'iterations': 4000, 'warmup': 2000})
    report = diagnose(samples)
    summary = summarize(samples)
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .error_handling import (
    CancellationError,
    ConfigurationError,
    ConvergenceWarning,
    InvalidConfiguration,
    NumericInstability,
)
from .prior_config import DEFAULT_PRIORS, PriorConfig, load_prior_config, save_prior_config
from .model import ModelRoles, ModelSpec, build, build_from_frame
from .mcmc import (
    ChainManager,
    GibbsKernel,
    KernelStatus,
    autocorrelation,
    clean_config,
    compute_rhat,
    diagnose,
    effective_sample_size,
    run_chains,
    sample,
)
from .mcmc.diagnostics import DiagnosticReport
from .history_processing import PosteriorSamples
from .summary import (
    SummaryReport,
    credible_interval,
    shrinkage,
    summarize,
    trace_summary,
    variance_ratio,
)

__version__ = "0.1.0"

__all__ = [
    # Model
    'build',
    'build_from_frame',
    'ModelSpec',
    'ModelRoles',
    # Priors
    'PriorConfig',
    'DEFAULT_PRIORS',
    'save_prior_config',
    'load_prior_config',
    # Sampling
    'ChainManager',
    'GibbsKernel',
    'KernelStatus',
    'PosteriorSamples',
    'clean_config',
    'run_chains',
    'sample',
    # Diagnostics
    'DiagnosticReport',
    'autocorrelation',
    'compute_rhat',
    'diagnose',
    'effective_sample_size',
    # Summaries
    'SummaryReport',
    'credible_interval',
    'shrinkage',
    'summarize',
    'trace_summary',
    'variance_ratio',
    # Errors
    'CancellationError',
    'ConfigurationError',
    'ConvergenceWarning',
    'InvalidConfiguration',
    'NumericInstability',
]
