"""
MCMC Diagnostics.

Convergence diagnostics for retained draws:
- autocorrelation / chain_autocorrelation: Lag-k sample autocorrelation
- effective_sample_size: ESS from chain-averaged autocorrelations
- compute_rhat: Gelman-Rubin potential scale reduction
- diagnose: Full DiagnosticReport with convergence warnings
- print_acceptance_summary: Log Metropolis acceptance rate statistics
"""

import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np
import pandas as pd

from ..error_handling import ConvergenceWarning, diagnose_sampler_issues
from .types import ChainResult, MH_BLOCK_LABELS

import logging
logger = logging.getLogger('hierbayes')


LOW_ACCEPTANCE_RATE = 0.10


def chain_autocorrelation(history: np.ndarray, max_lag: int) -> np.ndarray:
    """
    Lag-k autocorrelation of every chain and parameter.

    Uses the biased autocovariance (divides by n at every lag), so the
    estimate is bounded by 1 in absolute value. A constant series has no
    variance to normalize by; it is reported as perfectly correlated (1 at
    every lag).

    Args:
        history: (n, n_chains, n_params)
        max_lag: Largest lag; cut to n - 1

    Returns:
        rho: (max_lag + 1, n_chains, n_params), rho[0] == 1
    """
    history = np.asarray(history, dtype=np.float64)
    n = history.shape[0]
    max_lag = max(0, min(int(max_lag), n - 1))

    centered = history - history.mean(axis=0, keepdims=True)
    acov = np.empty((max_lag + 1,) + history.shape[1:])
    for k in range(max_lag + 1):
        acov[k] = np.sum(centered[:n - k] * centered[k:], axis=0) / n

    variance = acov[0]
    constant = variance <= 0
    with np.errstate(divide='ignore', invalid='ignore'):
        rho = acov / np.where(constant, 1.0, variance)
    rho = np.where(constant, 1.0, rho)
    return rho


def autocorrelation(x, max_lag: int) -> np.ndarray:
    """Lag-k autocorrelation of a single series, k = 0..max_lag."""
    x = np.asarray(x, dtype=np.float64).reshape(-1, 1, 1)
    return chain_autocorrelation(x, max_lag)[:, 0, 0]


def effective_sample_size(history: np.ndarray, max_lag: int = 200) -> np.ndarray:
    """
    Effective sample size of every parameter.

    ESS = N / (1 + 2 * sum_k rho_k), with rho_k averaged over chains and the
    sum running from lag 1 up to (not including) the first non-positive
    autocorrelation, or to max_lag.

    Args:
        history: (n, n_chains, n_params)

    Returns:
        (n_params,) array, each value in [0, n * n_chains]
    """
    history = np.asarray(history, dtype=np.float64)
    n, n_chains, n_params = history.shape
    n_total = n * n_chains
    if n < 2:
        return np.full(n_params, float(n_total))

    rho = chain_autocorrelation(history, max_lag).mean(axis=1)  # (lags, n_params)
    positive_run = np.cumprod(rho[1:] > 0, axis=0).astype(bool)
    rho_sum = np.sum(np.where(positive_run, rho[1:], 0.0), axis=0)

    ess = n_total / (1.0 + 2.0 * rho_sum)
    return np.clip(ess, 0.0, n_total)


@jax.jit
def compute_rhat(history: jnp.ndarray) -> jnp.ndarray:
    """
    Gelman-Rubin potential scale reduction (R-hat).

    Needs at least 2 chains of equal length n >= 2.

        B = n * var(chain means)
        W = mean(within-chain variances)
        V_hat = (n-1)/n * W + B/n + B/(m*n)
        R_hat = sqrt(V_hat / W)

    Args:
        history: (n, m, n_params)

    Returns:
        (n_params,) R-hat values. A parameter that never moved in any chain
        gives NaN or inf.
    """
    n, m, _ = history.shape
    chain_means = jnp.mean(history, axis=0)
    B = n * jnp.var(chain_means, axis=0, ddof=1)
    W = jnp.mean(jnp.var(history, axis=0, ddof=1), axis=0)
    V_hat = ((n - 1) / n) * W + B / n + B / (m * n)
    return jnp.sqrt(V_hat / W)


@dataclass
class DiagnosticReport:
    """
    Diagnostics of a PosteriorSamples.

    rhat is None when fewer than two chains contributed draws.
    """
    param_names: Tuple[str, ...]
    ess: np.ndarray
    autocorrelation: np.ndarray
    rhat: Optional[np.ndarray]
    converged: np.ndarray
    warnings: List[str] = field(default_factory=list)
    n_chains: int = 0
    chain_lengths: Dict[int, int] = field(default_factory=dict)
    acceptance_rates: Dict[int, Dict[str, float]] = field(default_factory=dict)
    rhat_threshold: float = 1.1
    min_ess: float = 100

    @property
    def all_converged(self) -> bool:
        return bool(np.all(self.converged))

    def get_rhat(self, name: str) -> Optional[float]:
        if self.rhat is None:
            return None
        return float(self.rhat[self.param_names.index(name)])

    def get_ess(self, name: str) -> float:
        return float(self.ess[self.param_names.index(name)])

    def to_frame(self) -> pd.DataFrame:
        """Per-parameter table: ess, rhat (when available), converged."""
        data = {'ess': self.ess}
        if self.rhat is not None:
            data['rhat'] = self.rhat
        data['converged'] = self.converged
        return pd.DataFrame(data, index=pd.Index(list(self.param_names), name='parameter'))


def _warn(messages: List[str], message: str, emit: bool) -> None:
    messages.append(message)
    logger.warning(message)
    if emit:
        warnings.warn(message, ConvergenceWarning, stacklevel=3)


def diagnose(samples, rhat_threshold: Optional[float] = None, min_ess: Optional[float] = None,
             max_lag: Optional[int] = None, emit_warnings: bool = True) -> DiagnosticReport:
    """
    Compute convergence diagnostics for a PosteriorSamples.

    Problems (high R-hat, low ESS, unequal or short chains, stuck chains,
    low Metropolis acceptance) are logged, recorded in report.warnings and,
    when emit_warnings is set, raised as ConvergenceWarning through
    warnings.warn. The samples are never modified.

    Args:
        samples: PosteriorSamples
        rhat_threshold: R-hat above this is not converged (config default 1.1)
        min_ess: ESS below this is flagged (config default 100)
        max_lag: Autocorrelation cutoff (config default 200)

    Returns:
        DiagnosticReport
    """
    config = samples.config
    rhat_threshold = rhat_threshold if rhat_threshold is not None else config.get('rhat_threshold', 1.1)
    min_ess = min_ess if min_ess is not None else config.get('min_ess', 100)
    max_lag = max_lag if max_lag is not None else config.get('max_lag', 200)

    names = tuple(samples.param_names)
    messages: List[str] = []
    history = samples.history()
    n, n_chains = history.shape[0], history.shape[1]

    if n == 0:
        _warn(messages, "No retained draws: diagnostics unavailable", emit_warnings)
        return DiagnosticReport(
            param_names=names,
            ess=np.zeros(len(names)),
            autocorrelation=np.empty((0, n_chains, len(names))),
            rhat=None,
            converged=np.zeros(len(names), dtype=bool),
            warnings=messages,
            n_chains=n_chains,
            chain_lengths=samples.chain_lengths,
            rhat_threshold=rhat_threshold,
            min_ess=min_ess,
        )

    rho = chain_autocorrelation(history, max_lag)
    ess = effective_sample_size(history, max_lag)

    rhat = None
    if n_chains >= 2 and n >= 2:
        with np.errstate(divide='ignore', invalid='ignore'):
            rhat = np.asarray(compute_rhat(jnp.asarray(history)))

    converged = ess >= min_ess
    if rhat is not None:
        converged &= np.isfinite(rhat) & (rhat <= rhat_threshold)
        bad = [name for name, r in zip(names, rhat) if not (np.isfinite(r) and r <= rhat_threshold)]
        if bad:
            worst = np.nanmax(np.where(np.isfinite(rhat), rhat, np.nan)) if np.any(np.isfinite(rhat)) else np.inf
            _warn(messages, f"R-hat above {rhat_threshold} for {len(bad)} parameter(s) "
                            f"(max {worst:.3f}): {', '.join(bad)}", emit_warnings)

    low_ess = [name for name, e in zip(names, ess) if e < min_ess]
    if low_ess:
        _warn(messages, f"Effective sample size below {min_ess} for {len(low_ess)} parameter(s) "
                        f"(min {np.min(ess):.1f}): {', '.join(low_ess)}", emit_warnings)

    lengths = samples.chain_lengths
    if len(set(lengths.values())) > 1:
        _warn(messages, f"Chains have unequal numbers of draws {lengths}; "
                        f"diagnostics use the first {n} draws of each", emit_warnings)

    short = [r.chain_id for r in samples.chain_results if r.iterations_completed < r.iterations_requested]
    if short:
        _warn(messages, f"Chain(s) {short} completed fewer iterations than requested", emit_warnings)

    issues = diagnose_sampler_issues(history, {})
    for message in issues['issues'] + issues['warnings']:
        _warn(messages, message, emit_warnings)
    for info in issues['info']:
        logger.debug(info)

    acceptance = {r.chain_id: dict(r.acceptance_rates) for r in samples.chain_results}
    for chain_id, rates in acceptance.items():
        low = [label for label, rate in rates.items() if np.isfinite(rate) and rate < LOW_ACCEPTANCE_RATE]
        if low:
            _warn(messages, f"Chain {chain_id}: acceptance rate below {LOW_ACCEPTANCE_RATE:.0%} "
                            f"for {', '.join(low)}", emit_warnings)

    report = DiagnosticReport(
        param_names=names,
        ess=ess,
        autocorrelation=rho,
        rhat=rhat,
        converged=converged,
        warnings=messages,
        n_chains=n_chains,
        chain_lengths=lengths,
        acceptance_rates=acceptance,
        rhat_threshold=rhat_threshold,
        min_ess=min_ess,
    )
    print_rhat_summary(report)
    return report


def print_rhat_summary(report: DiagnosticReport) -> None:
    """Log R-hat statistics with a convergence check."""
    if report.rhat is None:
        logger.info("R-hat not computed (single chain)")
        return
    rhat = report.rhat
    finite = rhat[np.isfinite(rhat)]
    logger.info(f"--- Standard R-hat ({report.n_chains} chains) ---")
    n_nan = rhat.size - finite.size
    if n_nan > 0:
        logger.warning(f"  {n_nan} params have NaN/Inf R-hat (stuck chains)")
    if finite.size == 0:
        logger.info("  Not Converged (no finite R-hat)")
        return
    logger.info(f"  Max: {np.max(finite):.4f}  Median: {np.median(finite):.4f}  "
                f"Threshold: {report.rhat_threshold:.4f}")
    if n_nan == 0 and np.max(finite) <= report.rhat_threshold:
        logger.info(f"  Converged (max <= {report.rhat_threshold:.4f})")
    else:
        logger.info(f"  Not Converged (max = {np.max(finite):.4f})")


def print_acceptance_summary(results: Sequence[ChainResult]) -> None:
    """
    Log summary statistics of Metropolis acceptance rates.

    Args:
        results: ChainResults of the run
    """
    if not results:
        return

    rates = np.array([
        [r.acceptance_rates.get(label, np.nan) for label in MH_BLOCK_LABELS]
        for r in results
    ])
    if not np.any(np.isfinite(rates)):
        return

    logger.info(f"--- MH Acceptance Rates ({len(MH_BLOCK_LABELS)} blocks, {len(results)} chains) ---")
    for label, column in zip(MH_BLOCK_LABELS, rates.T):
        finite = column[np.isfinite(column)]
        if finite.size == 0:
            continue
        logger.info(f"  {label}: Mean: {np.mean(finite):.1%}  Min: {np.min(finite):.1%}  "
                    f"Max: {np.max(finite):.1%}")
        if np.any(finite < LOW_ACCEPTANCE_RATE):
            logger.warning(f"  {label}: acceptance rate < {LOW_ACCEPTANCE_RATE:.0%} in "
                           f"{int(np.sum(finite < LOW_ACCEPTANCE_RATE))} chain(s)")
