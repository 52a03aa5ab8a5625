"""
Posterior summaries.

Consumers of a PosteriorSamples:
- credible_interval: Equal-tailed interval of one parameter
- shrinkage: Per-group pooling toward the grand mean
- variance_ratio: tau^2 / (tau^2 + sigma^2) for every draw
- summarize: SummaryReport bundling the above
- trace_summary: Per-parameter table with ESS and R-hat

Nothing here mutates the samples; every function returns new arrays or
DataFrames.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .history_processing import PosteriorSamples
from .mcmc.diagnostics import DiagnosticReport, diagnose

import logging
logger = logging.getLogger('hierbayes')


# Largest double below 1; variance ratios are reported in [0, 1)
_BELOW_ONE = np.nextafter(1.0, 0.0)


def _tail_probs(prob: float) -> Tuple[float, float]:
    if not 0.0 < prob < 1.0:
        raise ValueError(f"prob must be in (0, 1), got {prob}")
    alpha = (1.0 - prob) / 2.0
    return alpha, 1.0 - alpha


def credible_interval(samples: PosteriorSamples, name: str, prob: float = 0.95) -> Tuple[float, float]:
    """Equal-tailed credible interval of one parameter from empirical quantiles."""
    lower_q, upper_q = _tail_probs(prob)
    values = samples.get(name)
    if values.size == 0:
        raise ValueError("No retained draws to summarize")
    lower, upper = np.quantile(values, [lower_q, upper_q])
    return float(lower), float(upper)


def variance_ratio(samples: PosteriorSamples) -> np.ndarray:
    """
    Share of variance between groups, R = tau^2 / (tau^2 + sigma^2), per draw.

    Returns:
        (n_draws,) for shared sigma, (n_draws, n_groups) for per-group sigma.
        Every value lies in [0, 1).
    """
    model = samples.model
    tau_sq = samples.get('tau') ** 2
    sigma_sq = samples.draws[:, model.sigma_slice] ** 2
    if model.shared_sigma:
        sigma_sq = sigma_sq[:, 0]
    else:
        tau_sq = tau_sq[:, None]
    ratio = tau_sq / (tau_sq + sigma_sq)
    return np.clip(ratio, 0.0, _BELOW_ONE)


def variance_ratio_quantiles(samples: PosteriorSamples,
                             probs: Sequence[float] = (0.025, 0.5, 0.975)) -> pd.DataFrame:
    """
    Quantiles of the variance ratio: one row for shared sigma, one per group otherwise.
    """
    ratio = variance_ratio(samples)
    model = samples.model
    if ratio.ndim == 1:
        ratio = ratio[:, None]
        index = ['R']
    else:
        index = [f"R[{label}]" for label in model.group_labels]

    table = pd.DataFrame(
        np.quantile(ratio, probs, axis=0).T,
        index=pd.Index(index, name='ratio'),
        columns=[f"q{p:g}" for p in probs],
    )
    table.insert(0, 'mean', ratio.mean(axis=0))
    return table


def shrinkage(samples: PosteriorSamples) -> pd.DataFrame:
    """
    Per-group pooling toward the grand mean.

    pooling = (sample_mean - posterior_mean) / (sample_mean - grand_mean),
    the fraction of the distance from the raw group mean to the posterior
    grand mean that the group estimate moved. NaN when the raw mean equals
    the grand mean.

    Returns:
        DataFrame indexed by group label with columns n, sample_mean,
        posterior_mean, grand_mean, pooling
    """
    model = samples.model
    posterior_means = samples.draws[:, model.mu_slice].mean(axis=0)
    grand_mean = float(samples.get('mu0').mean())

    distance = model.means - grand_mean
    with np.errstate(divide='ignore', invalid='ignore'):
        pooling = np.where(distance != 0, (model.means - posterior_means) / distance, np.nan)

    return pd.DataFrame(
        {
            'n': model.counts.astype(int),
            'sample_mean': model.means,
            'posterior_mean': posterior_means,
            'grand_mean': grand_mean,
            'pooling': pooling,
        },
        index=pd.Index(list(model.group_labels), name='group'),
    )


def _interval_table(samples: PosteriorSamples, prob: float) -> pd.DataFrame:
    lower_q, upper_q = _tail_probs(prob)
    draws = samples.draws
    lower, upper = np.quantile(draws, [lower_q, upper_q], axis=0)
    return pd.DataFrame(
        {
            'mean': draws.mean(axis=0),
            'sd': draws.std(axis=0, ddof=1) if draws.shape[0] > 1 else np.zeros(draws.shape[1]),
            'lower': lower,
            'upper': upper,
        },
        index=pd.Index(list(samples.param_names), name='parameter'),
    )


@dataclass(frozen=True)
class SummaryReport:
    prob: float
    intervals: pd.DataFrame
    shrinkage: pd.DataFrame
    variance_ratio: pd.DataFrame

    def interval(self, name: str) -> Tuple[float, float]:
        row = self.intervals.loc[name]
        return float(row['lower']), float(row['upper'])


def summarize(samples: PosteriorSamples, prob: float = 0.95) -> SummaryReport:
    """
    Summarize a sample set.

    Args:
        samples: PosteriorSamples
        prob: Credible interval mass

    Returns:
        SummaryReport with per-parameter intervals, shrinkage table and
        variance-ratio quantiles
    """
    if samples.n_draws == 0:
        raise ValueError("No retained draws to summarize")
    lower_q, upper_q = _tail_probs(prob)
    report = SummaryReport(
        prob=prob,
        intervals=_interval_table(samples, prob),
        shrinkage=shrinkage(samples),
        variance_ratio=variance_ratio_quantiles(samples, (lower_q, 0.5, upper_q)),
    )
    logger.info(f"Summarized {samples.n_draws} draws of {samples.n_params} parameters ({prob:.0%} intervals)")
    return report


def trace_summary(samples: PosteriorSamples, report: Optional[DiagnosticReport] = None,
                  prob: float = 0.95) -> pd.DataFrame:
    """
    Per-parameter table of mean, sd, interval bounds, ESS and R-hat.

    The rhat column is omitted when the run had a single chain.
    """
    if report is None:
        report = diagnose(samples, emit_warnings=False)
    table = _interval_table(samples, prob)
    table['ess'] = report.ess
    if report.rhat is not None:
        table['rhat'] = report.rhat
    return table
