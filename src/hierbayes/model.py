"""
Model Specification

Binds grouped observations to the two-level hierarchical normal model:

    y_ij  ~ Normal(mu_j, sigma_j)      sigma_j = sigma when shared_sigma
    mu_j  ~ Normal(mu0, tau)
    mu0   ~ Normal(mu0_mean, mu0_sd)
    tau, sigma ~ scale prior (half-Cauchy by default)

The sampler never touches individual observations: build() reduces them to
per-group sufficient statistics once, and only those are passed to the
compiled kernel.
"""

from dataclasses import dataclass
from typing import Iterable, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import jax.numpy as jnp

from .error_handling import ConfigurationError

import logging
logger = logging.getLogger('hierbayes')


class GroupStats(NamedTuple):
    """
    Per-group sufficient statistics (a JAX pytree of (n_groups,) arrays).

    within_ss is the centered sum of squares sum_i (y_ij - ybar_j)^2. It is
    exactly 0 for single-observation groups; nothing divides by n_j - 1.
    """
    counts: jnp.ndarray
    sums: jnp.ndarray
    means: jnp.ndarray
    within_ss: jnp.ndarray


@dataclass(frozen=True)
class ModelRoles:
    """
    Binding of table columns to model roles.

    Replaces a formula string like 'rating ~ 1 + (1 | group)': the model
    family is fixed, so the only roles are the outcome and the grouping factor.
    """
    outcome: str
    group: str


@dataclass(frozen=True)
class ModelSpec:
    group_labels: Tuple[str, ...]
    counts: np.ndarray
    sums: np.ndarray
    means: np.ndarray
    within_ss: np.ndarray
    shared_sigma: bool
    n_obs: int
    grand_mean: float
    grand_sd: float

    @property
    def n_groups(self) -> int:
        return len(self.group_labels)

    @property
    def n_sigma(self) -> int:
        return 1 if self.shared_sigma else self.n_groups

    @property
    def n_params(self) -> int:
        # mu[1..J], mu0, tau, sigma (1 or J)
        return self.n_groups + 2 + self.n_sigma

    @property
    def param_names(self) -> Tuple[str, ...]:
        names = [f"mu[{label}]" for label in self.group_labels]
        names += ['mu0', 'tau']
        if self.shared_sigma:
            names.append('sigma')
        else:
            names += [f"sigma[{label}]" for label in self.group_labels]
        return tuple(names)

    def param_index(self, name: str) -> int:
        try:
            return self.param_names.index(name)
        except ValueError:
            raise KeyError(f"Unknown parameter '{name}'. Available: {list(self.param_names)}") from None

    @property
    def mu_slice(self) -> slice:
        return slice(0, self.n_groups)

    @property
    def sigma_slice(self) -> slice:
        start = self.n_groups + 2
        return slice(start, start + self.n_sigma)

    def stats(self) -> GroupStats:
        """Sufficient statistics as float64 device arrays for the kernel."""
        return GroupStats(
            counts=jnp.asarray(self.counts, dtype=jnp.float64),
            sums=jnp.asarray(self.sums, dtype=jnp.float64),
            means=jnp.asarray(self.means, dtype=jnp.float64),
            within_ss=jnp.asarray(self.within_ss, dtype=jnp.float64),
        )


def build(observations: Iterable, shared_sigma: bool = True,
          groups: Optional[Sequence] = None) -> ModelSpec:
    """
    Build a ModelSpec from (group_id, value) records.

    Args:
        observations: Iterable of (group_id, value) pairs
        shared_sigma: One residual scale for all groups (True) or one per group
        groups: Optional full list of groups. Groups listed here but absent
            from observations are reported as errors. When omitted, groups are
            the distinct group ids in first-appearance order.

    Returns:
        ModelSpec with per-group sufficient statistics

    Raises:
        ConfigurationError: Empty observations, a group with no observations,
            or a non-finite value
    """
    records = list(observations)
    if not records:
        raise ConfigurationError("observations is empty: at least one (group, value) record is required")

    values_by_group = {}
    bad_values = []
    for position, record in enumerate(records):
        try:
            group_id, value = record
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"observation {position} is not a (group, value) pair: {record!r}"
            ) from None
        value = float(value)
        if not np.isfinite(value):
            bad_values.append(f"observation {position} (group {group_id!r}) has non-finite value {value}")
            continue
        values_by_group.setdefault(str(group_id), []).append(value)

    if groups is None:
        labels = list(values_by_group.keys())
    else:
        labels = [str(g) for g in groups]
        unknown = sorted(set(values_by_group) - set(labels))
        if unknown:
            bad_values.append(f"observations reference undeclared groups: {unknown}")

    empty = [label for label in labels if not values_by_group.get(label)]

    errors = list(bad_values)
    if empty:
        errors.append(f"groups with zero observations: {empty}")
    if not labels:
        errors.append("no groups with observations")
    if errors:
        raise ConfigurationError("Invalid model specification:\n  " + "\n  ".join(errors))

    counts = np.array([len(values_by_group[label]) for label in labels], dtype=np.float64)
    sums = np.array([np.sum(values_by_group[label]) for label in labels], dtype=np.float64)
    means = sums / counts
    within_ss = np.array([
        np.sum((np.asarray(values_by_group[label]) - mean) ** 2)
        for label, mean in zip(labels, means)
    ], dtype=np.float64)

    all_values = np.concatenate([np.asarray(values_by_group[label]) for label in labels])
    n_obs = int(all_values.size)
    grand_sd = float(np.std(all_values)) if n_obs > 1 else 0.0

    spec = ModelSpec(
        group_labels=tuple(labels),
        counts=counts,
        sums=sums,
        means=means,
        within_ss=within_ss,
        shared_sigma=bool(shared_sigma),
        n_obs=n_obs,
        grand_mean=float(np.mean(all_values)),
        grand_sd=grand_sd,
    )
    logger.info(
        f"Model: {spec.n_groups} groups, {n_obs} observations, "
        f"{'shared' if shared_sigma else 'per-group'} sigma, {spec.n_params} parameters"
    )
    return spec


def build_from_frame(df: pd.DataFrame, roles: ModelRoles, shared_sigma: bool = True,
                     groups: Optional[Sequence] = None) -> ModelSpec:
    """
    Build a ModelSpec from a DataFrame using a ModelRoles binding.

    Rows with a missing outcome or group are dropped (and logged).
    """
    missing_cols = [col for col in (roles.outcome, roles.group) if col not in df.columns]
    if missing_cols:
        raise ConfigurationError(f"DataFrame is missing columns for model roles: {missing_cols}")

    subset = df[[roles.group, roles.outcome]]
    complete = subset.dropna()
    n_dropped = len(subset) - len(complete)
    if n_dropped:
        logger.warning(f"Dropped {n_dropped} row(s) with missing '{roles.outcome}' or '{roles.group}'")

    records = zip(complete[roles.group].tolist(), complete[roles.outcome].tolist())
    return build(records, shared_sigma=shared_sigma, groups=groups)
