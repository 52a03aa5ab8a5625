"""
Synthetic grouped data with known generating parameters.

Used by the test suite and for checking that the sampler recovers the
parameters it was given.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


# Group sizes of the reference ratings scenario: eight groups, one of which
# has a single observation.
SCENARIO_GROUP_SIZES = (7, 7, 7, 7, 1, 7, 7, 11)
RATING_MIN = 0.5
RATING_MAX = 5.0


@dataclass
class TrueParameters:
    """Parameters that generated a synthetic data set."""
    mu0: float
    tau: float
    sigma: np.ndarray
    mu: np.ndarray
    group_labels: Tuple[str, ...]


def make_grouped_data(
    group_sizes: Sequence[int],
    mu0: float = 0.0,
    tau: float = 1.0,
    sigma=1.0,
    seed: Optional[int] = 0,
    group_labels: Optional[Sequence[str]] = None,
) -> Tuple[List[Tuple[str, float]], TrueParameters]:
    """
    Draw observations from the hierarchical normal model.

    Args:
        group_sizes: Observations per group
        mu0, tau: Hyperparameters of the group means
        sigma: Residual sd, a scalar or one value per group
        seed: numpy random seed
        group_labels: Labels (default 'g0', 'g1', ...)

    Returns:
        observations: List of (group_label, value) records, grouped in label order
        truth: TrueParameters
    """
    rng = np.random.default_rng(seed)
    n_groups = len(group_sizes)
    labels = tuple(group_labels) if group_labels is not None else tuple(f"g{j}" for j in range(n_groups))
    sigma = np.broadcast_to(np.asarray(sigma, dtype=np.float64), (n_groups,)).copy()

    mu = rng.normal(mu0, tau, size=n_groups)
    observations = []
    for label, size, mean, sd in zip(labels, group_sizes, mu, sigma):
        for value in rng.normal(mean, sd, size=int(size)):
            observations.append((label, float(value)))

    truth = TrueParameters(mu0=mu0, tau=tau, sigma=sigma, mu=mu, group_labels=labels)
    return observations, truth


def make_ratings_data(
    group_sizes: Sequence[int] = SCENARIO_GROUP_SIZES,
    seed: Optional[int] = 0,
    mu0: float = 3.0,
    tau: float = 0.5,
    sigma: float = 0.9,
) -> pd.DataFrame:
    """
    Rating-style data: values rounded to half points and clipped to [0.5, 5.0].

    Returns:
        DataFrame with columns 'group' and 'rating'
    """
    observations, _ = make_grouped_data(group_sizes, mu0=mu0, tau=tau, sigma=sigma, seed=seed)
    df = pd.DataFrame(observations, columns=['group', 'rating'])
    df['rating'] = np.clip(np.round(df['rating'] * 2.0) / 2.0, RATING_MIN, RATING_MAX)
    return df
