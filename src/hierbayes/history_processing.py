"""
Posterior sample set and history processing.

This module provides:
- retained_mask / apply_warmup: Warmup removal and thinning of raw chain output
- PosteriorSamples: Read-only set of retained draws of all chains
- combine_chain_results: Concatenate per-chain results into a PosteriorSamples
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .mcmc.types import ChainResult
from .model import ModelSpec

import logging
logger = logging.getLogger('hierbayes')


def retained_mask(iterations, warmup: int, thin: int) -> np.ndarray:
    """
    Which iterations are kept.

    Iteration i (0-based) is kept when i >= warmup and (i - warmup + 1) % thin == 0,
    so a chain of n iterations keeps floor((n - warmup) / thin) draws.
    """
    iterations = np.asarray(iterations)
    return (iterations >= warmup) & ((iterations - warmup + 1) % thin == 0)


def apply_warmup(draws, iterations, warmup: int, thin: int = 1):
    """
    Drop warmup draws and thin the rest.

    Args:
        draws: Draw array (n_iterations, n_params)
        iterations: Iteration numbers (n_iterations,)
        warmup: Number of leading iterations to discard
        thin: Keep every thin-th post-warmup draw

    Returns:
        Filtered draws, iterations
    """
    iterations = np.asarray(iterations)
    mask = retained_mask(iterations, warmup, thin)
    logger.debug(
        f"Warmup filter (warmup={warmup}, thin={thin}): "
        f"kept {int(np.sum(mask))} of {iterations.size} draws"
    )
    return np.asarray(draws)[mask], iterations[mask]


def _read_only(array):
    array = np.array(array, copy=True)
    array.flags.writeable = False
    return array


@dataclass(frozen=True)
class PosteriorSamples:
    """
    Retained draws of every chain, concatenated.

    Attributes:
        draws: (n_draws, n_params) natural-scale draws, read-only
        chain_ids: (n_draws,) chain id of each row
        iterations: (n_draws,) 0-based iteration index of each row in its chain
        param_names: Column names of draws
        model: The ModelSpec that was sampled
        config: Cleaned sampler configuration
        chain_results: Per-chain metadata (ChainResult, sorted by chain id)
    """
    draws: np.ndarray
    chain_ids: np.ndarray
    iterations: np.ndarray
    param_names: Tuple[str, ...]
    model: ModelSpec
    config: Dict[str, Any] = field(default_factory=dict)
    chain_results: Tuple[ChainResult, ...] = ()

    def __len__(self):
        return int(self.draws.shape[0])

    @property
    def n_draws(self) -> int:
        return len(self)

    @property
    def n_params(self) -> int:
        return len(self.param_names)

    @property
    def chains(self) -> List[int]:
        return [r.chain_id for r in self.chain_results]

    @property
    def n_chains(self) -> int:
        return len(self.chain_results)

    @property
    def chain_lengths(self) -> Dict[int, int]:
        return {r.chain_id: r.n_draws for r in self.chain_results}

    @property
    def iterations_completed(self) -> Dict[int, int]:
        return {r.chain_id: r.iterations_completed for r in self.chain_results}

    def get(self, name: str) -> np.ndarray:
        """All retained draws of one parameter, chains concatenated."""
        return self.draws[:, self.model.param_index(name)]

    def chain_draws(self, chain_id: int) -> np.ndarray:
        return self.draws[self.chain_ids == chain_id]

    def history(self) -> np.ndarray:
        """
        Draws stacked by chain: (n, n_chains, n_params).

        Chains of unequal length are cut to the shortest one, keeping each
        chain's leading draws.
        """
        if self.n_chains == 0:
            return np.empty((0, 0, self.n_params))
        per_chain = [self.chain_draws(c) for c in self.chains]
        n = min(d.shape[0] for d in per_chain)
        return np.stack([d[:n] for d in per_chain], axis=1)

    def to_frame(self) -> pd.DataFrame:
        """Draw matrix: one row per retained draw, parameter columns plus 'chain' and 'iteration'."""
        df = pd.DataFrame(np.array(self.draws), columns=list(self.param_names))
        df['chain'] = self.chain_ids
        df['iteration'] = self.iterations
        return df


def combine_chain_results(results: Sequence[ChainResult], model: ModelSpec,
                          config: Dict[str, Any]) -> PosteriorSamples:
    """
    Concatenate per-chain results (ordered by chain id) into one sample set.
    """
    results = tuple(sorted(results, key=lambda r: r.chain_id))
    n_params = model.n_params

    if results:
        draws = np.concatenate([np.asarray(r.draws).reshape(-1, n_params) for r in results], axis=0)
        chain_ids = np.concatenate([np.full(r.n_draws, r.chain_id, dtype=np.int64) for r in results])
        iterations = np.concatenate([np.asarray(r.iterations, dtype=np.int64) for r in results])
    else:
        draws = np.empty((0, n_params))
        chain_ids = np.empty(0, dtype=np.int64)
        iterations = np.empty(0, dtype=np.int64)

    return PosteriorSamples(
        draws=_read_only(draws),
        chain_ids=_read_only(chain_ids),
        iterations=_read_only(iterations),
        param_names=model.param_names,
        model=model,
        config=dict(config),
        chain_results=results,
    )
