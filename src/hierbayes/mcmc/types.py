"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the sampler:
- ChainState: Joint state of one chain (JAX pytree)
- ChainCarry: Scan carry (state + PRNG key + tuning bookkeeping)
- RunParams: Immutable run parameters for JAX static arguments
- KernelStatus: Lifecycle states of a GibbsKernel
- ChainResult: Host-side output of one chain run
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, NamedTuple

import jax.numpy as jnp
import numpy as np


# Index of each Metropolis block in step_sizes / acceptance arrays
TAU_BLOCK = 0
SIGMA_BLOCK = 1
MH_BLOCK_LABELS = ('tau', 'sigma')


class ChainState(NamedTuple):
    """
    Joint state of one chain.

    Scale parameters are carried on the log scale so every value the
    random walk can reach maps to a strictly positive scale.

    Shapes:
        mu: (n_groups,)
        mu0: ()
        log_tau: ()
        log_sigma: (1,) for shared sigma, (n_groups,) otherwise
    """
    mu: jnp.ndarray
    mu0: jnp.ndarray
    log_tau: jnp.ndarray
    log_sigma: jnp.ndarray


class ChainCarry(NamedTuple):
    """
    Scan carry for one chain.

    iteration counts completed iterations (0-based index of the next one).
    step_sizes holds the log-scale random-walk sd for (tau, sigma).
    window_accepts accumulates acceptances within the current tuning window.
    accept_counts accumulates post-warmup acceptances.
    """
    state: ChainState
    key: jnp.ndarray
    iteration: jnp.ndarray
    step_sizes: jnp.ndarray
    window_accepts: jnp.ndarray
    accept_counts: jnp.ndarray


@dataclass(frozen=True)
class RunParams:
    """
    Immutable run parameters for JAX static argument compatibility.

    Hashable, so it can key the compiled-kernel cache and be closed over by
    jitted functions.
    """
    WARMUP: int
    SHARED_SIGMA: bool
    SCALE_FAMILY: str = 'half_cauchy'
    TUNE_INTERVAL: int = 100
    ADAPT_STEP_SIZE: bool = True


class KernelStatus(Enum):
    UNINITIALIZED = 'uninitialized'
    RUNNING = 'running'
    STOPPED = 'stopped'


def state_to_draw(state: ChainState) -> jnp.ndarray:
    """Flatten a ChainState into a natural-scale draw vector [mu, mu0, tau, sigma]."""
    return jnp.concatenate([
        state.mu,
        jnp.atleast_1d(state.mu0),
        jnp.atleast_1d(jnp.exp(state.log_tau)),
        jnp.exp(state.log_sigma),
    ])


def make_chain_state(mu, mu0, tau, sigma) -> ChainState:
    """Build a float64 ChainState from natural-scale values."""
    return ChainState(
        mu=jnp.asarray(mu, dtype=jnp.float64).reshape(-1),
        mu0=jnp.asarray(mu0, dtype=jnp.float64).reshape(()),
        log_tau=jnp.log(jnp.asarray(tau, dtype=jnp.float64)).reshape(()),
        log_sigma=jnp.log(jnp.asarray(sigma, dtype=jnp.float64)).reshape(-1),
    )


def make_initial_carry(state: ChainState, key, initial_step_size: float) -> ChainCarry:
    """Initial scan carry; every leaf gets an explicit (non-weak) dtype."""
    return ChainCarry(
        state=state,
        key=key,
        iteration=jnp.asarray(0, dtype=jnp.int32),
        step_sizes=jnp.full((2,), initial_step_size, dtype=jnp.float64),
        window_accepts=jnp.zeros((2,), dtype=jnp.float64),
        accept_counts=jnp.zeros((2,), dtype=jnp.float64),
    )


@dataclass
class ChainResult:
    """
    Host-side result of one chain.

    draws holds only the retained (post-warmup, thinned) draws; iterations
    holds the 0-based iteration index of each retained draw.

    status is one of 'complete', 'cancelled', 'timed_out'.
    """
    chain_id: int
    draws: np.ndarray
    iterations: np.ndarray
    iterations_requested: int
    iterations_completed: int
    warmup: int
    status: str = 'complete'
    acceptance_rates: Dict[str, float] = field(default_factory=dict)
    step_sizes: Dict[str, float] = field(default_factory=dict)
    wall_time: float = 0.0

    @property
    def warmup_complete(self) -> bool:
        return self.iterations_completed >= self.warmup

    @property
    def n_draws(self) -> int:
        return int(self.draws.shape[0])

    def truncate(self, max_iterations: int) -> 'ChainResult':
        """Copy keeping only draws from iterations < max_iterations."""
        mask = self.iterations < max_iterations
        return ChainResult(
            chain_id=self.chain_id,
            draws=self.draws[mask],
            iterations=self.iterations[mask],
            iterations_requested=self.iterations_requested,
            iterations_completed=min(self.iterations_completed, max_iterations),
            warmup=self.warmup,
            status=self.status,
            acceptance_rates=dict(self.acceptance_rates),
            step_sizes=dict(self.step_sizes),
            wall_time=self.wall_time,
        )
