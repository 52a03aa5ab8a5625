"""
MCMC Scan Body and Warmup Tuning.

This module contains the main scan loop components:
- tune_factor: Step-size multiplier from a window acceptance rate
- mcmc_scan_body: One iteration of the MCMC scan (sweep + tuning + bookkeeping)
- run_mcmc_chunk: Run a fixed number of iterations with jax.lax.scan
"""

from functools import partial

import jax
import jax.numpy as jnp

from .sampling import full_gibbs_iteration
from .types import ChainCarry, RunParams, state_to_draw


# Log-scale step sizes are kept inside this range so repeated tuning can
# neither freeze the walk nor produce overflowing proposals.
MIN_STEP_SIZE = 1e-6
MAX_STEP_SIZE = 1e2


def tune_factor(acceptance_rate):
    """
    Multiplier for the proposal sd given the acceptance rate of a window.

    Rate          Factor
    < 0.001       x 0.1
    < 0.05        x 0.5
    < 0.2         x 0.9
    > 0.95        x 10
    > 0.75        x 2
    > 0.5         x 1.1
    otherwise     x 1
    """
    return jnp.select(
        [
            acceptance_rate < 0.001,
            acceptance_rate < 0.05,
            acceptance_rate < 0.2,
            acceptance_rate > 0.95,
            acceptance_rate > 0.75,
            acceptance_rate > 0.5,
        ],
        [
            jnp.full_like(acceptance_rate, 0.1),
            jnp.full_like(acceptance_rate, 0.5),
            jnp.full_like(acceptance_rate, 0.9),
            jnp.full_like(acceptance_rate, 10.0),
            jnp.full_like(acceptance_rate, 2.0),
            jnp.full_like(acceptance_rate, 1.1),
        ],
        default=jnp.ones_like(acceptance_rate),
    )


def mcmc_scan_body(carry: ChainCarry, _, stats, priors, run_params: RunParams):
    """
    One iteration of the MCMC scan.

    Step sizes are tuned at the end of every TUNE_INTERVAL window while the
    iteration is inside warmup and frozen afterwards. Acceptances are only
    counted toward the reported rates after warmup.

    Returns:
        new_carry, draw (natural-scale parameter vector)
    """
    key, sweep_key = jax.random.split(carry.key)
    state, accepts = full_gibbs_iteration(
        sweep_key, carry.state, carry.step_sizes, stats, priors, run_params
    )

    iteration = carry.iteration
    in_warmup = iteration < run_params.WARMUP

    step_sizes = carry.step_sizes
    window_accepts = carry.window_accepts + accepts
    if run_params.ADAPT_STEP_SIZE:
        end_of_window = in_warmup & ((iteration + 1) % run_params.TUNE_INTERVAL == 0)
        rate = window_accepts / run_params.TUNE_INTERVAL
        tuned = jnp.clip(step_sizes * tune_factor(rate), MIN_STEP_SIZE, MAX_STEP_SIZE)
        step_sizes = jnp.where(end_of_window, tuned, step_sizes)
        window_accepts = jnp.where(end_of_window, jnp.zeros_like(window_accepts), window_accepts)

    accept_counts = carry.accept_counts + jnp.where(in_warmup, jnp.zeros_like(accepts), accepts)

    new_carry = ChainCarry(
        state=state,
        key=key,
        iteration=iteration + 1,
        step_sizes=step_sizes,
        window_accepts=window_accepts,
        accept_counts=accept_counts,
    )
    return new_carry, state_to_draw(state)


def run_mcmc_chunk(carry: ChainCarry, stats, priors, run_params: RunParams, n_steps: int):
    """
    Run n_steps iterations.

    Args:
        carry: ChainCarry
        stats: GroupStats (traced)
        priors: PriorParams (traced)
        run_params: RunParams (static)
        n_steps: Number of iterations (static)

    Returns:
        final_carry, draws: (n_steps, n_params)
    """
    body = partial(mcmc_scan_body, stats=stats, priors=priors, run_params=run_params)
    return jax.lax.scan(body, carry, None, length=n_steps)
