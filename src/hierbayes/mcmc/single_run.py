"""
MCMC Single Run - one chain from start to finish.

run_single_chain() drives one GibbsKernel through its iterations in chunks.
Between chunks it checks the chain's cancel event and the run deadline, keeps
the retained (post-warmup, thinned) draws and reports progress. Chains are
fully independent, so the chain manager can run many of these concurrently.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional

import numpy as np

from ..error_handling import CancellationError
from ..history_processing import retained_mask
from ..model import ModelSpec
from ..prior_config import PriorConfig
from .config import resolve_initial_state
from .kernel import GibbsKernel
from .types import ChainResult, RunParams

import logging
logger = logging.getLogger('hierbayes')

__all__ = ['run_single_chain']


def run_single_chain(
    model: ModelSpec,
    prior_config: PriorConfig,
    run_params: RunParams,
    user_config: Dict[str, Any],
    chain_id: int,
    key,
    cancel_event: Optional[threading.Event] = None,
    deadline: Optional[float] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> ChainResult:
    """
    Run one chain.

    Args:
        model: ModelSpec to sample
        prior_config: PriorConfig
        run_params: RunParams
        user_config: Cleaned sampler configuration
        chain_id: Index of the chain
        key: The chain's PRNG key
        cancel_event: Checked between chunks; when set the chain stops
        deadline: time.monotonic() value after which the chain stops at the
            next chunk boundary
        progress_callback: Called as progress_callback(chain_id, iterations_done)
            after every chunk

    Returns:
        ChainResult with status 'complete' or 'timed_out'

    Raises:
        CancellationError: If cancel_event was set before the chain finished.
            The partial ChainResult is attached as .result
    """
    n_iterations = int(user_config['iterations'])
    warmup = int(user_config['warmup'])
    thin = int(user_config['thin'])
    chunk_size = int(user_config['chunk_size'])

    kernel = GibbsKernel(
        model, prior_config, run_params, key,
        initial_step_size=user_config['initial_step_size'],
        chunk_size=chunk_size,
    )
    initial_state = resolve_initial_state(user_config['init'], chain_id, kernel.init_key, model, prior_config)
    kernel.start(initial_state)

    kept_draws = []
    kept_iterations = []
    status = 'complete'
    start_time = time.perf_counter()

    try:
        while kernel.iteration < n_iterations:
            if cancel_event is not None and cancel_event.is_set():
                status = 'cancelled'
                break
            if deadline is not None and time.monotonic() >= deadline:
                status = 'timed_out'
                break

            first = kernel.iteration
            n_steps = min(chunk_size, n_iterations - first)
            block = kernel.run(n_steps)

            iterations = np.arange(first, first + n_steps)
            mask = retained_mask(iterations, warmup, thin)
            if np.any(mask):
                kept_draws.append(block[mask])
                kept_iterations.append(iterations[mask])

            if progress_callback is not None:
                progress_callback(chain_id, kernel.iteration)
    finally:
        kernel.stop()

    wall_time = time.perf_counter() - start_time

    if kept_draws:
        draws = np.concatenate(kept_draws, axis=0)
        iterations = np.concatenate(kept_iterations)
    else:
        draws = np.empty((0, model.n_params))
        iterations = np.empty(0, dtype=np.int64)
    draws.flags.writeable = False

    result = ChainResult(
        chain_id=chain_id,
        draws=draws,
        iterations=iterations,
        iterations_requested=n_iterations,
        iterations_completed=kernel.iteration,
        warmup=warmup,
        status=status,
        acceptance_rates=kernel.acceptance_rates(),
        step_sizes=kernel.step_sizes(),
        wall_time=wall_time,
    )

    logger.info(
        f"Chain {chain_id}: {status} after {result.iterations_completed}/{n_iterations} iterations "
        f"({result.n_draws} draws kept, {wall_time:.2f}s)"
    )

    if status == 'cancelled':
        raise CancellationError(
            f"Chain {chain_id} cancelled after {result.iterations_completed} of {n_iterations} iterations",
            result=result,
        )
    return result
