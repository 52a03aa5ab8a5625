"""
MCMC Kernel Compilation and Caching.

This module handles JAX compilation of the chunk runner:
- get_chunk_runner: Jitted chunk runner for a (RunParams, chunk length) pair
- get_compiled_kernel_cache / clear_compiled_kernel_cache: Cache access

Model data (GroupStats) and priors (PriorParams) are passed as traced
arguments, so one compiled runner serves every model with the same number of
groups; jax.jit keys its own trace cache on their shapes.
"""

import threading
from functools import partial

import jax

from .scan import run_mcmc_chunk
from .types import RunParams


# --- CONSTANTS ---
DEFAULT_CHUNK_SIZE = 500

# --- COMPILED FUNCTION CACHE ---
# Jitted runners keyed by (RunParams, n_steps), shared by all chain workers
_COMPILED_KERNEL_CACHE = {}
_CACHE_LOCK = threading.Lock()


def get_chunk_runner(run_params: RunParams, n_steps: int):
    """
    Get the jitted runner for n_steps iterations.

    Returns:
        fn(carry, stats, priors) -> (carry, draws)
    """
    key = (run_params, int(n_steps))
    with _CACHE_LOCK:
        runner = _COMPILED_KERNEL_CACHE.get(key)
        if runner is None:
            runner = jax.jit(partial(run_mcmc_chunk, run_params=run_params, n_steps=int(n_steps)))
            _COMPILED_KERNEL_CACHE[key] = runner
    return runner


def get_compiled_kernel_cache():
    """Get reference to the compiled kernel cache."""
    return _COMPILED_KERNEL_CACHE


def clear_compiled_kernel_cache():
    with _CACHE_LOCK:
        _COMPILED_KERNEL_CACHE.clear()
