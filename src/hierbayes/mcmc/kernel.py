"""
Gibbs Kernel - stateful driver of one chain.

GibbsKernel owns the scan carry of a single chain and advances it through the
compiled chunk runners:

    UNINITIALIZED --start()--> RUNNING --stop()--> STOPPED

Only a RUNNING kernel produces draws. STOPPED is terminal: step() returns the
last draw again and run(n) returns an empty block.
"""

from typing import Dict, Optional

import jax
import numpy as np

from ..model import ModelSpec
from ..prior_config import PriorConfig
from .compile import DEFAULT_CHUNK_SIZE, get_chunk_runner
from .config import initial_state_from_prior
from .types import (
    ChainState,
    KernelStatus,
    MH_BLOCK_LABELS,
    RunParams,
    make_initial_carry,
    state_to_draw,
)

import logging
logger = logging.getLogger('hierbayes')


class GibbsKernel:
    """
    Metropolis-within-Gibbs kernel for one chain.

    Args:
        model: ModelSpec to sample
        prior_config: PriorConfig
        run_params: RunParams (warmup length, sigma layout, scale family, tuning)
        key: The chain's PRNG key; split into an initialization key and a
            sampling key
        initial_step_size: Log-scale proposal sd for tau and sigma before tuning
        chunk_size: Iterations per compiled scan call
    """

    def __init__(self, model: ModelSpec, prior_config: PriorConfig, run_params: RunParams,
                 key, initial_step_size: float = 0.5, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.model = model
        self.prior_config = prior_config
        self.run_params = run_params
        self.initial_step_size = float(initial_step_size)
        self.chunk_size = int(chunk_size)

        self.init_key, self._run_key = jax.random.split(key)
        self._stats = model.stats()
        self._priors = prior_config.to_params()
        self._carry = None
        self._last_draw = None
        self._status = KernelStatus.UNINITIALIZED

    @property
    def status(self) -> KernelStatus:
        return self._status

    @property
    def iteration(self) -> int:
        """Number of completed iterations."""
        if self._carry is None:
            return 0
        return int(self._carry.iteration)

    @property
    def last_draw(self) -> Optional[np.ndarray]:
        return self._last_draw

    def start(self, initial_state: Optional[ChainState] = None) -> None:
        """
        Move UNINITIALIZED -> RUNNING.

        Without an initial_state, the starting point is drawn from the priors
        with the kernel's initialization key. Starting a STOPPED kernel does
        nothing.

        Raises:
            RuntimeError: If the kernel is already running
        """
        if self._status is KernelStatus.STOPPED:
            return
        if self._status is KernelStatus.RUNNING:
            raise RuntimeError("Kernel is already running")

        if initial_state is None:
            initial_state = initial_state_from_prior(self.init_key, self.model, self.prior_config)

        self._carry = make_initial_carry(initial_state, self._run_key, self.initial_step_size)
        self._last_draw = _read_only(np.asarray(state_to_draw(initial_state)))
        self._status = KernelStatus.RUNNING

    def stop(self) -> None:
        self._status = KernelStatus.STOPPED

    def step(self) -> np.ndarray:
        """Advance one iteration and return its draw."""
        if self._status is KernelStatus.STOPPED:
            return self._last_draw
        return self.run(1)[0]

    def run(self, n_iterations: int) -> np.ndarray:
        """
        Advance n_iterations iterations.

        Returns:
            Read-only (n_iterations, n_params) array of draws; (0, n_params)
            when the kernel is stopped
        """
        if self._status is KernelStatus.STOPPED or n_iterations <= 0:
            return _read_only(np.empty((0, self.model.n_params)))
        if self._status is KernelStatus.UNINITIALIZED:
            self.start()

        blocks = []
        remaining = int(n_iterations)
        while remaining > 0:
            n_steps = min(self.chunk_size, remaining)
            runner = get_chunk_runner(self.run_params, n_steps)
            self._carry, draws = runner(self._carry, self._stats, self._priors)
            blocks.append(np.asarray(draws))
            remaining -= n_steps

        block = np.concatenate(blocks, axis=0) if len(blocks) > 1 else blocks[0]
        block = _read_only(block)
        self._last_draw = block[-1]
        return block

    def step_sizes(self) -> Dict[str, float]:
        """Current log-scale proposal sds of the Metropolis blocks."""
        if self._carry is None:
            return {label: self.initial_step_size for label in MH_BLOCK_LABELS}
        values = np.asarray(self._carry.step_sizes)
        return {label: float(v) for label, v in zip(MH_BLOCK_LABELS, values)}

    def acceptance_rates(self) -> Dict[str, float]:
        """
        Post-warmup acceptance rate of each Metropolis block.

        NaN while no post-warmup iteration has run.
        """
        n_sampling = self.iteration - self.run_params.WARMUP
        if self._carry is None or n_sampling <= 0:
            return {label: float('nan') for label in MH_BLOCK_LABELS}
        counts = np.asarray(self._carry.accept_counts)
        return {label: float(c) / n_sampling for label, c in zip(MH_BLOCK_LABELS, counts)}


def _read_only(array: np.ndarray) -> np.ndarray:
    array = np.array(array, copy=True)
    array.flags.writeable = False
    return array
