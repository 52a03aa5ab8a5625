"""
MCMC Backend - Chain manager.

This module runs several independent chains and merges their output:
- ChainManager: Validated multi-chain run with cancellation and timeout
- run_chains: One-call wrapper around ChainManager
- sample: Build the model from observations and run it

Chains run in a thread pool. Each chain owns its PRNG key
(fold_in(PRNGKey(seed), chain_id)) and kernel state, so the join is the only
synchronization point and results do not depend on scheduling.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..error_handling import CancellationError, ConfigurationError
from ..history_processing import PosteriorSamples, combine_chain_results
from ..model import ModelSpec, build
from .config import chain_keys, configure_sampler
from .diagnostics import print_acceptance_summary
from .single_run import run_single_chain
from .types import ChainResult

import logging
logger = logging.getLogger('hierbayes')


class ChainManager:
    """
    Runs C independent chains of one model.

    The configuration is cleaned and validated on construction, so an
    invalid configuration raises ConfigurationError before any sampling.

    Args:
        model: ModelSpec to sample
        config: Sampler configuration dict (see clean_config for defaults)
    """

    def __init__(self, model: ModelSpec, config: Optional[Dict[str, Any]] = None):
        self.model = model
        self.config, self.prior_config, self.run_params = configure_sampler(config or {}, model)
        self.n_chains = int(self.config['chains'])
        self._cancel_events = [threading.Event() for _ in range(self.n_chains)]
        self._keys = chain_keys(int(self.config['seed']), self.n_chains)

    def cancel(self, chain_id: Optional[int] = None) -> None:
        """
        Request cancellation of one chain, or of every chain when chain_id is None.

        Takes effect at the chain's next chunk boundary. A request made before
        run() applies to that run; requests are cleared when the run ends.
        """
        if chain_id is None:
            for event in self._cancel_events:
                event.set()
            return
        if not 0 <= chain_id < self.n_chains:
            raise ValueError(f"chain_id must be in [0, {self.n_chains}), got {chain_id}")
        self._cancel_events[chain_id].set()

    def run(self, progress_callback: Optional[Callable[[int, int], None]] = None) -> PosteriorSamples:
        """
        Run all chains to completion (or cancellation / timeout) and merge them.

        Args:
            progress_callback: Called as progress_callback(chain_id, iterations_done)
                from the chain's worker thread after every chunk

        Returns:
            PosteriorSamples with the retained draws of every usable chain

        Raises:
            CancellationError: If no chain produced usable draws
        """
        cfg = self.config
        timeout = cfg['timeout']
        deadline = time.monotonic() + timeout if timeout is not None else None
        max_workers = cfg['max_workers'] or self.n_chains

        logger.info(
            f"Sampling {self.n_chains} chain(s): {cfg['iterations']} iterations, "
            f"warmup {cfg['warmup']}, thin {cfg['thin']}, seed {cfg['seed']}"
        )
        start_time = time.perf_counter()

        finished: List[ChainResult] = []
        cancelled: List[ChainResult] = []
        try:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = {
                    executor.submit(
                        run_single_chain,
                        self.model,
                        self.prior_config,
                        self.run_params,
                        cfg,
                        chain_id,
                        self._keys[chain_id],
                        self._cancel_events[chain_id],
                        deadline,
                        progress_callback,
                    ): chain_id
                    for chain_id in range(self.n_chains)
                }
                for future in as_completed(futures):
                    try:
                        finished.append(future.result())
                    except CancellationError as e:
                        cancelled.append(e.result)
        finally:
            for event in self._cancel_events:
                event.clear()

        results = self._merge_rules(finished, cancelled)
        logger.info(f"Sampling finished in {time.perf_counter() - start_time:.2f}s")
        print_acceptance_summary(results)

        return combine_chain_results(results, self.model, cfg)

    def _merge_rules(self, finished: List[ChainResult], cancelled: List[ChainResult]) -> List[ChainResult]:
        """
        Decide which chains enter the sample set.

        - Cancelled chains are kept with their partial draws only if they
          completed warmup and retained at least one draw.
        - Timed-out chains are kept on the same terms. When any is kept,
          every kept complete and timed-out chain is cut to the shortest
          completed iteration count among the kept timed-out chains.
        """
        kept_cancelled = []
        for result in cancelled:
            if result.warmup_complete and result.n_draws > 0:
                kept_cancelled.append(result)
            else:
                logger.warning(
                    f"Chain {result.chain_id} cancelled during warmup "
                    f"({result.iterations_completed}/{result.warmup}); discarded"
                )

        timed_out = [r for r in finished if r.status == 'timed_out']
        kept = [r for r in finished if r.status == 'complete']
        kept_timed_out = []
        for result in timed_out:
            if result.warmup_complete and result.n_draws > 0:
                kept_timed_out.append(result)
            else:
                logger.warning(
                    f"Chain {result.chain_id} timed out before retaining a draw "
                    f"({result.iterations_completed}/{result.warmup} warmup); discarded"
                )

        if kept_timed_out:
            kept += kept_timed_out
            shortest = min(r.iterations_completed for r in kept_timed_out)
            logger.warning(
                f"Timeout after {self.config['timeout']}s: trimming "
                f"{len(kept)} chain(s) to {shortest} iterations"
            )
            kept = [r.truncate(shortest) for r in kept]

        results = kept + kept_cancelled
        if not results:
            raise CancellationError(
                "No usable chains: every chain was cancelled or timed out before retaining a draw"
            )
        return sorted(results, key=lambda r: r.chain_id)


def run_chains(model: ModelSpec, config: Optional[Dict[str, Any]] = None,
               progress_callback: Optional[Callable[[int, int], None]] = None) -> PosteriorSamples:
    """Run the chains of a model with a fresh ChainManager."""
    return ChainManager(model, config).run(progress_callback=progress_callback)


def sample(observations: Iterable, config: Optional[Dict[str, Any]] = None,
           groups=None, progress_callback=None) -> PosteriorSamples:
    """
    Build a model from (group, value) observations and sample it.

    config['shared_sigma'] (default True) selects the sigma layout.
    """
    config = dict(config or {})
    shared_sigma = config.setdefault('shared_sigma', True)
    if not isinstance(shared_sigma, bool):
        raise ConfigurationError(f"shared_sigma must be a bool, got {shared_sigma!r}")
    model = build(observations, shared_sigma=shared_sigma, groups=groups)
    return run_chains(model, config, progress_callback=progress_callback)
