"""
MCMC Subpackage - Core sampling implementation.

This package contains the Metropolis-within-Gibbs engine:
- backend: Chain manager (ChainManager, run_chains, sample)
- single_run: One chain from start to finish (run_single_chain)
- kernel: Stateful single-chain kernel (GibbsKernel)
- compile: Chunk runner compilation and caching
- config: Configuration, keys and initial states
- diagnostics: Autocorrelation, ESS, R-hat and the diagnostic report
- sampling: Conjugate and log-scale Metropolis updates
- scan: JAX scan body and warmup step-size tuning
- types: Core data structures (ChainState, RunParams, ChainResult)
- utils: Config defaults
"""

# Import types first (needed by other modules)
from .types import ChainState, ChainResult, KernelStatus, RunParams

# Import main entry points
from .backend import ChainManager, run_chains, sample
from .single_run import run_single_chain
from .kernel import GibbsKernel

# Import commonly used functions
from .config import configure_sampler, chain_keys, resolve_initial_state
from .diagnostics import (
    DiagnosticReport,
    autocorrelation,
    chain_autocorrelation,
    compute_rhat,
    diagnose,
    effective_sample_size,
    print_acceptance_summary,
    print_rhat_summary,
)
from .compile import get_chunk_runner, clear_compiled_kernel_cache
from .utils import clean_config

__all__ = [
    # Main entry points
    'ChainManager',
    'run_chains',
    'sample',
    'run_single_chain',
    'GibbsKernel',
    # Types
    'ChainState',
    'ChainResult',
    'KernelStatus',
    'RunParams',
    # Config
    'clean_config',
    'configure_sampler',
    'chain_keys',
    'resolve_initial_state',
    # Diagnostics
    'DiagnosticReport',
    'autocorrelation',
    'chain_autocorrelation',
    'compute_rhat',
    'diagnose',
    'effective_sample_size',
    'print_acceptance_summary',
    'print_rhat_summary',
    # Compile
    'get_chunk_runner',
    'clear_compiled_kernel_cache',
]
