"""
Gibbs Kernel State Machine Tests

Run with: pytest tests/test_kernel.py -v
"""

import numpy as np
import jax
import pytest

from hierbayes.mcmc.compile import get_chunk_runner, get_compiled_kernel_cache
from hierbayes.mcmc.kernel import GibbsKernel
from hierbayes.mcmc.types import KernelStatus, RunParams, make_chain_state


def make_kernel(model, prior_config, warmup=20, chunk_size=25, seed=0):
    run_params = RunParams(WARMUP=warmup, SHARED_SIGMA=model.shared_sigma, TUNE_INTERVAL=10)
    return GibbsKernel(model, prior_config, run_params, jax.random.PRNGKey(seed), chunk_size=chunk_size)


class TestKernelLifecycle:

    def test_starts_uninitialized(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config)
        assert kernel.status is KernelStatus.UNINITIALIZED
        assert kernel.iteration == 0
        assert kernel.last_draw is None

    def test_start_moves_to_running(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config)
        kernel.start()
        assert kernel.status is KernelStatus.RUNNING
        assert kernel.last_draw.shape == (small_model.n_params,)

    def test_start_twice_raises(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config)
        kernel.start()
        with pytest.raises(RuntimeError):
            kernel.start()

    def test_first_step_starts_implicitly(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config)
        draw = kernel.step()
        assert kernel.status is KernelStatus.RUNNING
        assert draw.shape == (small_model.n_params,)
        assert kernel.iteration == 1

    def test_stop_is_terminal(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config)
        kernel.run(5)
        last = kernel.last_draw
        kernel.stop()
        assert kernel.status is KernelStatus.STOPPED

        np.testing.assert_array_equal(kernel.step(), last)
        assert kernel.run(10).shape == (0, small_model.n_params)
        assert kernel.iteration == 5

        kernel.start()
        kernel.stop()
        assert kernel.status is KernelStatus.STOPPED

    def test_explicit_initial_state(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config)
        state = make_chain_state([1.0, 2.0, 3.0], 2.0, 0.7, [0.4])
        kernel.start(state)
        np.testing.assert_allclose(kernel.last_draw, [1.0, 2.0, 3.0, 2.0, 0.7, 0.4])


class TestKernelRun:

    def test_run_shapes_and_positivity(self, small_model_per_group, prior_config):
        model = small_model_per_group
        kernel = make_kernel(model, prior_config)
        draws = kernel.run(60)

        assert draws.shape == (60, model.n_params)
        assert kernel.iteration == 60
        assert np.all(draws[:, model.param_index('tau')] > 0)
        assert np.all(draws[:, model.sigma_slice] > 0)

    def test_draws_are_read_only(self, small_model, prior_config):
        draws = make_kernel(small_model, prior_config).run(3)
        with pytest.raises(ValueError):
            draws[0, 0] = 1.0

    def test_chunking_does_not_change_draws(self, small_model, prior_config):
        a = make_kernel(small_model, prior_config, chunk_size=10).run(50)
        b = make_kernel(small_model, prior_config, chunk_size=25).run(50)
        assert np.array_equal(a, b)

    def test_same_key_same_draws(self, small_model, prior_config):
        a = make_kernel(small_model, prior_config).run(40)
        b = make_kernel(small_model, prior_config).run(40)
        assert np.array_equal(a, b)

    def test_acceptance_and_step_sizes(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config, warmup=20)
        assert set(kernel.step_sizes()) == {'tau', 'sigma'}
        kernel.run(10)
        assert all(np.isnan(r) for r in kernel.acceptance_rates().values())

        kernel.run(50)
        rates = kernel.acceptance_rates()
        assert all(0.0 <= r <= 1.0 for r in rates.values())
        assert all(s > 0 for s in kernel.step_sizes().values())

    def test_runners_cached(self, small_model, prior_config):
        kernel = make_kernel(small_model, prior_config, chunk_size=13)
        kernel.run(13)
        assert (kernel.run_params, 13) in get_compiled_kernel_cache()
        assert get_chunk_runner(kernel.run_params, 13) is get_compiled_kernel_cache()[(kernel.run_params, 13)]
