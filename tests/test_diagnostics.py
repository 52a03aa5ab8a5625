"""
Diagnostics Tests

Tests R-hat against the manual Gelman-Rubin calculation, the
autocorrelation and ESS estimators against known processes, and the
warnings raised by diagnose().

Run with: pytest tests/test_diagnostics.py -v
"""

import logging
import warnings

import numpy as np
import jax.numpy as jnp
import pytest

from hierbayes.error_handling import ConvergenceWarning
from hierbayes.history_processing import apply_warmup, combine_chain_results, retained_mask
from hierbayes.mcmc.diagnostics import (
    DiagnosticReport,
    autocorrelation,
    chain_autocorrelation,
    compute_rhat,
    diagnose,
    effective_sample_size,
    print_rhat_summary,
)
from hierbayes.mcmc.types import ChainResult


def ar1(n, phi, seed=0):
    """AR(1) series x_t = phi * x_{t-1} + e_t."""
    rng = np.random.default_rng(seed)
    noise = rng.normal(size=n)
    x = np.empty(n)
    x[0] = noise[0]
    for t in range(1, n):
        x[t] = phi * x[t - 1] + noise[t]
    return x


def make_samples(model, per_chain_draws, completed=None, requested=None, rates=None, config=None):
    """PosteriorSamples from explicit per-chain draw arrays."""
    results = []
    for chain_id, draws in enumerate(per_chain_draws):
        n = draws.shape[0]
        results.append(ChainResult(
            chain_id=chain_id,
            draws=np.asarray(draws, dtype=np.float64),
            iterations=np.arange(n),
            iterations_requested=requested or n,
            iterations_completed=(completed or {}).get(chain_id, n),
            warmup=0,
            acceptance_rates=(rates or {}).get(chain_id, {'tau': 0.4, 'sigma': 0.4}),
        ))
    return combine_chain_results(results, model, config or {'rhat_threshold': 1.1, 'min_ess': 100, 'max_lag': 100})


def iid_draws(model, n, seed, offset=0.0):
    rng = np.random.default_rng(seed)
    return rng.normal(offset, 1.0, size=(n, model.n_params))


class TestComputeRhat:
    """Gelman-Rubin R-hat."""

    def test_perfect_convergence(self):
        """If all chains are identical, R-hat equals sqrt((n-1)/n)."""
        n_samples = 100
        chain_data = np.random.default_rng(0).normal(size=(n_samples, 1))
        history = np.repeat(chain_data[:, np.newaxis, :], 4, axis=1)

        rhat = compute_rhat(jnp.array(history))
        assert float(rhat[0]) == pytest.approx(np.sqrt((n_samples - 1) / n_samples), abs=1e-10)

    def test_matches_manual_calculation(self):
        rng = np.random.default_rng(42)
        n_samples, m, n_params = 100, 6, 3
        history = rng.normal(0, 1, (n_samples, m, n_params))

        chain_means = np.mean(history, axis=0)
        B = n_samples * np.var(chain_means, axis=0, ddof=1)
        W = np.mean(np.var(history, axis=0, ddof=1), axis=0)
        V_hat = ((n_samples - 1) / n_samples) * W + B / n_samples + B / (m * n_samples)
        rhat_manual = np.sqrt(V_hat / W)

        np.testing.assert_allclose(np.asarray(compute_rhat(jnp.array(history))), rhat_manual, rtol=1e-10)

    def test_detects_separated_chains(self):
        history = np.zeros((10, 2, 1))
        rng = np.random.default_rng(123)
        history[:, 0, 0] = rng.normal(0.0, 0.01, 10)
        history[:, 1, 0] = rng.normal(10.0, 0.01, 10)
        assert float(compute_rhat(jnp.array(history))[0]) > 5.0

    def test_well_mixed_chains(self):
        history = np.random.default_rng(1).normal(size=(1000, 4, 2))
        assert np.all(np.asarray(compute_rhat(jnp.array(history))) < 1.01)


class TestAutocorrelation:

    def test_lag_zero_is_one(self):
        rho = autocorrelation(np.random.default_rng(0).normal(size=200), 10)
        assert rho.shape == (11,)
        assert rho[0] == pytest.approx(1.0)

    def test_ar1_decay(self):
        rho = autocorrelation(ar1(20000, 0.8, seed=3), 3)
        np.testing.assert_allclose(rho[1:], [0.8, 0.64, 0.512], atol=0.03)

    def test_bounded(self):
        rho = autocorrelation(np.random.default_rng(2).normal(size=50), 49)
        assert np.all(np.abs(rho) <= 1.0 + 1e-12)

    def test_max_lag_cut_to_length(self):
        assert autocorrelation(np.arange(5.0), 100).shape == (5,)

    def test_constant_series(self):
        rho = autocorrelation(np.full(30, 2.0), 5)
        np.testing.assert_array_equal(rho, np.ones(6))

    def test_per_chain_shape(self):
        history = np.random.default_rng(0).normal(size=(100, 3, 4))
        assert chain_autocorrelation(history, 20).shape == (21, 3, 4)


class TestEffectiveSampleSize:

    def test_iid_close_to_n(self):
        history = np.random.default_rng(5).normal(size=(2000, 2, 1))
        ess = effective_sample_size(history, max_lag=100)
        assert 3000 < ess[0] <= 4000

    def test_ar1_matches_theory(self):
        phi = 0.9
        history = np.stack([ar1(20000, phi, seed=s) for s in (0, 1)], axis=1)[:, :, None]
        ess = effective_sample_size(history, max_lag=500)
        # Integrated autocorrelation time of AR(1): (1 + phi) / (1 - phi)
        expected = 40000 * (1 - phi) / (1 + phi)
        assert ess[0] == pytest.approx(expected, rel=0.3)

    def test_bounds(self):
        rng = np.random.default_rng(9)
        history = np.stack([ar1(300, 0.99, seed=1), rng.normal(size=300)], axis=1)[:, :, None]
        ess = effective_sample_size(history, max_lag=50)
        assert 0 <= ess[0] <= 600

    def test_anticorrelated_does_not_exceed_n(self):
        x = np.tile([1.0, -1.0], 100) + np.random.default_rng(0).normal(0, 0.01, 200)
        ess = effective_sample_size(x.reshape(-1, 1, 1), max_lag=20)
        assert ess[0] <= 200

    def test_constant_chain_small_ess(self):
        history = np.full((500, 1, 1), 3.0)
        assert effective_sample_size(history, max_lag=100)[0] < 5


class TestDiagnose:

    def test_converged_run_has_no_warnings(self, small_model):
        samples = make_samples(small_model, [iid_draws(small_model, 500, s) for s in (0, 1)])
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            report = diagnose(samples)
        assert report.all_converged
        assert report.warnings == []
        assert report.rhat.shape == (small_model.n_params,)

    def test_single_chain_omits_rhat(self, small_model):
        samples = make_samples(small_model, [iid_draws(small_model, 500, 0)])
        report = diagnose(samples)
        assert report.rhat is None
        assert report.get_rhat('tau') is None
        assert 'rhat' not in report.to_frame().columns

    def test_high_rhat_warns(self, small_model):
        samples = make_samples(small_model, [
            iid_draws(small_model, 500, 0, offset=0.0),
            iid_draws(small_model, 500, 1, offset=10.0),
        ])
        with pytest.warns(ConvergenceWarning, match="R-hat"):
            report = diagnose(samples)
        assert not report.all_converged
        assert report.get_rhat('mu0') > 1.1
        # Draws are reported, not discarded
        assert samples.n_draws == 1000

    def test_low_ess_warns(self, small_model):
        samples = make_samples(small_model, [iid_draws(small_model, 40, s) for s in (0, 1)])
        with pytest.warns(ConvergenceWarning, match="Effective sample size"):
            report = diagnose(samples)
        assert np.all(report.ess <= 80)

    def test_unequal_and_short_chains_warn(self, small_model):
        samples = make_samples(
            small_model,
            [iid_draws(small_model, 500, 0), iid_draws(small_model, 300, 1)],
            completed={1: 300},
            requested=500,
        )
        with pytest.warns(ConvergenceWarning) as record:
            report = diagnose(samples)
        messages = [str(w.message) for w in record]
        assert any("unequal" in m for m in messages)
        assert any("fewer iterations" in m for m in messages)
        assert report.autocorrelation.shape[1] == 2

    def test_low_acceptance_warns(self, small_model):
        samples = make_samples(
            small_model,
            [iid_draws(small_model, 500, s) for s in (0, 1)],
            rates={0: {'tau': 0.02, 'sigma': 0.4}},
        )
        with pytest.warns(ConvergenceWarning, match="acceptance"):
            diagnose(samples)

    def test_stuck_chain_warns(self, small_model):
        stuck = np.ones((500, small_model.n_params))
        samples = make_samples(small_model, [iid_draws(small_model, 500, 0), stuck])
        with pytest.warns(ConvergenceWarning, match="stuck"):
            report = diagnose(samples)
        assert not report.all_converged

    def test_emit_warnings_off(self, small_model):
        samples = make_samples(small_model, [iid_draws(small_model, 30, s) for s in (0, 1)])
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            report = diagnose(samples, emit_warnings=False)
        assert report.warnings

    def test_report_frame(self, small_model):
        samples = make_samples(small_model, [iid_draws(small_model, 500, s) for s in (0, 1)])
        df = diagnose(samples).to_frame()
        assert list(df.index) == list(small_model.param_names)
        assert list(df.columns) == ['ess', 'rhat', 'converged']


class TestWarmupFilter:

    def test_retained_mask_count(self):
        iterations = np.arange(20000)
        assert int(np.sum(retained_mask(iterations, 10000, 10))) == 1000

    def test_apply_warmup(self):
        draws = np.random.default_rng(0).normal(size=(10, 3))
        iterations = np.arange(10)
        kept, kept_iterations = apply_warmup(draws, iterations, warmup=4, thin=2)
        np.testing.assert_array_equal(kept_iterations, [5, 7, 9])
        np.testing.assert_array_equal(kept, draws[[5, 7, 9]])

    def test_apply_warmup_keeps_all_if_zero(self):
        draws = np.zeros((10, 2))
        kept, _ = apply_warmup(draws, np.arange(10), warmup=0)
        assert kept.shape[0] == 10


class TestRhatSummaryLog:

    def test_diagnose_logs_rhat_summary(self, small_model, caplog):
        samples = make_samples(small_model, [iid_draws(small_model, 500, s) for s in (0, 1)])
        with caplog.at_level(logging.INFO, logger='hierbayes'):
            diagnose(samples, emit_warnings=False)
        assert "Standard R-hat (2 chains)" in caplog.text
        assert "Converged (max <= 1.1000)" in caplog.text

    def test_single_chain_logs_omission(self, small_model, caplog):
        samples = make_samples(small_model, [iid_draws(small_model, 500, 0)])
        with caplog.at_level(logging.INFO, logger='hierbayes'):
            diagnose(samples, emit_warnings=False)
        assert "R-hat not computed" in caplog.text

    def test_non_finite_rhat(self, small_model, caplog):
        rhat = np.full(small_model.n_params, np.nan)
        report = DiagnosticReport(
            param_names=small_model.param_names,
            ess=np.zeros(small_model.n_params),
            autocorrelation=np.empty((0, 2, small_model.n_params)),
            rhat=rhat,
            converged=np.zeros(small_model.n_params, dtype=bool),
            warnings=[],
            n_chains=2,
            chain_lengths={0: 10, 1: 10},
            rhat_threshold=1.1,
            min_ess=100,
        )
        with caplog.at_level(logging.INFO, logger='hierbayes'):
            print_rhat_summary(report)
        assert f"{small_model.n_params} params have NaN/Inf R-hat" in caplog.text
        assert "no finite R-hat" in caplog.text
