"""
Model Specification Tests

Run with: pytest tests/test_model.py -v
"""

import numpy as np
import pandas as pd
import pytest

from hierbayes.error_handling import ConfigurationError
from hierbayes.model import ModelRoles, build, build_from_frame


class TestBuild:

    def test_sufficient_statistics(self):
        obs = [('a', 1.0), ('b', 4.0), ('a', 3.0), ('b', 6.0), ('b', 5.0)]
        model = build(obs)

        assert model.group_labels == ('a', 'b')
        np.testing.assert_array_equal(model.counts, [2, 3])
        np.testing.assert_allclose(model.sums, [4.0, 15.0])
        np.testing.assert_allclose(model.means, [2.0, 5.0])
        np.testing.assert_allclose(model.within_ss, [2.0, 2.0])
        assert model.n_obs == 5
        assert model.grand_mean == pytest.approx(19.0 / 5)

    def test_single_observation_group_has_zero_ss(self):
        model = build([('a', 1.0), ('a', 2.0), ('solo', 3.5)])
        assert model.within_ss[1] == 0.0
        assert np.all(np.isfinite(model.within_ss))

    def test_param_names_shared_sigma(self):
        model = build([(1, 0.0), (2, 1.0)], shared_sigma=True)
        assert model.param_names == ('mu[1]', 'mu[2]', 'mu0', 'tau', 'sigma')
        assert model.n_params == 5
        assert model.param_index('tau') == 3

    def test_param_names_per_group_sigma(self):
        model = build([('x', 0.0), ('y', 1.0)], shared_sigma=False)
        assert model.param_names == ('mu[x]', 'mu[y]', 'mu0', 'tau', 'sigma[x]', 'sigma[y]')
        assert model.sigma_slice == slice(4, 6)

    def test_unknown_param_name(self):
        model = build([('x', 0.0)])
        with pytest.raises(KeyError):
            model.param_index('beta')

    def test_empty_observations(self):
        with pytest.raises(ConfigurationError):
            build([])

    def test_zero_observation_group(self):
        with pytest.raises(ConfigurationError, match="zero observations"):
            build([('a', 1.0), ('b', 2.0)], groups=['a', 'b', 'c'])

    def test_undeclared_group(self):
        with pytest.raises(ConfigurationError, match="undeclared"):
            build([('a', 1.0), ('z', 2.0)], groups=['a'])

    def test_non_finite_value(self):
        with pytest.raises(ConfigurationError, match="non-finite"):
            build([('a', 1.0), ('a', float('nan'))])

    def test_malformed_record(self):
        with pytest.raises(ConfigurationError):
            build([('a', 1.0, 2.0)])

    def test_all_errors_reported_together(self):
        with pytest.raises(ConfigurationError) as excinfo:
            build([('a', float('inf')), ('b', 1.0)], groups=['a', 'b', 'c'])
        message = str(excinfo.value)
        assert "non-finite" in message
        assert "zero observations" in message

    def test_stats_are_float64(self):
        stats = build([('a', 1.0), ('b', 2.0)]).stats()
        assert stats.counts.dtype == np.float64
        assert stats.within_ss.dtype == np.float64


class TestBuildFromFrame:

    def test_binds_roles(self):
        df = pd.DataFrame({'restaurant': ['r1', 'r2', 'r1'], 'rating': [4.0, 2.5, 3.0]})
        model = build_from_frame(df, ModelRoles(outcome='rating', group='restaurant'))
        assert model.group_labels == ('r1', 'r2')
        np.testing.assert_allclose(model.means, [3.5, 2.5])

    def test_drops_missing_rows(self):
        df = pd.DataFrame({'g': ['a', 'a', None, 'b'], 'y': [1.0, np.nan, 2.0, 3.0]})
        model = build_from_frame(df, ModelRoles(outcome='y', group='g'))
        assert model.n_obs == 2

    def test_missing_column(self):
        df = pd.DataFrame({'g': ['a'], 'y': [1.0]})
        with pytest.raises(ConfigurationError, match="missing columns"):
            build_from_frame(df, ModelRoles(outcome='score', group='g'))
