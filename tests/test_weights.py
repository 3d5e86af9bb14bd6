import pytest
import warnings

import numpy as np
import numpy.testing as npt
import pandas as pd

from statsmodels.tools.sm_exceptions import (ConvergenceWarning, IterationLimitWarning, PerfectSeparationError,
                                             PerfectSeparationWarning)

from ipweights import (iptw_weights, smr_weights, ipcw_weights, bound_probability, check_probability,
                       fit_nuisance_model, DegenerateWeightError, SpecificationError, ConvergenceError)
from ipweights.weights import _fit_with_convergence_check_


class TestTreatmentWeights:

    def test_iptw(self):
        npt.assert_allclose(iptw_weights([1, 1, 0, 0], [0.5, 0.5, 0.5, 0.5]),
                            [2, 2, 2, 2])

    def test_iptw_varying(self):
        npt.assert_allclose(iptw_weights([1, 1, 0, 0], [0.25, 0.5, 0.25, 0.5]),
                            [4, 2, 1 / 0.75, 2])

    def test_iptw_stabilized(self):
        npt.assert_allclose(iptw_weights([1, 1, 0, 0], [0.25, 0.5, 0.25, 0.5], stabilized=True),
                            [2, 1, 0.5 / 0.75, 1])

    def test_iptw_degenerate(self):
        with pytest.raises(DegenerateWeightError):
            iptw_weights([1, 0, 0], [1.0, 0.5, 0.5])
        with pytest.raises(DegenerateWeightError):
            iptw_weights([1, 0, 0], [0.5, 0.0, 0.5])
        with pytest.raises(DegenerateWeightError):
            iptw_weights([1, 0, 0], [0.5, np.nan, 0.5])

    def test_smr(self):
        npt.assert_allclose(smr_weights([1, 0, 0], [0.8, 0.5, 0.2]),
                            [1, 1, 0.25])

    def test_smr_degenerate(self):
        with pytest.raises(DegenerateWeightError):
            smr_weights([1, 0, 0], [0.8, 1.0, 0.2])


class TestCensoringWeights:

    def test_ipcw(self):
        npt.assert_allclose(ipcw_weights([1, 0, 1], [0.5, 0.4, 0.8]),
                            [2, np.nan, 1.25])

    def test_ipcw_censored_is_missing(self):
        w = ipcw_weights([0, 0], [0.5, 0.5])
        assert np.all(np.isnan(w))

    def test_ipcw_degenerate(self):
        with pytest.raises(DegenerateWeightError):
            ipcw_weights([1, 0, 1], [0.0, 0.4, 0.8])

    def test_check_probability(self):
        npt.assert_allclose(check_probability([0.1, 0.9]), [0.1, 0.9])
        with pytest.raises(DegenerateWeightError):
            check_probability([0.1, 1.2])


class TestBoundProbability:

    def test_symmetric(self):
        npt.assert_allclose(bound_probability([0.01, 0.5, 0.99], bounds=0.05),
                            [0.05, 0.5, 0.95])

    def test_asymmetric(self):
        npt.assert_allclose(bound_probability([0.01, 0.5, 0.99], bounds=[0.1, 0.8]),
                            [0.1, 0.5, 0.8])

    def test_input_not_modified(self):
        v = np.array([0.01, 0.5, 0.99])
        bound_probability(v, bounds=0.05)
        npt.assert_equal(v, [0.01, 0.5, 0.99])

    def test_error_bounds(self):
        with pytest.raises(ValueError):
            bound_probability([0.5], bounds=1)
        with pytest.raises(ValueError):
            bound_probability([0.5], bounds='0.1')
        with pytest.raises(ValueError):
            bound_probability([0.5], bounds=[0.9, 0.1])
        with pytest.raises(ValueError):
            bound_probability([0.5], bounds=[0.0, 0.9])
        with pytest.raises(ValueError):
            bound_probability([0.5], bounds=0.7)

    def test_warn_extra_bounds(self):
        with pytest.warns(UserWarning):
            bound_probability([0.5], bounds=[0.1, 0.9, 0.95])


class TestNuisanceModel:

    @pytest.fixture
    def df(self):
        d = pd.DataFrame()
        d['A'] = [1, 1, 0, 0, 1, 0, 1, 0]
        d['W'] = [1, 0, 1, 0, 1, 1, 0, 0]
        return d

    def test_intercept_only(self, df):
        fm = fit_nuisance_model(df, 'A', '1')
        npt.assert_allclose(fm.predict(df), [0.5] * 8, atol=1e-7)

    def test_covariate(self, df):
        fm = fit_nuisance_model(df, 'A', 'W')
        # Pr(A=1|W=1) = 2/4 and Pr(A=1|W=0) = 2/4
        npt.assert_allclose(fm.predict(df), [0.5] * 8, atol=1e-7)
        assert list(fm.params.index) == ['Intercept', 'W']

    def test_error_missing_covariate(self, df):
        with pytest.raises(SpecificationError):
            fit_nuisance_model(df, 'A', 'W + Z')

    def test_error_missing_target(self, df):
        with pytest.raises(SpecificationError):
            fit_nuisance_model(df, 'B', 'W')

    def test_verbose(self, df, capsys):
        fit_nuisance_model(df, 'A', 'W', verbose=True, label='Treatment Model')
        captured = capsys.readouterr()
        assert 'Treatment Model' in captured.out

    def test_error_missing_target_value(self, df):
        df['A'] = df['A'].astype(float)
        df.loc[2, 'A'] = np.nan
        with pytest.raises(SpecificationError):
            fit_nuisance_model(df, 'A', 'W')

    def test_numpy_transform(self, df):
        df['L'] = [2., 5., 1., 3., 6., 4., 8., 7.]
        fm = fit_nuisance_model(df, 'A', 'np.log(L)')
        assert list(fm.params.index) == ['Intercept', 'np.log(L)']

    def test_perfect_separation(self, df):
        with pytest.raises(ConvergenceError):
            fit_nuisance_model(df, 'A', 'A')


class TestConvergenceCheck:

    @staticmethod
    def warns_with(category):
        def fit():
            warnings.warn("Maximum number of iterations has been exceeded", category)
            return 5
        return fit

    def test_convergence_warning(self):
        with pytest.raises(ConvergenceError, match="Outcome Model: Maximum number of iterations"):
            _fit_with_convergence_check_(self.warns_with(ConvergenceWarning), description='Outcome Model')

    def test_iteration_limit_warning(self):
        with pytest.raises(ConvergenceError):
            _fit_with_convergence_check_(self.warns_with(IterationLimitWarning), description='Outcome Model')

    def test_perfect_separation_warning(self):
        with pytest.raises(ConvergenceError):
            _fit_with_convergence_check_(self.warns_with(PerfectSeparationWarning), description='Treatment Model')

    def test_perfect_separation_error(self):
        def fit():
            raise PerfectSeparationError("Perfect separation detected")

        with pytest.raises(ConvergenceError, match="Perfect separation"):
            _fit_with_convergence_check_(fit, description='Treatment Model')

    def test_other_warning_reissued(self):
        with pytest.warns(RuntimeWarning, match="Maximum number"):
            results = _fit_with_convergence_check_(self.warns_with(RuntimeWarning), description='Outcome Model')
        assert results == 5

    def test_no_warning(self):
        assert _fit_with_convergence_check_(lambda: 5, description='Outcome Model') == 5
