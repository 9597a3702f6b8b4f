"""
Tests for predict(), observation_diagnostics() and flag_influential().

Validates:
    - Predictions on the fitting table reproduce fitted values
      (probabilities for logistic, Xβ for linear models)
    - New rows are coded against the levels seen at fit time
    - Missing, mistyped or unseen predictor values are rejected
    - Logistic diagnostics come from the IRLS payload
    - OLS diagnostics equal R's hatvalues / rstandard / cooks.distance
    - flag_influential() needs a threshold and flags strictly above it
"""

import numpy as np
import pytest

from pylongreg.core.exceptions import UnknownLevelError, ValidationError
from pylongreg.data import Table, coerce_categorical
from pylongreg.inference import (
    flag_influential,
    observation_diagnostics,
    predict,
)


# ═══════════════════════════════════════════════════════════════════════
# predict()
# ═══════════════════════════════════════════════════════════════════════


class TestPredict:

    def test_logistic_training_rows(self, logit_model, admissions):
        pred = predict(logit_model, admissions)
        np.testing.assert_allclose(pred, logit_model.params.fitted_values, rtol=1e-10)
        assert np.all((pred > 0.0) & (pred < 1.0))

    def test_lmm_population_level(self, lmm_model, orthodont):
        pred = predict(lmm_model, orthodont)
        np.testing.assert_allclose(pred, lmm_model.working.X @ lmm_model.beta)
        # population predictions ignore the subject BLUPs
        assert not np.allclose(pred, lmm_model.params.fitted_values)

    def test_new_rows(self, logit_model):
        new = Table.from_arrays(
            gre=np.array([600.0, 600.0]),
            gpa=np.array([3.5, 3.5]),
            rank=np.array(['1', '4'], dtype=object),
        )
        new = coerce_categorical(new, 'rank', ('1', '2', '3', '4'))
        p_top, p_bottom = predict(logit_model, new)
        coef = logit_model.coefficients
        eta = coef['(Intercept)'] + 600.0 * coef['gre'] + 3.5 * coef['gpa']
        np.testing.assert_allclose(p_top, 1.0 / (1.0 + np.exp(-eta)))
        assert p_bottom < p_top

    def test_response_not_needed(self, cs_model):
        new = Table.from_arrays(
            age=np.array([9.0, 13.0]),
            Sex=np.array(['Female', 'Male'], dtype=object),
        )
        pred = predict(cs_model, new)
        coef = cs_model.coefficients
        np.testing.assert_allclose(
            pred[0], coef['(Intercept)'] + 9.0 * coef['age'],
        )
        assert pred.shape == (2,)


class TestPredictValidation:

    def test_missing_column(self, logit_model):
        new = Table.from_arrays(gre=np.array([600.0]), gpa=np.array([3.5]))
        with pytest.raises(ValidationError, match="no column 'rank'"):
            predict(logit_model, new)

    def test_missing_values(self, cs_model):
        new = Table.from_arrays(
            age=np.array([9.0, np.nan]),
            Sex=np.array(['Female', 'Male'], dtype=object),
        )
        with pytest.raises(ValidationError, match="missing values"):
            predict(cs_model, new)

    def test_numeric_codes_for_factor(self, logit_model):
        # all-numeric strings load as a numeric column
        new = Table.from_arrays(
            gre=np.array([600.0]),
            gpa=np.array([3.5]),
            rank=np.array(['2'], dtype=object),
        )
        with pytest.raises(ValidationError, match="must be categorical"):
            predict(logit_model, new)

    def test_unseen_level(self, cs_model):
        new = Table.from_arrays(
            age=np.array([9.0, 10.0]),
            Sex=np.array(['Female', 'Other'], dtype=object),
        )
        with pytest.raises(UnknownLevelError) as info:
            predict(cs_model, new)
        assert info.value.values == ('Other',)


# ═══════════════════════════════════════════════════════════════════════
# observation_diagnostics()
# ═══════════════════════════════════════════════════════════════════════


class TestLogisticDiagnostics:

    def test_from_payload(self, logit_model):
        diag = observation_diagnostics(logit_model)
        params = logit_model.params
        assert diag.n == 400
        np.testing.assert_array_equal(diag.leverage, params.hat_values)
        np.testing.assert_array_equal(diag.cooks_distance, params.cooks_distance)
        np.testing.assert_array_equal(diag.std_pearson, params.std_pearson_residuals)
        np.testing.assert_array_equal(diag.std_residual, params.std_deviance_residuals)

    def test_copies(self, logit_model):
        diag = observation_diagnostics(logit_model)
        diag.leverage[0] = -1.0
        assert logit_model.params.hat_values[0] >= 0.0

    def test_records(self, logit_model):
        records = observation_diagnostics(logit_model).to_records()
        assert len(records) == 400
        assert set(records[0]) == {
            'index', 'fitted', 'leverage', 'std_residual', 'std_pearson', 'cooks_distance',
        }
        assert records[7]['index'] == 7
        assert isinstance(records[7]['leverage'], float)


class TestLinearDiagnostics:

    def test_ols_matches_r(self, ols_model):
        X = ols_model.working.X
        e = ols_model.working.residuals
        n, p = X.shape
        H = X @ np.linalg.solve(X.T @ X, X.T)
        h = np.diag(H)
        sigma = np.sqrt(np.sum(e ** 2) / (n - p))

        diag = observation_diagnostics(ols_model)
        np.testing.assert_allclose(diag.leverage, h, rtol=1e-8)
        np.testing.assert_allclose(diag.std_residual, e / (sigma * np.sqrt(1 - h)), rtol=1e-8)
        np.testing.assert_allclose(
            diag.cooks_distance, e ** 2 * h / (p * sigma ** 2 * (1 - h) ** 2), rtol=1e-8,
        )

    def test_correlated_leverage_sums_to_p(self, cs_model):
        diag = observation_diagnostics(cs_model)
        np.testing.assert_allclose(diag.leverage.sum(), 4.0, rtol=1e-8)
        assert np.all((diag.leverage >= 0.0) & (diag.leverage <= 1.0))

    def test_fitted_is_population_mean(self, lmm_model):
        diag = observation_diagnostics(lmm_model)
        np.testing.assert_allclose(
            diag.fitted, lmm_model.working.X @ lmm_model.beta, rtol=1e-8,
        )


# ═══════════════════════════════════════════════════════════════════════
# flag_influential()
# ═══════════════════════════════════════════════════════════════════════


class TestFlagInfluential:

    def test_needs_threshold(self, logit_model):
        with pytest.raises(ValidationError, match="no default cutoffs"):
            flag_influential(logit_model)

    def test_leverage(self, logit_model):
        threshold = 2 * 6 / 400
        flagged = flag_influential(logit_model, leverage_threshold=threshold)
        expected = np.flatnonzero(logit_model.params.hat_values > threshold)
        np.testing.assert_array_equal(flagged, expected)

    def test_union_sorted(self, ols_model):
        diag = observation_diagnostics(ols_model)
        lev = float(np.quantile(diag.leverage, 0.9))
        cook = float(np.quantile(diag.cooks_distance, 0.9))
        flagged = flag_influential(ols_model, leverage_threshold=lev, cooks_threshold=cook)
        expected = np.flatnonzero((diag.leverage > lev) | (diag.cooks_distance > cook))
        np.testing.assert_array_equal(flagged, expected)
        assert np.all(np.diff(flagged) > 0)

    def test_strictly_above(self, ols_model):
        diag = observation_diagnostics(ols_model)
        top = float(diag.cooks_distance.max())
        assert len(flag_influential(ols_model, cooks_threshold=top)) == 0

    def test_nothing_flagged(self, cs_model):
        flagged = flag_influential(cs_model, cooks_threshold=1e6)
        assert flagged.dtype == np.intp
        assert len(flagged) == 0
