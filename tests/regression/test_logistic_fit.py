"""
Tests for logistic regression by IRLS.

Validates:
    - Admissions-style fit: names, score equations, deviance identities
    - Model-based covariance is (X'WX)⁻¹
    - Hat values, residuals and Cook's distance from the payload
    - Response validation (categorical, missing, non-binary)
    - IRLS budget exhaustion raises NonConvergenceError
    - Binomial family and logit link primitives
"""

import numpy as np
import pytest

from pylongreg.core.capabilities import KIND_LOGISTIC, METHOD_ML
from pylongreg.core.compute.tolerances import FitControl
from pylongreg.core.exceptions import (
    DimensionError,
    InvalidResponseError,
    NonConvergenceError,
    RankDeficientError,
    ValidationError,
)
from pylongreg.data import Table
from pylongreg.design import ModelSpec
from pylongreg.regression import Binomial, LogitLink, fit_logistic_regression, logistic


@pytest.fixture
def admit_spec():
    return ModelSpec.builder('admit').main('gre', 'gpa', 'rank').build()


@pytest.fixture
def admit_model(admissions, admit_spec):
    return fit_logistic_regression(admissions, admit_spec)


# ═══════════════════════════════════════════════════════════════════════
# Fit
# ═══════════════════════════════════════════════════════════════════════


class TestFit:

    def test_structure(self, admit_model):
        assert admit_model.kind == KIND_LOGISTIC
        assert admit_model.method == METHOD_ML
        assert admit_model.coefficient_names == (
            '(Intercept)', 'gre', 'gpa', 'rank2', 'rank3', 'rank4',
        )
        assert admit_model.n_params == 6
        assert admit_model.n_obs == 400
        assert admit_model.info['converged']
        assert admit_model.variance_parameters == {}

    def test_score_equations(self, admit_model):
        X = admit_model.working.X
        mu = admit_model.params.fitted_values
        score = X.T @ (admit_model.working.y - mu)
        assert np.all(np.abs(score) <= 1e-4 * np.abs(X).sum(axis=0))

    def test_deviance_identities(self, admit_model):
        params = admit_model.params
        np.testing.assert_allclose(params.log_likelihood, -params.deviance / 2.0)
        np.testing.assert_allclose(admit_model.aic, params.aic)
        np.testing.assert_allclose(params.aic, params.deviance + 2 * 6)
        assert params.deviance < params.null_deviance
        assert params.df_residual == 400 - 6
        assert params.df_null == 399
        np.testing.assert_allclose(
            params.pseudo_r_squared, 1.0 - params.deviance / params.null_deviance,
        )

    def test_null_deviance(self, admit_model):
        y = admit_model.working.y
        p = y.mean()
        expected = -2.0 * np.sum(y * np.log(p) + (1 - y) * np.log(1 - p))
        np.testing.assert_allclose(admit_model.params.null_deviance, expected, rtol=1e-10)

    def test_signs(self, admit_model):
        coef = admit_model.coefficients
        assert coef['gpa'] > 0
        assert coef['rank4'] < 0

    def test_vcov_is_inverse_information(self, admit_model):
        X = admit_model.working.X
        mu = admit_model.params.fitted_values
        info = X.T @ (X * (mu * (1 - mu))[:, None])
        np.testing.assert_allclose(admit_model.vcov_model, np.linalg.inv(info), rtol=1e-5)

    def test_z_tests(self, admit_model):
        params = admit_model.params
        np.testing.assert_allclose(params.z_values, params.coefficients / params.se)
        assert np.all((params.p_values >= 0) & (params.p_values <= 1))

    def test_summary(self, admit_model):
        text = admit_model.summary()
        assert 'Null deviance' in text
        assert 'z value' in text
        assert 'rank3' in text
        assert 'Number of Fisher Scoring iterations' in text


class TestDiagnosticPayload:

    def test_hat_values_trace(self, admit_model):
        h = admit_model.params.hat_values
        assert np.all((h >= 0) & (h <= 1))
        np.testing.assert_allclose(h.sum(), 6.0, rtol=1e-6)

    def test_residual_types(self, admit_model):
        params = admit_model.params
        y, mu = admit_model.working.y, params.fitted_values
        np.testing.assert_allclose(params.residuals_response, y - mu)
        np.testing.assert_allclose(
            params.residuals_pearson, (y - mu) / np.sqrt(mu * (1 - mu)),
        )
        np.testing.assert_allclose(np.sum(params.residuals_deviance ** 2), params.deviance)
        np.testing.assert_array_equal(
            np.sign(params.residuals_deviance), np.sign(y - mu),
        )

    def test_cooks_distance(self, admit_model):
        params = admit_model.params
        h = params.hat_values
        expected = params.residuals_pearson ** 2 * h / (6 * (1 - h) ** 2)
        np.testing.assert_allclose(params.cooks_distance, expected)

    def test_working_model(self, admit_model):
        working = admit_model.working
        assert working.scale == 1.0
        assert working.n_clusters == 400
        w = admit_model.params.working_weights
        np.testing.assert_allclose(np.diag(working.phi_blocks[0]), [1.0 / w[0]])


class TestClusters:

    def test_group_defines_clusters(self, admissions):
        school = np.array([f"s{i % 20}" for i in range(400)], dtype=object)
        tbl = admissions.with_column('school', school)
        spec = ModelSpec.builder('admit').main('gre', 'gpa').grouped_by('school').build()
        model = fit_logistic_regression(tbl, spec)
        assert model.working.n_clusters == 20
        assert model.working.phi_blocks[0].shape == (20, 20)


# ═══════════════════════════════════════════════════════════════════════
# Array-level fit
# ═══════════════════════════════════════════════════════════════════════


class TestArrayLevel:

    def test_matches_table_fit(self, admit_model):
        result = logistic(admit_model.working.y, admit_model.working.X)
        np.testing.assert_allclose(result.params.coefficients, admit_model.beta)
        assert result.backend_name == 'cpu_irls'

    def test_offset(self, rng):
        n = 300
        x = rng.normal(size=n)
        off = rng.normal(size=n)
        y = (rng.random(n) < 1 / (1 + np.exp(-(0.3 + 0.8 * x + off)))).astype(float)
        X = np.column_stack([np.ones(n), x])
        with_off = logistic(y, X, offset=off).params.coefficients
        without = logistic(y, X).params.coefficients
        assert not np.allclose(with_off, without)

    def test_non_binary(self):
        X = np.column_stack([np.ones(4), [0.0, 1.0, 2.0, 3.0]])
        with pytest.raises(InvalidResponseError) as info:
            logistic([0.0, 1.0, 2.0, 1.0], X)
        assert info.value.values == ('2',)

    def test_too_few_observations(self):
        with pytest.raises(ValidationError):
            logistic([0.0, 1.0], np.eye(2))

    def test_non_finite(self):
        X = np.column_stack([np.ones(4), [0.0, np.nan, 2.0, 3.0]])
        with pytest.raises(ValidationError):
            logistic([0.0, 1.0, 0.0, 1.0], X)

    def test_matrix_response(self):
        X = np.column_stack([np.ones(4), [0.0, 1.0, 2.0, 3.0]])
        with pytest.raises(DimensionError, match="y: expected 1D"):
            logistic(np.zeros((4, 2)), X)

    def test_column_response(self, admit_model):
        y = admit_model.working.y.reshape(-1, 1)
        result = logistic(y, admit_model.working.X)
        np.testing.assert_allclose(result.params.coefficients, admit_model.beta)

    def test_three_dimensional_design(self):
        with pytest.raises(DimensionError, match="X: expected 2D"):
            logistic([0.0, 1.0, 0.0, 1.0], np.ones((4, 2, 1)))


# ═══════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════


class TestResponseValidation:

    def test_value_two(self, admit_spec):
        tbl = Table.from_arrays(
            admit=np.array([0.0, 1.0, 2.0, 1.0, 0.0]),
            gre=np.array([400.0, 500.0, 600.0, 700.0, 550.0]),
            gpa=np.array([3.0, 3.2, 3.4, 3.6, 3.1]),
            rank=np.array(['a', 'b', 'a', 'b', 'a'], dtype=object),
        )
        with pytest.raises(InvalidResponseError) as info:
            fit_logistic_regression(tbl, admit_spec)
        assert info.value.column == 'admit'
        assert info.value.values == ('2',)

    def test_categorical_response(self, admissions):
        spec = ModelSpec.builder('rank').main('gre').build()
        with pytest.raises(InvalidResponseError) as info:
            fit_logistic_regression(admissions, spec)
        assert info.value.values == ('1', '2', '3', '4')

    def test_missing_response(self, admissions, admit_spec):
        y = admissions['admit']
        y[5] = np.nan
        with pytest.raises(InvalidResponseError, match="missing"):
            fit_logistic_regression(admissions.with_column('admit', y), admit_spec)

    def test_rank_deficient(self, admissions):
        tbl = admissions.with_column('gre100', admissions['gre'] / 100.0)
        spec = ModelSpec.builder('admit').main('gre', 'gre100').build()
        with pytest.raises(RankDeficientError):
            fit_logistic_regression(tbl, spec)


class TestConvergence:

    def test_budget_exhausted(self, admissions, admit_spec):
        with pytest.raises(NonConvergenceError) as info:
            fit_logistic_regression(admissions, admit_spec, control=FitControl(max_iter=1))
        assert info.value.iterations == 1
        assert info.value.reason == 'max_iterations'
        assert info.value.final_change > 0


# ═══════════════════════════════════════════════════════════════════════
# Family primitives
# ═══════════════════════════════════════════════════════════════════════


class TestFamily:

    def test_logit_link(self):
        link = LogitLink()
        np.testing.assert_allclose(link.link(np.array([0.5])), [0.0])
        np.testing.assert_allclose(link.linkinv(np.array([0.0])), [0.5])
        np.testing.assert_allclose(link.mu_eta(np.array([0.0])), [0.25])
        eta = np.array([-2.0, 0.3, 4.0])
        np.testing.assert_allclose(link.link(link.linkinv(eta)), eta)

    def test_binomial(self):
        family = Binomial()
        assert family.name == 'binomial'
        assert family.link.name == 'logit'
        np.testing.assert_allclose(family.variance(np.array([0.5])), [0.25])
        np.testing.assert_allclose(family.initialize(np.array([0.0, 1.0])), [0.25, 0.75])

    def test_unit_deviance(self):
        family = Binomial()
        mu = np.array([0.2, 0.7])
        y = np.array([0.0, 1.0])
        np.testing.assert_allclose(
            family.unit_deviance(y, mu), [-2 * np.log(0.8), -2 * np.log(0.7)],
        )
