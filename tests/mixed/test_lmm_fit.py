"""
Tests for fit_linear_mixed_effects().

Validates:
    - Random-intercept REML fit on growth data: fixed effects, variance
      components, ICC, parameter count
    - REML vs ML criteria
    - Random intercept + slope
    - Singular fits raise SingularFitError
    - An exhausted or stalled optimizer raises NonConvergenceError
    - Within-subject effects get more Satterthwaite df than
      between-subject effects
    - Input validation
"""

import numpy as np
import pytest

from pylongreg.core.capabilities import KIND_LMM, METHOD_ML, METHOD_REML
from pylongreg.core.compute.tolerances import FitControl
from pylongreg.core.exceptions import (
    DimensionError,
    NonConvergenceError,
    SingularFitError,
    ValidationError,
)
from pylongreg.data import Table
from pylongreg.design import ModelSpec
from pylongreg.mixed import fit_linear_mixed_effects, lmm
from pylongreg.mixed import solvers as mixed_solvers


@pytest.fixture
def growth_spec():
    return (ModelSpec.builder('distance')
            .crossed('age', 'Sex')
            .grouped_by('Subject')
            .build())


def _slope_table(rng, n_subj=30):
    ages = np.tile([8.0, 10.0, 12.0, 14.0], n_subj)
    subject = np.repeat([f"S{i:02d}" for i in range(n_subj)], 4).astype(object)
    sex = np.repeat(np.where(np.arange(n_subj) % 2 == 0, 'Male', 'Female'), 4).astype(object)
    b0 = np.repeat(rng.normal(0.0, 1.5, n_subj), 4)
    b1 = np.repeat(rng.normal(0.0, 0.4, n_subj), 4)
    y = 17.0 + 0.6 * ages + b0 + b1 * (ages - 11.0) + rng.normal(0.0, 1.0, 4 * n_subj)
    return Table.from_arrays(distance=y, age=ages, Sex=sex, Subject=subject)


# ═══════════════════════════════════════════════════════════════════════
# Random intercept
# ═══════════════════════════════════════════════════════════════════════


class TestRandomIntercept:

    def test_basic_fit(self, orthodont, growth_spec):
        model = fit_linear_mixed_effects(orthodont, growth_spec)
        assert model.kind == KIND_LMM
        assert model.method == METHOD_REML
        assert model.coefficient_names == (
            '(Intercept)', 'age', 'SexMale', 'age:SexMale',
        )
        assert model.n_obs == 108
        assert model.n_params == 4 + 1 + 1
        assert model.info['converged']

    def test_fixed_effects_near_truth(self, orthodont, growth_spec):
        model = fit_linear_mixed_effects(orthodont, growth_spec)
        coef = model.coefficients
        np.testing.assert_allclose(coef['age'], 0.48, atol=0.35)
        np.testing.assert_allclose(coef['age'] + coef['age:SexMale'], 0.78, atol=0.35)

    def test_variance_components(self, orthodont, growth_spec):
        model = fit_linear_mixed_effects(orthodont, growth_spec)
        params = model.params
        assert len(params.var_components) == 1
        vc = params.var_components[0]
        assert vc.group == 'Subject'
        assert vc.name == '(Intercept)'
        np.testing.assert_allclose(vc.std_dev ** 2, vc.variance)
        assert 0.0 < params.icc < 1.0
        np.testing.assert_allclose(
            params.icc, vc.variance / (vc.variance + params.residual_variance),
        )
        assert set(model.variance_parameters) == {'sd((Intercept)|Subject)', 'sigma'}

    def test_random_effects_shape(self, orthodont, growth_spec):
        params = fit_linear_mixed_effects(orthodont, growth_spec).params
        assert params.random_effects.shape == (27, 1)
        assert len(params.group_labels) == 27
        # balanced clusters: intercept BLUPs sum to zero
        np.testing.assert_allclose(params.random_effects.sum(), 0.0, atol=1e-6)

    def test_fitted_plus_residuals(self, orthodont, growth_spec):
        params = fit_linear_mixed_effects(orthodont, growth_spec).params
        np.testing.assert_allclose(
            params.fitted_values + params.residuals, orthodont['distance'],
        )

    def test_vcov_symmetric_positive(self, orthodont, growth_spec):
        model = fit_linear_mixed_effects(orthodont, growth_spec)
        np.testing.assert_allclose(model.vcov_model, model.vcov_model.T)
        assert np.all(np.linalg.eigvalsh(model.vcov_model) > 0)
        np.testing.assert_allclose(model.se, model.params.se)

    def test_summary(self, orthodont, growth_spec):
        text = fit_linear_mixed_effects(orthodont, growth_spec).summary()
        assert 'Linear mixed model fit by REML' in text
        assert 'Subject' in text
        assert 'age:SexMale' in text


class TestMethods:

    def test_ml_differs_from_reml(self, orthodont, growth_spec):
        reml = fit_linear_mixed_effects(orthodont, growth_spec)
        ml = fit_linear_mixed_effects(orthodont, growth_spec, reml=False)
        assert ml.method == METHOD_ML
        assert ml.log_likelihood != pytest.approx(reml.log_likelihood)
        assert not ml.params.reml

    def test_aic_bic(self, orthodont, growth_spec):
        model = fit_linear_mixed_effects(orthodont, growth_spec, reml=False)
        np.testing.assert_allclose(model.aic, 2 * 6 - 2 * model.log_likelihood)
        np.testing.assert_allclose(
            model.bic, 6 * np.log(108) - 2 * model.log_likelihood,
        )


class TestSatterthwaiteDf:

    def test_within_exceeds_between(self, orthodont):
        # balanced design: 27 - 2 df for Sex, 108 - 27 - 1 for age
        spec = ModelSpec.builder('distance').main('age', 'Sex').grouped_by('Subject').build()
        params = fit_linear_mixed_effects(orthodont, spec).params
        names = list(params.coefficient_names)
        df_age = params.df_satterthwaite[names.index('age')]
        df_sex = params.df_satterthwaite[names.index('SexMale')]
        assert df_age > df_sex
        assert 20.0 < df_sex < 30.0
        assert 70.0 < df_age < 90.0


# ═══════════════════════════════════════════════════════════════════════
# Random slope
# ═══════════════════════════════════════════════════════════════════════


class TestRandomSlope:

    def test_intercept_and_slope(self, rng, growth_spec):
        n_subj = 30
        tbl = _slope_table(rng, n_subj)

        model = fit_linear_mixed_effects(tbl, growth_spec, ('1', 'age'))
        params = model.params
        assert len(params.var_components) == 2
        assert params.var_components[1].name == 'age'
        assert params.var_components[1].corr is not None
        assert len(params.theta) == 3
        assert model.n_params == 4 + 3 + 1
        assert params.random_effects.shape == (n_subj, 2)


# ═══════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════


class TestFailures:

    def test_singular_fit(self):
        # Residuals sum to zero within every subject: no between-subject variance
        n_subj = 8
        x = np.tile([0.0, 1.0, 2.0, 3.0], n_subj)
        e = np.tile([1.0, -1.0, -1.0, 1.0], n_subj)
        tbl = Table.from_arrays(
            y=1.0 + 0.5 * x + e,
            x=x,
            g=np.repeat([f"g{i}" for i in range(n_subj)], 4).astype(object),
        )
        spec = ModelSpec.builder('y').main('x').grouped_by('g').build()
        with pytest.raises(SingularFitError) as info:
            fit_linear_mixed_effects(tbl, spec)
        assert info.value.tolerance == 1e-4
        assert len(info.value.theta) == 1

    def test_needs_group(self, orthodont):
        spec = ModelSpec.builder('distance').main('age').build()
        with pytest.raises(ValidationError, match="grouping column"):
            fit_linear_mixed_effects(orthodont, spec)

    def test_categorical_slope(self, orthodont, growth_spec):
        with pytest.raises(ValidationError, match="numeric"):
            fit_linear_mixed_effects(orthodont, growth_spec, ('1', 'Sex'))

    def test_unknown_slope(self, orthodont, growth_spec):
        with pytest.raises(ValidationError):
            fit_linear_mixed_effects(orthodont, growth_spec, ('1', 'height'))

    def test_array_response_must_be_vector(self):
        X = np.ones((12, 1))
        groups = np.repeat(['a', 'b', 'c'], 4)
        with pytest.raises(DimensionError, match="y: expected 1D"):
            lmm(np.zeros((12, 2)), X, groups)

    def test_array_design_must_be_matrix(self):
        groups = np.repeat(['a', 'b', 'c'], 4)
        with pytest.raises(DimensionError, match="X: expected 2D"):
            lmm(np.zeros(12), np.ones((12, 1, 1)), groups)


# ═══════════════════════════════════════════════════════════════════════
# Convergence
# ═══════════════════════════════════════════════════════════════════════


class TestConvergence:

    def test_budget_exhausted(self, rng, growth_spec):
        tbl = _slope_table(rng)
        with pytest.raises(NonConvergenceError) as info:
            fit_linear_mixed_effects(
                tbl, growth_spec, ('1', 'age'), control=FitControl(max_iter=1),
            )
        assert info.value.reason == 'max_iterations'
        assert info.value.iterations <= 1

    def test_stalled_optimizer(self, stall_optimizer, orthodont, growth_spec):
        stall_optimizer(mixed_solvers)
        with pytest.raises(NonConvergenceError, match="ABNORMAL") as info:
            fit_linear_mixed_effects(orthodont, growth_spec)
        assert info.value.reason == 'optimizer_failure'

    def test_failed_start_is_skipped(self, stall_optimizer, rng, growth_spec):
        tbl = _slope_table(rng)
        best = fit_linear_mixed_effects(tbl, growth_spec, ('1', 'age'))
        stall_optimizer(mixed_solvers, calls={0})
        fallback = fit_linear_mixed_effects(tbl, growth_spec, ('1', 'age'))
        assert fallback.info['converged']
        assert fallback.log_likelihood <= best.log_likelihood + 1e-8
