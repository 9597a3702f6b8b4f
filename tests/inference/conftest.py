"""
Fitted-model fixtures shared by the inference tests.
"""

import pytest

from pylongreg.design import ModelSpec
from pylongreg.gls import CovarianceStructure, fit_generalized_least_squares
from pylongreg.mixed import fit_linear_mixed_effects
from pylongreg.regression import fit_logistic_regression


@pytest.fixture
def growth_spec():
    return (ModelSpec.builder('distance')
            .crossed('age', 'Sex')
            .grouped_by('Subject')
            .build())


@pytest.fixture
def logit_model(admissions):
    spec = ModelSpec.builder('admit').main('gre', 'gpa', 'rank').build()
    return fit_logistic_regression(admissions, spec)


@pytest.fixture
def lmm_model(orthodont, growth_spec):
    return fit_linear_mixed_effects(orthodont, growth_spec)


@pytest.fixture
def cs_model(orthodont, growth_spec):
    return fit_generalized_least_squares(
        orthodont, growth_spec, CovarianceStructure.compound_symmetry(),
    )


@pytest.fixture
def ols_model(orthodont):
    spec = ModelSpec.builder('distance').crossed('age', 'Sex').build()
    return fit_generalized_least_squares(
        orthodont, spec, CovarianceStructure.independent(),
    )
