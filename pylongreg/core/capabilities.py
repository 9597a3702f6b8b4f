"""
String constants for pylongreg.

This module is the SINGLE SOURCE OF TRUTH for fit-kind, estimator,
and method strings. Import from here, never use raw strings.

Usage:
    from pylongreg.core.capabilities import KIND_LOGISTIC, ESTIMATOR_CR2

    if model.kind == KIND_LOGISTIC:
        ...
"""

# Fit kinds (closed set; FittedModel.kind is always one of these)
KIND_LMM = 'lmm'
KIND_GLS = 'gls'
KIND_LOGISTIC = 'logistic'

ALL_KINDS = frozenset({KIND_LMM, KIND_GLS, KIND_LOGISTIC})

# Coefficient covariance estimators
ESTIMATOR_MODEL = 'model'
ESTIMATOR_CR0 = 'CR0'
ESTIMATOR_CR1 = 'CR1'
ESTIMATOR_CR2 = 'CR2'

SANDWICH_ESTIMATORS = frozenset({ESTIMATOR_CR0, ESTIMATOR_CR1, ESTIMATOR_CR2})
ALL_ESTIMATORS = frozenset({ESTIMATOR_MODEL}) | SANDWICH_ESTIMATORS

# Likelihood-based estimation methods
METHOD_REML = 'REML'
METHOD_ML = 'ML'

ALL_METHODS = frozenset({METHOD_REML, METHOD_ML})

# GLS covariance structures
STRUCTURE_INDEPENDENT = 'independent'
STRUCTURE_COMPOUND_SYMMETRY = 'compound_symmetry'
STRUCTURE_AR1 = 'ar1'
STRUCTURE_IDENTITY_BY_GROUP = 'identity_by_group'

ALL_STRUCTURES = frozenset({
    STRUCTURE_INDEPENDENT,
    STRUCTURE_COMPOUND_SYMMETRY,
    STRUCTURE_AR1,
    STRUCTURE_IDENTITY_BY_GROUP,
})
CORRELATED_STRUCTURES = frozenset({STRUCTURE_COMPOUND_SYMMETRY, STRUCTURE_AR1})

__all__ = [
    'KIND_LMM',
    'KIND_GLS',
    'KIND_LOGISTIC',
    'ALL_KINDS',
    'ESTIMATOR_MODEL',
    'ESTIMATOR_CR0',
    'ESTIMATOR_CR1',
    'ESTIMATOR_CR2',
    'SANDWICH_ESTIMATORS',
    'ALL_ESTIMATORS',
    'METHOD_REML',
    'METHOD_ML',
    'ALL_METHODS',
    'STRUCTURE_INDEPENDENT',
    'STRUCTURE_COMPOUND_SYMMETRY',
    'STRUCTURE_AR1',
    'STRUCTURE_IDENTITY_BY_GROUP',
    'ALL_STRUCTURES',
    'CORRELATED_STRUCTURES',
]
