"""
Tests for the Result[P] envelope and FitControl.

Validates:
    - Generic payload
    - Frozen immutability
    - Default warnings tuple and has_warning()
    - with_info() returns a merged copy
    - FitControl validation and optimizer failure reasons
"""

from dataclasses import FrozenInstanceError, dataclass

import pytest
from scipy.optimize import OptimizeResult

from pylongreg.core.compute.tolerances import (
    FitControl,
    IRLS_CONTROL,
    optimizer_failure_reason,
)
from pylongreg.core.exceptions import ValidationError
from pylongreg.core.result import Result


# ═══════════════════════════════════════════════════════════════════════
# Test payload types
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FakeParams:
    """Minimal payload for testing."""
    value: float


def _result(**kwargs):
    defaults = dict(
        params=FakeParams(value=1.5),
        info={'method': 'REML'},
        timing=None,
        backend_name='cpu_test',
    )
    defaults.update(kwargs)
    return Result(**defaults)


# ═══════════════════════════════════════════════════════════════════════
# Construction
# ═══════════════════════════════════════════════════════════════════════


class TestResultConstruction:

    def test_fields(self):
        result = _result(timing={'total_seconds': 0.01})
        assert result.params.value == 1.5
        assert result.info['method'] == 'REML'
        assert result.timing['total_seconds'] == 0.01
        assert result.backend_name == 'cpu_test'

    def test_default_warnings_empty(self):
        assert _result().warnings == ()

    def test_frozen(self):
        result = _result()
        with pytest.raises(FrozenInstanceError):
            result.backend_name = 'other'


class TestWarnings:

    def test_has_warning_substring(self):
        result = _result(warnings=('fitted probabilities numerically 0 or 1 occurred',))
        assert result.has_warning('numerically 0 or 1')
        assert not result.has_warning('singular')

    def test_has_warning_empty(self):
        assert not _result().has_warning('anything')


class TestWithInfo:

    def test_merges(self):
        result = _result()
        extended = result.with_info(selection_criterion='aic')
        assert extended.info == {'method': 'REML', 'selection_criterion': 'aic'}

    def test_original_untouched(self):
        result = _result()
        result.with_info(n_iter=4)
        assert 'n_iter' not in result.info

    def test_overrides_existing(self):
        assert _result().with_info(method='ML').info['method'] == 'ML'


# ═══════════════════════════════════════════════════════════════════════
# FitControl
# ═══════════════════════════════════════════════════════════════════════


class TestFitControl:

    def test_defaults(self):
        control = FitControl()
        assert control.tol == 1e-8
        assert control.max_iter == 200

    def test_irls_budget(self):
        assert IRLS_CONTROL.max_iter == 25

    @pytest.mark.parametrize("kwargs", [
        {'tol': 0.0},
        {'tol': -1.0},
        {'max_iter': 0},
        {'singular_tol': -1e-3},
        {'profile_max_iter': 0},
    ])
    def test_rejects_bad_settings(self, kwargs):
        with pytest.raises(ValidationError):
            FitControl(**kwargs)


class TestOptimizerFailureReason:

    def test_budget_exhausted(self):
        res = OptimizeResult(success=False, status=1, message='STOP: TOTAL NO. OF ITERATIONS')
        assert optimizer_failure_reason(res) == 'max_iterations'

    def test_line_search_failure(self):
        res = OptimizeResult(success=False, status=2, message='ABNORMAL_TERMINATION_IN_LNSRCH')
        assert optimizer_failure_reason(res) == 'optimizer_failure'
