"""
Tests for input validators.

Validates:
    - check_array: type coercion and rejection of non-numeric input
    - check_finite / check_ndim / check_consistent_length
    - check_choice and check_level option checks
"""

import numpy as np
import pytest

from pylongreg.core.exceptions import DimensionError, ValidationError
from pylongreg.core.validation import (
    check_1d,
    check_2d,
    check_array,
    check_choice,
    check_consistent_length,
    check_finite,
    check_level,
)


# ═══════════════════════════════════════════════════════════════════════
# check_array
# ═══════════════════════════════════════════════════════════════════════


class TestCheckArray:

    def test_list_to_float(self):
        arr = check_array([1, 2, 3], 'x')
        assert arr.dtype == np.float64

    def test_float_preserved(self):
        arr = check_array(np.array([1.5, 2.5], dtype=np.float32), 'x')
        assert arr.dtype == np.float32

    def test_bool_accepted(self):
        assert check_array(np.array([True, False]), 'x').dtype == np.float64

    def test_strings_rejected(self):
        with pytest.raises(ValidationError, match="x"):
            check_array(np.array(['a', 'b']), 'x')

    def test_mixed_object_rejected(self):
        with pytest.raises(ValidationError, match="object dtype"):
            check_array(np.array([1, 'a'], dtype=object), 'y')


class TestCheckFinite:

    def test_finite_passes(self):
        check_finite(np.array([0.0, 1.0]), 'x')

    def test_nan_reported(self):
        with pytest.raises(ValidationError, match="1 NaN, 0 Inf"):
            check_finite(np.array([0.0, np.nan]), 'x')

    def test_inf_reported(self):
        with pytest.raises(ValidationError, match="0 NaN, 2 Inf"):
            check_finite(np.array([np.inf, -np.inf]), 'x')


class TestShapes:

    def test_check_1d(self):
        check_1d(np.zeros(3), 'y')
        with pytest.raises(DimensionError):
            check_1d(np.zeros((3, 1)), 'y')

    def test_check_2d(self):
        check_2d(np.zeros((3, 2)), 'X')
        with pytest.raises(DimensionError):
            check_2d(np.zeros(3), 'X')

    def test_consistent_length(self):
        check_consistent_length(np.zeros(3), np.zeros((3, 2)), names=('y', 'X'))

    def test_inconsistent_length(self):
        with pytest.raises(DimensionError, match="y=3, X=4"):
            check_consistent_length(np.zeros(3), np.zeros((4, 2)), names=('y', 'X'))

    def test_names_must_match(self):
        with pytest.raises(ValueError):
            check_consistent_length(np.zeros(3), names=('a', 'b'))


# ═══════════════════════════════════════════════════════════════════════
# Options
# ═══════════════════════════════════════════════════════════════════════


class TestOptions:

    def test_choice_returns_value(self):
        assert check_choice('CR2', {'model', 'CR2'}, 'estimator') == 'CR2'

    def test_choice_rejects(self):
        with pytest.raises(ValidationError, match="estimator"):
            check_choice('HC3', {'model', 'CR2'}, 'estimator')

    def test_level(self):
        assert check_level(0.9) == 0.9

    @pytest.mark.parametrize("level", [0.0, 1.0, 1.5, -0.1])
    def test_level_rejects(self, level):
        with pytest.raises(ValidationError):
            check_level(level)
