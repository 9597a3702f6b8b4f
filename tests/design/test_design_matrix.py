"""
Tests for build_design() and model_matrix().

Validates:
    - Treatment coding and R-style column names
    - Contrast rule: full indicator coding when a margin is absent
    - Interaction columns (age:SexMale)
    - Rank deficiency reports the aliased columns
    - Missing values and categorical responses are rejected
    - Zero-variance cells produce warnings, not errors
    - Prediction rows coded against stored levels
"""

import warnings

import numpy as np
import pytest

from pylongreg.core.exceptions import RankDeficientError, UnknownLevelError, ValidationError
from pylongreg.data import Table
from pylongreg.design import INTERCEPT, ModelSpec, Term, build_design, model_matrix


@pytest.fixture
def small():
    return Table.from_arrays(
        y=np.array([1.0, 2.0, 3.0, 4.0, 5.0, 7.0]),
        age=np.array([8.0, 10.0, 12.0, 8.0, 10.0, 12.0]),
        Sex=np.array(['Male', 'Male', 'Male', 'Female', 'Female', 'Female'], dtype=object),
        g=np.array(['s1', 's1', 's2', 's2', 's3', 's3'], dtype=object),
    )


# ═══════════════════════════════════════════════════════════════════════
# Column coding
# ═══════════════════════════════════════════════════════════════════════


class TestCoding:

    def test_main_effects(self, small):
        spec = ModelSpec.builder('y').main('age', 'Sex').build()
        design = build_design(small, spec)
        assert design.column_names == (INTERCEPT, 'age', 'SexMale')
        np.testing.assert_array_equal(design.X[:, 2], [1, 1, 1, 0, 0, 0])
        assert design.term_columns == {INTERCEPT: (0,), 'age': (1,), 'Sex': (2,)}
        assert design.factor_levels == {'Sex': ('Female', 'Male')}

    def test_interaction(self, small):
        spec = ModelSpec.builder('y').crossed('age', 'Sex').build()
        design = build_design(small, spec)
        assert design.column_names == (INTERCEPT, 'age', 'SexMale', 'age:SexMale')
        np.testing.assert_array_equal(design.X[:, 3], [8, 10, 12, 0, 0, 0])
        assert design.term_columns['age:Sex'] == (3,)

    def test_no_intercept_full_coding(self, small):
        spec = ModelSpec.builder('y').main('Sex').without_intercept().build()
        design = build_design(small, spec)
        assert design.column_names == ('SexFemale', 'SexMale')

    def test_interaction_without_margin(self, small):
        # Sex:age with no Sex main effect: one slope per sex
        spec = ModelSpec.builder('y').main('age').interaction('age', 'Sex').build()
        design = build_design(small, spec)
        assert design.column_names == (INTERCEPT, 'age', 'age:SexMale')

        spec = ModelSpec.builder('y').main('Sex').interaction('age', 'Sex').build()
        design = build_design(small, spec)
        assert design.column_names == (INTERCEPT, 'SexMale', 'age:SexFemale', 'age:SexMale')

    def test_response(self, small):
        design = build_design(small, ModelSpec.builder('y').main('age').build())
        np.testing.assert_array_equal(design.y, small['y'])
        assert design.n == 6
        assert design.p == 2


class TestClusters:

    def test_group_codes(self, small):
        spec = ModelSpec.builder('y').main('age').grouped_by('g').build()
        design = build_design(small, spec)
        assert design.group_labels == ('s1', 's2', 's3')
        clusters = design.clusters()
        np.testing.assert_array_equal(clusters[0], [0, 1])
        np.testing.assert_array_equal(clusters[2], [4, 5])

    def test_no_group_is_singletons(self, small):
        design = build_design(small, ModelSpec.builder('y').main('age').build())
        assert len(design.clusters()) == 6


# ═══════════════════════════════════════════════════════════════════════
# Failures and warnings
# ═══════════════════════════════════════════════════════════════════════


class TestFailures:

    def test_aliased_column(self, small):
        tbl = small.with_column('age2', small['age'] * 2.0)
        spec = ModelSpec.builder('y').main('age', 'age2').build()
        with pytest.raises(RankDeficientError) as info:
            build_design(tbl, spec)
        assert info.value.rank == 2
        assert info.value.expected_rank == 3
        assert len(info.value.aliased) == 1

    def test_missing_predictor(self, small):
        ages = small['age']
        ages[2] = np.nan
        tbl = small.with_column('age', ages)
        with pytest.raises(ValidationError, match="Missing values"):
            build_design(tbl, ModelSpec.builder('y').main('age').build())

    def test_categorical_response(self, small):
        with pytest.raises(ValidationError, match="categorical"):
            build_design(small, ModelSpec.builder('Sex').main('age').build())


class TestZeroVariance:

    def test_single_observation_level(self):
        tbl = Table.from_arrays(
            y=np.array([1.0, 2.0, 3.0, 4.0]),
            f=np.array(['a', 'a', 'a', 'b'], dtype=object),
        )
        with pytest.warns(RuntimeWarning, match="Only one observation"):
            design = build_design(tbl, ModelSpec.builder('y').main('f').build())
        assert len(design.warnings) == 1

    def test_clean_design_no_warning(self, small):
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            design = build_design(small, ModelSpec.builder('y').main('age', 'Sex').build())
        assert design.warnings == ()


# ═══════════════════════════════════════════════════════════════════════
# Prediction rows
# ═══════════════════════════════════════════════════════════════════════


class TestModelMatrix:

    def test_stored_levels(self, small):
        spec = ModelSpec.builder('y').main('Sex').build()
        new = Table.from_arrays(Sex=np.array(['Male'], dtype=object))
        X, names, _, levels = model_matrix(new, spec, {'Sex': ('Female', 'Male')})
        assert names == (INTERCEPT, 'SexMale')
        np.testing.assert_array_equal(X, [[1.0, 1.0]])
        assert levels == {'Sex': ('Female', 'Male')}

    def test_unseen_level(self, small):
        spec = ModelSpec.builder('y').main('Sex').build()
        new = Table.from_arrays(Sex=np.array(['Other'], dtype=object))
        with pytest.raises(UnknownLevelError):
            model_matrix(new, spec, {'Sex': ('Female', 'Male')})

    def test_term_lookup(self, small):
        spec = ModelSpec.builder('y').crossed('age', 'Sex').build()
        _, _, term_columns, _ = model_matrix(small, spec)
        assert term_columns[Term.of('age', 'Sex').label] == (3,)
