"""
Tests for Term and ModelSpec.

Validates:
    - Term identity is the variable set
    - margins() / contains() for marginality checks
    - Builder: main, interaction, crossed, grouped_by, without_intercept
    - Term algebra: add_term, drop_term, with_terms ordering
    - validate() against a table
"""

import numpy as np
import pytest

from pylongreg.core.exceptions import ValidationError
from pylongreg.data import Table
from pylongreg.design import ModelSpec, Term


# ═══════════════════════════════════════════════════════════════════════
# Term
# ═══════════════════════════════════════════════════════════════════════


class TestTerm:

    def test_identity_is_set(self):
        assert Term.of('age', 'Sex') == Term.of('Sex', 'age')
        assert hash(Term.of('age', 'Sex')) == hash(Term.of('Sex', 'age'))

    def test_label_keeps_order(self):
        assert Term.of('age', 'Sex').label == 'age:Sex'
        assert str(Term.of('Sex', 'age')) == 'Sex:age'

    def test_order(self):
        assert Term.of('a').order == 1
        assert Term.of('a', 'b', 'c').order == 3

    def test_margins(self):
        margins = set(Term.of('a', 'b', 'c').margins())
        assert margins == {
            Term.of('a'), Term.of('b'), Term.of('c'),
            Term.of('a', 'b'), Term.of('a', 'c'), Term.of('b', 'c'),
        }
        assert Term.of('a').margins() == ()

    def test_contains_is_proper(self):
        ab = Term.of('a', 'b')
        assert ab.contains(Term.of('a'))
        assert not ab.contains(ab)
        assert not Term.of('a').contains(ab)

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            Term(())

    def test_repeated_variable_rejected(self):
        with pytest.raises(ValidationError):
            Term.of('a', 'a')


# ═══════════════════════════════════════════════════════════════════════
# ModelSpec
# ═══════════════════════════════════════════════════════════════════════


class TestBuilder:

    def test_crossed(self):
        spec = ModelSpec.builder('distance').crossed('age', 'Sex').build()
        assert [t.label for t in spec.terms] == ['age', 'Sex', 'age:Sex']
        assert spec.intercept

    def test_main_and_interaction(self):
        spec = (ModelSpec.builder('distance')
                .main('age', 'Sex').interaction('age', 'Sex')
                .grouped_by('Subject').build())
        assert spec == ModelSpec.builder('distance').crossed('age', 'Sex').grouped_by('Subject').build()
        assert spec.group == 'Subject'

    def test_duplicates_ignored_by_builder(self):
        spec = ModelSpec.builder('y').main('a', 'a').interaction('b', 'a').interaction('a', 'b').build()
        assert len(spec.terms) == 2

    def test_interaction_needs_two(self):
        with pytest.raises(ValidationError):
            ModelSpec.builder('y').interaction('a')

    def test_without_intercept(self):
        spec = ModelSpec.builder('y').main('x').without_intercept().build()
        assert not spec.intercept
        assert str(spec) == 'y ~ 0 + x'

    def test_str(self):
        spec = ModelSpec.builder('distance').crossed('age', 'Sex').grouped_by('Subject').build()
        assert str(spec) == 'distance ~ age + Sex + age:Sex | Subject'
        assert str(ModelSpec.builder('y').build()) == 'y ~ 1'


class TestSpecValidation:

    def test_duplicate_terms(self):
        with pytest.raises(ValidationError):
            ModelSpec('y', (Term.of('a'), Term.of('a')))

    def test_response_as_predictor(self):
        with pytest.raises(ValidationError):
            ModelSpec('y', (Term.of('y'),))

    def test_group_is_response(self):
        with pytest.raises(ValidationError):
            ModelSpec('y', (), group='y')

    def test_missing_column(self):
        tbl = Table.from_arrays(y=np.zeros(3), x=np.zeros(3))
        spec = ModelSpec.builder('y').main('x', 'z').build()
        with pytest.raises(ValidationError, match="z"):
            spec.validate(tbl)

    def test_group_with_missing(self):
        tbl = Table.from_arrays(
            y=np.zeros(3),
            g=np.array(['a', None, 'b'], dtype=object),
        )
        spec = ModelSpec.builder('y').grouped_by('g').build()
        with pytest.raises(ValidationError, match="missing"):
            spec.validate(tbl)


class TestTermAlgebra:

    def test_add_and_drop(self):
        spec = ModelSpec.builder('y').main('a', 'b').build()
        added = spec.add_term(Term.of('b', 'a'))
        assert added.has_term(Term.of('a', 'b'))
        assert added.drop_term(Term.of('a', 'b')) == spec

    def test_add_existing_is_noop(self):
        spec = ModelSpec.builder('y').main('a').build()
        assert spec.add_term(Term.of('a')) is spec

    def test_drop_absent(self):
        spec = ModelSpec.builder('y').main('a').build()
        with pytest.raises(ValidationError):
            spec.drop_term(Term.of('b'))

    def test_with_terms_orders_by_order(self):
        spec = ModelSpec.builder('y').build().with_terms(
            [Term.of('a', 'b'), Term.of('b'), Term.of('a')]
        )
        assert [t.label for t in spec.terms] == ['b', 'a', 'a:b']

    def test_variables(self):
        spec = ModelSpec.builder('y').crossed('a', 'b').main('c').build()
        assert spec.variables == ('a', 'b', 'c')

    def test_hierarchical(self):
        assert ModelSpec.builder('y').crossed('a', 'b').build().is_hierarchical()
        assert not ModelSpec.builder('y').main('a').interaction('a', 'b').build().is_hierarchical()
