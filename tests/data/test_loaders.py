"""
Tests for load() and coerce_categorical().

Validates:
    - Whitespace and comma delimiters, including auto-detection
    - Column typing: numeric, categorical with sorted levels
    - Row-name column when the header is one field short
    - Missing-value tokens
    - FormatError on ragged rows and mixed-type columns
    - coerce_categorical level order and UnknownLevelError
"""

import io

import numpy as np
import pytest

from pylongreg.core.exceptions import FormatError, UnknownLevelError, ValidationError
from pylongreg.data import Table, coerce_categorical, load


ORTHODONT_TEXT = """\
distance age Subject Sex
26.0 8 M01 Male
25.0 10 M01 Male
29.0 12 M01 Male
31.0 14 M01 Male
21.0 8 F01 Female
20.0 10 F01 Female
21.5 12 F01 Female
23.0 14 F01 Female
"""

ADMISSIONS_CSV = """\
admit,gre,gpa,rank
0,380,3.61,3
1,660,3.67,3
1,800,4.00,1
1,640,3.19,4
0,520,2.93,4
"""


# ═══════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════


class TestLoadWhitespace:

    def test_columns_and_types(self):
        tbl = load(io.StringIO(ORTHODONT_TEXT))
        assert tbl.keys() == ('distance', 'age', 'Subject', 'Sex')
        assert not tbl.is_categorical('distance')
        assert not tbl.is_categorical('age')
        assert tbl.is_categorical('Sex')
        assert tbl.levels('Sex') == ('Female', 'Male')
        assert tbl.levels('Subject') == ('F01', 'M01')

    def test_values(self):
        tbl = load(io.StringIO(ORTHODONT_TEXT))
        np.testing.assert_array_equal(tbl['age'][:4], [8.0, 10.0, 12.0, 14.0])
        assert tbl['Sex'][0] == 'Male'
        assert len(tbl) == 8

    def test_metadata(self):
        tbl = load(io.StringIO(ORTHODONT_TEXT))
        assert tbl.metadata['delimiter'] == 'whitespace'
        assert tbl.metadata['source'] == 'file'

    def test_from_path(self, tmp_path):
        path = tmp_path / 'orthodont.txt'
        path.write_text(ORTHODONT_TEXT)
        tbl = load(path)
        assert tbl.n_observations == 8
        assert tbl.metadata['origin'] == str(path)


class TestLoadComma:

    def test_auto_detects_comma(self):
        tbl = load(io.StringIO(ADMISSIONS_CSV))
        assert tbl.metadata['delimiter'] == 'comma'
        assert tbl.keys() == ('admit', 'gre', 'gpa', 'rank')
        np.testing.assert_allclose(tbl['gpa'], [3.61, 3.67, 4.00, 3.19, 2.93])

    def test_forced_categorical(self):
        tbl = load(io.StringIO(ADMISSIONS_CSV), categorical=['rank'])
        assert tbl.is_categorical('rank')
        assert tbl.levels('rank') == ('1', '3', '4')

    def test_forced_unknown_column(self):
        with pytest.raises(KeyError):
            load(io.StringIO(ADMISSIONS_CSV), categorical=['ranking'])


class TestRowNames:

    def test_short_header_reads_rownames(self):
        text = 'x y\n"1" 1.5 a\n"2" 2.5 b\n"3" 3.5 a\n'
        tbl = load(io.StringIO(text))
        assert tbl.keys()[0] == 'rownames'
        assert tbl.keys()[1:] == ('x', 'y')
        np.testing.assert_allclose(tbl['x'], [1.5, 2.5, 3.5])


class TestMissing:

    def test_na_token(self):
        text = "y x\n1.0 a\nNA b\n3.0 NA\n"
        tbl = load(io.StringIO(text))
        assert np.isnan(tbl['y'][1])
        assert tbl['x'][2] is None
        assert tbl.is_missing('x').tolist() == [False, False, True]

    def test_custom_na_token(self):
        text = "y\n1\n-99\n"
        tbl = load(io.StringIO(text), na_values=['-99'])
        assert np.isnan(tbl['y'][1])


# ═══════════════════════════════════════════════════════════════════════
# Format errors
# ═══════════════════════════════════════════════════════════════════════


class TestFormatErrors:

    def test_ragged_row(self):
        text = "a b\n1 2\n3\n4 5\n"
        with pytest.raises(FormatError) as info:
            load(io.StringIO(text))
        assert info.value.line == 3

    def test_ragged_csv(self):
        text = "a,b\n1,2\n3,4,5\n6,7\n"
        with pytest.raises(FormatError):
            load(io.StringIO(text))

    def test_mixed_column(self):
        text = "x y\n1 a\n2 3\n3 b\n"
        with pytest.raises(FormatError) as info:
            load(io.StringIO(text))
        assert info.value.column == 'y'

    def test_empty(self):
        with pytest.raises(FormatError):
            load(io.StringIO("   \n"))

    def test_bad_delimiter_option(self):
        with pytest.raises(ValidationError):
            load(io.StringIO(ORTHODONT_TEXT), delimiter='tab')


# ═══════════════════════════════════════════════════════════════════════
# Categorical coercion
# ═══════════════════════════════════════════════════════════════════════


class TestCoerceCategorical:

    def test_numeric_codes(self):
        tbl = Table.from_arrays(rank=np.array([3.0, 1.0, 4.0, 2.0]))
        out = coerce_categorical(tbl, 'rank', ('1', '2', '3', '4'))
        assert out.is_categorical('rank')
        assert out.levels('rank') == ('1', '2', '3', '4')
        assert list(out['rank']) == ['3', '1', '4', '2']

    def test_reorders_levels(self):
        tbl = load(io.StringIO(ORTHODONT_TEXT))
        out = coerce_categorical(tbl, 'Sex', ('Male', 'Female'))
        assert out.levels('Sex') == ('Male', 'Female')
        assert tbl.levels('Sex') == ('Female', 'Male')

    def test_unknown_level(self):
        tbl = Table.from_arrays(rank=np.array([1.0, 2.0, 5.0]))
        with pytest.raises(UnknownLevelError) as info:
            coerce_categorical(tbl, 'rank', ('1', '2', '3', '4'))
        assert info.value.column == 'rank'
        assert info.value.values == ('5',)

    def test_missing_kept(self):
        tbl = Table.from_arrays(rank=np.array([1.0, np.nan]))
        out = coerce_categorical(tbl, 'rank', ('1', '2'))
        assert out['rank'][1] is None

    def test_duplicate_levels(self):
        tbl = Table.from_arrays(rank=np.array([1.0, 2.0]))
        with pytest.raises(ValidationError):
            coerce_categorical(tbl, 'rank', ('1', '1'))
