"""
Tests for grouping index resolution.

Validates:
    - Canonical keys for top-level, nested and compound factors
    - Repeated child labels under different parents are distinct levels
    - Index depends only on the set of keys, not on row order
    - Ambiguous sibling declarations are rejected
    - Lookup of new rows, including unseen keys
"""

import numpy as np
import pytest

from pymultilevel.core.datasource import DataSource
from pymultilevel.core.exceptions import ConfigurationError, ValidationError
from pymultilevel.mixed import ModelSpec, Numeric, GroupingFactor
from pymultilevel.mixed._hierarchy import resolve_groups, GroupingIndex, canonical_label


def _data(**columns):
    return DataSource.from_columns(**columns)


SCHOOLS = ['s1', 's1', 's1', 's2', 's2', 's2', 's2']
CLASSES = ['c1', 'c1', 'c2', 'c1', 'c2', 'c2', 'c3']


class TestTopLevel:

    def test_levels_sorted_by_label(self):
        data = _data(g=['b', 'a', 'c', 'a'])
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        f = resolve_groups(data, spec).factor('g')
        assert f.labels() == ('a', 'b', 'c')
        np.testing.assert_array_equal(f.codes, [1, 0, 2, 0])
        np.testing.assert_array_equal(f.level_sizes(), [2, 1, 1])

    def test_numeric_labels_are_stringified(self):
        data = _data(g=[3, 1, 3, 2])
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        f = resolve_groups(data, spec).factor('g')
        assert f.labels() == ('1', '2', '3')

    def test_integral_floats_print_as_integers(self):
        data = _data(g=np.array([3.0, 1.0, 3.0, 1.5]))
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        f = resolve_groups(data, spec).factor('g')
        assert f.labels() == ('1', '1.5', '3')

    @pytest.mark.parametrize("value, expected", [
        (1, '1'), (1.0, '1'), (np.float64(4.0), '4'), (np.int32(4), '4'),
        (2.5, '2.5'), ('g01', 'g01'), (True, 'True'),
    ])
    def test_canonical_label(self, value, expected):
        assert canonical_label(value) == expected

    def test_single_level_rejected(self):
        data = _data(g=['a', 'a', 'a'])
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        with pytest.raises(ConfigurationError, match="1 level"):
            resolve_groups(data, spec)

    def test_missing_column(self):
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'school'),))
        with pytest.raises(ConfigurationError, match="not found") as exc_info:
            resolve_groups(_data(g=['a', 'b']), spec)
        assert exc_info.value.column == 'school'

    def test_missing_labels(self):
        data = _data(g=np.array(['a', None, 'b'], dtype=object))
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        with pytest.raises(ValidationError, match="1 missing label"):
            resolve_groups(data, spec)

    def test_nan_labels(self):
        data = _data(g=[1.0, np.nan, 2.0])
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        with pytest.raises(ValidationError, match="missing label"):
            resolve_groups(data, spec)

    def test_unknown_factor_name(self):
        data = _data(g=['a', 'b'])
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        with pytest.raises(KeyError, match="Available"):
            resolve_groups(data, spec).factor('h')


class TestNested:

    @pytest.fixture
    def index(self):
        spec = ModelSpec.nested('y', [], 'school', 'class')
        return resolve_groups(_data(school=SCHOOLS, **{'class': CLASSES}), spec)

    def test_repeated_labels_are_distinct_levels(self, index):
        f = index.factor('class')
        assert f.n_levels == 5
        assert f.labels() == ('s1/c1', 's1/c2', 's2/c1', 's2/c2', 's2/c3')

    def test_keys_embed_parent(self, index):
        keys = [lvl.key for lvl in index.factor('class').levels]
        assert keys[0] == ('s1', 'c1')
        assert keys[2] == ('s2', 'c1')

    def test_parent_index(self, index):
        parents = [lvl.parent_index for lvl in index.factor('class').levels]
        assert parents == [0, 0, 1, 1, 1]
        assert index.factor('school').levels[0].parent_index is None

    def test_n_groups(self, index):
        assert index.n_groups() == {'school': 2, 'class': 5}
        assert index.n_observations == 7

    def test_compound_matches_nested_partition(self, index):
        spec = ModelSpec('y', groups=(
            GroupingFactor('school', 'school'),
            GroupingFactor.interaction('class', 'school'),
        ))
        compound = resolve_groups(
            _data(school=SCHOOLS, **{'class': CLASSES}), spec
        ).factor('class:school')
        nested = index.factor('class')
        assert compound.n_levels == nested.n_levels
        assert compound.separator == ':'
        assert 'c1:s2' in compound.labels()
        # Same partition of the rows
        pairs = np.unique(np.column_stack([compound.codes, nested.codes]), axis=0)
        assert pairs.shape[0] == nested.n_levels


class TestRowOrderInvariance:

    def test_permuted_rows_same_levels(self, rng):
        spec = ModelSpec.nested('y', [], 'school', 'class')
        data = _data(school=SCHOOLS, **{'class': CLASSES})
        perm = rng.permutation(len(SCHOOLS))
        a = resolve_groups(data, spec)
        b = resolve_groups(data.take(perm), spec)
        for name in ('school', 'class'):
            assert a.factor(name).labels() == b.factor(name).labels()
            np.testing.assert_array_equal(
                a.factor(name).codes[perm], b.factor(name).codes
            )


class TestAmbiguity:

    def test_unrelated_siblings_rejected(self):
        spec = ModelSpec('y', groups=(
            GroupingFactor('school', 'school'),
            GroupingFactor('class', 'class'),
        ))
        with pytest.raises(ConfigurationError, match="neither is declared crossed"):
            resolve_groups(_data(school=SCHOOLS, **{'class': CLASSES}), spec)

    def test_crossed_flag_accepts(self):
        spec = ModelSpec('y', groups=(
            GroupingFactor('school', 'school', crossed=True),
            GroupingFactor('class', 'class', crossed=True),
        ))
        index = resolve_groups(_data(school=SCHOOLS, **{'class': CLASSES}), spec)
        assert index.factor('class').labels() == ('c1', 'c2', 'c3')

    def test_refining_siblings_accepted(self):
        # Every room belongs to exactly one building
        spec = ModelSpec('y', groups=(
            GroupingFactor('building', 'building'),
            GroupingFactor('room', 'room'),
        ))
        data = _data(building=['b1', 'b1', 'b2', 'b2'], room=['r1', 'r2', 'r3', 'r3'])
        index = resolve_groups(data, spec)
        assert index.n_groups() == {'building': 2, 'room': 3}


class TestLookup:

    @pytest.fixture
    def index(self):
        spec = ModelSpec.nested('y', [Numeric('x')], 'school', 'class')
        return resolve_groups(_data(school=SCHOOLS, **{'class': CLASSES}), spec)

    def test_seen_rows(self, index):
        lookups = index.lookup(_data(school=['s2', 's1'], **{'class': ['c3', 'c1']}))
        np.testing.assert_array_equal(lookups['school'].codes, [1, 0])
        np.testing.assert_array_equal(lookups['class'].codes, [4, 0])
        assert not lookups['class'].unseen_mask.any()

    def test_unseen_child_under_seen_parent(self, index):
        lookups = index.lookup(_data(school=['s1', 's1'], **{'class': ['c3', 'c3']}))
        assert lookups['school'].codes.tolist() == [0, 0]
        assert lookups['class'].unseen_mask.tolist() == [True, True]
        assert lookups['class'].unseen_labels() == ('s1/c3',)

    def test_rows_share_key_group(self, index):
        lookups = index.lookup(_data(school=['s9', 's1', 's9'], **{'class': ['c1'] * 3}))
        school = lookups['school']
        assert len(school.keys) == 2
        assert school.row_groups[0] == school.row_groups[2]
        assert school.unseen_labels() == ('s9',)

    def test_float_rows_match_integer_levels(self):
        """Labels fit as int 1 are found when a table gives them as 1.0."""
        spec = ModelSpec('y', groups=(GroupingFactor('g', 'g'),))
        index = resolve_groups(_data(g=np.array([1, 2, 2, 3])), spec)
        lookup = index.lookup(_data(g=np.array([1.0, 3.0, 4.0])))['g']
        np.testing.assert_array_equal(lookup.codes, [0, 2, -1])
        assert lookup.unseen_labels() == ('4',)

    def test_dict_roundtrip(self, index):
        restored = GroupingIndex.from_dict(index.to_dict())
        for name in index.names:
            a, b = index.factor(name), restored.factor(name)
            assert a.levels == b.levels
            np.testing.assert_array_equal(a.codes, b.codes)
        assert restored.declarations == index.declarations
