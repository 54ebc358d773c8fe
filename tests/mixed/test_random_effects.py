"""Tests for random-intercept Z matrix construction and Λ_θ."""

import numpy as np
import pytest

from pymultilevel.core.datasource import DataSource
from pymultilevel.mixed import ModelSpec, GroupingFactor
from pymultilevel.mixed._hierarchy import resolve_groups
from pymultilevel.mixed._random_effects import (
    build_random_effects,
    build_z_matrix,
    lambda_diagonal,
    split_by_factor,
    theta_lower_bounds,
    theta_start,
)


@pytest.fixture
def crossed_specs():
    data = DataSource.from_columns(
        subject=['s1', 's1', 's2', 's2', 's3', 's3'],
        item=['i1', 'i2', 'i1', 'i2', 'i1', 'i2'],
    )
    spec = ModelSpec('y', groups=(
        GroupingFactor('subject', 'subject', crossed=True),
        GroupingFactor('item', 'item', crossed=True),
    ))
    return build_random_effects(resolve_groups(data, spec))


class TestBuildRandomEffects:

    def test_blocks_in_declaration_order(self, crossed_specs):
        assert [s.group_name for s in crossed_specs] == ['subject', 'item']
        assert [s.n_groups for s in crossed_specs] == [3, 2]
        assert [s.offset for s in crossed_specs] == [0, 3]
        assert crossed_specs[1].columns == slice(3, 5)

    def test_group_ids(self, crossed_specs):
        np.testing.assert_array_equal(crossed_specs[0].group_ids, [0, 0, 1, 1, 2, 2])
        np.testing.assert_array_equal(crossed_specs[1].group_ids, [0, 1, 0, 1, 0, 1])


class TestBuildZMatrix:

    def test_shape_and_row_sums(self, crossed_specs):
        Z = build_z_matrix(crossed_specs, 6)
        assert Z.shape == (6, 5)
        # One indicator per factor per row
        np.testing.assert_array_equal(Z.sum(axis=1), np.full(6, 2.0))

    def test_indicator_placement(self, crossed_specs):
        Z = build_z_matrix(crossed_specs, 6)
        np.testing.assert_array_equal(Z[2], [0, 1, 0, 1, 0])
        np.testing.assert_array_equal(Z[5], [0, 0, 1, 0, 1])

    def test_block_column_sums_are_level_sizes(self, crossed_specs):
        Z = build_z_matrix(crossed_specs, 6)
        np.testing.assert_array_equal(Z[:, crossed_specs[0].columns].sum(axis=0), [2, 2, 2])
        np.testing.assert_array_equal(Z[:, crossed_specs[1].columns].sum(axis=0), [3, 3])

    def test_empty_specs(self):
        with pytest.raises(ValueError):
            build_z_matrix([], 5)


class TestLambda:

    def test_repeats_theta_per_level(self, crossed_specs):
        lam = lambda_diagonal(np.array([0.5, 2.0]), crossed_specs)
        np.testing.assert_array_equal(lam, [0.5, 0.5, 0.5, 2.0, 2.0])

    def test_zero_theta_allowed(self, crossed_specs):
        lam = lambda_diagonal(np.array([0.0, 1.0]), crossed_specs)
        assert np.all(lam[:3] == 0.0)

    def test_split_by_factor(self, crossed_specs):
        pieces = split_by_factor(np.arange(5.0), crossed_specs)
        np.testing.assert_array_equal(pieces['subject'], [0, 1, 2])
        np.testing.assert_array_equal(pieces['item'], [3, 4])

    def test_bounds_and_start(self, crossed_specs):
        np.testing.assert_array_equal(theta_lower_bounds(crossed_specs), [0.0, 0.0])
        np.testing.assert_array_equal(theta_start(crossed_specs), [1.0, 1.0])
