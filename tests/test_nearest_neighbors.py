#!/usr/bin/env python
"""Tests for nearest-neighbor search"""
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from proximity.analysis.distance import distance_matrix
from proximity.analysis.nearest_neighbors import (
    find_mutual_nearest_neighbors,
    find_nearest_distance,
    find_nearest_neighbor,
    mutual_nearest_pairs,
    nearest_neighbors
)


def make_cells(positions, phenotypes, categories=None):
    cells = pd.DataFrame({
        'Cell ID': np.arange(1, len(positions) + 1),
        'Cell X Position': [p[0] for p in positions],
        'Cell Y Position': [p[1] for p in positions],
        'Phenotype': phenotypes,
    })
    if categories is not None:
        cells['Tissue Category'] = categories
    return cells


class TestFindNearestNeighbor:
    """Test directional nearest neighbors"""

    def test_basic(self):
        """Each from-cell gets its closest to-cell"""
        cells = make_cells([(0, 0), (10, 0), (2, 0), (12, 0)], ['A', 'A', 'B', 'B'])
        dst = distance_matrix(cells)

        result = nearest_neighbors(cells, dst, 'A', 'B')
        assert list(result.columns) == ['cell_id', 'nearest_id', 'distance']
        assert list(result['cell_id']) == [1, 2]
        assert list(result['nearest_id']) == [3, 4]
        np.testing.assert_allclose(result['distance'], [2.0, 2.0])

    def test_self_excluded(self):
        """A cell is never its own nearest neighbor"""
        cells = make_cells([(0, 0), (5, 0), (20, 0)], ['A', 'A', 'A'])
        dst = distance_matrix(cells)

        result = find_nearest_neighbor(cells, cells, dst)
        assert (result['cell_id'] != result['nearest_id']).all()
        assert list(result['nearest_id']) == [2, 1, 2]

    def test_single_cell_overlapping_sets(self):
        """A cell whose only candidate is itself is left out"""
        cells = make_cells([(0, 0), (5, 0)], ['A', 'B'])
        dst = distance_matrix(cells)

        result = nearest_neighbors(cells, dst, 'A', 'A')
        assert len(result) == 0

    def test_empty_to_set(self):
        """An empty to-set omits every from-cell"""
        cells = make_cells([(0, 0), (5, 0)], ['A', 'A'])
        dst = distance_matrix(cells)

        result = nearest_neighbors(cells, dst, 'A', 'B')
        assert len(result) == 0
        assert list(result.columns) == ['cell_id', 'nearest_id', 'distance']

    def test_tie_break_first_in_order(self):
        """Equidistant candidates resolve to the first in table order"""
        cells = make_cells([(0, 0), (-5, 0), (5, 0)], ['A', 'B', 'B'])
        dst = distance_matrix(cells)

        result = nearest_neighbors(cells, dst, 'A', 'B')
        assert result['nearest_id'].iloc[0] == 2

        # Same input, same answer
        again = nearest_neighbors(cells, dst, 'A', 'B')
        pd.testing.assert_frame_equal(result, again)

    def test_category(self):
        """Category filtering restricts both populations"""
        cells = make_cells(
            [(0, 0), (1, 0), (50, 0)], ['A', 'B', 'B'],
            categories=['tumor', 'stroma', 'tumor']
        )
        dst = distance_matrix(cells)

        result = nearest_neighbors(cells, dst, 'A', 'B', category='tumor')
        assert list(result['nearest_id']) == [3]


class TestMutualNearestNeighbors:
    """Test mutual nearest-neighbor pairs"""

    def test_mutual_pairs(self):
        """Only reciprocal nearest neighbors are kept"""
        # A1 and B1 are mutual; A2's nearest is B1 but B1 prefers A1
        cells = make_cells([(0, 0), (6, 0), (1, 0), (30, 0)], ['A', 'A', 'B', 'B'])
        dst = distance_matrix(cells)

        result = mutual_nearest_pairs(cells, dst, 'A', 'B')
        assert list(result['cell_id']) == [1]
        assert list(result['nearest_id']) == [3]
        assert result['distance'].iloc[0] == pytest.approx(1.0)

    def test_count_bounded(self):
        """Mutual pair count never exceeds the smaller population"""
        rng = np.random.default_rng(42)
        for _ in range(5):
            n_a, n_b = rng.integers(1, 20, size=2)
            positions = rng.uniform(0, 100, size=(n_a + n_b, 2))
            cells = make_cells(positions, ['A'] * n_a + ['B'] * n_b)
            dst = distance_matrix(cells)

            result = mutual_nearest_pairs(cells, dst, 'A', 'B')
            assert len(result) <= min(n_a, n_b)
            assert not result['cell_id'].duplicated().any()
            assert not result['nearest_id'].duplicated().any()

    def test_from_directional_results(self):
        """Mutual pairs join the two directional tables"""
        a_to_b = pd.DataFrame({'cell_id': [1, 2], 'nearest_id': [10, 10], 'distance': [1.0, 2.0]})
        b_to_a = pd.DataFrame({'cell_id': [10], 'nearest_id': [1], 'distance': [1.0]})

        result = find_mutual_nearest_neighbors(a_to_b, b_to_a)
        assert len(result) == 1
        assert result.iloc[0]['cell_id'] == 1


class TestFindNearestDistance:
    """Test the per-cell nearest distance columns"""

    def test_columns(self):
        """Distance and ID columns are added per phenotype"""
        cells = make_cells([(0, 0), (3, 4), (10, 0)], ['A', 'B', 'B'])

        result = find_nearest_distance(cells)
        assert list(result.columns) == ['Distance to A', 'Cell ID A', 'Distance to B', 'Cell ID B']
        assert result.index.equals(cells.index)

        assert result.loc[0, 'Distance to B'] == pytest.approx(5.0)
        assert result.loc[0, 'Cell ID B'] == 2
        assert result.loc[1, 'Cell ID B'] == 3

        # The only A cell has no other A cell
        assert pd.isna(result.loc[0, 'Distance to A'])
        assert pd.isna(result.loc[0, 'Cell ID A'])

    def test_pixels_per_micron(self):
        """Distances are in microns when a conversion factor is given"""
        cells = make_cells([(0, 0), (6, 8)], ['A', 'B'])
        result = find_nearest_distance(cells, ['B'], pixels_per_micron=2.0)
        assert result.loc[0, 'Distance to B'] == pytest.approx(5.0)

    def test_rule_mapping(self):
        """Phenotypes can be given as a rule mapping"""
        cells = make_cells([(0, 0), (3, 4), (10, 0)], ['CD4', 'CD8', 'Tumor'])
        result = find_nearest_distance(cells, {'Lymphocyte': ['CD4', 'CD8']})
        assert list(result.columns) == ['Distance to Lymphocyte', 'Cell ID Lymphocyte']
        assert result.loc[2, 'Cell ID Lymphocyte'] == 2
