# -*- coding: utf-8 -*-
"""
Distance-based spatial statistics between phenotype populations.

Includes:
- Pairwise distance matrix per field
- Nearest-neighbor search and mutual nearest-neighbor pairs
- Counts of cells within a radius
"""

from proximity.analysis.distance import (
    distance_matrix,
    subset_distance_matrix
)
from proximity.analysis.nearest_neighbors import (
    find_nearest_neighbor,
    find_mutual_nearest_neighbors,
    find_nearest_distance,
    nearest_neighbors,
    mutual_nearest_pairs
)
from proximity.analysis.within_radius import (
    count_within,
    count_within_per_cell,
    count_within_many
)

__all__ = [
    'distance_matrix',
    'subset_distance_matrix',
    'find_nearest_neighbor',
    'find_mutual_nearest_neighbors',
    'find_nearest_distance',
    'nearest_neighbors',
    'mutual_nearest_pairs',
    'count_within',
    'count_within_per_cell',
    'count_within_many'
]
