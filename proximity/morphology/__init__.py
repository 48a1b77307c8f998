"""Mask morphology: cell region reconstruction and touching-cell detection"""

from proximity.morphology.interior_point import find_interior_point
from proximity.morphology.cell_regions import (
    MEMBRANE_WALL,
    flood_fill,
    make_cell_image,
    prepare_membrane
)
from proximity.morphology.touching import (
    find_touching_cell_ids,
    find_touching_cell_pairs
)

__all__ = [
    'find_interior_point',
    'MEMBRANE_WALL',
    'flood_fill',
    'make_cell_image',
    'prepare_membrane',
    'find_touching_cell_ids',
    'find_touching_cell_pairs'
]
