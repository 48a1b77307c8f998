"""Locate the most interior pixel of a nucleus"""
import logging
from typing import Optional, Tuple

import numpy as np
from scipy import ndimage

logger = logging.getLogger(__name__)


def nucleus_bounding_box(
    nuclei: np.ndarray,
    cell_id: int
) -> Optional[Tuple[slice, slice]]:
    """Bounding box of the pixels labeled `cell_id`, or None if there are none"""
    rows, cols = np.nonzero(nuclei == cell_id)
    if len(rows) == 0:
        return None
    return slice(rows.min(), rows.max() + 1), slice(cols.min(), cols.max() + 1)


def find_interior_point(
    nuclei: np.ndarray,
    cell_id: int,
    bbox: Optional[Tuple[slice, slice]] = None
) -> Optional[Tuple[int, int]]:
    """Find the nucleus pixel farthest from the nucleus boundary

    The nucleus is cut out as a small patch (with a one pixel border where
    the image allows), other nuclei in the patch are cleared, and a
    Euclidean distance transform is computed on the patch.

    Args:
        nuclei: Nucleus label map, pixel value = cell ID
        cell_id: The cell to locate
        bbox: Optional precomputed bounding box (row and column slices) of
            the nucleus, e.g. from scipy.ndimage.find_objects

    Returns:
        (row, col) of the first pixel attaining the maximum distance in
        row-major order, in full-image coordinates; None if the cell has no
        pixels in the map
    """
    if bbox is None:
        bbox = nucleus_bounding_box(nuclei, cell_id)
        if bbox is None:
            return None

    row_slice, col_slice = bbox
    height, width = nuclei.shape

    # Include a 1-pixel border if possible
    row_min = max(0, row_slice.start - 1)
    row_max = min(height, row_slice.stop + 1)
    col_min = max(0, col_slice.start - 1)
    col_max = min(width, col_slice.stop + 1)

    patch = nuclei[row_min:row_max, col_min:col_max] == cell_id
    if not patch.any():
        return None

    dist_map = ndimage.distance_transform_edt(patch)

    # np.argmax returns the first maximum
    row, col = np.unravel_index(np.argmax(dist_map), dist_map.shape)
    return int(row + row_min), int(col + col_min)
