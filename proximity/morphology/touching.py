"""Find touching cells in pairs of region rasters"""
import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from scipy import ndimage
from skimage.morphology import diamond

logger = logging.getLogger(__name__)

PAIR_COLUMNS = ['id1', 'id2']


def _empty_pairs() -> pd.DataFrame:
    return pd.DataFrame({
        'id1': pd.Series(dtype='int64'),
        'id2': pd.Series(dtype='int64'),
    })


def _check_shapes(r1: np.ndarray, r2: np.ndarray):
    if r1.shape != r2.shape:
        raise ValueError(f"Region rasters differ in shape: {r1.shape} vs {r2.shape}")


def find_touching_cell_ids(
    r1: Optional[np.ndarray],
    r2: Optional[np.ndarray],
    radius: int = 2
) -> Tuple[np.ndarray, np.ndarray]:
    """Find cells in each region raster that touch a cell in the other

    Order matters: to find r1 cells touching an r2 cell, the r2 mask is
    dilated and the r1 IDs under it are collected. Both directions are
    computed.

    Args:
        r1: Region raster for phenotype 1 (from make_cell_image), or None
        r2: Region raster for phenotype 2, or None
        radius: Radius of the diamond used to dilate each mask

    Returns:
        (sorted IDs of r1 cells touching r2, sorted IDs of r2 cells touching r1)
    """
    empty = np.array([], dtype=np.int64)
    if r1 is None or r2 is None:
        return empty, empty
    _check_shapes(r1, r2)

    footprint = diamond(radius)
    r1_big = ndimage.binary_dilation(r1 > 0, structure=footprint)
    r2_big = ndimage.binary_dilation(r2 > 0, structure=footprint)

    # r1 cells touching an r2 cell show up as r1 IDs under the dilated r2 mask
    r1_touching = np.unique(r1[r2_big])
    r1_touching = r1_touching[r1_touching > 0]

    r2_touching = np.unique(r2[r1_big])
    r2_touching = r2_touching[r2_touching > 0]

    return r1_touching.astype(np.int64), r2_touching.astype(np.int64)


def find_touching_cell_pairs(
    r1: Optional[np.ndarray],
    r2: Optional[np.ndarray],
    radius: int = 1
) -> pd.DataFrame:
    """Find distinct pairs of touching cells, one from each region raster

    Both rasters are dilated (grey dilation, so IDs spread into the
    neighborhood) and the dilated values are paired pixel by pixel. Any
    pixel where both are non-zero marks a touching pair. With radius 0 no
    dilation is done and only overlapping regions pair up.

    Args:
        r1: Region raster for phenotype 1, or None
        r2: Region raster for phenotype 2, or None
        radius: Radius of the diamond used for dilation

    Returns:
        DataFrame with columns id1 (r1 cell), id2 (r2 cell), sorted and unique
    """
    if r1 is None or r2 is None:
        return _empty_pairs()
    _check_shapes(r1, r2)

    footprint = diamond(radius)
    r1_big = ndimage.grey_dilation(r1, footprint=footprint)
    r2_big = ndimage.grey_dilation(r2, footprint=footprint)

    both = (r1_big > 0) & (r2_big > 0)
    if not both.any():
        return _empty_pairs()

    pairs = np.stack([r1_big[both], r2_big[both]], axis=1).astype(np.int64)
    pairs = np.unique(pairs, axis=0)

    return pd.DataFrame(pairs, columns=PAIR_COLUMNS)
