"""Pairwise cell distance matrix"""
import logging
from typing import Optional

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform

from proximity.field import CELL_ID, CELL_X, CELL_Y, check_columns
from proximity.phenotypes import select_rows

logger = logging.getLogger(__name__)


def cell_positions(
    cells: pd.DataFrame,
    pixels_per_micron: Optional[float] = None
) -> np.ndarray:
    """Return an (N, 2) array of X/Y positions, converted to microns if requested

    Args:
        cells: Cell table with X/Y position columns
        pixels_per_micron: Conversion factor; None when positions are already in microns

    Returns:
        Array of positions
    """
    coords = cells[[CELL_X, CELL_Y]].to_numpy(dtype=float)
    if pixels_per_micron is not None:
        if pixels_per_micron <= 0:
            raise ValueError(f"pixels_per_micron must be positive, got {pixels_per_micron}")
        coords = coords / pixels_per_micron
    return coords


def distance_matrix(
    cells: pd.DataFrame,
    pixels_per_micron: Optional[float] = None
) -> pd.DataFrame:
    """Compute the pairwise Euclidean distance matrix for all cells in a field

    The matrix is computed once per field; use `subset_distance_matrix`
    to pull out the rows and columns for particular phenotypes.

    Args:
        cells: Cell table with ID and X/Y position columns
        pixels_per_micron: Conversion factor; None when positions are already in microns

    Returns:
        Symmetric DataFrame indexed by cell ID on both axes
    """
    check_columns(cells)
    ids = cells[CELL_ID].to_numpy()

    if len(cells) == 0:
        logger.warning("No cells given, returning an empty distance matrix")
        return pd.DataFrame(np.empty((0, 0)), index=ids, columns=ids)

    coords = cell_positions(cells, pixels_per_micron)
    distances = squareform(pdist(coords))

    return pd.DataFrame(distances, index=ids, columns=ids)


def subset_distance_matrix(
    cells: pd.DataFrame,
    dst: pd.DataFrame,
    row_selector,
    col_selector
) -> pd.DataFrame:
    """Slice a precomputed distance matrix by phenotype

    `cells` and `dst` must be in the same order, as returned by
    `distance_matrix`. Rows are cells matching `row_selector`, columns
    are cells matching `col_selector`.

    Args:
        cells: Cell table used to build `dst`
        dst: Distance matrix for `cells`
        row_selector: Phenotype rule (or rule spec) for the rows
        col_selector: Phenotype rule (or rule spec) for the columns

    Returns:
        Sub-matrix as a DataFrame
    """
    if len(cells) != len(dst):
        raise ValueError(
            f"Cell table has {len(cells)} rows but distance matrix has {len(dst)}"
        )
    rows = select_rows(cells, row_selector).to_numpy()
    cols = select_rows(cells, col_selector).to_numpy()
    return dst.iloc[rows, cols]

