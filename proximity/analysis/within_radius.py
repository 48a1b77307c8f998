"""Counts of cells within a radius of other cells"""
import logging
from typing import Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from proximity.field import CELL_ID, filter_categories
from proximity.phenotypes import select_rows

logger = logging.getLogger(__name__)

WITHIN_COLUMNS = ['from_count', 'to_count', 'within_count', 'within_mean']


def _within_matrix(
    from_cells: pd.DataFrame,
    to_cells: pd.DataFrame,
    dst: pd.DataFrame,
    radius: float
) -> np.ndarray:
    """Boolean (from x to) matrix of pairs within `radius`, excluding self pairs"""
    from_ids = from_cells[CELL_ID].to_numpy()
    to_ids = to_cells[CELL_ID].to_numpy()
    if len(from_ids) == 0 or len(to_ids) == 0:
        return np.zeros((len(from_ids), len(to_ids)), dtype=bool)

    distances = dst.loc[from_ids, to_ids].to_numpy(dtype=float)
    within = distances <= radius
    within[from_ids[:, None] == to_ids[None, :]] = False
    return within


def _select(cells, from_selector, to_selector, radius, category):
    if radius < 0:
        raise ValueError(f"Radius must be non-negative, got {radius}")
    cells = filter_categories(cells, category)
    from_cells = cells[select_rows(cells, from_selector)]
    to_cells = cells[select_rows(cells, to_selector)]
    return from_cells, to_cells


def count_within(
    cells: pd.DataFrame,
    dst: pd.DataFrame,
    from_selector,
    to_selector,
    radius: float,
    category=None
) -> pd.DataFrame:
    """Count `to` cells within `radius` of each `from` cell

    Counts are made per from-cell, so swapping `from` and `to` generally
    gives different results. A cell is never counted as its own neighbor.

    Args:
        cells: Cell table
        dst: Distance matrix for the field (indexed by cell ID)
        from_selector: Phenotype rule (or union of labels) for the from-cells
        to_selector: Phenotype rule (or union of labels) for the to-cells
        radius: Distance threshold, in the units of `dst`; pairs at exactly
            `radius` are counted
        category: Optional tissue category (or list) restricting both populations

    Returns:
        Single-row DataFrame with columns
            from_count: number of from-cells
            to_count: number of to-cells
            within_count: total number of (from, to) pairs within radius
            within_mean: within_count / from_count, NaN if there are no from-cells
    """
    from_cells, to_cells = _select(cells, from_selector, to_selector, radius, category)
    within = _within_matrix(from_cells, to_cells, dst, radius)

    from_count = len(from_cells)
    within_count = int(within.sum())
    within_mean = within_count / from_count if from_count > 0 else np.nan

    return pd.DataFrame([{
        'from_count': from_count,
        'to_count': len(to_cells),
        'within_count': within_count,
        'within_mean': within_mean,
    }], columns=WITHIN_COLUMNS)


def count_within_per_cell(
    cells: pd.DataFrame,
    dst: pd.DataFrame,
    from_selector,
    to_selector,
    radius: float,
    category=None
) -> pd.DataFrame:
    """Per from-cell version of `count_within`

    Returns:
        DataFrame with columns cell_id, count (one row per from-cell)
    """
    from_cells, to_cells = _select(cells, from_selector, to_selector, radius, category)
    within = _within_matrix(from_cells, to_cells, dst, radius)

    return pd.DataFrame({
        'cell_id': from_cells[CELL_ID].to_numpy(),
        'count': within.sum(axis=1).astype(int),
    })


def _pair_label(selector) -> str:
    if isinstance(selector, str):
        return selector
    if isinstance(selector, (list, tuple)) and all(isinstance(s, str) for s in selector):
        return '/'.join(selector)
    return str(selector)


def count_within_many(
    cells: pd.DataFrame,
    dst: pd.DataFrame,
    pairs: Sequence,
    radii: Iterable[float],
    categories: Optional[List[str]] = None,
    source: Optional[str] = None
) -> pd.DataFrame:
    """Run `count_within` for every combination of pair, radius and category

    Args:
        cells: Cell table
        dst: Distance matrix for the field
        pairs: Sequence of (from, to) selectors
        radii: Radii to count within
        categories: Tissue categories to run separately; None for all cells
        source: Field name included in every row

    Returns:
        DataFrame with columns source, category, from, to, radius followed
        by the `count_within` columns
    """
    if isinstance(radii, (int, float)):
        radii = [radii]
    if isinstance(categories, str):
        categories = [categories]
    category_list = [None] if categories is None else list(categories)

    rows = []
    for category in category_list:
        for from_selector, to_selector in pairs:
            for radius in radii:
                counts = count_within(cells, dst, from_selector, to_selector, radius, category)
                row = {
                    'source': source,
                    'category': category if category is not None else 'all',
                    'from': _pair_label(from_selector),
                    'to': _pair_label(to_selector),
                    'radius': radius,
                }
                row.update(counts.iloc[0].to_dict())
                rows.append(row)

    result = pd.DataFrame(rows, columns=['source', 'category', 'from', 'to', 'radius'] + WITHIN_COLUMNS)
    return result.astype({'from_count': int, 'to_count': int, 'within_count': int})
