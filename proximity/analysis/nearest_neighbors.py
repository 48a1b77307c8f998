"""Nearest-neighbor search between phenotype populations"""
import logging
from typing import Mapping, Optional, Union, Iterable

import numpy as np
import pandas as pd

from proximity.analysis.distance import distance_matrix
from proximity.field import CELL_ID, PHENOTYPE, filter_categories
from proximity.phenotypes import make_phenotype_rules, parse_rule, select_rows

logger = logging.getLogger(__name__)

NN_COLUMNS = ['cell_id', 'nearest_id', 'distance']


def _empty_result() -> pd.DataFrame:
    return pd.DataFrame({
        'cell_id': pd.Series(dtype='int64'),
        'nearest_id': pd.Series(dtype='int64'),
        'distance': pd.Series(dtype='float64'),
    })


def find_nearest_neighbor(
    from_cells: pd.DataFrame,
    to_cells: pd.DataFrame,
    dst: pd.DataFrame
) -> pd.DataFrame:
    """Find the closest `to` cell for every `from` cell

    A cell is never its own neighbor, so overlapping populations are
    handled. From-cells without any candidate (empty to-set, or the only
    candidate is the cell itself) are left out of the result rather than
    given a zero or NaN distance.

    When several to-cells are equidistant the first one in `to_cells`
    order is returned. The choice is deterministic for a given ordering
    of the input table but otherwise arbitrary.

    Args:
        from_cells: Cells to search from
        to_cells: Candidate neighbor cells
        dst: Distance matrix indexed by cell ID, covering both populations

    Returns:
        DataFrame with columns cell_id, nearest_id, distance
    """
    if len(from_cells) == 0 or len(to_cells) == 0:
        return _empty_result()

    from_ids = from_cells[CELL_ID].to_numpy()
    to_ids = to_cells[CELL_ID].to_numpy()

    distances = dst.loc[from_ids, to_ids].to_numpy(dtype=float, copy=True)
    distances[from_ids[:, None] == to_ids[None, :]] = np.inf

    nearest = np.argmin(distances, axis=1)
    nearest_dist = distances[np.arange(len(from_ids)), nearest]
    found = np.isfinite(nearest_dist)

    return pd.DataFrame({
        'cell_id': from_ids[found],
        'nearest_id': to_ids[nearest[found]],
        'distance': nearest_dist[found],
    })


def find_mutual_nearest_neighbors(
    a_to_b: pd.DataFrame,
    b_to_a: pd.DataFrame
) -> pd.DataFrame:
    """Keep pairs (a, b) where b is a's nearest neighbor and a is b's

    Args:
        a_to_b: Result of `find_nearest_neighbor(A, B, dst)`
        b_to_a: Result of `find_nearest_neighbor(B, A, dst)`

    Returns:
        DataFrame with columns cell_id (an A cell), nearest_id (a B cell), distance
    """
    reverse = b_to_a[['cell_id', 'nearest_id']].rename(
        columns={'cell_id': 'nearest_id', 'nearest_id': 'cell_id'}
    )
    mutual = a_to_b.merge(reverse, on=['cell_id', 'nearest_id'], how='inner')
    return mutual[NN_COLUMNS].reset_index(drop=True)


def nearest_neighbors(
    cells: pd.DataFrame,
    dst: pd.DataFrame,
    from_selector,
    to_selector,
    category=None
) -> pd.DataFrame:
    """Directional nearest neighbors between two phenotypes

    Args:
        cells: Cell table
        dst: Distance matrix for `cells`
        from_selector: Phenotype rule for the from-cells
        to_selector: Phenotype rule for the to-cells
        category: Optional tissue category (or list) restricting both populations

    Returns:
        DataFrame with columns cell_id, nearest_id, distance
    """
    cells = filter_categories(cells, category)
    from_cells = cells[select_rows(cells, from_selector)]
    to_cells = cells[select_rows(cells, to_selector)]
    return find_nearest_neighbor(from_cells, to_cells, dst)


def mutual_nearest_pairs(
    cells: pd.DataFrame,
    dst: pd.DataFrame,
    selector1,
    selector2,
    category=None
) -> pd.DataFrame:
    """Mutual nearest-neighbor pairs between two phenotypes

    Returns:
        DataFrame with columns cell_id (phenotype 1), nearest_id (phenotype 2), distance
    """
    a_to_b = nearest_neighbors(cells, dst, selector1, selector2, category)
    b_to_a = nearest_neighbors(cells, dst, selector2, selector1, category)
    return find_mutual_nearest_neighbors(a_to_b, b_to_a)


def find_nearest_distance(
    cells: pd.DataFrame,
    phenotypes: Optional[Union[Mapping, Iterable[str]]] = None,
    dst: Optional[pd.DataFrame] = None,
    pixels_per_micron: Optional[float] = None
) -> pd.DataFrame:
    """Distance from every cell to the nearest cell of each phenotype

    Adds two columns per phenotype: `Distance to <name>` and `Cell ID <name>`.
    Both are missing for cells with no other cell of that phenotype.

    Args:
        cells: Cell table
        phenotypes: Mapping of name -> rule, or a list of names in the
            Phenotype column. Defaults to every distinct Phenotype value.
        dst: Precomputed distance matrix; computed here if not given
        pixels_per_micron: Conversion factor used when `dst` is computed here

    Returns:
        DataFrame aligned with `cells` holding the new columns
    """
    if phenotypes is None:
        phenotypes = sorted(cells[PHENOTYPE].dropna().unique())
    if not isinstance(phenotypes, Mapping):
        phenotypes = make_phenotype_rules(phenotypes)

    if dst is None:
        dst = distance_matrix(cells, pixels_per_micron)

    result = pd.DataFrame(index=cells.index)
    for name, rule in phenotypes.items():
        to_cells = cells[select_rows(cells, parse_rule(rule))]
        nearest = find_nearest_neighbor(cells, to_cells, dst).set_index('cell_id')

        ids = cells[CELL_ID]
        result[f'Distance to {name}'] = ids.map(nearest['distance']).astype(float)
        result[f'Cell ID {name}'] = ids.map(nearest['nearest_id']).astype('Int64')

        logger.debug(f"Nearest {name}: {len(nearest)}/{len(cells)} cells have a neighbor")

    return result
