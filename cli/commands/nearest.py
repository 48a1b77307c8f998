"""Nearest-neighbor distance command"""
import logging
from functools import partial
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import pandas as pd

from proximity.analysis.distance import distance_matrix
from proximity.analysis.nearest_neighbors import find_nearest_distance, mutual_nearest_pairs
from proximity.field import CELL_ID, PHENOTYPE, filter_categories
from proximity.io import list_cell_seg_files, load_field
from proximity.phenotypes import resolve_selector, unique_phenotypes, validate_phenotypes
from cli.commands.batch import run_batch

if TYPE_CHECKING:
    from cli.state import BatchState

logger = logging.getLogger(__name__)

OUTPUT_NAMES = ['nearest_distances.csv', 'mutual_nearest_pairs.csv']


def nearest_for_field(
    cell_seg_path: str,
    phenotype_rules: Optional[Dict] = None,
    phenotypes: Optional[List[str]] = None,
    mutual_pairs: Optional[List] = None,
    categories=None,
    pixels_per_micron: Optional[float] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Nearest distances and mutual nearest pairs for one field

    Returns:
        (per-cell nearest distance table, mutual nearest pair table)
    """
    field = load_field(cell_seg_path, with_masks=False)
    cells = filter_categories(field.cells, categories)
    dst = distance_matrix(cells, pixels_per_micron)

    if phenotypes:
        selection = {name: resolve_selector(name, phenotype_rules) for name in phenotypes}
    else:
        selection = phenotype_rules

    nearest = find_nearest_distance(cells, selection, dst)
    ids = pd.DataFrame({'source': field.source, CELL_ID: cells[CELL_ID]}, index=cells.index)
    if PHENOTYPE in cells.columns:
        ids[PHENOTYPE] = cells[PHENOTYPE]
    table = pd.concat([ids, nearest], axis=1)

    mutual_tables = []
    for p1, p2 in mutual_pairs or []:
        pairs = mutual_nearest_pairs(
            cells, dst, resolve_selector(p1, phenotype_rules), resolve_selector(p2, phenotype_rules)
        )
        pairs.insert(0, 'phenotype2', p2)
        pairs.insert(0, 'phenotype1', p1)
        pairs.insert(0, 'source', field.source)
        mutual_tables.append(pairs)
    mutual = pd.concat(mutual_tables, ignore_index=True) if mutual_tables else pd.DataFrame()

    logger.debug(f"{field.source}: nearest distances for {len(cells)} cells")
    return table, mutual


def run_nearest_distances(
    input_dir: str,
    output_dir: str,
    phenotype_rules: Optional[Dict] = None,
    phenotypes: Optional[List[str]] = None,
    mutual_pairs: Optional[List] = None,
    categories=None,
    pixels_per_micron: Optional[float] = None,
    n_jobs: int = 1,
    state: Optional["BatchState"] = None,
    resume: bool = False
) -> List[pd.DataFrame]:
    """Compute nearest-neighbor distances for every field in a directory

    Args:
        input_dir: Directory with cell seg tables
        output_dir: Output directory for result CSVs
        phenotype_rules: Mapping of phenotype name -> rule; None to use
            Phenotype column values directly
        phenotypes: Phenotypes to measure distances to (default: all)
        mutual_pairs: Phenotype pairs to report mutual nearest neighbors for
        categories: Tissue categories to keep
        pixels_per_micron: Conversion factor; None if positions are in microns
        n_jobs: Number of fields processed in parallel
        state: Batch state manager for tracking progress
        resume: Whether to skip already processed fields
    """
    if phenotype_rules:
        validate_phenotypes(unique_phenotypes(mutual_pairs or []), phenotype_rules)
        validate_phenotypes(phenotypes or [], phenotype_rules)

    paths = list_cell_seg_files(input_dir)
    if not paths:
        raise FileNotFoundError(f"No cell seg data files found in {input_dir}")

    process = partial(
        nearest_for_field,
        phenotype_rules=phenotype_rules,
        phenotypes=phenotypes,
        mutual_pairs=mutual_pairs,
        categories=categories,
        pixels_per_micron=pixels_per_micron
    )
    return run_batch('nearest', paths, process, output_dir, OUTPUT_NAMES, state, resume, n_jobs)
