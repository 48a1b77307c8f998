"""Count-within-radius command"""
import logging
from functools import partial
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import pandas as pd

from proximity.analysis.distance import distance_matrix
from proximity.analysis.within_radius import count_within_many
from proximity.io import list_cell_seg_files, load_field
from proximity.phenotypes import resolve_selector
from cli.commands.batch import run_batch

if TYPE_CHECKING:
    from cli.state import BatchState

logger = logging.getLogger(__name__)

OUTPUT_NAMES = ['count_within.csv']


def within_for_field(
    cell_seg_path: str,
    pairs: List,
    radii: List[float],
    phenotype_rules: Optional[Dict] = None,
    categories=None,
    pixels_per_micron: Optional[float] = None
) -> Tuple[pd.DataFrame]:
    """Counts within each radius for every pair in one field"""
    field = load_field(cell_seg_path, with_masks=False)

    # One distance matrix per field, sliced for every pair and radius
    dst = distance_matrix(field.cells, pixels_per_micron)

    counts = count_within_many(field.cells, dst, _resolve_pairs(pairs, phenotype_rules),
                               radii, categories, source=field.source)

    # Report the names used in the configuration rather than the rules
    labels = [(_label(a), _label(b)) for a, b in pairs for _ in radii]
    n_categories = len(counts) // max(1, len(labels))
    counts['from'] = [a for a, _ in labels] * n_categories
    counts['to'] = [b for _, b in labels] * n_categories
    return (counts,)


def _label(selector) -> str:
    return selector if isinstance(selector, str) else '/'.join(selector)


def _resolve_pairs(pairs: List, phenotype_rules: Optional[Dict]) -> List:
    return [(resolve_selector(a, phenotype_rules), resolve_selector(b, phenotype_rules))
            for a, b in pairs]


def run_count_within(
    input_dir: str,
    output_dir: str,
    pairs: List,
    radii: List[float],
    phenotype_rules: Optional[Dict] = None,
    categories=None,
    pixels_per_micron: Optional[float] = None,
    n_jobs: int = 1,
    state: Optional["BatchState"] = None,
    resume: bool = False
) -> pd.DataFrame:
    """Count cells within radii of other cells for every field in a directory

    Args:
        input_dir: Directory with cell seg tables
        output_dir: Output directory for count_within.csv
        pairs: (from, to) pairs; each entry is a phenotype name or list of names
        radii: Radii to count within, in microns
        phenotype_rules: Mapping of phenotype name -> rule; None to use
            Phenotype column values directly
        categories: Tissue categories, each counted separately
        pixels_per_micron: Conversion factor; None if positions are in microns
        n_jobs: Number of fields processed in parallel
        state: Batch state manager for tracking progress
        resume: Whether to skip already processed fields
    """
    if not pairs:
        raise ValueError("At least one phenotype pair is required")
    if not radii:
        raise ValueError("At least one radius is required")

    # Fail fast on unknown phenotypes
    _resolve_pairs(pairs, phenotype_rules)

    paths = list_cell_seg_files(input_dir)
    if not paths:
        raise FileNotFoundError(f"No cell seg data files found in {input_dir}")

    process = partial(
        within_for_field,
        pairs=pairs,
        radii=radii,
        phenotype_rules=phenotype_rules,
        categories=categories,
        pixels_per_micron=pixels_per_micron
    )
    return run_batch('within', paths, process, output_dir, OUTPUT_NAMES, state, resume, n_jobs)[0]
