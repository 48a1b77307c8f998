"""Touching cells command"""
import logging
from functools import partial
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

import pandas as pd

from proximity.io import (
    find_composite_path, find_label_map_paths, list_cell_seg_files, load_field, read_composite
)
from proximity.phenotypes import unique_phenotypes, validate_phenotypes
from proximity.reporting.rendering import render_touch_images
from proximity.reporting.touching_cells import count_touching_cells
from proximity.exceptions import InvalidConfigurationError
from cli.commands.batch import run_batch

if TYPE_CHECKING:
    from cli.state import BatchState

logger = logging.getLogger(__name__)

OUTPUT_NAMES = ['touch_counts.csv']


def touches_for_field(
    cell_seg_path: str,
    pairs: List,
    phenotype_rules: Optional[Dict] = None,
    categories=None,
    mutual: bool = False,
    colors: Optional[Dict[str, str]] = None,
    write_images: bool = False,
    output_base: Optional[str] = None
) -> Tuple[pd.DataFrame]:
    """Touch counts for one field, writing pair images if requested"""
    field = load_field(cell_seg_path, with_masks=True)

    result = count_touching_cells(
        field, pairs,
        phenotype_rules=phenotype_rules,
        categories=categories,
        mutual=mutual,
        write_images=write_images
    )

    if write_images and result.touches:
        composite_path = find_composite_path(cell_seg_path)
        written = render_touch_images(
            result, read_composite(composite_path), colors, composite_path,
            output_base=output_base, membrane=field.membrane
        )
        logger.info(f"{field.source}: wrote {len(written)} images")

    return (result.table,)


def run_touch_counts(
    input_dir: str,
    output_dir: str,
    pairs: List,
    phenotype_rules: Optional[Dict] = None,
    categories=None,
    mutual: bool = False,
    colors: Optional[Dict[str, str]] = None,
    write_images: bool = False,
    output_base: Optional[str] = None,
    n_jobs: int = 1,
    state: Optional["BatchState"] = None,
    resume: bool = False
) -> pd.DataFrame:
    """Count touching cells for phenotype pairs in every field of a directory

    Args:
        input_dir: Directory with cell seg tables and segmentation maps
        output_dir: Output directory for touch_counts.csv
        pairs: List of (phenotype1, phenotype2) name pairs
        phenotype_rules: Mapping of phenotype name -> rule; None to use
            the names directly as Phenotype values
        categories: Tissue categories to keep
        mutual: Count mutually touching pairs instead of touching cells
        colors: Mapping of phenotype name -> color, required with write_images
        write_images: Whether to write an image per field and pair
        output_base: Directory for images; defaults to the input directory
        n_jobs: Number of fields processed in parallel
        state: Batch state manager for tracking progress
        resume: Whether to skip already processed fields
    """
    if not pairs:
        raise ValueError("At least one phenotype pair is required")

    phenotypes = unique_phenotypes(pairs)
    if phenotype_rules is not None:
        validate_phenotypes(phenotypes, phenotype_rules)

    paths = list_cell_seg_files(input_dir)
    if not paths:
        raise FileNotFoundError(f"No cell seg data files found in {input_dir}")

    if write_images:
        missing = [p for p in phenotypes if p not in (colors or {})]
        if missing:
            raise InvalidConfigurationError("Colors missing for phenotypes", missing)

    # Every field needs its segmentation maps, and a composite for images;
    # check before doing any work
    for path in paths:
        find_label_map_paths(path)
        if write_images:
            find_composite_path(path)

    process = partial(
        touches_for_field,
        pairs=pairs,
        phenotype_rules=phenotype_rules,
        categories=categories,
        mutual=mutual,
        colors=colors,
        write_images=write_images,
        output_base=output_base
    )
    return run_batch('touches', paths, process, output_dir, OUTPUT_NAMES, state, resume, n_jobs)[0]
