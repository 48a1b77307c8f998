# -*- coding: utf-8 -*-
"""
Count touching cells for pairs of phenotypes.

For each phenotype a region raster is built by filling the membrane mask
from each cell's nucleus (see proximity.morphology.cell_regions). Pairs of
region rasters are then compared by dilation to find touching cells.

Two kinds of result are available:
- directional (mutual=False): for each pair, how many cells of each
  phenotype touch a cell of the other, and what fraction of the phenotype
  that is
- mutual (mutual=True): the number of distinct touching (cell1, cell2) pairs

This is the statistics pass only. Images are drawn separately from the
returned regions and touches (proximity.reporting.rendering).
"""

import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from proximity.exceptions import MissingAssetError
from proximity.field import Field, filter_categories
from proximity.morphology.cell_regions import make_cell_image
from proximity.morphology.touching import find_touching_cell_ids, find_touching_cell_pairs
from proximity.phenotypes import (
    make_phenotype_rules,
    parse_phenotype_rules,
    phenotype_counts,
    require_population,
    unique_phenotypes,
    validate_phenotypes
)

logger = logging.getLogger(__name__)

MUTUAL_COLUMNS = ['source', 'phenotype1', 'phenotype2', 'count', 'total1', 'total2']
DIRECTIONAL_COLUMNS = ['source', 'phenotype', 'touching', 'count', 'fraction', 'total']


@dataclass
class TouchResult:
    """Output of `count_touching_cells`

    Attributes:
        table: Counts, one row per pair (mutual) or two rows per pair (directional)
        regions: Region raster per phenotype, None for empty phenotypes.
            Only phenotypes that were needed are present.
        touches: Per (phenotype1, phenotype2) pair, either a tuple of
            (phenotype1 touching IDs, phenotype2 touching IDs) or, for mutual
            counts, a DataFrame of touching pairs. Pairs with an empty
            population are absent.
        skipped_images: Pairs for which images were requested but could not
            be drawn because a population was empty
    """
    table: pd.DataFrame
    regions: Dict[str, Optional[np.ndarray]] = dataclass_field(default_factory=dict)
    touches: Dict[Tuple[str, str], object] = dataclass_field(default_factory=dict)
    skipped_images: List[Tuple[str, str]] = dataclass_field(default_factory=list)
    mutual: bool = False


def _fraction(count: int, total: int) -> float:
    # 0/0 is undefined, reported as NaN
    return count / total if total > 0 else np.nan


def count_touching_cells(
    field: Field,
    pairs: Sequence[Sequence[str]],
    phenotype_rules: Optional[Mapping] = None,
    categories=None,
    mutual: bool = False,
    write_images: bool = False,
    touch_radius: int = 2,
    pair_radius: int = 1,
    show_progress: bool = False
) -> TouchResult:
    """Find and count touching cells for pairs of phenotypes in one field

    Args:
        field: Field with cell table and nucleus/membrane maps
        pairs: List of (phenotype1, phenotype2) name pairs
        phenotype_rules: Mapping of phenotype name -> rule. Must include
            every name in `pairs`. If None, the names in `pairs` are used
            directly as Phenotype column values.
        categories: Tissue category or list of categories to keep; None for all
        mutual: Count mutually touching pairs instead of touching cells
        write_images: Whether images will be drawn from the result. Only
            used to flag pairs where no image can be made.
        touch_radius: Dilation radius for directional counts
        pair_radius: Dilation radius for mutual pair counts
        show_progress: Whether to show progress bars while filling cells

    Returns:
        TouchResult
    """
    # Check or make phenotype rules before doing any work
    phenotypes = unique_phenotypes(pairs)
    if phenotype_rules is None:
        rules = make_phenotype_rules(phenotypes)
    else:
        validate_phenotypes(phenotypes, phenotype_rules)
        rules = parse_phenotype_rules({name: phenotype_rules[name] for name in phenotypes})

    if not field.has_masks:
        raise MissingAssetError(field.source, what="Nucleus and membrane maps for")

    cells = filter_categories(field.cells, categories)

    totals = phenotype_counts(cells, rules)

    result = TouchResult(table=pd.DataFrame(), mutual=mutual)

    def regions_for(name):
        # Build each phenotype's regions once and reuse them across pairs
        if name not in result.regions:
            logger.debug(f"{field.source}: building regions for {name} ({totals[name]} cells)")
            selected = require_population(cells, rules[name], name)
            result.regions[name] = make_cell_image(
                selected, field.nuclei, field.membrane, show_progress
            )
        return result.regions[name]

    rows = []
    for p1, p2 in pairs:
        p1_count = totals[p1]
        p2_count = totals[p2]

        if p1_count == 0 or p2_count == 0:
            # No data for one of the phenotypes; report zeros and go on
            if mutual:
                rows.append([field.source, p1, p2, 0, p1_count, p2_count])
            else:
                rows.append([field.source, p1, p2, 0, _fraction(0, p1_count), p1_count])
                rows.append([field.source, p2, p1, 0, _fraction(0, p2_count), p2_count])
            if write_images:
                logger.warning(f"No image for {field.source}, {p1} touching {p2}")
                result.skipped_images.append((p1, p2))
            continue

        r1 = regions_for(p1)
        r2 = regions_for(p2)

        if mutual:
            # One cell may touch several others, so no fraction is reported
            touch_pairs = find_touching_cell_pairs(r1, r2, radius=pair_radius)
            result.touches[(p1, p2)] = touch_pairs
            rows.append([field.source, p1, p2, len(touch_pairs), p1_count, p2_count])
        else:
            p1_touching, p2_touching = find_touching_cell_ids(r1, r2, radius=touch_radius)
            result.touches[(p1, p2)] = (p1_touching, p2_touching)
            rows.append([field.source, p1, p2, len(p1_touching),
                         _fraction(len(p1_touching), p1_count), p1_count])
            rows.append([field.source, p2, p1, len(p2_touching),
                         _fraction(len(p2_touching), p2_count), p2_count])

    columns = MUTUAL_COLUMNS if mutual else DIRECTIONAL_COLUMNS
    table = pd.DataFrame(rows, columns=columns)
    if mutual:
        result.table = table.astype({'count': int, 'total1': int, 'total2': int})
    else:
        result.table = table.astype({'count': int, 'fraction': float, 'total': int})

    logger.info(f"{field.source}: counted touches for {len(pairs)} phenotype pairs")
    return result
