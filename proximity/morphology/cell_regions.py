"""Reconstruct whole-cell regions from nucleus seeds and the membrane mask"""
import logging
from collections import deque
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from scipy import ndimage
from tqdm import tqdm

from proximity.exceptions import MalformedMaskError
from proximity.field import CELL_ID, check_columns
from proximity.morphology.interior_point import find_interior_point

logger = logging.getLogger(__name__)

# Membrane pixels in a region buffer. Cell IDs are positive and 0 is
# background, so a negative value never collides with either.
MEMBRANE_WALL = -1

# 4-connected neighborhood
NEIGHBORS = ((-1, 0), (1, 0), (0, -1), (0, 1))


def prepare_membrane(membrane: np.ndarray) -> np.ndarray:
    """Make a fresh region buffer with membrane pixels set to MEMBRANE_WALL

    Any positive value (or an existing MEMBRANE_WALL value) in `membrane`
    is treated as membrane; everything else is empty background.
    """
    buffer = np.zeros(membrane.shape, dtype=np.int64)
    buffer[(membrane > 0) | (membrane == MEMBRANE_WALL)] = MEMBRANE_WALL
    return buffer


def flood_fill(image: np.ndarray, seed: Tuple[int, int], value: int) -> int:
    """Fill the 4-connected region containing `seed` with `value`, in place

    Every pixel reachable from `seed` through pixels with the seed's
    original value is set to `value`. Pixels with any other value (e.g.
    membrane walls or previously filled cells) stop the fill. The seed's
    value is replaced whatever it is: seeding inside a compartment another
    cell already filled relabels that whole compartment with `value`.

    Args:
        image: 2D integer buffer, modified in place
        seed: (row, col) starting pixel
        value: Fill value

    Returns:
        Number of pixels filled
    """
    height, width = image.shape
    target = image[seed]
    if target == value:
        return 0

    queue = deque([seed])
    image[seed] = value
    filled = 1

    while queue:
        row, col = queue.popleft()
        for d_row, d_col in NEIGHBORS:
            r, c = row + d_row, col + d_col
            if r < 0 or r >= height or c < 0 or c >= width:
                continue
            if image[r, c] != target:
                continue
            image[r, c] = value
            filled += 1
            queue.append((r, c))

    return filled


def make_cell_image(
    cells: pd.DataFrame,
    nuclei: np.ndarray,
    membrane: np.ndarray,
    show_progress: bool = False
) -> Optional[np.ndarray]:
    """Build a region raster for one phenotype's cells

    Each cell's compartment is filled with its cell ID, starting from the
    most interior point of its nucleus and bounded by the membrane.
    Cells whose nucleus is missing from the nucleus map are skipped. After
    all cells are filled the remaining membrane pixels are cleared, so the
    result holds only cell IDs and 0.

    Args:
        cells: Cells of a single phenotype
        nuclei: Nucleus label map (pixel value = cell ID)
        membrane: Membrane mask (positive = membrane)
        show_progress: Whether to show a progress bar

    Returns:
        int64 region raster, or None if `cells` is empty
    """
    check_columns(cells, (CELL_ID,))
    if nuclei.shape != membrane.shape:
        raise ValueError(
            f"Nucleus map shape {nuclei.shape} does not match membrane shape {membrane.shape}"
        )

    if len(cells) == 0:
        return None

    image = prepare_membrane(membrane)

    # Bounding boxes for every nucleus in one pass
    labels = nuclei.astype(np.int64, copy=False)
    objects = ndimage.find_objects(np.clip(labels, 0, None))

    skipped = 0
    for cell_id in tqdm(cells[CELL_ID].to_numpy(), desc="Filling cells", disable=not show_progress):
        cell_id = int(cell_id)
        bbox = objects[cell_id - 1] if 0 < cell_id <= len(objects) else None
        seed = find_interior_point(labels, cell_id, bbox) if bbox is not None else None

        if seed is None:
            logger.debug(str(MalformedMaskError(cell_id)))
            skipped += 1
            continue

        if image[seed] == MEMBRANE_WALL:
            logger.debug(f"Nucleus seed for cell {cell_id} lies on the membrane, skipping")
            skipped += 1
            continue

        flood_fill(image, seed, cell_id)

    # Remove the membrane outlines
    image[image == MEMBRANE_WALL] = 0

    if skipped:
        logger.info(f"Skipped {skipped}/{len(cells)} cells without a usable nucleus")

    return image
