"""Field container and cell table column names"""
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Column names used by inForm cell seg tables
CELL_ID = 'Cell ID'
CELL_X = 'Cell X Position'
CELL_Y = 'Cell Y Position'
PHENOTYPE = 'Phenotype'
TISSUE_CATEGORY = 'Tissue Category'

REQUIRED_COLUMNS = (CELL_ID, CELL_X, CELL_Y)


def check_columns(cells: pd.DataFrame, columns=REQUIRED_COLUMNS):
    """Raise ValueError if any of `columns` is missing from `cells`"""
    missing = [c for c in columns if c not in cells.columns]
    if missing:
        raise ValueError(f"Cell table is missing required columns: {', '.join(missing)}")


def filter_categories(cells: pd.DataFrame, categories=None) -> pd.DataFrame:
    """Restrict a cell table to the given tissue categories

    Args:
        cells: Cell table
        categories: A category name, a list of names, or None for no filtering

    Returns:
        The filtered table (the input itself when `categories` is None)
    """
    if categories is None:
        return cells
    if isinstance(categories, str):
        categories = [categories]
    if TISSUE_CATEGORY not in cells.columns:
        raise ValueError(f"Category filtering requires a '{TISSUE_CATEGORY}' column")
    return cells[cells[TISSUE_CATEGORY].isin(categories)]


@dataclass(frozen=True)
class Field:
    """One imaged field: a cell table plus aligned nucleus and membrane maps.

    Attributes:
        source: Short name of the field, used in result tables
        cells: Cell table with at least ID and X/Y position columns
        nuclei: Nucleus label map (pixel value = cell ID), or None
        membrane: Membrane mask (positive = membrane), or None
    """
    source: str
    cells: pd.DataFrame
    nuclei: Optional[np.ndarray] = None
    membrane: Optional[np.ndarray] = None

    def __post_init__(self):
        check_columns(self.cells)
        if (self.nuclei is None) != (self.membrane is None):
            raise ValueError("Nucleus and membrane maps must be given together")
        if self.nuclei is not None and self.nuclei.shape != self.membrane.shape:
            raise ValueError(
                f"Nucleus map shape {self.nuclei.shape} does not match "
                f"membrane map shape {self.membrane.shape}"
            )
        n_out = len(self.out_of_bounds())
        if n_out:
            logger.warning(f"{self.source}: {n_out} cells lie outside the image extent")

    @property
    def has_masks(self) -> bool:
        return self.nuclei is not None

    @property
    def shape(self):
        return None if self.nuclei is None else self.nuclei.shape

    def out_of_bounds(self) -> pd.DataFrame:
        """Cells whose position falls outside [0, width] x [0, height]"""
        if self.nuclei is None:
            return self.cells.iloc[0:0]
        height, width = self.nuclei.shape
        x = self.cells[CELL_X]
        y = self.cells[CELL_Y]
        outside = (x < 0) | (x > width) | (y < 0) | (y > height)
        return self.cells[outside]
