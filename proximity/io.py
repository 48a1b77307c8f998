"""Readers for cell seg tables, segmentation maps and composite images"""
import logging
import os
import re
from glob import glob
from typing import Dict, List, Tuple

import imageio.v3 as iio
import numpy as np
import pandas as pd
from tifffile import TiffFile, imread

from proximity.exceptions import MissingAssetError
from proximity.field import Field, check_columns

logger = logging.getLogger(__name__)

CELL_SEG_SUFFIX = 'cell_seg_data.txt'


def list_cell_seg_files(directory: str) -> List[str]:
    """List cell seg data files in a directory

    Args:
        directory: Directory to search

    Returns:
        Sorted list of paths ending in `_cell_seg_data.txt`
    """
    directory = os.path.normpath(directory)
    if not os.path.isdir(directory):
        raise FileNotFoundError(f"Directory not found: {directory}")
    return sorted(glob(os.path.join(directory, f'*_{CELL_SEG_SUFFIX}')))


def source_name(cell_seg_path: str) -> str:
    """Base file name with `_cell_seg_data.txt` stripped off"""
    return re.sub(f'_{CELL_SEG_SUFFIX}$', '', os.path.basename(cell_seg_path))


def sibling_path(cell_seg_path: str, suffix: str) -> str:
    """Path of a file next to the cell seg table, e.g. `memb_seg_map.tif`"""
    return re.sub(f'{CELL_SEG_SUFFIX}$', suffix, cell_seg_path)


def read_cell_seg_table(path: str) -> pd.DataFrame:
    """Read a tab-separated cell seg table"""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Cell seg table not found: {path}")
    cells = pd.read_csv(path, sep='\t', na_values=['NA', '#N/A'])
    check_columns(cells)
    logger.debug(f"Read {len(cells)} cells from {path}")
    return cells


def _read_binary_seg_maps(path: str) -> Dict[str, np.ndarray]:
    """Read the compartment maps from a multi-page binary seg map file

    Pages are identified by the CompartmentType in their description.
    """
    maps = {}
    with TiffFile(path) as tif:
        for page in tif.pages:
            match = re.search(r'<CompartmentType>(\w+)</CompartmentType>', page.description or '')
            if match and match.group(1) not in maps:
                maps[match.group(1)] = page.asarray()
    return maps


def find_label_map_paths(cell_seg_path: str) -> Tuple[str, ...]:
    """Locate the segmentation map files for a cell seg table without reading them

    Returns:
        (nuclei_path, membrane_path) for separate maps, or a one-element
        tuple with the combined `_binary_seg_maps.tif` path
    """
    membrane_path = sibling_path(cell_seg_path, 'memb_seg_map.tif')
    if os.path.exists(membrane_path):
        nuclei_path = sibling_path(cell_seg_path, 'nuc_seg_map.tif')
        if not os.path.exists(nuclei_path):
            raise MissingAssetError(nuclei_path, what="Nucleus map")
        return nuclei_path, membrane_path

    maps_path = sibling_path(cell_seg_path, 'binary_seg_maps.tif')
    if not os.path.exists(maps_path):
        raise MissingAssetError(maps_path, what="Segmentation maps")
    return (maps_path,)


def read_label_maps(cell_seg_path: str) -> Tuple[np.ndarray, np.ndarray]:
    """Read the nucleus and membrane maps belonging to a cell seg table

    Looks for `_memb_seg_map.tif` with `_nuc_seg_map.tif`, then for the
    combined `_binary_seg_maps.tif`.

    Returns:
        (nuclei, membrane) arrays indexed (row, col) = (y, x)
    """
    paths = find_label_map_paths(cell_seg_path)
    if len(paths) == 2:
        return imread(paths[0]), imread(paths[1])

    maps = _read_binary_seg_maps(paths[0])
    if 'Nucleus' not in maps or 'Membrane' not in maps:
        raise MissingAssetError(paths[0], what="Nucleus and membrane pages in")
    return maps['Nucleus'], maps['Membrane']


def find_composite_path(cell_seg_path: str) -> str:
    """Locate the composite image for a cell seg table, as TIFF or JPEG"""
    for suffix in ('composite_image.tif', 'composite_image.jpg'):
        path = sibling_path(cell_seg_path, suffix)
        if os.path.exists(path):
            return path
    raise MissingAssetError(sibling_path(cell_seg_path, 'composite_image.tif'),
                            what="TIFF or JPEG composite image")


def read_composite(path: str) -> np.ndarray:
    """Read a composite image"""
    if path.lower().endswith(('.tif', '.tiff')):
        return imread(path)
    return iio.imread(path)


def load_field(cell_seg_path: str, with_masks: bool = True) -> Field:
    """Read a cell seg table and, optionally, its segmentation maps"""
    cells = read_cell_seg_table(cell_seg_path)
    nuclei = membrane = None
    if with_masks:
        nuclei, membrane = read_label_maps(cell_seg_path)
    return Field(source_name(cell_seg_path), cells, nuclei, membrane)
