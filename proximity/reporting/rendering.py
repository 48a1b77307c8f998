"""Draw touching cells onto the field composite image"""
import logging
import os
import re
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

import numpy as np
from matplotlib.colors import to_rgb
from scipy import ndimage
from skimage.morphology import diamond
from skimage.segmentation import find_boundaries
from tifffile import imwrite

from proximity.exceptions import InvalidConfigurationError

logger = logging.getLogger(__name__)

CONTACT_COLOR = (1.0, 1.0, 1.0)


def to_rgb_float(image: np.ndarray) -> np.ndarray:
    """Convert a grayscale or RGB(A) image of any dtype to float RGB in [0, 1]"""
    img = np.asarray(image)
    if img.ndim == 2:
        img = np.stack([img, img, img], axis=-1)
    elif img.ndim == 3 and img.shape[0] in (3, 4) and img.shape[-1] not in (3, 4):
        # Planar (channel-first) TIFF
        img = np.moveaxis(img, 0, -1)
    if img.ndim != 3 or img.shape[-1] not in (3, 4):
        raise ValueError(f"Expected a grayscale or RGB image, got shape {np.shape(image)}")
    img = img[..., :3]

    if np.issubdtype(img.dtype, np.integer):
        img = img.astype(float) / np.iinfo(img.dtype).max
    else:
        img = img.astype(float)
    return np.clip(img, 0, 1)


def _check_colors(colors: Mapping, phenotypes: Sequence[str]):
    missing = [p for p in phenotypes if p not in colors]
    if missing:
        raise InvalidConfigurationError("Colors missing for phenotypes", missing)


def render_touching_cells(
    composite: np.ndarray,
    r1: np.ndarray,
    r2: np.ndarray,
    touching1,
    touching2,
    color1,
    color2,
    membrane: Optional[np.ndarray] = None
) -> np.ndarray:
    """Draw two phenotypes and their touching cells on a composite image

    All cells of each phenotype are outlined in the phenotype color;
    touching cells are filled. The contact zone around touching cells is
    outlined in white.

    Args:
        composite: Composite image (grayscale or RGB) aligned with the rasters
        r1, r2: Region rasters for phenotype 1 and 2
        touching1, touching2: IDs of touching cells in r1 and r2
        color1, color2: Any matplotlib color specification
        membrane: Optional membrane mask limiting the contact zone

    Returns:
        Float RGB image in [0, 1]
    """
    image = to_rgb_float(composite).copy()
    if image.shape[:2] != r1.shape or r1.shape != r2.shape:
        raise ValueError(
            f"Composite shape {image.shape[:2]} does not match region shapes {r1.shape}, {r2.shape}"
        )

    touching_masks = []
    for regions, touching, color in ((r1, touching1, color1), (r2, touching2, color2)):
        rgb = to_rgb(color)
        touching_mask = np.isin(regions, np.asarray(touching)) & (regions > 0)
        image[find_boundaries(regions, mode='inner')] = rgb
        image[touching_mask] = rgb
        touching_masks.append(touching_mask)

    # Contact zone: touching cells grown into the surrounding membrane
    both = ndimage.binary_dilation(touching_masks[0] | touching_masks[1], structure=diamond(1))
    if membrane is not None:
        both &= membrane != 0
    image[find_boundaries(both, mode='inner')] = CONTACT_COLOR

    return image


def touch_image_path(
    composite_path: str,
    phenotype1: str,
    phenotype2: str,
    output_base: Optional[str] = None
) -> str:
    """Output path for a pair image, derived from the composite path"""
    tag = f'{phenotype1}_{phenotype2}_touching.tif'
    name = os.path.basename(composite_path)
    out_name, n_subs = re.subn(r'composite_image\.(tif|jpg)$', tag, name)
    if n_subs == 0:
        out_name = f'{os.path.splitext(name)[0]}_{tag}'

    directory = output_base if output_base is not None else os.path.dirname(composite_path)
    return os.path.join(directory, out_name)


def write_touch_image(path: str, image: np.ndarray):
    """Write a float RGB image as an 8-bit compressed TIFF"""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    data = np.round(np.clip(image, 0, 1) * 255).astype(np.uint8)
    imwrite(path, data, photometric='rgb', compression='zlib')


def render_touch_images(
    result,
    composite: np.ndarray,
    colors: Mapping,
    composite_path: str,
    output_base: Optional[str] = None,
    membrane: Optional[np.ndarray] = None
) -> List[str]:
    """Write one image per phenotype pair from a TouchResult

    Args:
        result: TouchResult from count_touching_cells
        composite: Composite image for the field
        colors: Mapping of phenotype name -> color
        composite_path: Path of the composite, used to name outputs
        output_base: Output directory; defaults to the composite's directory
        membrane: Optional membrane mask limiting the contact zone

    Returns:
        Paths of the images written
    """
    phenotypes = sorted({p for pair in result.touches for p in pair})
    _check_colors(colors, phenotypes)

    written = []
    for (p1, p2), touches in result.touches.items():
        if result.mutual:
            touching1, touching2 = touches['id1'].to_numpy(), touches['id2'].to_numpy()
        else:
            touching1, touching2 = touches

        image = render_touching_cells(
            composite, result.regions[p1], result.regions[p2],
            touching1, touching2, colors[p1], colors[p2], membrane
        )
        out_path = touch_image_path(composite_path, p1, p2, output_base)
        write_touch_image(out_path, image)
        written.append(out_path)
        logger.debug(f"Wrote {out_path}")

    return written
