"""Touching-cell reports and images"""

from proximity.reporting.touching_cells import TouchResult, count_touching_cells
from proximity.reporting.rendering import (
    render_touch_images,
    render_touching_cells,
    touch_image_path,
    write_touch_image
)

__all__ = [
    'TouchResult',
    'count_touching_cells',
    'render_touch_images',
    'render_touching_cells',
    'touch_image_path',
    'write_touch_image'
]
