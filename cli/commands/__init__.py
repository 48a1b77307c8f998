"""CLI Commands Package

Available commands:
- nearest: Nearest-neighbor distances and mutual nearest pairs
- within: Counts of cells within a radius of other cells
- touches: Touching cell counts and images
- pipeline: Run all enabled analyses
"""

from cli.commands.nearest import run_nearest_distances
from cli.commands.within import run_count_within
from cli.commands.touches import run_touch_counts

__all__ = [
    'run_nearest_distances',
    'run_count_within',
    'run_touch_counts'
]
