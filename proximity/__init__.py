# -*- coding: utf-8 -*-
"""
Spatial relationships between phenotyped cells in multiplexed tissue images.

Subpackages:
- analysis: distance matrix, nearest neighbors, counts within a radius
- morphology: cell regions from nucleus/membrane maps, touching cells
- reporting: touching-cell counts per phenotype pair and images
"""

__version__ = '0.1.0'
