"""
Network notebook analyses for cancer cohorts.

This package contains modules for loading expression data and precomputed
regulatory networks (PANDA, LIONESS), aligning them with sample metadata,
and running differential, enrichment and survival analyses on the result.
"""

__version__ = "1.0.0"
