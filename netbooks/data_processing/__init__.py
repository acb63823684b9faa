"""
Data Processing module for expression, metadata and network inputs.

This package provides utilities for:
- TCGA barcode parsing and sample filtering
- Clinical metadata loading and covariate harmonization
- Expression filtering, normalization and sample alignment
- PANDA / LIONESS network loading and targeting scores
"""

from .utils import clean_barcode, parse_tcga_barcode, sample_type_of, filter_tcga_samples
from .clinical import load_clinical_table, harmonize_covariates, filter_metadata
from .expression import load_expression_matrix, filter_low_expression, normalize_counts, align_samples
from .network import (
    load_motif_prior,
    load_ppi,
    restrict_to_prior,
    load_panda_network,
    edges_to_matrix,
    load_lioness_network,
    targeting_scores,
    differential_edges
)
