"""
Expression matrix loading, filtering and normalization
"""

import logging

import numpy as np
import pandas as pd

from ..exceptions import SampleAlignmentError
from ..utils.shared_functions import load_table

logger = logging.getLogger(__name__)

NORMALIZATION_METHODS = ('cpm', 'log2cpm', 'log2', 'zscore', 'minmax', 'none')


def load_expression_matrix(path, gene_col=None):
    """
    Load an expression matrix (features x samples).

    Parameters:
    -----------
    path : str
        Tab or comma separated file, one row per gene
    gene_col : str, optional
        Column holding feature ids; defaults to the first column

    Returns:
    --------
    pd.DataFrame
        Numeric matrix with unique feature ids as index
    """
    df = load_table(path)
    if gene_col is None:
        gene_col = df.columns[0]
    elif gene_col not in df.columns:
        raise ValueError(f"Feature column '{gene_col}' not found in {path}")
    df = df.set_index(gene_col)
    df.index = df.index.astype(str)

    numeric = df.apply(pd.to_numeric, errors='coerce')
    dropped = [c for c in numeric.columns if numeric[c].isna().all()]
    if dropped:
        logger.warning(f"Dropping {len(dropped)} non-numeric columns: {dropped[:5]}")
        numeric = numeric.drop(columns=dropped)

    if numeric.index.has_duplicates:
        n_dup = numeric.index.duplicated().sum()
        logger.warning(f"Collapsing {n_dup} duplicated feature ids by mean")
        numeric = numeric.groupby(level=0, sort=False).mean()

    logger.info(f"Expression matrix has {numeric.shape[0]} features and {numeric.shape[1]} samples")
    return numeric


def filter_low_expression(matrix, min_value=1.0, min_fraction=0.2):
    """Keep features above min_value in at least min_fraction of samples"""
    if not 0 <= min_fraction <= 1:
        raise ValueError(f"min_fraction must be within [0, 1], got {min_fraction}")
    min_samples = min_fraction * matrix.shape[1]
    keep = (matrix > min_value).sum(axis=1) >= min_samples
    filtered = matrix.loc[keep]
    logger.info(f"Expression matrix after filtering: {filtered.shape} (removed {(~keep).sum()} features)")
    return filtered


def normalize_counts(matrix, method='log2cpm', prior_count=0.5):
    """
    Normalize an expression matrix.

    cpm and log2cpm scale each sample by its library size; log2 is log2(x + 1);
    zscore and minmax work gene-wise, mapping constant rows to 0.
    """
    data = matrix.astype(float)

    if method == 'none':
        return data
    if method == 'cpm':
        lib_size = data.sum(axis=0)
        if (lib_size <= 0).any():
            raise ValueError("Cannot compute CPM for samples with zero library size")
        return data.div(lib_size, axis=1) * 1e6
    if method == 'log2cpm':
        lib_size = data.sum(axis=0)
        if (lib_size <= 0).any():
            raise ValueError("Cannot compute CPM for samples with zero library size")
        # Same offsets as edgeR's cpm(log = TRUE)
        adjusted_prior = prior_count * lib_size / lib_size.mean()
        adjusted_lib = lib_size + 2 * adjusted_prior
        return np.log2((data + adjusted_prior) / adjusted_lib * 1e6)
    if method == 'log2':
        if (data < -1).any().any():
            raise ValueError("log2(x + 1) is undefined for values below -1")
        return np.log2(data + 1)
    if method == 'zscore':
        mean = data.mean(axis=1)
        std = data.std(axis=1).replace(0, np.nan)
        return data.sub(mean, axis=0).div(std, axis=0).fillna(0.0)
    if method == 'minmax':
        min_vals = data.min(axis=1)
        span = (data.max(axis=1) - min_vals).replace(0, np.nan)
        return data.sub(min_vals, axis=0).div(span, axis=0).fillna(0.0)
    raise ValueError(f"Unknown normalization method '{method}'. Choose from {NORMALIZATION_METHODS}")


def align_samples(matrix, metadata, how='strict'):
    """
    Align matrix columns with metadata rows.

    Parameters:
    -----------
    matrix : pd.DataFrame
        Features x samples
    metadata : pd.DataFrame
        Indexed by sample id
    how : str
        'strict' requires both sides to hold exactly the same samples;
        'intersect' keeps the shared samples and logs the rest

    Returns:
    --------
    tuple of (pd.DataFrame, pd.DataFrame)
        Matrix and metadata with identical, identically ordered sample ids
    """
    if how not in ('strict', 'intersect'):
        raise ValueError(f"Unknown alignment mode '{how}'")
    if matrix.columns.has_duplicates:
        dup = matrix.columns[matrix.columns.duplicated()].unique().tolist()
        raise SampleAlignmentError(f"Duplicated sample ids in matrix columns: {dup[:5]}")
    if metadata.index.has_duplicates:
        dup = metadata.index[metadata.index.duplicated()].unique().tolist()
        raise SampleAlignmentError(f"Duplicated sample ids in metadata: {dup[:5]}")

    matrix_ids = pd.Index(matrix.columns.astype(str))
    meta_ids = pd.Index(metadata.index.astype(str))
    matrix = matrix.set_axis(matrix_ids, axis=1)
    metadata = metadata.set_axis(meta_ids, axis=0)

    only_matrix = matrix_ids.difference(meta_ids)
    only_meta = meta_ids.difference(matrix_ids)

    if how == 'strict' and (len(only_matrix) or len(only_meta)):
        raise SampleAlignmentError(
            f"{len(only_matrix)} matrix samples lack metadata {only_matrix[:5].tolist()}, "
            f"{len(only_meta)} metadata samples lack data {only_meta[:5].tolist()}"
        )
    if len(only_matrix):
        logger.warning(f"Dropping {len(only_matrix)} matrix samples without metadata: {only_matrix[:5].tolist()}")
    if len(only_meta):
        logger.warning(f"Dropping {len(only_meta)} metadata samples without data: {only_meta[:5].tolist()}")

    meta_set = set(meta_ids)
    shared = [s for s in matrix_ids if s in meta_set]
    if not shared:
        raise SampleAlignmentError("Matrix and metadata share no sample ids")

    logger.info(f"Aligned {len(shared)} samples")
    return matrix.loc[:, shared], metadata.loc[shared]
