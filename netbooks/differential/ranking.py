import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests


def adjust_pvalues(p_values, method='fdr_bh'):
    """
    Multiple-testing adjustment that leaves missing p-values missing.

    Args:
        p_values (array-like): Raw p-values, NaN allowed.
        method (str): Any method accepted by statsmodels' multipletests.

    Returns:
        np.ndarray: Adjusted p-values in the input order.
    """
    p = np.asarray(p_values, dtype=float)
    adjusted = np.full(p.shape, np.nan)
    valid = ~np.isnan(p)
    if valid.any():
        adjusted[valid] = multipletests(p[valid], method=method)[1]
    return adjusted


def rank_table(table, effect_col='effect_size', p_col='p_value'):
    """Sort by absolute effect size (largest first), break ties by p-value, and number the rows"""
    abs_effect = table[effect_col].abs().fillna(-np.inf).to_numpy()
    p = table[p_col].fillna(np.inf).to_numpy()
    order = np.lexsort((p, -abs_effect))
    ranked = table.iloc[order].reset_index(drop=True)
    ranked['rank'] = np.arange(1, len(ranked) + 1)
    return ranked


def top_table(table, n=None, adj_p_threshold=None, adj_p_col='adj_p_value'):
    """Return the top n rows of a ranked table, optionally keeping only rows under an FDR threshold"""
    out = table
    if adj_p_threshold is not None:
        out = out[out[adj_p_col] < adj_p_threshold]
    if n is not None:
        out = out.head(n)
    return out.reset_index(drop=True)
