"""
Regulatory network inputs
Loads motif priors, PPI edges and precomputed PANDA / LIONESS networks,
and summarizes them as TF and gene targeting scores
"""

import logging

import numpy as np
import pandas as pd

from ..utils.config import CONFIG
from ..utils.shared_functions import load_table, resolve_column

logger = logging.getLogger(__name__)

EDGE_INDEX = ['tf', 'gene']


def _load_edge_list(path, names):
    df = load_table(path, header=None)
    if df.shape[1] != len(names):
        raise ValueError(f"Expected {len(names)} columns in {path}, found {df.shape[1]}")
    df.columns = names
    df[names[0]] = df[names[0]].astype(str)
    df[names[1]] = df[names[1]].astype(str)
    df[names[2]] = pd.to_numeric(df[names[2]], errors='coerce')
    if df[names[2]].isna().any():
        raise ValueError(f"Non-numeric edge weights in {path}")
    return df


def load_motif_prior(path):
    """Load a headerless TF, gene, weight motif prior"""
    motif = _load_edge_list(path, ['tf', 'gene', 'weight'])
    logger.info(f"Motif prior: {motif['tf'].nunique()} TFs, {motif['gene'].nunique()} genes, {len(motif)} edges")
    return motif


def load_ppi(path):
    """Load a headerless TF, TF, weight protein-protein interaction list"""
    ppi = _load_edge_list(path, ['tf1', 'tf2', 'weight'])
    logger.info(f"PPI network: {len(set(ppi['tf1']) | set(ppi['tf2']))} proteins, {len(ppi)} edges")
    return ppi


def restrict_to_prior(expression, motif, ppi=None):
    """
    Restrict expression and priors to the genes and TFs they have in common.

    Returns:
        tuple: (expression, motif) or (expression, motif, ppi) when ppi is given
    """
    genes = expression.index.intersection(pd.Index(motif['gene'].unique()))
    if len(genes) == 0:
        raise ValueError("Expression data and motif prior share no genes")
    logger.info(
        f"{len(genes)} genes shared by expression ({expression.shape[0]}) "
        f"and motif prior ({motif['gene'].nunique()})"
    )
    expression = expression.loc[genes]
    motif = motif[motif['gene'].isin(genes)].reset_index(drop=True)
    if ppi is None:
        return expression, motif
    tfs = set(motif['tf'])
    ppi = ppi[ppi['tf1'].isin(tfs) & ppi['tf2'].isin(tfs)].reset_index(drop=True)
    return expression, motif, ppi


def _standardize_edge_table(df):
    columns = CONFIG['columns']
    tf_col = resolve_column(df, columns['tf'])
    gene_col = resolve_column(df, columns['gene'])
    force_col = resolve_column(df, columns['force'])
    motif_col = resolve_column(df, ['motif', 'prior'], required=False)
    rename = {tf_col: 'tf', gene_col: 'gene', force_col: 'force'}
    if motif_col is not None:
        rename[motif_col] = 'motif'
    out = df[list(rename)].rename(columns=rename)
    out['tf'] = out['tf'].astype(str)
    out['gene'] = out['gene'].astype(str)
    out['force'] = pd.to_numeric(out['force'], errors='coerce')
    return out


def load_panda_network(path):
    """
    Load a PANDA network edge table.

    Accepts a header with tf/gene/[motif]/force columns (or their aliases),
    or a headerless file with three (tf, gene, force) or four
    (tf, gene, motif, force) columns.
    """
    df = load_table(path)
    try:
        edges = _standardize_edge_table(df)
    except ValueError:
        df = load_table(path, header=None)
        if df.shape[1] == 3:
            df.columns = ['tf', 'gene', 'force']
        elif df.shape[1] == 4:
            df.columns = ['tf', 'gene', 'motif', 'force']
        else:
            raise ValueError(f"Cannot identify tf/gene/force columns in {path}")
        edges = _standardize_edge_table(df)
    if edges['force'].isna().any():
        raise ValueError(f"Non-numeric edge weights in {path}")
    logger.info(f"PANDA network: {edges['tf'].nunique()} TFs, {edges['gene'].nunique()} genes, {len(edges)} edges")
    return edges


def edges_to_matrix(edges, value_col='force'):
    """Pivot an edge table into a TF x gene matrix"""
    return edges.pivot_table(index='tf', columns='gene', values=value_col, aggfunc='mean')


def load_lioness_network(path, edges=None, header=True):
    """
    Load a LIONESS output as an edges x samples matrix indexed by (tf, gene).

    Parameters:
    -----------
    path : str
        LIONESS matrix. If it carries tf and gene columns they label the edges;
        otherwise rows must follow the order of `edges`.
    edges : pd.DataFrame, optional
        PANDA edge table providing edge labels for unlabelled matrices
    header : bool
        Whether the first row holds sample names

    Returns:
    --------
    pd.DataFrame
        Edges x samples matrix
    """
    df = load_table(path, header=0 if header else None)
    tf_col = resolve_column(df, CONFIG['columns']['tf'], required=False)
    gene_col = resolve_column(df, CONFIG['columns']['gene'], required=False)

    if tf_col is not None and gene_col is not None:
        df[tf_col] = df[tf_col].astype(str)
        df[gene_col] = df[gene_col].astype(str)
        df = df.set_index([tf_col, gene_col])
        df.index.names = EDGE_INDEX
        extra = [c for c in df.columns if str(c).lower() in ('motif', 'force')]
        df = df.drop(columns=extra)
    else:
        if edges is None:
            raise ValueError(f"{path} has no tf/gene columns; pass the PANDA edge table to label its rows")
        if len(edges) != len(df):
            raise ValueError(f"LIONESS matrix has {len(df)} rows but the edge table has {len(edges)}")
        df.index = pd.MultiIndex.from_arrays(
            [edges['tf'].astype(str).to_numpy(), edges['gene'].astype(str).to_numpy()],
            names=EDGE_INDEX
        )
        if not header:
            df.columns = [f"sample_{i + 1}" for i in range(df.shape[1])]

    df = df.apply(pd.to_numeric, errors='coerce')
    if df.isna().any().any():
        raise ValueError(f"Non-numeric edge weights in {path}")
    df.columns = df.columns.astype(str)
    logger.info(f"LIONESS network: {df.shape[0]} edges across {df.shape[1]} samples")
    return df


def targeting_scores(network, axis='gene', positive_only=False):
    """
    Weighted degree of genes (in-degree) or TFs (out-degree).

    Parameters:
    -----------
    network : pd.DataFrame
        Either a single-network edge table with tf, gene and force columns,
        or an edges x samples LIONESS matrix indexed by (tf, gene)
    axis : str
        'gene' for gene targeting, 'tf' for TF targeting
    positive_only : bool
        Ignore negative edge weights

    Returns:
    --------
    pd.Series or pd.DataFrame
        One score per feature (edge table) or features x samples (LIONESS)
    """
    if axis not in EDGE_INDEX:
        raise ValueError(f"axis must be 'gene' or 'tf', got '{axis}'")

    if isinstance(network.index, pd.MultiIndex):
        if list(network.index.names) != EDGE_INDEX:
            raise ValueError(f"Expected a (tf, gene) index, found {network.index.names}")
        values = network.clip(lower=0) if positive_only else network
        scores = values.groupby(level=axis).sum()
    else:
        if not {'tf', 'gene', 'force'} <= set(network.columns):
            raise ValueError("Edge table needs tf, gene and force columns")
        force = network['force'].clip(lower=0) if positive_only else network['force']
        scores = force.groupby(network[axis]).sum()
        scores.name = f"{axis}_targeting"
    scores.index.name = axis
    return scores


def differential_edges(net_a, net_b):
    """
    Edge-wise difference between two networks (a - b) on their shared edges.

    Returns:
        pd.DataFrame: tf, gene, force_a, force_b, difference; strongest differences first
    """
    merged = net_a[['tf', 'gene', 'force']].merge(
        net_b[['tf', 'gene', 'force']], on=EDGE_INDEX, suffixes=('_a', '_b'), how='inner'
    )
    n_unshared = len(net_a) + len(net_b) - 2 * len(merged)
    if n_unshared:
        logger.warning(f"{n_unshared} edges are present in only one network and were ignored")
    merged['difference'] = merged['force_a'] - merged['force_b']
    order = np.argsort(-merged['difference'].abs().to_numpy(), kind='stable')
    return merged.iloc[order].reset_index(drop=True)
