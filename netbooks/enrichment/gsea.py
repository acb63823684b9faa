"""
Gene Set Enrichment
Preranked GSEA on differential scores and hypergeometric over-representation
"""

import logging
import os

import gseapy as gp
import numpy as np
import pandas as pd
from scipy import stats

from ..differential.ranking import adjust_pvalues

logger = logging.getLogger(__name__)

ENRICHMENT_COLUMNS = ['term', 'es', 'nes', 'p_value', 'fdr', 'size', 'lead_genes']

# gseapy renamed its result columns between releases
RES2D_ALIASES = {
    'term': ['Term', 'term'],
    'es': ['ES', 'es'],
    'nes': ['NES', 'nes'],
    'p_value': ['NOM p-val', 'pval'],
    'fdr': ['FDR q-val', 'fdr'],
    'lead_genes': ['Lead_genes', 'ledge_genes'],
}


def load_gmt(path):
    """
    Load gene sets from a GMT file.

    Each line is: set name, description, then one gene per tab-separated field.

    Returns:
        dict: set name -> list of genes
    """
    if not os.path.exists(path):
        logger.error(f"Gene set file not found: {path}")
        raise FileNotFoundError(path)

    gene_sets = {}
    with open(path, 'r') as f:
        for line_number, line in enumerate(f, start=1):
            fields = [x.strip() for x in line.rstrip('\n').split('\t')]
            if not fields or not fields[0]:
                continue
            if len(fields) < 3:
                logger.warning(f"Skipping malformed GMT line {line_number} in {path}")
                continue
            genes = [g for g in fields[2:] if g]
            gene_sets[fields[0]] = list(dict.fromkeys(genes))

    logger.info(f"Loaded {len(gene_sets)} gene sets from {path}")
    return gene_sets


def ranking_from_table(table, score_col='t_statistic', feature_col='feature'):
    """Build a descending ranked Series (feature -> score) from a result table"""
    ranking = table[[feature_col, score_col]].dropna()
    ranking = ranking.drop_duplicates(subset=feature_col, keep='first')
    ranking = ranking.set_index(feature_col)[score_col].astype(float)
    return ranking.sort_values(ascending=False)


def _pick(res, key):
    for alias in RES2D_ALIASES[key]:
        if alias in res.columns:
            return res[alias]
    return None


def preranked_enrichment(ranking, gene_sets, min_size=15, max_size=500,
                         permutation_num=1000, seed=42, threads=1):
    """
    Preranked GSEA through gseapy.prerank.

    Parameters:
    -----------
    ranking : pd.Series
        Score per gene, e.g. the moderated t statistic
    gene_sets : dict or str
        Gene set dict, GMT path or an Enrichr library name understood by gseapy

    Returns:
    --------
    pd.DataFrame
        ENRICHMENT_COLUMNS sorted by FDR then p-value
    """
    if isinstance(gene_sets, str) and os.path.exists(gene_sets):
        gene_sets = load_gmt(gene_sets)

    rnk = ranking.dropna()
    rnk = rnk[~rnk.index.duplicated(keep='first')].sort_values(ascending=False)
    rnk_df = pd.DataFrame({0: rnk.index.astype(str), 1: rnk.to_numpy()})
    logger.info(f"Running preranked GSEA on {len(rnk_df)} genes with {permutation_num} permutations")

    pre_res = gp.prerank(
        rnk=rnk_df,
        gene_sets=gene_sets,
        min_size=min_size,
        max_size=max_size,
        permutation_num=permutation_num,
        seed=seed,
        threads=threads,
        outdir=None,
        no_plot=True,
        verbose=False,
    )

    res = pre_res.res2d
    if 'Term' not in res.columns and 'term' not in res.columns:
        res = res.reset_index().rename(columns={'index': 'Term'})

    out = pd.DataFrame({
        key: _pick(res, key) for key in ['term', 'es', 'nes', 'p_value', 'fdr', 'lead_genes']
    })
    for col in ['es', 'nes', 'p_value', 'fdr']:
        out[col] = pd.to_numeric(out[col], errors='coerce')

    if isinstance(gene_sets, dict):
        genes = set(rnk.index.astype(str))
        out['size'] = out['term'].map(lambda t: len(genes.intersection(gene_sets.get(t, []))))
    elif 'Tag %' in res.columns:
        out['size'] = res['Tag %'].astype(str).str.split('/').str[-1].astype(int)
    else:
        out['size'] = np.nan

    out = out.sort_values(['fdr', 'p_value']).reset_index(drop=True)
    logger.info(f"{(out['fdr'] < 0.25).sum()} of {len(out)} gene sets with FDR < 0.25")
    return out[ENRICHMENT_COLUMNS]


def overrepresentation(hits, gene_sets, universe, min_size=5, max_size=None):
    """
    Hypergeometric over-representation test of a gene list.

    Parameters:
    -----------
    hits : iterable
        Genes of interest, e.g. significant features
    gene_sets : dict
        set name -> genes
    universe : iterable
        All genes that could have been hits

    Returns:
    --------
    pd.DataFrame
        term, overlap, size, expected, fold_enrichment, p_value, fdr, genes
    """
    universe = set(map(str, universe))
    hits = set(map(str, hits)) & universe
    if not hits:
        raise ValueError("None of the hits are in the universe")

    rows = []
    for term, members in gene_sets.items():
        members = set(map(str, members)) & universe
        size = len(members)
        if size < min_size or (max_size is not None and size > max_size):
            continue
        overlap = hits & members
        expected = len(hits) * size / len(universe)
        p_value = stats.hypergeom.sf(len(overlap) - 1, len(universe), size, len(hits))
        rows.append({
            'term': term,
            'overlap': len(overlap),
            'size': size,
            'expected': expected,
            'fold_enrichment': len(overlap) / expected if expected > 0 else np.nan,
            'p_value': p_value,
            'genes': ';'.join(sorted(overlap)),
        })

    columns = ['term', 'overlap', 'size', 'expected', 'fold_enrichment', 'p_value', 'fdr', 'genes']
    if not rows:
        logger.warning("No gene sets passed the size filter")
        return pd.DataFrame(columns=columns)

    results = pd.DataFrame(rows)
    results['fdr'] = adjust_pvalues(results['p_value'])
    results = results.sort_values(['p_value', 'term']).reset_index(drop=True)
    return results[columns]
