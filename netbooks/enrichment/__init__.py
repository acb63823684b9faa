"""
Gene set enrichment of ranked differential scores
"""

from .gsea import load_gmt, ranking_from_table, preranked_enrichment, overrepresentation, ENRICHMENT_COLUMNS
