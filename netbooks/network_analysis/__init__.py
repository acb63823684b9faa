"""
Structure of sample-specific and aggregate regulatory networks
"""

from .structure import sample_pca, cluster_samples, top_edges_graph, hub_table
