"""
Sample Network Structure
PCA and clustering of per-sample network summaries, and graph views of
the strongest regulatory edges
"""

import logging

import networkx as nx
import numpy as np
import pandas as pd
from sklearn.cluster import KMeans
from sklearn.decomposition import PCA
from sklearn.metrics import silhouette_score
from sklearn.preprocessing import StandardScaler

logger = logging.getLogger(__name__)


def _sample_features(matrix):
    """Samples x features array with constant features removed"""
    data = matrix.T.astype(float)
    variable = data.std(axis=0) > 0
    if not variable.any():
        raise ValueError("All features are constant across samples")
    return data.loc[:, variable]


def sample_pca(matrix, n_components=2):
    """
    PCA of samples on standardized features.

    Parameters:
    -----------
    matrix : pd.DataFrame
        Features x samples (expression, targeting scores or LIONESS edges)

    Returns:
    --------
    tuple of (pd.DataFrame, np.ndarray)
        Sample scores on PC1..PCn, and the explained variance ratio
    """
    data = _sample_features(matrix)
    n_components = min(n_components, data.shape[0], data.shape[1])
    scaled = StandardScaler().fit_transform(data.to_numpy())
    pca = PCA(n_components=n_components)
    components = pca.fit_transform(scaled)
    scores = pd.DataFrame(
        components,
        index=data.index,
        columns=[f"PC{i + 1}" for i in range(n_components)]
    )
    logger.info(f"PCA explained variance: {np.round(pca.explained_variance_ratio_, 3).tolist()}")
    return scores, pca.explained_variance_ratio_


def cluster_samples(matrix, n_clusters=2, random_state=42):
    """
    KMeans clustering of samples on standardized features.

    Returns:
        tuple: (pd.Series of cluster labels indexed by sample, silhouette score)
    """
    data = _sample_features(matrix)
    if not 2 <= n_clusters < data.shape[0]:
        raise ValueError(f"n_clusters must be between 2 and {data.shape[0] - 1}")
    scaled = StandardScaler().fit_transform(data.to_numpy())
    kmeans = KMeans(n_clusters=n_clusters, random_state=random_state, n_init=10)
    labels = kmeans.fit_predict(scaled)
    silhouette = silhouette_score(scaled, labels)
    logger.info(f"Clustered {len(labels)} samples into {n_clusters} clusters, silhouette score {silhouette:.3f}")
    return pd.Series(labels, index=data.index, name='cluster'), float(silhouette)


def top_edges_graph(edges, n_edges=100, weight_col='force'):
    """
    Directed TF -> gene graph of the n strongest edges by absolute weight.

    Node attribute 'role' is 'tf' or 'gene'; a node acting as both keeps 'tf'.
    """
    if weight_col not in edges.columns:
        raise ValueError(f"Edge table has no '{weight_col}' column")
    order = np.argsort(-edges[weight_col].abs().to_numpy(), kind='stable')
    top = edges.iloc[order[:n_edges]]

    graph = nx.DiGraph()
    for tf, gene, weight in zip(top['tf'], top['gene'], top[weight_col]):
        graph.add_node(gene, role=graph.nodes[gene]['role'] if gene in graph else 'gene')
        graph.add_node(tf, role='tf')
        graph.add_edge(tf, gene, weight=float(weight))
    logger.info(f"Graph of top {len(top)} edges: {graph.number_of_nodes()} nodes")
    return graph


def hub_table(graph):
    """Degree and weighted degree per node, hubs first"""
    rows = []
    for node, data in graph.nodes(data=True):
        rows.append({
            'node': node,
            'role': data.get('role', 'gene'),
            'out_degree': graph.out_degree(node),
            'in_degree': graph.in_degree(node),
            'weighted_degree': graph.out_degree(node, weight='weight') + graph.in_degree(node, weight='weight'),
        })
    table = pd.DataFrame(rows, columns=['node', 'role', 'out_degree', 'in_degree', 'weighted_degree'])
    table['degree'] = table['out_degree'] + table['in_degree']
    return table.sort_values(['degree', 'node'], ascending=[False, True]).reset_index(drop=True)
