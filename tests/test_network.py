import numpy as np
import pandas as pd
import pytest

from netbooks.data_processing import (
    differential_edges,
    edges_to_matrix,
    load_lioness_network,
    load_motif_prior,
    load_panda_network,
    load_ppi,
    restrict_to_prior,
    targeting_scores,
)
from netbooks.network_analysis import cluster_samples, hub_table, sample_pca, top_edges_graph


def test_load_motif_prior_and_restrict(tmp_path):
    motif_file = tmp_path / "motif.txt"
    motif_file.write_text("TF1\tA\t1\nTF1\tB\t1\nTF2\tC\t1\nTF3\tZ\t1\n")
    ppi_file = tmp_path / "ppi.txt"
    ppi_file.write_text("TF1\tTF2\t1\nTF1\tTF3\t1\nTF2\tTF2\t1\n")
    motif = load_motif_prior(str(motif_file))
    ppi = load_ppi(str(ppi_file))
    assert list(motif.columns) == ["tf", "gene", "weight"]

    expression = pd.DataFrame(np.ones((4, 3)), index=["A", "B", "C", "D"], columns=["S1", "S2", "S3"])
    expr, motif_r, ppi_r = restrict_to_prior(expression, motif, ppi)
    assert list(expr.index) == ["A", "B", "C"]
    assert set(motif_r["gene"]) == {"A", "B", "C"}
    # TF3 only regulated gene Z, which is not expressed
    assert len(ppi_r) == 2


def test_restrict_to_prior_without_overlap():
    expression = pd.DataFrame(np.ones((1, 2)), index=["X"], columns=["S1", "S2"])
    motif = pd.DataFrame({"tf": ["TF1"], "gene": ["A"], "weight": [1.0]})
    with pytest.raises(ValueError):
        restrict_to_prior(expression, motif)


def test_load_motif_prior_rejects_wrong_shape(tmp_path):
    file = tmp_path / "motif.txt"
    file.write_text("TF1\tA\nTF2\tB\n")
    with pytest.raises(ValueError):
        load_motif_prior(str(file))


def test_load_panda_network_with_header(tmp_path, panda_edges):
    file = tmp_path / "panda.csv"
    panda_edges.rename(columns={"tf": "TF", "gene": "Gene", "force": "Score"}).to_csv(file, index=False)
    edges = load_panda_network(str(file))
    assert list(edges.columns) == ["tf", "gene", "force", "motif"]
    assert edges["force"].sum() == pytest.approx(panda_edges["force"].sum())


def test_load_panda_network_headerless(tmp_path, panda_edges):
    file = tmp_path / "panda.txt"
    panda_edges.to_csv(file, sep="\t", index=False, header=False)
    edges = load_panda_network(str(file))
    assert len(edges) == 6
    assert edges.loc[0, "tf"] == "TF1"
    assert edges.loc[4, "force"] == pytest.approx(3.0)


def test_edges_to_matrix(panda_edges):
    matrix = edges_to_matrix(panda_edges)
    assert matrix.shape == (2, 3)
    assert matrix.loc["TF2", "B"] == pytest.approx(3.0)


def test_targeting_scores_single_network(panda_edges):
    gene = targeting_scores(panda_edges, axis="gene")
    assert gene["A"] == pytest.approx(3.0)
    assert gene["C"] == pytest.approx(0.0)
    tf = targeting_scores(panda_edges, axis="tf", positive_only=True)
    assert tf["TF1"] == pytest.approx(2.5)
    assert tf["TF2"] == pytest.approx(4.0)
    with pytest.raises(ValueError):
        targeting_scores(panda_edges, axis="sample")


def test_load_lioness_network_labelled_by_edge_table(tmp_path, panda_edges):
    rng = np.random.default_rng(1)
    values = pd.DataFrame(rng.normal(size=(6, 3)), columns=["S1", "S2", "S3"])
    file = tmp_path / "lioness.txt"
    values.to_csv(file, sep="\t", index=False)
    network = load_lioness_network(str(file), edges=panda_edges)
    assert network.index.names == ["tf", "gene"]
    assert network.shape == (6, 3)

    gene = targeting_scores(network, axis="gene")
    assert gene.shape == (3, 3)
    expected = values.iloc[[0, 3]].sum(axis=0)
    assert gene.loc["A"].to_numpy() == pytest.approx(expected.to_numpy())


def test_load_lioness_network_with_edge_columns(tmp_path):
    df = pd.DataFrame({
        "TF": ["TF1", "TF1", "TF2"],
        "Gene": ["A", "B", "A"],
        "S1": [1.0, 2.0, 3.0],
        "S2": [0.5, -1.0, 1.5],
    })
    file = tmp_path / "lioness.csv"
    df.to_csv(file, index=False)
    network = load_lioness_network(str(file))
    tf = targeting_scores(network, axis="tf")
    assert tf.loc["TF1", "S1"] == pytest.approx(3.0)
    assert tf.loc["TF2", "S2"] == pytest.approx(1.5)


def test_load_lioness_network_row_mismatch(tmp_path, panda_edges):
    file = tmp_path / "lioness.txt"
    pd.DataFrame(np.ones((4, 2)), columns=["S1", "S2"]).to_csv(file, sep="\t", index=False)
    with pytest.raises(ValueError):
        load_lioness_network(str(file), edges=panda_edges)
    with pytest.raises(ValueError):
        load_lioness_network(str(file))


def test_differential_edges(panda_edges):
    other = panda_edges.copy()
    other["force"] = other["force"] * 0.5
    other = other.iloc[:-1]
    diff = differential_edges(panda_edges, other)
    assert len(diff) == 5
    assert diff.loc[0, "tf"] == "TF2" and diff.loc[0, "gene"] == "B"
    assert diff.loc[0, "difference"] == pytest.approx(1.5)
    assert diff["difference"].abs().is_monotonic_decreasing


def test_top_edges_graph_and_hubs(panda_edges):
    graph = top_edges_graph(panda_edges, n_edges=3)
    assert graph.number_of_edges() == 3
    assert graph.nodes["TF2"]["role"] == "tf"
    assert graph.nodes["B"]["role"] == "gene"
    hubs = hub_table(graph)
    assert hubs.loc[0, "degree"] == 2
    assert hubs.set_index("node").loc["TF1", "out_degree"] == 2
    assert hubs.set_index("node").loc["B", "in_degree"] == 2


def test_sample_pca_and_clusters():
    rng = np.random.default_rng(3)
    group_a = rng.normal(0, 0.3, size=(20, 6))
    group_b = rng.normal(3, 0.3, size=(20, 6))
    matrix = pd.DataFrame(
        np.hstack([group_a, group_b]),
        index=[f"G{i}" for i in range(20)],
        columns=[f"S{i}" for i in range(12)],
    )
    scores, explained = sample_pca(matrix)
    assert list(scores.columns) == ["PC1", "PC2"]
    assert explained[0] > 0.5
    labels, silhouette = cluster_samples(matrix, n_clusters=2)
    assert labels.iloc[:6].nunique() == 1
    assert labels.iloc[6:].nunique() == 1
    assert labels.iloc[0] != labels.iloc[6]
    assert silhouette > 0.5
    with pytest.raises(ValueError):
        cluster_samples(matrix, n_clusters=12)
