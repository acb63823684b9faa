import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def count_data():
    """Counts for 40 genes x 12 samples; genes G0-G4 are up in the 'tumor' group"""
    rng = np.random.default_rng(0)
    samples = [f"S{i:02d}" for i in range(12)]
    groups = ['normal'] * 6 + ['tumor'] * 6
    genes = [f"G{i}" for i in range(40)]
    base = rng.uniform(50, 500, size=len(genes))
    lam = np.tile(base[:, None], (1, len(samples)))
    lam[:5, 6:] *= 4
    counts = pd.DataFrame(rng.poisson(lam), index=genes, columns=samples)
    metadata = pd.DataFrame({
        'group': groups,
        'sex': ['female', 'male'] * 6,
        'age': rng.uniform(40, 80, size=len(samples)).round(1),
    }, index=pd.Index(samples, name='sample_id'))
    return counts, metadata


@pytest.fixture
def panda_edges():
    return pd.DataFrame({
        'tf': ['TF1', 'TF1', 'TF1', 'TF2', 'TF2', 'TF2'],
        'gene': ['A', 'B', 'C', 'A', 'B', 'C'],
        'motif': [1, 0, 1, 0, 1, 1],
        'force': [2.0, -1.0, 0.5, 1.0, 3.0, -0.5],
    })
