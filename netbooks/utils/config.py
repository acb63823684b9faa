import copy
import logging

# Configuration dictionary for thresholds, column names and output layout
CONFIG = {
    'output_dir': 'output',
    'log_file': None,
    'tcga': {
        'sample_types': ['01'],
        'one_per_patient': True,
    },
    'expression': {
        'min_value': 1.0,
        'min_fraction': 0.2,
        'normalization': 'log2cpm',
        'prior_count': 0.5,
    },
    'differential': {
        'moderated': True,
        'adj_p_threshold': 0.05,
        'results_file': 'differential_scores.csv',
    },
    'enrichment': {
        'min_size': 15,
        'max_size': 500,
        'permutation_num': 1000,
        'seed': 42,
        'results_file': 'enrichment.csv',
    },
    'survival': {
        'min_samples': 10,
        'results_file': 'survival.csv',
    },
    'columns': {
        'sample_id': ['sample_id', 'sample', 'barcode', 'submitter_id', 'patient_id', 'bcr_patient_barcode'],
        'tf': ['tf', 'regulator', 'source'],
        'gene': ['gene', 'target'],
        'force': ['force', 'score', 'weight', 'edge_weight'],
    },
    'plots': {
        'style': 'seaborn-v0_8-whitegrid',
        'dpi': 300,
        'top_n': 30,
    },
}


def get_config(overrides=None):
    """
    Return a copy of CONFIG with nested overrides merged in.

    Args:
        overrides (dict, optional): Values to replace. Nested dicts are merged key by key.

    Returns:
        dict: Merged configuration. CONFIG itself is left untouched.
    """
    config = copy.deepcopy(CONFIG)
    if overrides:
        _merge(config, overrides)
    return config


def _merge(base, overrides):
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def setup_logging(log_file=None, level=logging.INFO):
    """Configure root logging for command-line runs, optionally mirroring to a file"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
