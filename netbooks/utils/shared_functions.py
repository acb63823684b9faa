"""
Shared Functions Module
Common I/O helpers used across multiple modules
"""

import csv
import logging
import os

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd

logger = logging.getLogger(__name__)

TAB_EXTENSIONS = ('.tsv', '.txt', '.tab')


def _strip_compression(path):
    root, ext = os.path.splitext(path)
    if ext.lower() in ('.gz', '.bz2', '.zip', '.xz'):
        return root
    return path


def detect_separator(path):
    """Pick the field separator for a flat file from its extension, sniffing unknown ones"""
    ext = os.path.splitext(_strip_compression(str(path)))[1].lower()
    if ext in TAB_EXTENSIONS:
        return '\t'
    if ext == '.csv':
        return ','
    with open(path, 'r', encoding='utf-8-sig', errors='replace') as handle:
        sample = handle.read(4096)
    try:
        return csv.Sniffer().sniff(sample, delimiters='\t,;').delimiter
    except csv.Error:
        return '\t'


def load_table(path, index_col=None, header='infer', sep=None, **kwargs):
    """
    Load a tab or comma separated table, handling a UTF-8 BOM if present.

    Args:
        path (str): Path to the file.
        index_col (int or str, optional): Column to use as the index.
        header: Passed to pandas.read_csv; None for headerless edge lists.
        sep (str, optional): Field separator. Detected from the extension when omitted.

    Returns:
        pd.DataFrame: Loaded table.
    """
    path = str(path)
    if not os.path.exists(path):
        logger.error(f"File not found: {path}")
        raise FileNotFoundError(path)
    if sep is None:
        sep = detect_separator(path)
    try:
        df = pd.read_csv(path, sep=sep, index_col=index_col, header=header, encoding='utf-8-sig', **kwargs)
    except Exception as e:
        logger.error(f"Error loading {path}: {e}")
        raise
    logger.info(f"Loaded {path} with shape {df.shape}")
    return df


def resolve_column(df, aliases, required=True):
    """Return the first column of df matching one of the aliases, case-insensitively"""
    lookup = {str(c).lower(): c for c in df.columns}
    for alias in aliases:
        if alias.lower() in lookup:
            return lookup[alias.lower()]
    if required:
        raise ValueError(f"None of the columns {aliases} found in {list(df.columns)}")
    return None


def save_results(df, output_dir, filename, index=False):
    """
    Save a DataFrame to the output directory.

    Files ending in .tsv or .txt are written tab separated, everything else as CSV.

    Returns:
        str: Path of the written file.
    """
    os.makedirs(output_dir, exist_ok=True)
    output_file = os.path.join(output_dir, filename)
    sep = '\t' if os.path.splitext(filename)[1].lower() in TAB_EXTENSIONS else ','
    df.to_csv(output_file, sep=sep, index=index)
    logger.info(f"Saved results to {output_file}")
    return output_file


def save_plot(fig, filename, output_dir, dpi=300):
    """
    Save a matplotlib figure to the specified output directory

    Parameters:
    -----------
    fig : matplotlib.figure.Figure
        Figure to save
    filename : str
        Name of the file (without extension)
    output_dir : str
        Directory to save the plot

    Returns:
    --------
    str
        Path of the saved PNG
    """
    os.makedirs(output_dir, exist_ok=True)
    plot_path = os.path.join(output_dir, f"{filename}.png")
    try:
        fig.savefig(plot_path, dpi=dpi, bbox_inches='tight')
    finally:
        plt.close(fig)
    logger.info(f"Saved plot: {plot_path}")
    return plot_path
