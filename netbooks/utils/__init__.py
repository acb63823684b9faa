"""
Utils package initialization
"""

from .config import CONFIG, get_config, setup_logging
from .shared_functions import (
    detect_separator,
    load_table,
    resolve_column,
    save_results,
    save_plot
)
