"""
Differential-score pipeline: per-feature linear models, moderated
statistics, multiple-testing adjustment and ranking
"""

from .linear_model import DifferentialScorePipeline, RESULT_COLUMNS, run_differential, compare_groups
from .ranking import adjust_pvalues, rank_table, top_table
