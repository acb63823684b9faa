"""
Survival models of per-sample scores
"""

from .cox import cox_by_feature, logrank_by_median, SURVIVAL_COLUMNS
