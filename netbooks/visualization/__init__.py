"""
Plotting helpers
"""

from .plots import volcano_plot, top_features_heatmap, enrichment_barplot, pca_plot, kaplan_meier_plot
