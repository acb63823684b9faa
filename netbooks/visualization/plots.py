"""
Static plots for differential, enrichment, network and survival results
"""

import logging

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from lifelines import KaplanMeierFitter

from ..utils.config import CONFIG
from ..utils.shared_functions import save_plot

logger = logging.getLogger(__name__)

plt.style.use(CONFIG['plots']['style'])


def volcano_plot(table, output_dir, filename='volcano', adj_p_threshold=0.05, label_top=10, title=None):
    """Effect size vs -log10 p-value, significant features highlighted and the top ones labelled"""
    data = table.dropna(subset=['effect_size', 'p_value']).copy()
    data['neg_log10_p'] = -np.log10(data['p_value'].clip(lower=np.finfo(float).tiny))
    data['significant'] = data['adj_p_value'] < adj_p_threshold

    fig, ax = plt.subplots(figsize=(8, 6))
    sns.scatterplot(
        data=data, x='effect_size', y='neg_log10_p', hue='significant',
        palette={True: 'firebrick', False: 'grey'}, alpha=0.7, s=15, linewidth=0, ax=ax
    )
    for _, row in data[data['significant']].head(label_top).iterrows():
        ax.annotate(str(row['feature']), (row['effect_size'], row['neg_log10_p']), fontsize=7)
    ax.axvline(0, color='black', linewidth=0.8)
    ax.set_xlabel('Effect size')
    ax.set_ylabel('-log10(p-value)')
    ax.set_title(title or f"{int(data['significant'].sum())} features with adjusted p < {adj_p_threshold}")
    return save_plot(fig, filename, output_dir)


def top_features_heatmap(matrix, table, metadata, group_col, output_dir, filename='top_features_heatmap', n=30):
    """Row-scaled heatmap of the top ranked features, samples ordered by group"""
    features = [f for f in table['feature'].head(n) if f in matrix.index]
    if not features:
        raise ValueError("None of the top features are in the matrix")
    order = metadata[group_col].sort_values(kind='stable').index
    order = [s for s in order if s in matrix.columns]
    data = matrix.loc[features, order].astype(float)
    scaled = data.sub(data.mean(axis=1), axis=0).div(data.std(axis=1).replace(0, np.nan), axis=0).fillna(0.0)

    groups = metadata.loc[order, group_col].astype(str)
    palette = dict(zip(sorted(groups.unique()), sns.color_palette('Set2', groups.nunique())))
    grid = sns.clustermap(
        scaled, row_cluster=True, col_cluster=False, cmap='vlag', center=0,
        col_colors=groups.map(palette), xticklabels=False, figsize=(10, max(4, 0.25 * len(features)))
    )
    grid.ax_heatmap.set_xlabel(f"Samples ordered by {group_col}")
    return save_plot(grid.figure, filename, output_dir)


def enrichment_barplot(enrichment, output_dir, filename='enrichment', n=20, score_col='nes'):
    """Horizontal bars of the top gene sets by FDR"""
    data = enrichment.head(n).iloc[::-1]
    if data.empty:
        raise ValueError("No enrichment results to plot")
    fig, ax = plt.subplots(figsize=(8, max(3, 0.35 * len(data))))
    colors = ['firebrick' if v > 0 else 'steelblue' for v in data[score_col]]
    ax.barh(data['term'].astype(str), data[score_col], color=colors)
    ax.axvline(0, color='black', linewidth=0.8)
    ax.set_xlabel(score_col.upper())
    ax.set_title('Top enriched gene sets')
    return save_plot(fig, filename, output_dir)


def pca_plot(scores, metadata, color_col, output_dir, explained=None, filename='sample_pca'):
    """Samples on the first two principal components, coloured by a metadata column"""
    data = scores.join(metadata[[color_col]], how='left')
    fig, ax = plt.subplots(figsize=(8, 6))
    sns.scatterplot(data=data, x='PC1', y='PC2', hue=color_col, s=40, alpha=0.8, ax=ax)
    if explained is not None and len(explained) >= 2:
        ax.set_xlabel(f"PC1 ({explained[0]:.1%})")
        ax.set_ylabel(f"PC2 ({explained[1]:.1%})")
    ax.set_title(f"Sample PCA by {color_col}")
    return save_plot(fig, filename, output_dir)


def kaplan_meier_plot(score, metadata, duration_col, event_col, output_dir, filename='kaplan_meier', label=None):
    """Kaplan-Meier curves of samples above vs at-or-below the median score"""
    data = pd.DataFrame({
        'score': score,
        'duration': pd.to_numeric(metadata[duration_col], errors='coerce'),
        'event': pd.to_numeric(metadata[event_col], errors='coerce'),
    }).dropna()
    high = data['score'] > data['score'].median()

    fig, ax = plt.subplots(figsize=(8, 6))
    for name, mask in [('High', high), ('Low', ~high)]:
        kmf = KaplanMeierFitter()
        kmf.fit(data.loc[mask, 'duration'], data.loc[mask, 'event'], label=f"{name} (n={int(mask.sum())})")
        kmf.plot_survival_function(ax=ax, ci_show=False)
    ax.set_xlabel('Time')
    ax.set_ylabel('Survival probability')
    ax.set_title(f"Survival by {label or score.name or 'score'}")
    return save_plot(fig, filename, output_dir)
