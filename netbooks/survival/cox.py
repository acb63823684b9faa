"""
Survival Analysis
Cox proportional hazards and log-rank tests of per-sample scores
"""

import logging

import numpy as np
import pandas as pd
from lifelines import CoxPHFitter
from lifelines.exceptions import ConvergenceError
from lifelines.statistics import logrank_test

from ..differential.ranking import adjust_pvalues

logger = logging.getLogger(__name__)

SURVIVAL_COLUMNS = [
    'feature', 'hazard_ratio', 'ci_lower', 'ci_upper', 'p_value', 'fdr',
    'n_samples', 'n_events', 'n_high', 'n_low'
]


def _survival_frame(metadata, duration_col, event_col):
    for col in (duration_col, event_col):
        if col not in metadata.columns:
            raise ValueError(f"Survival column '{col}' not found in metadata")
    frame = pd.DataFrame({
        'duration': pd.to_numeric(metadata[duration_col], errors='coerce'),
        'event': pd.to_numeric(metadata[event_col], errors='coerce'),
    }, index=metadata.index)
    frame = frame.dropna()
    frame = frame[frame['duration'] >= 0]
    return frame


def _covariate_frame(metadata, covariates):
    frames = []
    for covariate in covariates:
        values = metadata[covariate]
        if pd.api.types.is_numeric_dtype(values):
            frames.append(values.astype(float).rename(covariate))
        else:
            dummies = pd.get_dummies(values.astype('category'), prefix=covariate, drop_first=True, dtype=float)
            frames.append(dummies)
    if not frames:
        return pd.DataFrame(index=metadata.index)
    return pd.concat(frames, axis=1)


def cox_by_feature(scores, metadata, duration_col, event_col, covariates=None,
                   dichotomize=False, min_samples=10, penalizer=0.0):
    """
    Fit one Cox model per feature.

    Parameters:
    -----------
    scores : pd.DataFrame
        Features x samples (e.g. gene targeting per LIONESS sample)
    metadata : pd.DataFrame
        Indexed by sample id, holding survival and covariate columns
    duration_col, event_col : str
        Follow-up time and event indicator (1 = event, 0 = censored)
    covariates : list, optional
        Adjustment variables
    dichotomize : bool
        Use a high (z > 0) vs low indicator instead of the continuous z-score

    Returns:
    --------
    pd.DataFrame
        SURVIVAL_COLUMNS, hazard ratios per standard deviation (or high vs low),
        BH FDR across the features that could be fitted
    """
    covariates = list(covariates or [])
    survival = _survival_frame(metadata, duration_col, event_col)
    covariate_frame = _covariate_frame(metadata.loc[survival.index], covariates)
    samples = [s for s in scores.columns if s in survival.index]
    if len(samples) < min_samples:
        raise ValueError(f"Only {len(samples)} samples have survival data (minimum {min_samples})")
    logger.info(f"Cox models on {len(samples)} samples for {scores.shape[0]} features")

    results = []
    for feature, values in scores.loc[:, samples].iterrows():
        values = values.astype(float)
        std = values.std()
        if not std > 0:
            logger.warning(f"Skipping '{feature}': no variation across samples")
            continue
        zscore = (values - values.mean()) / std
        term = 'high' if dichotomize else 'zscore'
        data = survival.loc[samples].copy()
        data[term] = (zscore > 0).astype(int) if dichotomize else zscore
        data = data.join(covariate_frame).dropna()

        n_high = int((zscore.loc[data.index] > 0).sum())
        n_low = len(data) - n_high
        if len(data) < min_samples or (dichotomize and min(n_high, n_low) < 2):
            logger.warning(f"Skipping '{feature}': too few samples ({len(data)}, high {n_high}, low {n_low})")
            continue

        cph = CoxPHFitter(penalizer=penalizer)
        try:
            cph.fit(data, duration_col='duration', event_col='event')
        except (ConvergenceError, np.linalg.LinAlgError) as e:
            logger.warning(f"Cox model for '{feature}' did not converge: {e}")
            continue

        ci = cph.confidence_intervals_.loc[term]
        results.append({
            'feature': feature,
            'hazard_ratio': float(np.exp(cph.params_[term])),
            'ci_lower': float(np.exp(ci.iloc[0])),
            'ci_upper': float(np.exp(ci.iloc[1])),
            'p_value': float(cph.summary.loc[term, 'p']),
            'n_samples': len(data),
            'n_events': int(data['event'].sum()),
            'n_high': n_high,
            'n_low': n_low,
        })

    if not results:
        logger.warning("No Cox model could be fitted")
        return pd.DataFrame(columns=SURVIVAL_COLUMNS)

    results_df = pd.DataFrame(results)
    results_df['fdr'] = adjust_pvalues(results_df['p_value'])
    results_df = results_df.sort_values('p_value').reset_index(drop=True)
    return results_df[SURVIVAL_COLUMNS]


def logrank_by_median(score, metadata, duration_col, event_col):
    """
    Log-rank test of samples above vs at-or-below the median score.

    Returns:
        dict: p_value, test_statistic, median, n_high, n_low
    """
    survival = _survival_frame(metadata, duration_col, event_col)
    score = score.dropna()
    shared = [s for s in score.index if s in survival.index]
    if len(shared) < 4:
        raise ValueError(f"Only {len(shared)} samples have both a score and survival data")
    score = score.loc[shared].astype(float)
    survival = survival.loc[shared]

    median = score.median()
    high = score > median
    if high.all() or not high.any():
        raise ValueError("Median split leaves one group empty")

    result = logrank_test(
        survival.loc[high, 'duration'], survival.loc[~high, 'duration'],
        event_observed_A=survival.loc[high, 'event'], event_observed_B=survival.loc[~high, 'event']
    )
    return {
        'p_value': float(result.p_value),
        'test_statistic': float(result.test_statistic),
        'median': float(median),
        'n_high': int(high.sum()),
        'n_low': int((~high).sum()),
    }
