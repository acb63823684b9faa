"""
Differential Score Pipeline
Fits a linear model of every feature against a grouping variable plus
covariates, and ranks features by effect size with adjusted p-values.

Moderated statistics come from the limma port in inmoose (lmFit,
contrasts_fit, eBayes); plain per-feature t statistics come from
statsmodels OLS.
"""

import logging

import numpy as np
import pandas as pd
import statsmodels.api as sm
from inmoose.limma import contrasts_fit, eBayes, lmFit
from scipy import stats

from ..data_processing.expression import align_samples
from ..exceptions import DesignError, SampleAlignmentError
from .ranking import adjust_pvalues, rank_table

logger = logging.getLogger(__name__)

INTERCEPT = 'Intercept'

RESULT_COLUMNS = [
    'feature', 'effect_size', 'ave_expr', 'std_error', 't_statistic',
    'df', 'p_value', 'adj_p_value', 'rank'
]


def _is_numeric(series):
    return pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series)


def _level_column(name, level):
    return f"{name}[{level}]"


class DifferentialScorePipeline:
    """Per-feature linear models with optional empirical Bayes variance moderation"""

    def __init__(self, group_col, covariates=None, reference=None, moderated=True):
        self.group_col = group_col
        self.covariates = list(covariates or [])
        self.reference = reference
        self.moderated = moderated

        self.design = None
        self.levels = None
        self.group_is_numeric = False
        self.features = None
        self.coefficients = None
        self.limma_fit = None
        self.ols_fits = None
        self.ave_expr = None

    def build_design(self, metadata):
        """
        Build the design matrix (samples x coefficients).

        The group variable is treatment-coded against the reference level
        (first sorted level unless given); numeric groups enter as a slope.
        Numeric covariates enter as-is and categorical covariates are
        treatment-coded against their first sorted level. Samples with a
        missing value in any design column are dropped.
        """
        if self.group_col in self.covariates:
            raise DesignError(f"Grouping column '{self.group_col}' is also listed as a covariate")
        duplicated = sorted({c for c in self.covariates if self.covariates.count(c) > 1})
        if duplicated:
            raise DesignError(f"Covariates listed more than once: {duplicated}")

        columns = [self.group_col] + self.covariates
        missing = [c for c in columns if c not in metadata.columns]
        if missing:
            raise DesignError(f"Design columns not found in metadata: {missing}")

        meta = metadata[columns]
        complete = meta.notna().all(axis=1)
        if not complete.all():
            logger.warning(f"Dropping {(~complete).sum()} samples with missing design values")
        meta = meta.loc[complete]

        design = pd.DataFrame({INTERCEPT: 1.0}, index=meta.index)
        group = meta[self.group_col]
        if _is_numeric(group):
            if self.reference is not None:
                raise DesignError(
                    f"Grouping column '{self.group_col}' is numeric and fitted as a slope; "
                    f"reference level '{self.reference}' does not apply"
                )
            self.group_is_numeric = True
            self.levels = None
            design[self.group_col] = group.astype(float)
        else:
            self.group_is_numeric = False
            group = group.astype(str)
            self.levels = sorted(group.unique())
            if len(self.levels) < 2:
                raise DesignError(f"Grouping column '{self.group_col}' has fewer than two levels: {self.levels}")
            if self.reference is None:
                self.reference = self.levels[0]
            elif str(self.reference) not in self.levels:
                raise DesignError(f"Reference level '{self.reference}' not among {self.levels}")
            self.reference = str(self.reference)
            for level in self.levels:
                if level != self.reference:
                    design[_level_column(self.group_col, level)] = (group == level).astype(float)

        for covariate in self.covariates:
            values = meta[covariate]
            if _is_numeric(values):
                if values.nunique() < 2:
                    logger.warning(f"Covariate '{covariate}' is constant; leaving it out of the design")
                    continue
                design[covariate] = values.astype(float)
            else:
                values = values.astype(str)
                cov_levels = sorted(values.unique())
                if len(cov_levels) < 2:
                    logger.warning(f"Covariate '{covariate}' has a single level; leaving it out of the design")
                    continue
                for level in cov_levels[1:]:
                    design[_level_column(covariate, level)] = (values == level).astype(float)

        n_samples, n_coef = design.shape
        if np.linalg.matrix_rank(design.to_numpy()) < n_coef:
            raise DesignError(f"Design matrix is not full rank (columns: {design.columns.tolist()})")
        if n_samples <= n_coef:
            raise DesignError(f"No residual degrees of freedom: {n_samples} samples for {n_coef} coefficients")

        self.design = design
        logger.info(f"Design: {n_samples} samples, coefficients {design.columns.tolist()}")
        return design

    def fit(self, matrix, metadata):
        """
        Fit the linear model of every feature.

        The matrix columns must match the metadata index exactly; use
        align_samples (or run_differential) first. Moderated fits go through
        limma's lmFit for all features at once, plain fits through one
        statsmodels OLS per feature.
        """
        if not matrix.columns.equals(metadata.index):
            raise SampleAlignmentError("Matrix columns and metadata index differ; align them first")
        if matrix.isna().any().any():
            raise ValueError("Matrix contains missing values")

        design = self.build_design(metadata)
        y = matrix.loc[:, design.index].astype(float)
        exog = design.to_numpy()

        if self.moderated:
            self.limma_fit = lmFit(y, exog)
            coefficients = self.limma_fit.coefficients.to_numpy()
        else:
            self.ols_fits = [sm.OLS(values, exog).fit() for values in y.to_numpy()]
            coefficients = np.vstack([result.params for result in self.ols_fits])

        self.features = matrix.index
        self.coefficients = pd.DataFrame(coefficients, index=matrix.index, columns=design.columns)
        self.ave_expr = y.mean(axis=1).to_numpy()
        logger.info(f"Fitted {len(self.features)} features with "
                    f"{exog.shape[0] - exog.shape[1]} residual degrees of freedom")
        return self

    def contrast_vector(self, contrast=None):
        """
        Translate a contrast into a coefficient weight vector.

        contrast may be None (first non-reference level vs reference, or the
        slope for numeric groups), a (level_a, level_b) pair meaning
        level_a - level_b, a group level (level vs reference), or a
        coefficient name.
        """
        columns = self.design.columns
        vector = pd.Series(0.0, index=columns)

        if contrast is None:
            if self.group_is_numeric:
                vector[self.group_col] = 1.0
            else:
                level = next(lv for lv in self.levels if lv != self.reference)
                vector[_level_column(self.group_col, level)] = 1.0
            return vector

        if isinstance(contrast, (tuple, list)):
            if self.group_is_numeric or len(contrast) != 2:
                raise ValueError(f"Contrast {contrast} needs a categorical group and exactly two levels")
            level_a, level_b = (str(lv) for lv in contrast)
            for level in (level_a, level_b):
                if level not in self.levels:
                    raise ValueError(f"Unknown level '{level}' in contrast; levels are {self.levels}")
            if level_a == level_b:
                raise ValueError("Contrast levels must differ")
            if level_a != self.reference:
                vector[_level_column(self.group_col, level_a)] += 1.0
            if level_b != self.reference:
                vector[_level_column(self.group_col, level_b)] -= 1.0
            return vector

        contrast = str(contrast)
        if contrast in columns:
            vector[contrast] = 1.0
            return vector
        if self.levels is not None and contrast in self.levels and contrast != self.reference:
            vector[_level_column(self.group_col, contrast)] = 1.0
            return vector
        raise ValueError(f"Unknown contrast '{contrast}'; coefficients are {columns.tolist()}")

    def _moderated_statistics(self, vector):
        weights = vector.to_numpy()
        if np.count_nonzero(weights) == 1 and weights.max() == 1.0:
            # a single coefficient is read straight off the full fit
            column = int(np.flatnonzero(weights)[0])
            fit = eBayes(self.limma_fit)
        else:
            contrasts = pd.DataFrame({'contrast': weights}, index=self.limma_fit.coefficients.columns)
            fit = eBayes(contrasts_fit(self.limma_fit, contrasts=contrasts))
            column = 0
        effect = fit.coefficients.iloc[:, column].to_numpy()
        std_error = fit.stdev_unscaled.iloc[:, column].to_numpy() * np.sqrt(np.asarray(fit.s2_post, dtype=float))
        t_stat = fit.t.iloc[:, column].to_numpy()
        p_values = fit.p_value.iloc[:, column].to_numpy()
        df_total = np.broadcast_to(np.asarray(fit.df_total, dtype=float), effect.shape)
        logger.info(f"Variance prior: d0 = {np.max(fit.df_prior):.3g}, s0^2 = {np.max(fit.s2_prior):.3g}")
        return effect, std_error, t_stat, df_total, p_values

    def _ols_statistics(self, vector):
        rows = []
        for result in self.ols_fits:
            tt = result.t_test(vector.to_numpy())
            rows.append((
                np.ravel(tt.effect)[0],
                np.ravel(tt.sd)[0],
                np.ravel(tt.tvalue)[0],
                float(result.df_resid),
                np.ravel(tt.pvalue)[0],
            ))
        effect, std_error, t_stat, df, p_values = (np.array(col, dtype=float) for col in zip(*rows))
        return effect, std_error, t_stat, df, p_values

    def test(self, contrast=None):
        """
        Test a contrast for every feature.

        Returns:
            pd.DataFrame: Ranked table with RESULT_COLUMNS, one row per fitted feature.
        """
        if self.coefficients is None:
            raise RuntimeError("Call fit() before test()")
        vector = self.contrast_vector(contrast)

        if self.moderated:
            effect, std_error, t_stat, df, p_values = self._moderated_statistics(vector)
        else:
            effect, std_error, t_stat, df, p_values = self._ols_statistics(vector)

        table = pd.DataFrame({
            'feature': self.features,
            'effect_size': effect,
            'ave_expr': self.ave_expr,
            'std_error': std_error,
            't_statistic': t_stat,
            'df': df,
            'p_value': p_values,
        })
        table['adj_p_value'] = adjust_pvalues(table['p_value'])
        table = rank_table(table)
        n_sig = (table['adj_p_value'] < 0.05).sum()
        logger.info(f"Tested contrast {vector[vector != 0].to_dict()}: {n_sig} features with adjusted p < 0.05")
        return table[RESULT_COLUMNS]


def run_differential(matrix, metadata, group_col, covariates=None, reference=None,
                     contrast=None, moderated=True, how='strict'):
    """Align samples, fit the per-feature models and return the ranked result table"""
    matrix, metadata = align_samples(matrix, metadata, how=how)
    pipeline = DifferentialScorePipeline(group_col, covariates=covariates, reference=reference, moderated=moderated)
    pipeline.fit(matrix, metadata)
    return pipeline.test(contrast)


def compare_groups(matrix, groups, test='t-test', reference=None):
    """
    Quick two-group comparison of every feature.

    Parameters:
    -----------
    matrix : pd.DataFrame
        Features x samples
    groups : pd.Series
        Group label per sample (indexed by sample id), exactly two levels
    test : str
        't-test' (Welch) or 'mann-whitney'
    reference : str, optional
        Level subtracted from the other; first sorted level by default

    Returns:
    --------
    pd.DataFrame
        feature, effect_size, ave_expr, statistic, p_value, adj_p_value, rank
    """
    groups = groups.dropna().astype(str)
    shared = [s for s in matrix.columns if s in groups.index]
    if len(shared) < matrix.shape[1]:
        logger.warning(f"{matrix.shape[1] - len(shared)} samples have no group label and are ignored")
    groups = groups.loc[shared]
    levels = sorted(groups.unique())
    if len(levels) != 2:
        raise ValueError(f"Expected exactly two groups, found {levels}")
    if reference is None:
        reference = levels[0]
    elif str(reference) not in levels:
        raise ValueError(f"Reference level '{reference}' not among {levels}")
    other = next(lv for lv in levels if lv != str(reference))

    ref_values = matrix.loc[:, groups.index[groups == str(reference)]].to_numpy(dtype=float)
    other_values = matrix.loc[:, groups.index[groups == other]].to_numpy(dtype=float)

    if test == 't-test':
        statistic, p_values = stats.ttest_ind(other_values, ref_values, axis=1, equal_var=False)
    elif test == 'mann-whitney':
        statistic, p_values = stats.mannwhitneyu(other_values, ref_values, axis=1, alternative='two-sided')
    else:
        raise ValueError(f"Unsupported test type '{test}'")

    table = pd.DataFrame({
        'feature': matrix.index,
        'effect_size': other_values.mean(axis=1) - ref_values.mean(axis=1),
        'ave_expr': matrix.loc[:, shared].to_numpy(dtype=float).mean(axis=1),
        'statistic': statistic,
        'p_value': p_values,
    })
    table['adj_p_value'] = adjust_pvalues(table['p_value'])
    return rank_table(table)
