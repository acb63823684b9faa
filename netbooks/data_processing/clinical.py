import logging
import re

import numpy as np
import pandas as pd

from ..utils.config import CONFIG
from ..utils.shared_functions import load_table, resolve_column

logger = logging.getLogger(__name__)

MISSING_MARKERS = {
    '', 'na', 'nan', 'none', 'unknown', 'not reported', '--', "'--",
    '[not available]', '[not applicable]', '[unknown]', '[not evaluated]', '[discrepancy]',
}

SEX_VALUES = {'female': 'female', 'f': 'female', 'male': 'male', 'm': 'male'}

STAGE_PATTERN = re.compile(r'^(?:stage\s*)?(iv|iii|ii|i|0)(?:[a-c]\d?)?$', re.IGNORECASE)

# Ages above this are assumed to be recorded in days
MAX_AGE_YEARS = 150


def snake_case(name: str) -> str:
    name = re.sub(r'[^0-9a-zA-Z]+', '_', str(name).strip())
    name = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', name)
    return name.strip('_').lower()


def load_clinical_table(path: str, sample_col: str = None) -> pd.DataFrame:
    """
    Load a clinical/metadata table, normalize column names to snake_case,
    and index it by sample identifier.

    If sample_col isn't provided, the first column matching a known sample id
    alias is used, falling back to the first column.
    """
    df = load_table(path)
    df.columns = [snake_case(c) for c in df.columns]
    if sample_col is None:
        sample_col = resolve_column(df, CONFIG['columns']['sample_id'], required=False) or df.columns[0]
    else:
        sample_col = snake_case(sample_col)
        if sample_col not in df.columns:
            raise ValueError(f"Sample column '{sample_col}' not found in {path}")

    df[sample_col] = df[sample_col].astype(str).str.strip()
    duplicated = df[sample_col].duplicated()
    if duplicated.any():
        logger.warning(f"Dropping {duplicated.sum()} duplicated sample ids in {path}, keeping the first row")
        df = df.loc[~duplicated]
    df = df.set_index(sample_col)
    df.index.name = 'sample_id'
    logger.info(f"Loaded metadata for {len(df)} samples with columns {df.columns.tolist()}")
    return df


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and np.isnan(value):
        return True
    return str(value).strip().lower() in MISSING_MARKERS


def simplify_stage(stage):
    """Map a stage label such as 'Stage IIIA' to its roman numeral ('III'); None if unparseable."""
    if _is_missing(stage):
        return None
    match = STAGE_PATTERN.match(str(stage).strip())
    if match is None:
        return None
    return match.group(1).upper()


def convert_age(age):
    """Convert an age to years, treating values above MAX_AGE_YEARS as days."""
    if _is_missing(age):
        return np.nan
    try:
        value = abs(float(age))
    except (TypeError, ValueError):
        return np.nan
    if value > MAX_AGE_YEARS:
        value = value / 365.25
    return value


def harmonize_covariates(metadata: pd.DataFrame) -> pd.DataFrame:
    """
    Harmonize common covariates in place of their raw values.

    - sex/gender -> 'female' / 'male' in a 'sex' column
    - age (or age_at_diagnosis / age_at_index / days_to_birth) -> numeric 'age' in years
    - stage (ajcc_pathologic_stage, tumor_stage, ...) -> simplified roman 'stage'
    - race -> lower-case
    Unknown markers such as '[Not Available]' become missing values.
    """
    df = metadata.copy()
    for col in df.columns:
        if not pd.api.types.is_numeric_dtype(df[col]):
            df[col] = df[col].map(lambda v: np.nan if _is_missing(v) else v)

    sex_col = resolve_column(df, ['sex', 'gender'], required=False)
    if sex_col is not None:
        df['sex'] = df[sex_col].map(lambda v: SEX_VALUES.get(str(v).strip().lower(), np.nan))

    age_col = resolve_column(df, ['age', 'age_at_diagnosis', 'age_at_index', 'age_at_initial_pathologic_diagnosis'], required=False)
    if age_col is not None:
        df['age'] = df[age_col].map(convert_age)
    elif 'days_to_birth' in df.columns:
        df['age'] = pd.to_numeric(df['days_to_birth'], errors='coerce').abs() / 365.25

    stage_col = resolve_column(df, ['stage', 'ajcc_pathologic_stage', 'tumor_stage', 'pathologic_stage', 'clinical_stage'], required=False)
    if stage_col is not None:
        df['stage'] = df[stage_col].map(simplify_stage)

    race_col = resolve_column(df, ['race'], required=False)
    if race_col is not None:
        df['race'] = df[race_col].map(lambda v: v if _is_missing(v) else str(v).strip().lower())

    for col in ['sex', 'age', 'stage', 'race']:
        if col in df.columns:
            logger.info(f"Harmonized '{col}': {df[col].notna().sum()} of {len(df)} samples annotated")
    return df


def filter_metadata(metadata: pd.DataFrame, **predicates) -> pd.DataFrame:
    """
    Keep rows matching every predicate.

    Each keyword names a column; its value is either a scalar (equality),
    a list/tuple/set (membership) or a callable taking the column and
    returning a boolean mask.
    """
    df = metadata
    for column, predicate in predicates.items():
        if column not in df.columns:
            raise ValueError(f"Cannot filter on missing column '{column}'")
        before = len(df)
        if callable(predicate):
            mask = predicate(df[column])
        elif isinstance(predicate, (list, tuple, set, frozenset)):
            mask = df[column].isin(predicate)
        else:
            mask = df[column] == predicate
        df = df.loc[np.asarray(mask, dtype=bool)]
        logger.info(f"Filter on '{column}' removed {before - len(df)} samples, {len(df)} remaining")
    return df
