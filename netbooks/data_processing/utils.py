import argparse
import logging
import re
from collections import namedtuple

import pandas as pd

from ..utils.shared_functions import load_table

logger = logging.getLogger(__name__)

# e.g. TCGA-02-0001-01C-01D-0182-01; only the first four fields matter here
BARCODE_PATTERN = re.compile(r'^([A-Z0-9]+)-([A-Z0-9]{2})-([A-Z0-9]{4})(?:-(\d{2})([A-Z])?)?(?:-.*)?$')

SAMPLE_TYPES = {
    '01': 'Primary Solid Tumor',
    '02': 'Recurrent Solid Tumor',
    '03': 'Primary Blood Derived Cancer',
    '05': 'Additional - New Primary',
    '06': 'Metastatic',
    '07': 'Additional Metastatic',
    '10': 'Blood Derived Normal',
    '11': 'Solid Tissue Normal',
}

TCGABarcode = namedtuple(
    'TCGABarcode',
    ['project', 'tss', 'participant', 'sample_type', 'vial', 'patient_id', 'sample_id']
)


def clean_barcode(barcode: str) -> str:
    """Normalize a barcode: trim, upper-case and undo R's '-' -> '.' mangling."""
    return str(barcode).strip().upper().replace('.', '-')


def parse_tcga_barcode(barcode: str) -> TCGABarcode:
    """
    Split a TCGA barcode into its fields.

    Patient-level barcodes (three fields) parse with sample_type and vial set to None.
    Raises ValueError for anything that is not a TCGA-style barcode.
    """
    cleaned = clean_barcode(barcode)
    match = BARCODE_PATTERN.match(cleaned)
    if match is None:
        raise ValueError(f"Not a TCGA barcode: {barcode!r}")
    project, tss, participant, sample_type, vial = match.groups()
    patient_id = f"{project}-{tss}-{participant}"
    sample_id = f"{patient_id}-{sample_type}{vial or ''}" if sample_type else None
    return TCGABarcode(project, tss, participant, sample_type, vial, patient_id, sample_id)


def sample_type_of(barcode: str):
    """Two-digit sample type code of a barcode, or None when it has no sample field."""
    try:
        return parse_tcga_barcode(barcode).sample_type
    except ValueError:
        return None


def filter_tcga_samples(
    matrix: pd.DataFrame,
    sample_types=('01',),
    one_per_patient: bool = True,
    rename_to_patient: bool = False
) -> pd.DataFrame:
    """
    Keep the matrix columns whose TCGA sample type is in `sample_types`.

    With one_per_patient, only the first aliquot of each patient and sample
    type survives (lowest vial letter, then lexicographic barcode), so a
    tumour and its matched normal are both kept. With rename_to_patient,
    columns are renamed to the 12-character patient barcode so they can be
    joined against patient-level clinical tables.
    """
    parsed = {}
    invalid = []
    for column in matrix.columns:
        try:
            parsed[column] = parse_tcga_barcode(column)
        except ValueError:
            invalid.append(column)
    if invalid:
        logger.warning(f"Dropping {len(invalid)} columns that are not TCGA barcodes: {invalid[:5]}")

    wanted = set(sample_types)
    keep = [c for c, b in parsed.items() if b.sample_type in wanted]
    logger.info(f"Kept {len(keep)} of {matrix.shape[1]} samples with sample types {sorted(wanted)}")

    if one_per_patient:
        ordered = sorted(keep, key=lambda c: (
            parsed[c].patient_id, parsed[c].sample_type, parsed[c].vial or '', clean_barcode(c)
        ))
        seen = set()
        unique = []
        for column in ordered:
            sample = (parsed[column].patient_id, parsed[column].sample_type)
            if sample in seen:
                continue
            seen.add(sample)
            unique.append(column)
        if len(unique) < len(keep):
            logger.info(f"Removed {len(keep) - len(unique)} duplicate aliquots")
        unique = set(unique)
        keep = [c for c in keep if c in unique]

    filtered = matrix.loc[:, keep]
    if rename_to_patient:
        patients = [parsed[c].patient_id for c in keep]
        if len(set(patients)) != len(patients):
            raise ValueError("Cannot rename to patient barcodes: several samples per patient remain")
        filtered = filtered.set_axis(patients, axis=1)
    return filtered


def main(argv=None):
    """Command-line interface listing how the columns of a table parse as TCGA barcodes."""
    parser = argparse.ArgumentParser(description='Parse the sample columns of a matrix as TCGA barcodes')
    parser.add_argument('table', help='Path to a features x samples table')
    args = parser.parse_args(argv)
    df = load_table(args.table, index_col=0, nrows=1)
    for column in df.columns:
        try:
            barcode = parse_tcga_barcode(column)
            print(f"{column}\t{barcode.patient_id}\t{barcode.sample_type or 'NA'}")
        except ValueError:
            print(f"{column}\tNA\tNA")


if __name__ == '__main__':
    main()
