"""
Netbook Analysis Pipeline
=========================
Runs the expression-matrix-to-differential-score workflow end to end:
- Loading an expression matrix, or a LIONESS network summarized as targeting scores
- TCGA sample filtering, low-expression filtering and normalization
- Aligning samples with metadata
- Per-feature linear models with moderated statistics and BH-adjusted p-values
- Optional preranked GSEA, survival models and plots
"""

import argparse
import logging
import os

from .data_processing.clinical import load_clinical_table, harmonize_covariates, snake_case
from .data_processing.expression import (
    load_expression_matrix, filter_low_expression, normalize_counts, align_samples
)
from .data_processing.network import load_lioness_network, load_panda_network, targeting_scores
from .data_processing.utils import filter_tcga_samples
from .differential.linear_model import DifferentialScorePipeline
from .differential.ranking import top_table
from .enrichment.gsea import preranked_enrichment, ranking_from_table
from .network_analysis.structure import sample_pca
from .survival.cox import cox_by_feature
from .utils.config import get_config, setup_logging
from .utils.shared_functions import save_results
from .visualization.plots import volcano_plot, top_features_heatmap, pca_plot

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(description='Differential scores from expression or LIONESS networks')
    parser.add_argument('--matrix', required=True,
                        help='Expression matrix (features x samples) or LIONESS network (edges x samples)')
    parser.add_argument('--metadata', required=True, help='Sample metadata table')
    parser.add_argument('--group-col', required=True, help='Metadata column to compare')
    parser.add_argument('--sample-col', help='Metadata column holding sample ids')
    parser.add_argument('--covariates', nargs='*', default=[], help='Adjustment covariates')
    parser.add_argument('--reference', help='Reference level of the group column')
    parser.add_argument('--contrast', nargs=2, metavar=('LEVEL_A', 'LEVEL_B'),
                        help='Compare LEVEL_A against LEVEL_B instead of the default contrast')
    parser.add_argument('--input-type', choices=['counts', 'normalized', 'lioness'], default='counts',
                        help='counts are filtered and log2-CPM normalized; lioness is summarized first')
    parser.add_argument('--edges', help='PANDA edge table labelling the rows of an unlabelled LIONESS matrix')
    parser.add_argument('--targeting', choices=['gene', 'tf'], default='gene',
                        help='Targeting score computed from a LIONESS network')
    parser.add_argument('--tcga', action='store_true', help='Filter matrix columns as TCGA barcodes')
    parser.add_argument('--sample-types', nargs='*', help='TCGA sample type codes to keep (default 01)')
    parser.add_argument('--rename-to-patient', action='store_true',
                        help='Rename TCGA columns to patient barcodes before joining metadata')
    parser.add_argument('--all-aliquots', action='store_true',
                        help='Keep every aliquot instead of one per patient and sample type')
    parser.add_argument('--min-value', type=float, help='Low-expression threshold')
    parser.add_argument('--min-fraction', type=float, help='Fraction of samples that must pass --min-value')
    parser.add_argument('--normalization', help='Normalization applied to counts')
    parser.add_argument('--align', choices=['strict', 'intersect'], default='strict',
                        help='strict fails on unmatched samples; intersect keeps the shared ones')
    parser.add_argument('--no-moderation', action='store_true', help='Plain per-feature t statistics')
    parser.add_argument('--gene-sets', help='GMT file or gseapy library for preranked GSEA')
    parser.add_argument('--duration-col', help='Survival time column for Cox models of the top features')
    parser.add_argument('--event-col', help='Event indicator column for Cox models')
    parser.add_argument('--plots', action='store_true', help='Write volcano, heatmap and PCA plots')
    parser.add_argument('--output-dir', help='Directory for results')
    parser.add_argument('--log-file', help='Also write the log to this file')
    return parser


def config_from_args(args):
    overrides = {'tcga': {}, 'expression': {}, 'differential': {}}
    if args.output_dir:
        overrides['output_dir'] = args.output_dir
    if args.log_file:
        overrides['log_file'] = args.log_file
    if args.sample_types:
        overrides['tcga']['sample_types'] = args.sample_types
    if args.all_aliquots:
        overrides['tcga']['one_per_patient'] = False
    if args.min_value is not None:
        overrides['expression']['min_value'] = args.min_value
    if args.min_fraction is not None:
        overrides['expression']['min_fraction'] = args.min_fraction
    if args.normalization:
        overrides['expression']['normalization'] = args.normalization
    if args.no_moderation:
        overrides['differential']['moderated'] = False
    return get_config(overrides)


def load_matrix(args, config):
    """Load the analysis matrix and bring it to features x samples on a continuous scale"""
    if args.input_type == 'lioness':
        edges = load_panda_network(args.edges) if args.edges else None
        network = load_lioness_network(args.matrix, edges=edges)
        matrix = targeting_scores(network, axis=args.targeting)
        logger.info(f"Computed {args.targeting} targeting for {matrix.shape[0]} features")
    else:
        matrix = load_expression_matrix(args.matrix)

    if args.tcga:
        matrix = filter_tcga_samples(
            matrix,
            sample_types=config['tcga']['sample_types'],
            one_per_patient=config['tcga']['one_per_patient'],
            rename_to_patient=args.rename_to_patient,
        )

    if args.input_type == 'counts':
        expr = config['expression']
        matrix = filter_low_expression(matrix, min_value=expr['min_value'], min_fraction=expr['min_fraction'])
        matrix = normalize_counts(matrix, method=expr['normalization'], prior_count=expr['prior_count'])
    return matrix


def run(args):
    config = config_from_args(args)
    output_dir = config['output_dir']
    os.makedirs(output_dir, exist_ok=True)
    setup_logging(config['log_file'])

    # Metadata columns are snake_cased on load
    group_col = snake_case(args.group_col)
    covariates = [snake_case(c) for c in args.covariates]

    matrix = load_matrix(args, config)
    metadata = harmonize_covariates(load_clinical_table(args.metadata, sample_col=args.sample_col))
    matrix, metadata = align_samples(matrix, metadata, how=args.align)

    pipeline = DifferentialScorePipeline(
        group_col,
        covariates=covariates,
        reference=args.reference,
        moderated=config['differential']['moderated'],
    )
    pipeline.fit(matrix, metadata)
    table = pipeline.test(tuple(args.contrast) if args.contrast else None)
    results = {'differential': save_results(table, output_dir, config['differential']['results_file'])}

    significant = top_table(table, adj_p_threshold=config['differential']['adj_p_threshold'])
    logger.info(f"{len(significant)} of {len(table)} features pass adjusted p < "
                f"{config['differential']['adj_p_threshold']}")

    if args.gene_sets:
        enrich = config['enrichment']
        enrichment = preranked_enrichment(
            ranking_from_table(table),
            args.gene_sets,
            min_size=enrich['min_size'],
            max_size=enrich['max_size'],
            permutation_num=enrich['permutation_num'],
            seed=enrich['seed'],
        )
        results['enrichment'] = save_results(enrichment, output_dir, enrich['results_file'])

    if args.duration_col and args.event_col:
        top_features = table['feature'].head(config['plots']['top_n'])
        survival = cox_by_feature(
            matrix.loc[top_features],
            metadata,
            snake_case(args.duration_col),
            snake_case(args.event_col),
            covariates=covariates,
            min_samples=config['survival']['min_samples'],
        )
        results['survival'] = save_results(survival, output_dir, config['survival']['results_file'])

    if args.plots:
        plots_dir = os.path.join(output_dir, 'plots')
        results['volcano'] = volcano_plot(table, plots_dir)
        results['heatmap'] = top_features_heatmap(
            matrix, table, metadata.loc[pipeline.design.index], group_col, plots_dir,
            n=config['plots']['top_n']
        )
        scores, explained = sample_pca(matrix)
        results['pca'] = pca_plot(scores, metadata, group_col, plots_dir, explained=explained)

    return results


def main(argv=None):
    """Command-line entry point"""
    args = build_parser().parse_args(argv)
    results = run(args)
    for name, path in results.items():
        print(f"{name}\t{path}")


if __name__ == '__main__':
    main()
