"""
Whole-pipeline CLI subcommand.

Usage:
    geneflow run --config pipeline.yaml
    geneflow run --config pipeline.yaml --output results/rerun --alpha 0.01
    geneflow run -i brca.h5ad --group-column condition --reference-level normal \\
        --gene-sets h.all.v2023.2.Hs.symbols.gmt --id-column gene_name -o results/brca
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from geneflow.cli._common import add_input_arguments, add_verbose_argument, configure_logging, print_banner
from geneflow.cli._validators import _positive_int, _probability

logger = logging.getLogger(__name__)


def register_parser(subparsers):
    """Register run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Run the whole pipeline from a config file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Load, filter, log-transform, PCA, DESeq2 and preranked GSEA in one run.

Options given on the command line override the config file.
        """
    )
    parser.add_argument("--config", "-c", type=Path, default=None, help="YAML or JSON pipeline config")
    add_input_arguments(parser, required=False)
    parser.add_argument("--output", "-o", type=Path, default=None, help="Output directory")
    parser.add_argument("--group-column", default=None, help="Sample annotation defining the groups")
    parser.add_argument("--reference-level", default=None, help="Baseline level of the grouping column")
    parser.add_argument("--alpha", type=_probability, default=None, help="padj significance threshold")
    parser.add_argument("--n-cpus", type=_positive_int, default=None, help="Processes for DESeq2")
    parser.add_argument("--gene-sets", type=Path, default=None, help="Local GMT file (overrides MSigDB)")
    parser.add_argument("--id-column", default=None,
                        help="Feature annotation matching gene set identifiers (e.g. gene_name)")
    parser.add_argument("--permutations", type=_positive_int, default=None, help="GSEA permutations")
    parser.add_argument("--seed", type=int, default=None, help="GSEA random seed")
    parser.add_argument("--color-by", default=None, help="Sample annotation used to colour PCA plots")
    parser.add_argument("--figure-format", choices=["png", "pdf", "svg"], default=None)
    parser.add_argument("--no-differential", action="store_true", help="Skip DESeq2 and GSEA")
    parser.add_argument("--no-enrichment", action="store_true", help="Skip GSEA")
    add_verbose_argument(parser)
    parser.set_defaults(func=run_pipeline_command)


def run_pipeline_command(args: argparse.Namespace) -> int:
    """Execute the run command."""
    from geneflow.cli.config import config_from_dict, load_config, merge_config_with_args
    from geneflow.knowledge.genesets import GeneSetUnavailableError
    from geneflow.pipeline import run_pipeline
    from geneflow.report import format_table

    configure_logging(args.verbose)
    print_banner("geneflow: expression analysis pipeline")

    try:
        raw = load_config(args.config) if args.config else {}
        config = merge_config_with_args(config_from_dict(raw), args)
        result = run_pipeline(config)
    except (FileNotFoundError, ValueError, KeyError, GeneSetUnavailableError) as e:
        logger.error(str(e))
        return 1

    print(f"Loaded:   {result.raw.n_features:,} features × {result.raw.n_samples:,} samples")
    print(f"Filtered: {result.filtered.n_features:,} features × {result.filtered.n_samples:,} samples")
    if result.pca is not None and not result.pca.is_empty:
        print(f"PCA:      PC1 {result.pca.explained_variance_ratio.iloc[0]:.1%} of variance")
    if result.differential is not None:
        print("\nDifferential expression:")
        print(format_table(result.differential.summary()))
    for name, table in result.enrichment.items():
        n_sig = int((table['padj'] < 0.05).sum())
        print(f"\nGSEA {name}: {int(table['defined'].sum())} gene sets tested, {n_sig} with padj < 0.05")

    print(f"\nResults written to {config.output.directory}")
    return 0
