"""
Differential expression CLI subcommand.

Usage:
    geneflow differential -i results/filtered.data.csv \\
        --sample-metadata results/filtered.samples.csv \\
        --feature-metadata results/filtered.features.csv \\
        --group-column condition --reference-level normal \\
        --id-column gene_name -o results/de
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from geneflow.cli._common import add_input_arguments, add_verbose_argument, configure_logging, load_input, print_banner
from geneflow.cli._validators import _positive_int, _probability

logger = logging.getLogger(__name__)


def register_parser(subparsers):
    """Register differential subcommand."""
    parser = subparsers.add_parser(
        "differential",
        help="DESeq2 differential expression",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Fit the DESeq2 negative binomial model (~group) on raw counts and test every
non-reference level against the reference level.

Outputs:
  de_<level>_vs_<reference>.csv   per-feature statistics
  de_summary.csv                  significant/up/down counts per contrast
  volcano_<contrast>.<format>     volcano plot per contrast
        """
    )
    add_input_arguments(parser)
    parser.add_argument("--output", "-o", type=Path, required=True, help="Output directory")
    parser.add_argument("--group-column", required=True, help="Sample annotation defining the groups")
    parser.add_argument("--reference-level", required=True, help="Baseline level")
    parser.add_argument("--test-levels", nargs="+", default=None,
                        help="Levels to test (default: all non-reference levels)")
    parser.add_argument("--alpha", type=_probability, default=0.05, help="padj threshold (default: 0.05)")
    parser.add_argument("--n-cpus", type=_positive_int, default=1, help="Processes for DESeq2 (default: 1)")
    parser.add_argument("--id-column", default=None, help="Feature annotation used to label genes")
    parser.add_argument("--top", type=_positive_int, default=10, help="Top features printed per contrast")
    parser.add_argument("--format", "-f", choices=["png", "pdf", "svg"], default="png",
                        help="Figure format (default: png)")
    add_verbose_argument(parser)
    parser.set_defaults(func=run_differential)


def run_differential(args: argparse.Namespace) -> int:
    """Execute the differential command."""
    from geneflow.io.writers import write_table
    from geneflow.report import format_table, top_differential
    from geneflow.stats.differential import run_differential_expression
    from geneflow.viz.expression import ExpressionVisualizer

    configure_logging(args.verbose)
    print_banner("Differential Expression (DESeq2)")

    try:
        matrix = load_input(args)
        result = run_differential_expression(
            matrix,
            group_column=args.group_column,
            reference_level=args.reference_level,
            test_levels=args.test_levels,
            alpha=args.alpha,
            n_cpus=args.n_cpus,
        )

        args.output.mkdir(parents=True, exist_ok=True)
        write_table(result.summary(), args.output / "de_summary.csv", index=False)
        viz = ExpressionVisualizer()
        for contrast in result:
            write_table(contrast.table, args.output / f"de_{contrast.name}.csv")
            figure = viz.plot_volcano(contrast, id_column=args.id_column)
            figure.save(args.output / f"volcano_{contrast.name}.{args.format}")
            figure.close()
    except (FileNotFoundError, ValueError, KeyError) as e:
        logger.error(str(e))
        return 1

    print(format_table(result.summary()))
    for contrast in result:
        print(f"\nTop {args.top} features: {contrast.name}")
        print(format_table(top_differential(contrast, n=args.top, id_column=args.id_column)))
    print(f"\nResults written to {args.output}")
    return 0
