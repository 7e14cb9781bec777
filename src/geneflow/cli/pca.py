"""
PCA CLI subcommand.

Usage:
    geneflow pca -i results/filtered.data.csv --sample-metadata results/filtered.samples.csv \\
        --color-by condition --n-top 500 -o results/pca
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from geneflow.cli._common import add_input_arguments, add_verbose_argument, configure_logging, load_input, print_banner
from geneflow.cli._validators import _positive_int

logger = logging.getLogger(__name__)


def register_parser(subparsers):
    """Register pca subcommand."""
    parser = subparsers.add_parser(
        "pca",
        help="Principal component analysis and plots",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
PCA of samples on the most variable features. Counts are log2(x + 1)
transformed first unless --no-log is given.
        """
    )
    add_input_arguments(parser)
    parser.add_argument("--output", "-o", type=Path, required=True, help="Output directory")
    parser.add_argument("--n-components", type=_positive_int, default=10,
                        help="Components to compute (default: 10, capped by matrix size)")
    parser.add_argument("--n-top", type=_positive_int, default=500,
                        help="Most variable features used (default: 500)")
    parser.add_argument("--scale", action="store_true", help="Scale features to unit variance")
    parser.add_argument("--no-log", action="store_true", help="Input is already log-scale")
    parser.add_argument("--color-by", default=None, help="Sample annotation used for colour")
    parser.add_argument("--static-3d", action="store_true",
                        help="Static matplotlib 3-D plot instead of interactive plotly")
    parser.add_argument("--format", "-f", choices=["png", "pdf", "svg"], default="png",
                        help="Figure format (default: png)")
    add_verbose_argument(parser)
    parser.set_defaults(func=run_pca_command)


def run_pca_command(args: argparse.Namespace) -> int:
    """Execute the pca command."""
    from geneflow.io.writers import write_table
    from geneflow.quality.filtering import HighVarianceSelector, LogTransform
    from geneflow.report import format_table
    from geneflow.stats.pca import run_pca
    from geneflow.viz.expression import ExpressionVisualizer

    configure_logging(args.verbose)
    print_banner("Principal Component Analysis")

    try:
        matrix = load_input(args)
        if not args.no_log:
            matrix = LogTransform().apply(matrix)
        if not matrix.is_empty:
            matrix = HighVarianceSelector(n_top=args.n_top).apply(matrix)

        n_components = min(args.n_components, matrix.n_samples, matrix.n_features) or None
        result = run_pca(matrix, n_components=n_components, scale=args.scale)

        args.output.mkdir(parents=True, exist_ok=True)
        if not result.is_empty:
            write_table(result.to_dataframe(), args.output / "pca_scores.csv")
            write_table(result.variance_table(), args.output / "pca_variance.csv", index=False)

        viz = ExpressionVisualizer()
        figures = viz.plot_all(pca=result, color_by=args.color_by, interactive_3d=not args.static_3d)
        saved = figures.save_all(args.output, format=args.format)
        figures.close_all()
    except (FileNotFoundError, ValueError, KeyError) as e:
        logger.error(str(e))
        return 1

    if not result.is_empty:
        print(format_table(result.variance_table()))
    for path in saved:
        print(f"Wrote {path}")
    return 0
