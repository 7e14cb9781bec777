"""
geneflow CLI - Command-line interface for the bulk expression pipeline.

Commands:
    geneflow run           - Whole pipeline from a YAML/JSON config
    geneflow preprocess    - Filter, relabel and log-transform a matrix
    geneflow pca           - Principal component analysis and plots
    geneflow differential  - DESeq2 differential expression
    geneflow enrich        - Preranked GSEA of a differential expression table
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for geneflow."""
    from geneflow import __version__

    parser = argparse.ArgumentParser(
        prog="geneflow",
        description="Bulk expression analysis: filtering, PCA, DESeq2 and GSEA",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run           Whole pipeline from a YAML/JSON config
  preprocess    Filter, relabel and log-transform a matrix
  pca           Principal component analysis and plots
  differential  DESeq2 differential expression
  enrich        Preranked GSEA of a differential expression table

Examples:
  geneflow run --config pipeline.yaml
  geneflow preprocess -i counts.csv --sample-metadata samples.csv -o results/filtered
  geneflow differential -i results/filtered.data.csv --sample-metadata results/filtered.samples.csv \\
      --group-column condition --reference-level normal -o results/de
  geneflow enrich --de-table results/de/de_tumor_vs_normal.csv --gene-sets h.all.gmt -o results/gsea
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from geneflow.cli import run, preprocess, pca, differential, enrich
    run.register_parser(subparsers)
    preprocess.register_parser(subparsers)
    pca.register_parser(subparsers)
    differential.register_parser(subparsers)
    enrich.register_parser(subparsers)

    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
