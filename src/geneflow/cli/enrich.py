"""
Preranked GSEA CLI subcommand.

Usage:
    # From a differential expression table written by `geneflow differential`
    geneflow enrich --de-table results/de/de_tumor_vs_normal.csv \\
        --feature-metadata results/filtered.features.csv --id-column gene_name \\
        --msigdb-category H -o results/gsea

    # From a ready-made ranking (two columns: identifier, score)
    geneflow enrich --ranked ranking.csv --gene-sets c2.cp.kegg.gmt -o results/gsea
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import pandas as pd

from geneflow.cli._common import add_verbose_argument, configure_logging, print_banner
from geneflow.cli._validators import _positive_int, _probability

logger = logging.getLogger(__name__)


def register_parser(subparsers):
    """Register enrich subcommand."""
    parser = subparsers.add_parser(
        "enrich",
        help="Preranked GSEA of a differential expression table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Rank genes by log2 fold change and test reference gene sets (MSigDB,
Enrichr or a local GMT file) with preranked GSEA.

Gene sets whose overlap with the ranking is outside [min-size, max-size]
are reported with undefined statistics at the end of the table.
        """
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--de-table", type=Path, help="Table from `geneflow differential`")
    source.add_argument("--ranked", type=Path, help="CSV of identifier, score")

    parser.add_argument("--feature-metadata", type=Path, default=None,
                        help="Feature annotation table for --id-column lookups")
    parser.add_argument("--id-column", default=None,
                        help="Feature annotation matching gene set identifiers (e.g. gene_name)")
    parser.add_argument("--all-features", action="store_true",
                        help="Rank every tested feature, not only padj < alpha")
    parser.add_argument("--alpha", type=_probability, default=0.05,
                        help="padj threshold for the ranked list (default: 0.05)")

    genesets = parser.add_mutually_exclusive_group()
    genesets.add_argument("--gene-sets", type=Path, default=None, help="Local GMT file")
    genesets.add_argument("--enrichr-library", default=None, help="Enrichr library name")
    parser.add_argument("--msigdb-category", default="H", help="MSigDB category (default: H)")
    parser.add_argument("--species", default="human", choices=["human", "mouse"])
    parser.add_argument("--msigdb-version", default=None, help="MSigDB release (default: 2023.2)")

    parser.add_argument("--permutations", type=_positive_int, default=1000)
    parser.add_argument("--min-size", type=_positive_int, default=15)
    parser.add_argument("--max-size", type=_positive_int, default=500)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--output", "-o", type=Path, required=True, help="Output directory")
    parser.add_argument("--format", "-f", choices=["png", "pdf", "svg"], default="png",
                        help="Figure format (default: png)")
    add_verbose_argument(parser)
    parser.set_defaults(func=run_enrich)


def _load_ranking(args: argparse.Namespace) -> tuple[str, pd.Series]:
    """Ranked list and a name for the outputs."""
    from geneflow.io.loaders import load_metadata_table
    from geneflow.stats.differential import ContrastResult, rank_features

    if args.ranked is not None:
        if not args.ranked.exists():
            raise FileNotFoundError(f"Ranking file not found: {args.ranked}")
        table = pd.read_csv(args.ranked, index_col=0)
        if table.shape[1] < 1:
            raise ValueError(f"Ranking file needs an identifier and a score column: {args.ranked}")
        scores = pd.to_numeric(table.iloc[:, 0], errors="coerce")
        scores.index = scores.index.astype(str)
        return args.ranked.stem, scores.rename("score")

    if not args.de_table.exists():
        raise FileNotFoundError(f"Differential expression table not found: {args.de_table}")
    table = pd.read_csv(args.de_table, index_col=0)
    missing = {'log2FoldChange', 'padj'} - set(table.columns)
    if missing:
        raise ValueError(f"{args.de_table} is missing columns: {sorted(missing)}")
    table.index = table.index.astype(str)
    table['significant'] = (table['padj'] < args.alpha).fillna(False).astype(bool)

    feature_metadata = pd.DataFrame(index=table.index)
    if args.feature_metadata is not None:
        feature_metadata = load_metadata_table(args.feature_metadata)

    name = args.de_table.stem.removeprefix("de_")
    contrast = ContrastResult(
        test_level=name,
        reference_level="",
        table=table,
        alpha=args.alpha,
        feature_metadata=feature_metadata,
    )
    ranked = rank_features(contrast, significant_only=not args.all_features, id_column=args.id_column)
    return name, ranked


def run_enrich(args: argparse.Namespace) -> int:
    """Execute the enrich command."""
    from geneflow.config import EnrichmentConfig
    from geneflow.io.writers import write_table
    from geneflow.knowledge.genesets import GeneSetUnavailableError
    from geneflow.pipeline import load_gene_sets
    from geneflow.report import enrichment_for_csv, enrichment_summary, format_table
    from geneflow.stats.enrichment import run_preranked_gsea
    from geneflow.viz.expression import ExpressionVisualizer

    configure_logging(args.verbose)
    print_banner("Preranked Gene Set Enrichment (GSEA)")

    if args.gene_sets is not None:
        source = "gmt"
    elif args.enrichr_library is not None:
        source = "enrichr"
    else:
        source = "msigdb"
    config = EnrichmentConfig(
        source=source,
        species=args.species,
        category=args.msigdb_category,
        version=args.msigdb_version,
        library=args.enrichr_library,
        gmt=args.gene_sets,
    )

    try:
        name, ranked = _load_ranking(args)
        logger.info(f"Ranked list of {len(ranked)} features")
        gene_sets = load_gene_sets(config)
        table = run_preranked_gsea(
            ranked,
            gene_sets,
            permutations=args.permutations,
            min_size=args.min_size,
            max_size=args.max_size,
            seed=args.seed,
        )

        args.output.mkdir(parents=True, exist_ok=True)
        table_path = write_table(enrichment_for_csv(table), args.output / f"gsea_{name}.csv", index=False)
        figure = ExpressionVisualizer().plot_enrichment(table, title=f"Gene set enrichment: {name}")
        figure_path = figure.save(args.output / f"enrichment_{name}.{args.format}")
        figure.close()
    except (FileNotFoundError, ValueError, KeyError, GeneSetUnavailableError) as e:
        logger.error(str(e))
        return 1

    print(f"Gene sets: {gene_sets!r}")
    print(format_table(enrichment_summary(table)))
    print(f"\nWrote {table_path}")
    print(f"Wrote {figure_path}")
    return 0
