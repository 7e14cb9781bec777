"""
Preprocessing CLI subcommand.

Usage:
    geneflow preprocess -i counts.csv --sample-metadata samples.csv \\
        --keep "tissue_type=Primary Tumor,Solid Tissue Normal" \\
        --relabel-column tissue_type --relabel-target condition \\
        --relabel "Primary Tumor=tumor" --relabel "Solid Tissue Normal=normal" \\
        -o results/filtered
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from geneflow.cli._common import (
    add_input_arguments,
    add_verbose_argument,
    configure_logging,
    load_input,
    parse_criteria,
    parse_mapping,
    print_banner,
)
from geneflow.cli._validators import _fraction, _log_base

logger = logging.getLogger(__name__)


def register_parser(subparsers):
    """Register preprocess subcommand."""
    parser = subparsers.add_parser(
        "preprocess",
        help="Filter, relabel and log-transform a matrix",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Subset samples/features by annotation, relabel categories, remove
zero-variance and rarely detected features, optionally log-transform.
        """
    )
    add_input_arguments(parser)
    parser.add_argument("--output", "-o", type=Path, required=True,
                        help="Output base path (.h5ad file or CSV stem)")
    parser.add_argument("--keep", action="append", metavar="COLUMN=V1,V2",
                        help="Keep samples whose COLUMN is one of the values (repeatable)")
    parser.add_argument("--exclude", action="append", metavar="COLUMN=V1,V2",
                        help="Drop samples whose COLUMN is one of the values (repeatable)")
    parser.add_argument("--keep-features", action="append", metavar="COLUMN=V1,V2",
                        help="Keep features whose annotation COLUMN is one of the values")
    parser.add_argument("--relabel-column", default=None, help="Sample annotation to relabel")
    parser.add_argument("--relabel", action="append", metavar="OLD=NEW",
                        help="Renaming rule for --relabel-column (repeatable)")
    parser.add_argument("--relabel-target", default=None,
                        help="Write relabelled values to this column instead of overwriting")
    parser.add_argument("--min-prevalence", type=_fraction, default=0.2,
                        help="Minimum fraction of samples with non-zero counts (default: 0.2)")
    parser.add_argument("--no-zero-variance", action="store_true",
                        help="Keep zero-variance features")
    parser.add_argument("--log", action="store_true", help="Write log-transformed values")
    parser.add_argument("--log-base", type=_log_base, default=2.0, help="Log base (default: 2)")
    parser.add_argument("--format", "-f", choices=["csv", "h5ad"], default="csv",
                        help="Output format (default: csv)")
    add_verbose_argument(parser)
    parser.set_defaults(func=run_preprocess)


def run_preprocess(args: argparse.Namespace) -> int:
    """Execute the preprocess command."""
    from geneflow.core.transform import apply_transforms
    from geneflow.io.writers import write_csv_matrix, write_h5ad
    from geneflow.quality.filtering import (
        LogTransform, MetadataFilter, PrevalenceFilter, RelabelMetadata, ZeroVarianceFilter,
    )

    configure_logging(args.verbose)
    print_banner("Preprocessing")

    try:
        matrix = load_input(args)

        transforms = []
        keep, exclude = parse_criteria(args.keep), parse_criteria(args.exclude)
        if keep or exclude:
            transforms.append(MetadataFilter(axis="samples", keep=keep, exclude=exclude))
        if args.keep_features:
            transforms.append(MetadataFilter(axis="features", keep=parse_criteria(args.keep_features)))
        if args.relabel_column:
            transforms.append(RelabelMetadata(
                args.relabel_column, parse_mapping(args.relabel), target=args.relabel_target
            ))
        if not args.no_zero_variance:
            transforms.append(ZeroVarianceFilter())
        if args.min_prevalence > 0:
            transforms.append(PrevalenceFilter(min_fraction=args.min_prevalence))
        if args.log:
            transforms.append(LogTransform(base=args.log_base))

        processed = apply_transforms(matrix, transforms)

        if args.format == "h5ad":
            output = args.output if args.output.suffix == ".h5ad" else args.output.with_suffix(".h5ad")
            written = [write_h5ad(processed, output)]
        else:
            written = list(write_csv_matrix(processed, args.output).values())
    except (FileNotFoundError, ValueError, KeyError) as e:
        logger.error(str(e))
        return 1

    print(f"Input:  {matrix.n_features:,} features × {matrix.n_samples:,} samples")
    print(f"Output: {processed.n_features:,} features × {processed.n_samples:,} samples")
    for transform in transforms:
        print(f"  - {transform!r}")
    for path in written:
        print(f"Wrote {path}")
    return 0
