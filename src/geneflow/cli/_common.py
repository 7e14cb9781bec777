"""Argument groups and helpers shared by the geneflow subcommands."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence


def configure_logging(verbose: bool = False) -> None:
    """Root logger setup used by every subcommand."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        force=True,
    )


def print_banner(title: str) -> None:
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}\n")


def add_input_arguments(parser: argparse.ArgumentParser, required: bool = True) -> None:
    """--input plus the optional annotation tables and AnnData layer."""
    parser.add_argument(
        "--input", "-i", type=Path, required=required, default=None,
        help="Annotated matrix: .h5ad, or counts .csv/.tsv (features × samples)"
    )
    parser.add_argument(
        "--sample-metadata", type=Path, default=None,
        help="Sample annotation table (first column = sample id) for CSV input"
    )
    parser.add_argument(
        "--feature-metadata", type=Path, default=None,
        help="Feature annotation table (first column = feature id) for CSV input"
    )
    parser.add_argument(
        "--layer", default=None,
        help="AnnData layer to use instead of X (e.g. counts)"
    )


def add_verbose_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug-level logging")


def load_input(args: argparse.Namespace):
    """Load the annotated matrix named by the input arguments."""
    from geneflow.io.loaders import load_matrix

    return load_matrix(
        args.input,
        sample_metadata_path=args.sample_metadata,
        feature_metadata_path=args.feature_metadata,
        layer=args.layer,
    )


def parse_criteria(items: Optional[Sequence[str]]) -> dict[str, list[str]]:
    """
    Parse repeated COLUMN=VALUE[,VALUE...] options into {column: [values]}.

    Examples:
        >>> parse_criteria(["tissue_type=Primary Tumor,Solid Tissue Normal", "gender=female"])
        {'tissue_type': ['Primary Tumor', 'Solid Tissue Normal'], 'gender': ['female']}
    """
    criteria: dict[str, list[str]] = {}
    for item in items or []:
        column, sep, values = item.partition("=")
        if not sep or not column.strip():
            raise ValueError(f"Expected COLUMN=VALUE[,VALUE...], got '{item}'")
        criteria.setdefault(column.strip(), []).extend(v.strip() for v in values.split(",") if v.strip())
    return criteria


def parse_mapping(items: Optional[Sequence[str]]) -> dict[str, str]:
    """Parse repeated OLD=NEW options into a renaming table."""
    mapping: dict[str, str] = {}
    for item in items or []:
        old, sep, new = item.partition("=")
        if not sep:
            raise ValueError(f"Expected OLD=NEW, got '{item}'")
        mapping[old.strip()] = new.strip()
    return mapping
