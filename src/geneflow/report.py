"""
Human-readable result tables.

Small, presentation-ready views of pipeline artifacts: how many samples per
annotation value, the top differential features of a contrast and the
leading gene sets of an enrichment run. Used for console summaries and the
tables section of the HTML report.
"""

from __future__ import annotations

from typing import Optional

import pandas as pd

from geneflow.core.biomatrix import BioMatrix
from geneflow.stats.differential import ContrastResult
from geneflow.viz.styles import format_pvalue

__all__ = [
    'metadata_counts',
    'top_differential',
    'enrichment_summary',
    'format_table',
    'enrichment_for_csv',
]


def metadata_counts(matrix: BioMatrix, column: str, axis: str = "samples") -> pd.DataFrame:
    """
    Count rows per annotation value, missing values included as "NA".

    Examples:
        >>> metadata_counts(matrix, "tissue_type")
                   tissue_type    n
        0        Primary Tumor  1111
        1  Solid Tissue Normal   113
    """
    metadata = matrix.sample_metadata if axis == "samples" else matrix.feature_metadata
    if column not in metadata.columns:
        raise KeyError(f"Column '{column}' not found in {axis} metadata")

    counts = metadata[column].astype(object).fillna("NA").value_counts(sort=True)
    return pd.DataFrame({column: counts.index.astype(str), 'n': counts.to_numpy()})


def top_differential(
    contrast: ContrastResult,
    n: int = 10,
    id_column: Optional[str] = None,
    significant_only: bool = False,
) -> pd.DataFrame:
    """The n features with the smallest adjusted p-value, with optional symbols."""
    table = contrast.table
    if significant_only:
        table = table[table['significant']]
    top = table.sort_values(['padj', 'pvalue'], na_position='last', kind='stable').head(n).copy()

    symbols = None
    if id_column is not None and id_column in contrast.feature_metadata.columns:
        symbols = contrast.feature_metadata[id_column].reindex(top.index).to_numpy()

    top = top.drop(columns=['stat']).rename_axis('feature_id').reset_index()
    if symbols is not None:
        top.insert(1, id_column, symbols)
    return top


def enrichment_summary(table: pd.DataFrame, n: int = 10, max_genes: int = 8) -> pd.DataFrame:
    """
    Leading tested gene sets with formatted p-values and a short leading edge.
    """
    tested = table[table['defined']].head(n)
    return pd.DataFrame({
        'pathway': tested['pathway'].to_numpy(),
        'size': tested['size'].to_numpy(),
        'nes': tested['nes'].round(3).to_numpy(),
        'pvalue': [format_pvalue(p) for p in tested['pvalue']],
        'padj': [format_pvalue(p, label="padj") for p in tested['padj']],
        'leading_edge': [
            ", ".join(genes[:max_genes]) + (" ..." if len(genes) > max_genes else "")
            for genes in tested['leading_edge']
        ],
    })


def enrichment_for_csv(table: pd.DataFrame) -> pd.DataFrame:
    """Copy of an enrichment table with leading edges joined by ';'."""
    flat = table.copy()
    flat['leading_edge'] = [";".join(genes) for genes in flat['leading_edge']]
    return flat


def format_table(table: pd.DataFrame, max_rows: int = 20) -> str:
    """Render a table for the console."""
    if table.empty:
        return "(no rows)"
    return table.head(max_rows).to_string(
        index=False, float_format=lambda v: f"{v:.4g}", na_rep="NA"
    )
