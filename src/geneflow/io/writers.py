"""
Writers for annotated matrices and result tables.

Engineering Design:
    - CSV output mirrors the loader layout: {stem}.data.csv plus
      {stem}.samples.csv / {stem}.features.csv when annotations exist,
      so write_csv_matrix -> load_csv_matrix reproduces the matrix
    - .h5ad output uses AnnData (samples as obs, features as var)

Examples:
    >>> from pathlib import Path
    >>> from geneflow.io.writers import write_csv_matrix, write_h5ad
    >>> paths = write_csv_matrix(matrix, Path("results/filtered"))
    >>> write_h5ad(matrix, Path("results/filtered.h5ad"))
"""

from __future__ import annotations

import logging
from pathlib import Path
import pandas as pd

from geneflow.core.biomatrix import BioMatrix

logger = logging.getLogger(__name__)

__all__ = ['write_csv_matrix', 'write_h5ad', 'write_table']


def write_csv_matrix(matrix: BioMatrix, path: Path) -> dict[str, Path]:
    """
    Write a BioMatrix as CSV files.

    Output Files:
        {path}.data.csv: features × samples values, first column = feature ids
        {path}.samples.csv: sample annotations (if any columns)
        {path}.features.csv: feature annotations (if any columns)

    Args:
        matrix: Matrix to write
        path: Base path without extension; parent directories are created

    Returns:
        {"data": ..., "samples": ..., "features": ...} for the files written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    written = {}
    data_path = path.with_name(f"{path.name}.data.csv")
    matrix.to_dataframe().to_csv(data_path)
    written['data'] = data_path

    if len(matrix.sample_metadata.columns):
        written['samples'] = path.with_name(f"{path.name}.samples.csv")
        matrix.sample_metadata.to_csv(written['samples'])
    if len(matrix.feature_metadata.columns):
        written['features'] = path.with_name(f"{path.name}.features.csv")
        matrix.feature_metadata.to_csv(written['features'])

    logger.info(f"Wrote {matrix.n_features}x{matrix.n_samples} matrix to {data_path}")
    return written


def write_h5ad(matrix: BioMatrix, path: Path) -> Path:
    """Write a BioMatrix to an AnnData .h5ad file (samples as observations)."""
    import anndata

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    obs = matrix.sample_metadata.copy()
    obs.index = matrix.sample_ids.astype(str)
    var = matrix.feature_metadata.copy()
    var.index = matrix.feature_ids.astype(str)

    adata = anndata.AnnData(X=matrix.data.T.copy(), obs=obs, var=var)
    adata.write_h5ad(path)

    logger.info(f"Wrote {matrix.n_features}x{matrix.n_samples} matrix to {path}")
    return path


def write_table(table: pd.DataFrame, path: Path, index: bool = True) -> Path:
    """Write a result table as CSV (or TSV for .tsv/.txt paths)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sep = '\t' if path.suffix.lower() in {'.tsv', '.txt'} else ','
    table.to_csv(path, sep=sep, index=index)
    logger.info(f"Wrote {len(table)} rows to {path}")
    return path
