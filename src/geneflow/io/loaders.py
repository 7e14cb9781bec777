"""
Loaders for annotated expression matrices.

Two on-disk layouts are accepted:

    1. AnnData (.h5ad): the persisted annotated-matrix format. Samples are
       observations (obs), genes are variables (var), so X is transposed into
       the features × samples orientation used by BioMatrix.
    2. Delimited text: a counts table (features × samples, first column = ids)
       plus optional sample and feature annotation tables whose first column
       holds the matching ids.

Biological Context:
    The workshop dataset is a TCGA-BRCA extract:
    - counts: raw STAR read counts per Ensembl gene and aliquot barcode
    - sample annotations: patient, tissue_type, subtype, stage, age_at_index
    - feature annotations: gene_name, gene_type

    The loader guarantees that annotations line up with the counts; a
    mismatch is a hard error, since a silently misaligned tissue label would
    corrupt every downstream comparison.

Examples:
    >>> from pathlib import Path
    >>> from geneflow.io.loaders import load_matrix
    >>>
    >>> matrix = load_matrix(Path("brca.h5ad"))
    >>> print(matrix.sample_metadata['tissue_type'].value_counts())
    >>>
    >>> matrix = load_matrix(
    ...     Path("counts.csv"),
    ...     sample_metadata_path=Path("samples.csv"),
    ...     feature_metadata_path=Path("genes.csv"),
    ... )
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
import warnings
import numpy as np
import pandas as pd

from geneflow.core.biomatrix import BioMatrix

logger = logging.getLogger(__name__)

__all__ = ['load_matrix', 'load_h5ad', 'load_csv_matrix', 'load_metadata_table']

H5AD_SUFFIXES = {'.h5ad'}
TEXT_SUFFIXES = {'.csv', '.tsv', '.txt'}


def _check_file(path: Path, kind: str) -> Path:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{kind} file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")
    return path


def _separator_for(path: Path) -> str:
    return '\t' if path.suffix.lower() in {'.tsv', '.txt'} else ','


def _dedupe_labels(df: pd.DataFrame, axis: str) -> pd.DataFrame:
    labels = df.index if axis == 'index' else df.columns
    duplicated = labels.duplicated(keep='first')
    if not duplicated.any():
        return df

    what = "feature" if axis == 'index' else "sample"
    warnings.warn(
        f"Found {int(duplicated.sum())} duplicate {what} IDs. Using first occurrence of each.",
        UserWarning,
    )
    return df[~duplicated] if axis == 'index' else df.loc[:, ~duplicated]


def _to_numeric(df: pd.DataFrame, path: Path) -> np.ndarray:
    """Convert a table to float, listing the first offending cells on failure."""
    try:
        return df.to_numpy(dtype=float)
    except (ValueError, TypeError) as e:
        coerced = df.apply(pd.to_numeric, errors='coerce')
        bad = coerced.isna() & df.notna()
        examples = [
            f"feature '{feature}', sample '{sample}': {df.at[feature, sample]!r}"
            for feature, sample in bad.stack().loc[lambda s: s].index[:5]
        ]
        raise ValueError(
            f"Counts table {path} contains non-numeric values:\n"
            + "\n".join(f"  - {x}" for x in examples)
            + ("\n  ..." if int(bad.to_numpy().sum()) > 5 else "")
        ) from e


def _check_values(data: np.ndarray) -> None:
    if data.size == 0:
        return
    if np.isinf(data).any():
        raise ValueError(f"Matrix contains {int(np.isinf(data).sum())} infinite values")
    n_nan = int(np.isnan(data).sum())
    if n_nan:
        warnings.warn(
            f"Found {n_nan:,} NaN values ({100 * n_nan / data.size:.2f}% of data).",
            UserWarning,
        )


def _align_metadata(
    metadata: Optional[pd.DataFrame],
    ids: pd.Index,
    what: str,
) -> Optional[pd.DataFrame]:
    """Reorder an annotation table to match ids; every id must be annotated."""
    if metadata is None:
        return None

    missing = ids.difference(metadata.index)
    if len(missing):
        raise ValueError(
            f"{len(missing)} {what} IDs have no annotation row "
            f"(e.g. {list(missing[:3])})"
        )
    extra = metadata.index.difference(ids)
    if len(extra):
        logger.info(f"Ignoring {len(extra)} annotation rows for {what}s absent from the counts")

    return metadata.loc[ids]


def load_metadata_table(path: Path) -> pd.DataFrame:
    """
    Load an annotation table whose first column holds sample or feature ids.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the table is unreadable
    """
    path = _check_file(path, "Metadata")
    try:
        table = pd.read_csv(path, sep=_separator_for(path), index_col=0)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"Metadata file is empty: {path}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Failed to parse metadata file {path}: {e}") from e

    table.index = table.index.astype(str)
    table.index.name = None
    return _dedupe_labels(table, 'index')


def load_csv_matrix(
    path: Path,
    sample_metadata_path: Optional[Path] = None,
    feature_metadata_path: Optional[Path] = None,
) -> BioMatrix:
    """
    Load a delimited counts table plus optional annotation tables.

    Expected counts layout (comma- or tab-separated by suffix):
    ```
    "",TCGA-A1,TCGA-A2,TCGA-A3
    ENSG00000000003,612,1056,88
    ENSG00000000005,0,1,0
    ```

    Args:
        path: Counts table (features × samples)
        sample_metadata_path: Annotation table indexed by sample id
        feature_metadata_path: Annotation table indexed by feature id

    Returns:
        BioMatrix with annotations aligned to the counts

    Raises:
        FileNotFoundError: If any file does not exist
        ValueError: If a table is malformed, values are non-numeric or
            infinite, or an id has no annotation row
    """
    path = _check_file(path, "Counts")

    sep = _separator_for(path)
    try:
        df = pd.read_csv(path, sep=sep, index_col=0)
        # read_csv renames repeated headers (S1, S1.1); take the labels as written
        header = pd.read_csv(path, sep=sep, header=None, nrows=1, dtype=str)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"Counts file is empty: {path}") from e
    except pd.errors.ParserError as e:
        raise ValueError(f"Failed to parse counts file {path}: {e}") from e

    df.index = df.index.astype(str)
    df.columns = pd.Index(header.iloc[0, 1:].astype(str).to_numpy())
    df = _dedupe_labels(df, 'index')
    df = _dedupe_labels(df, 'columns')

    data = _to_numeric(df, path)
    _check_values(data)

    feature_ids = pd.Index(df.index, name=None)
    sample_ids = pd.Index(df.columns, name=None)

    sample_metadata = _align_metadata(
        load_metadata_table(sample_metadata_path) if sample_metadata_path else None,
        sample_ids, "sample",
    )
    feature_metadata = _align_metadata(
        load_metadata_table(feature_metadata_path) if feature_metadata_path else None,
        feature_ids, "feature",
    )

    matrix = BioMatrix(
        data=data,
        feature_ids=feature_ids,
        sample_ids=sample_ids,
        sample_metadata=sample_metadata,
        feature_metadata=feature_metadata,
    )
    logger.info(f"Loaded {matrix.n_features} features × {matrix.n_samples} samples from {path}")
    return matrix


def load_h5ad(path: Path, layer: Optional[str] = None) -> BioMatrix:
    """
    Load an AnnData file into a BioMatrix.

    Args:
        path: .h5ad file with samples as obs and features as var
        layer: Use ``adata.layers[layer]`` instead of ``adata.X``
            (e.g. "counts" when X holds normalized values)

    Raises:
        FileNotFoundError: If the file does not exist
        KeyError: If the requested layer is absent
        ValueError: If the file cannot be read or holds infinite values
    """
    import anndata
    from scipy import sparse

    path = _check_file(path, "AnnData")
    try:
        adata = anndata.read_h5ad(path)
    except (OSError, KeyError) as e:
        raise ValueError(f"Failed to read AnnData file {path}: {e}") from e

    if layer is not None:
        if layer not in adata.layers:
            raise KeyError(f"Layer '{layer}' not found in {path}; available: {list(adata.layers)}")
        values = adata.layers[layer]
    else:
        values = adata.X

    if values is None:
        values = np.zeros((adata.n_obs, adata.n_vars))
    if sparse.issparse(values):
        values = values.toarray()

    data = np.asarray(values, dtype=float).T.copy()
    _check_values(data)

    feature_ids = pd.Index(adata.var_names.astype(str), name=None)
    sample_ids = pd.Index(adata.obs_names.astype(str), name=None)

    feature_metadata = adata.var.copy()
    feature_metadata.index = feature_ids
    sample_metadata = adata.obs.copy()
    sample_metadata.index = sample_ids

    matrix = BioMatrix(
        data=data,
        feature_ids=feature_ids,
        sample_ids=sample_ids,
        sample_metadata=sample_metadata,
        feature_metadata=feature_metadata,
    )
    logger.info(f"Loaded {matrix.n_features} features × {matrix.n_samples} samples from {path}")
    return matrix


def load_matrix(
    path: Path,
    sample_metadata_path: Optional[Path] = None,
    feature_metadata_path: Optional[Path] = None,
    layer: Optional[str] = None,
) -> BioMatrix:
    """
    Load an annotated matrix, choosing the reader by file suffix.

    Raises:
        ValueError: For an unsupported suffix, or annotation tables passed
            alongside an .h5ad file (which carries its own annotations)
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in H5AD_SUFFIXES:
        if sample_metadata_path or feature_metadata_path:
            raise ValueError(".h5ad files carry their own annotations; drop the metadata paths")
        return load_h5ad(path, layer=layer)

    if suffix in TEXT_SUFFIXES:
        if layer is not None:
            raise ValueError("layer is only meaningful for .h5ad input")
        return load_csv_matrix(path, sample_metadata_path, feature_metadata_path)

    raise ValueError(
        f"Unsupported input format '{suffix}' for {path}. "
        f"Expected one of {sorted(H5AD_SUFFIXES | TEXT_SUFFIXES)}"
    )
