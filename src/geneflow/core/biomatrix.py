"""
Core data structure for annotated expression matrices.

BioMatrix unifies numerical data (counts or log-expression) with the two
metadata tables that describe it: per-feature annotations (gene ids, symbols,
biotypes) and per-sample annotations (patient id, tissue type, subtype,
stage, age).

Biological Context:
    Expression matrices are the fundamental data structure in transcriptomics:
    - Rows = features (genes, transcripts)
    - Columns = samples (tumours, adjacent normal tissue)
    - Values = measurements (read counts, log-expression)

    Every downstream stage (filtering, PCA, differential testing) subsets
    rows and columns. The metadata must follow every subset, otherwise a
    sample's tissue label silently drifts onto another sample's counts.

Engineering Design:
    - Subsetting and replacement build a new BioMatrix; nothing mutates in place
    - Values live in a 2-D ndarray, annotations in pandas frames keyed by id
    - The constructor rejects misaligned ids or annotation tables, so every
      matrix a transform returns is aligned

Examples:
    >>> barcodes = pd.Index(["TCGA-A1", "TCGA-A2"])
    >>> matrix = BioMatrix(
    ...     np.array([[10.0, 20.0], [30.0, 40.0]]),
    ...     feature_ids=pd.Index(["ENSG001", "ENSG002"]),
    ...     sample_ids=barcodes,
    ...     sample_metadata=pd.DataFrame({"tissue_type": ["normal", "tumor"]}, index=barcodes),
    ... )
    >>> tumors = matrix.select_samples(matrix.sample_metadata['tissue_type'] == 'tumor')
"""

from __future__ import annotations

from typing import Optional
import numpy as np
import pandas as pd

__all__ = ['BioMatrix']


class BioMatrix:
    """
    Immutable container for expression matrix + feature and sample metadata.

    Attributes:
        data: Numerical expression matrix (features × samples)
        feature_ids: Row identifiers (e.g., Ensembl gene IDs)
        sample_ids: Column identifiers (e.g., TCGA barcodes)
        feature_metadata: Feature annotations (symbol, gene type, ...)
        sample_metadata: Sample annotations (tissue type, subtype, stage, ...)

    Shape Invariants:
        - data.shape[0] == len(feature_ids) == len(feature_metadata)
        - data.shape[1] == len(sample_ids) == len(sample_metadata)
        - feature_metadata.index equals feature_ids
        - sample_metadata.index equals sample_ids
    """

    def __init__(
        self,
        data: np.ndarray,
        feature_ids: pd.Index,
        sample_ids: pd.Index,
        sample_metadata: Optional[pd.DataFrame] = None,
        feature_metadata: Optional[pd.DataFrame] = None,
    ):
        """
        Build a matrix and check that ids and annotations line up with it.

        Args:
            data: 2-D values, one row per feature and one column per sample
            feature_ids: Gene or transcript identifiers, one per row
            sample_ids: Sample barcodes, one per column
            sample_metadata: DataFrame indexed by sample_ids.
                Defaults to an empty frame with that index.
            feature_metadata: DataFrame indexed by feature_ids.
                Defaults to an empty frame with that index.

        Raises:
            TypeError: data is not an ndarray, ids are not pd.Index, or
                annotations are not DataFrames
            ValueError: data is not 2-D, or ids/annotations disagree with its shape
        """
        if not isinstance(data, np.ndarray):
            raise TypeError(f"data must be np.ndarray, got {type(data)}")
        if not isinstance(feature_ids, pd.Index):
            raise TypeError(f"feature_ids must be pd.Index, got {type(feature_ids)}")
        if not isinstance(sample_ids, pd.Index):
            raise TypeError(f"sample_ids must be pd.Index, got {type(sample_ids)}")

        if sample_metadata is None:
            sample_metadata = pd.DataFrame(index=sample_ids)
        if feature_metadata is None:
            feature_metadata = pd.DataFrame(index=feature_ids)

        if not isinstance(sample_metadata, pd.DataFrame):
            raise TypeError(f"sample_metadata must be pd.DataFrame, got {type(sample_metadata)}")
        if not isinstance(feature_metadata, pd.DataFrame):
            raise TypeError(f"feature_metadata must be pd.DataFrame, got {type(feature_metadata)}")

        if data.ndim != 2:
            raise ValueError(f"data must be 2D, got shape {data.shape}")

        n_features, n_samples = data.shape

        if len(feature_ids) != n_features:
            raise ValueError(
                f"feature_ids length ({len(feature_ids)}) must match data rows ({n_features})"
            )
        if len(sample_ids) != n_samples:
            raise ValueError(
                f"sample_ids length ({len(sample_ids)}) must match data columns ({n_samples})"
            )

        if not sample_metadata.index.equals(sample_ids):
            raise ValueError(
                "sample_metadata.index must match sample_ids exactly. "
                f"Got {len(sample_metadata.index)} metadata rows for {len(sample_ids)} samples."
            )
        if not feature_metadata.index.equals(feature_ids):
            raise ValueError(
                "feature_metadata.index must match feature_ids exactly. "
                f"Got {len(feature_metadata.index)} metadata rows for {len(feature_ids)} features."
            )

        self._data = data
        self._feature_ids = feature_ids
        self._sample_ids = sample_ids
        self._sample_metadata = sample_metadata
        self._feature_metadata = feature_metadata

    @property
    def data(self) -> np.ndarray:
        """Expression matrix (features × samples)."""
        return self._data

    @property
    def feature_ids(self) -> pd.Index:
        """Row identifiers (genes, transcripts, etc.)."""
        return self._feature_ids

    @property
    def sample_ids(self) -> pd.Index:
        """Column identifiers (samples, patients, etc.)."""
        return self._sample_ids

    @property
    def sample_metadata(self) -> pd.DataFrame:
        """Annotations for samples."""
        return self._sample_metadata

    @property
    def feature_metadata(self) -> pd.DataFrame:
        """Annotations for features."""
        return self._feature_metadata

    @property
    def shape(self) -> tuple[int, int]:
        """Matrix dimensions (n_features, n_samples)."""
        return self._data.shape

    @property
    def n_features(self) -> int:
        return self._data.shape[0]

    @property
    def n_samples(self) -> int:
        return self._data.shape[1]

    @property
    def is_empty(self) -> bool:
        """True when the matrix has no features or no samples."""
        return self.n_features == 0 or self.n_samples == 0

    def select_samples(self, mask: np.ndarray | pd.Series) -> BioMatrix:
        """
        Keep the columns where ``mask`` is True, together with their annotation rows.

        A boolean Series is used positionally; its index is not aligned.

        Examples:
            >>> tumor_mask = matrix.sample_metadata['tissue_type'] == 'tumor'
            >>> tumors = matrix.select_samples(tumor_mask)
        """
        mask = self._as_mask(mask, self.n_samples, "n_samples")

        return BioMatrix(
            data=self._data[:, mask],
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids[mask],
            sample_metadata=self._sample_metadata.iloc[mask],
            feature_metadata=self._feature_metadata,
        )

    def select_features(self, mask: np.ndarray | pd.Series) -> BioMatrix:
        """
        Row counterpart of :meth:`select_samples`.

        Examples:
            >>> expressed = matrix.select_features((matrix.data > 0).any(axis=1))
        """
        mask = self._as_mask(mask, self.n_features, "n_features")

        return BioMatrix(
            data=self._data[mask, :],
            feature_ids=self._feature_ids[mask],
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
            feature_metadata=self._feature_metadata.iloc[mask],
        )

    def with_data(self, data: np.ndarray) -> BioMatrix:
        """Return a new matrix with replaced values and unchanged metadata."""
        if data.shape != self.shape:
            raise ValueError(
                f"Replacement data shape {data.shape} must match matrix shape {self.shape}"
            )
        return BioMatrix(
            data=data,
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
            feature_metadata=self._feature_metadata,
        )

    def with_sample_metadata(self, sample_metadata: pd.DataFrame) -> BioMatrix:
        """Return a new matrix with replaced sample annotations."""
        return BioMatrix(
            data=self._data,
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids,
            sample_metadata=sample_metadata,
            feature_metadata=self._feature_metadata,
        )

    def with_feature_metadata(self, feature_metadata: pd.DataFrame) -> BioMatrix:
        """Return a new matrix with replaced feature annotations."""
        return BioMatrix(
            data=self._data,
            feature_ids=self._feature_ids,
            sample_ids=self._sample_ids,
            sample_metadata=self._sample_metadata,
            feature_metadata=feature_metadata,
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Expression values as a features × samples DataFrame."""
        return pd.DataFrame(self._data, index=self._feature_ids, columns=self._sample_ids)

    def copy(self, deep: bool = True) -> BioMatrix:
        """
        Duplicate the matrix. ``deep=False`` returns a new wrapper around the
        same arrays and frames.
        """
        parts = (self._data, self._feature_ids, self._sample_ids,
                 self._sample_metadata, self._feature_metadata)
        if deep:
            parts = tuple(part.copy() for part in parts)
        return BioMatrix(*parts)

    @staticmethod
    def _as_mask(mask: np.ndarray | pd.Series, expected: int, label: str) -> np.ndarray:
        if isinstance(mask, pd.Series):
            mask = mask.values
        mask = np.asarray(mask, dtype=bool)
        if len(mask) != expected:
            raise ValueError(f"mask length ({len(mask)}) must match {label} ({expected})")
        return mask

    def __repr__(self) -> str:
        if self.is_empty:
            return f"BioMatrix({self.n_features} features × {self.n_samples} samples, empty)"
        return (
            f"BioMatrix({self.n_features} features × {self.n_samples} samples)\n"
            f"  feature ids {self.feature_ids[0]} .. {self.feature_ids[-1]}\n"
            f"  sample ids {self.sample_ids[0]} .. {self.sample_ids[-1]}\n"
            f"  feature annotations: {list(self.feature_metadata.columns)}\n"
            f"  sample annotations: {list(self.sample_metadata.columns)}"
        )
