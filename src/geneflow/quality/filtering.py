"""
Filtering and value transformations for expression matrices.

Provides the preprocessing chain of the expression pipeline as composable
Transforms:

    MetadataFilter: keep/exclude samples or features by annotation values
    RelabelMetadata: remap categorical annotation values via a renaming table
    ZeroVarianceFilter: drop features with identical values in every sample
    PrevalenceFilter: drop features that are non-zero in too few samples
    LogTransform: elementwise log(x + pseudocount)
    HighVarianceSelector: keep the most variable features (PCA, heatmaps)

Engineering Design:
    - Pure functions (Transform): input matrix -> output matrix
    - Every filter goes through BioMatrix.select_samples/select_features, so
      data and both metadata tables stay aligned
    - Filters that match nothing return an empty matrix rather than raising;
      downstream stages decide what an empty input means for them
    - n_removed_ records how many rows/columns the last apply() dropped

Examples:
    >>> from geneflow.quality.filtering import (
    ...     MetadataFilter, RelabelMetadata, ZeroVarianceFilter,
    ...     PrevalenceFilter, LogTransform,
    ... )
    >>> from geneflow.core.transform import apply_transforms
    >>>
    >>> processed = apply_transforms(matrix, [
    ...     MetadataFilter(axis="samples",
    ...                    keep={"tissue_type": ["Primary Tumor", "Solid Tissue Normal"]}),
    ...     RelabelMetadata("tissue_type", {"Primary Tumor": "tumor",
    ...                                     "Solid Tissue Normal": "normal"}),
    ...     ZeroVarianceFilter(),
    ...     PrevalenceFilter(min_fraction=0.2),
    ...     LogTransform(base=2),
    ... ])
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping, Optional, Sequence
import numpy as np
import pandas as pd

from geneflow.core.biomatrix import BioMatrix
from geneflow.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = [
    'MetadataFilter',
    'RelabelMetadata',
    'ZeroVarianceFilter',
    'PrevalenceFilter',
    'LogTransform',
    'HighVarianceSelector',
]

Axis = Literal["samples", "features"]


def _metadata_for(matrix: BioMatrix, axis: Axis) -> pd.DataFrame:
    if axis == "samples":
        return matrix.sample_metadata
    if axis == "features":
        return matrix.feature_metadata
    raise ValueError(f"axis must be 'samples' or 'features', got {axis!r}")


def _as_value_lists(criteria: Optional[Mapping[str, Any]]) -> dict[str, list]:
    """Normalize {column: value or values} into {column: [values]}."""
    normalized: dict[str, list] = {}
    for column, values in (criteria or {}).items():
        if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            values = [values]
        normalized[column] = list(values)
    return normalized


class MetadataFilter(Transform):
    """
    Keep or exclude samples/features by annotation values.

    A row/column survives when, for every column in ``keep``, its value is one
    of the allowed values, and for every column in ``exclude``, its value is
    not one of the forbidden values.

    Params:
        axis: "samples" filters columns via sample_metadata,
              "features" filters rows via feature_metadata.
        keep: {column: allowed value(s)}
        exclude: {column: forbidden value(s)}

    Examples:
        >>> # Drop male patients and metastatic samples
        >>> f = MetadataFilter(axis="samples",
        ...                    exclude={"gender": "male",
        ...                             "tissue_type": "Metastatic"})
        >>> # Protein-coding genes only
        >>> g = MetadataFilter(axis="features", keep={"gene_type": "protein_coding"})
    """

    def __init__(
        self,
        axis: Axis = "samples",
        keep: Optional[Mapping[str, Any]] = None,
        exclude: Optional[Mapping[str, Any]] = None,
    ):
        keep_lists = _as_value_lists(keep)
        exclude_lists = _as_value_lists(exclude)
        if not keep_lists and not exclude_lists:
            raise ValueError("MetadataFilter needs at least one keep or exclude criterion")
        if axis not in ("samples", "features"):
            raise ValueError(f"axis must be 'samples' or 'features', got {axis!r}")

        super().__init__(
            name="MetadataFilter",
            params={"axis": axis, "keep": keep_lists, "exclude": exclude_lists},
        )
        self.axis = axis
        self.keep = keep_lists
        self.exclude = exclude_lists
        self.n_removed_: int | None = None

    def compute_mask(self, matrix: BioMatrix) -> np.ndarray:
        """Boolean mask of rows/columns passing all criteria."""
        metadata = _metadata_for(matrix, self.axis)

        mask = np.ones(len(metadata), dtype=bool)
        for column, values in self.keep.items():
            mask &= metadata[column].isin(values).to_numpy()
        for column, values in self.exclude.items():
            mask &= ~metadata[column].isin(values).to_numpy()
        return mask

    def apply(self, matrix: BioMatrix) -> BioMatrix:
        mask = self.compute_mask(matrix)
        self.n_removed_ = int((~mask).sum())

        if not mask.any():
            logger.warning(f"{self!r} matched no {self.axis}; result is empty")

        if self.axis == "samples":
            return matrix.select_samples(mask)
        return matrix.select_features(mask)

    def validate(self, matrix: BioMatrix) -> list[str]:
        errors = super().validate(matrix)
        metadata = _metadata_for(matrix, self.axis)
        missing = [c for c in [*self.keep, *self.exclude] if c not in metadata.columns]
        if missing:
            errors.append(f"Columns not found in {self.axis} metadata: {missing}")
        return errors


class RelabelMetadata(Transform):
    """
    Remap categorical annotation values through a renaming table.

    Values absent from the table are left unchanged. The data matrix and all
    other annotation columns are untouched.

    Params:
        column: Annotation column to relabel
        mapping: {old value: new value}
        axis: "samples" or "features"
        target: Column to write the relabelled values to (default: overwrite ``column``)

    Examples:
        >>> relabel = RelabelMetadata(
        ...     "tissue_type",
        ...     {"Primary Tumor": "tumor", "Solid Tissue Normal": "normal"},
        ...     target="condition",
        ... )
    """

    def __init__(
        self,
        column: str,
        mapping: Mapping[Any, Any],
        axis: Axis = "samples",
        target: Optional[str] = None,
    ):
        if axis not in ("samples", "features"):
            raise ValueError(f"axis must be 'samples' or 'features', got {axis!r}")
        super().__init__(
            name="RelabelMetadata",
            params={"column": column, "mapping": dict(mapping), "axis": axis, "target": target},
        )
        self.column = column
        self.mapping = dict(mapping)
        self.axis = axis
        self.target = target or column

    def apply(self, matrix: BioMatrix) -> BioMatrix:
        metadata = _metadata_for(matrix, self.axis).copy()
        original = metadata[self.column].astype(object)

        metadata[self.target] = original.map(lambda value: self.mapping.get(value, value))

        n_changed = int(original.isin(list(self.mapping)).sum())
        logger.info(f"Relabelled {n_changed} {self.axis} values in '{self.column}' -> '{self.target}'")

        if self.axis == "samples":
            return matrix.with_sample_metadata(metadata)
        return matrix.with_feature_metadata(metadata)

    def validate(self, matrix: BioMatrix) -> list[str]:
        errors = super().validate(matrix)
        if self.column not in _metadata_for(matrix, self.axis).columns:
            errors.append(f"Column '{self.column}' not found in {self.axis} metadata")
        return errors


class ZeroVarianceFilter(Transform):
    """
    Drop features whose values are identical across all samples.

    Zero variance is tested as max == min rather than np.var(...) == 0,
    which can be a tiny non-zero number for repeated non-integer values.
    Rows containing NaN are retained.
    """

    def __init__(self):
        super().__init__(name="ZeroVarianceFilter", params={})
        self.n_removed_: int | None = None

    def apply(self, matrix: BioMatrix) -> BioMatrix:
        if matrix.n_samples == 0:
            self.n_removed_ = 0
            return matrix.copy(deep=False)

        spread = np.ptp(matrix.data, axis=1)
        keep_mask = ~(spread == 0)
        self.n_removed_ = int((~keep_mask).sum())

        logger.info(f"Removed {self.n_removed_} zero-variance features of {matrix.n_features}")
        return matrix.select_features(keep_mask)


class PrevalenceFilter(Transform):
    """
    Drop features that are non-zero in fewer than ``min_fraction`` of samples.

    The boundary is inclusive: with the default of 0.2, a gene detected in
    exactly one of five samples is kept.

    Params:
        min_fraction: Minimum fraction of samples with a non-zero value, in [0, 1]

    Examples:
        >>> # Keep genes detected in at least 20% of samples
        >>> filtered = PrevalenceFilter(min_fraction=0.2).apply(matrix)
    """

    def __init__(self, min_fraction: float = 0.2):
        if not 0.0 <= min_fraction <= 1.0:
            raise ValueError(f"min_fraction must be in [0, 1], got {min_fraction}")
        super().__init__(name="PrevalenceFilter", params={"min_fraction": min_fraction})
        self.min_fraction = min_fraction
        self.n_removed_: int | None = None

    def nonzero_fraction(self, matrix: BioMatrix) -> np.ndarray:
        """Fraction of samples with a non-zero, non-NaN value, per feature."""
        detected = (matrix.data != 0) & ~np.isnan(matrix.data)
        return detected.sum(axis=1) / matrix.n_samples

    def apply(self, matrix: BioMatrix) -> BioMatrix:
        if matrix.n_samples == 0:
            self.n_removed_ = 0
            return matrix.copy(deep=False)

        keep_mask = self.nonzero_fraction(matrix) >= self.min_fraction
        self.n_removed_ = int((~keep_mask).sum())

        logger.info(
            f"Removed {self.n_removed_} features non-zero in < {self.min_fraction:.0%} of samples"
        )
        return matrix.select_features(keep_mask)


class LogTransform(Transform):
    """
    Elementwise log(x + pseudocount) in the given base.

    With the defaults, log2(0 + 1) == 0, so unexpressed genes stay finite.
    The transform is monotonic and leaves NaN as NaN.

    Params:
        base: Logarithm base (> 0, != 1)
        pseudocount: Added before taking the log
    """

    def __init__(self, base: float = 2.0, pseudocount: float = 1.0):
        if base <= 0 or base == 1:
            raise ValueError(f"Log base must be positive and != 1, got {base}")
        super().__init__(name="LogTransform", params={"base": base, "pseudocount": pseudocount})
        self.base = base
        self.pseudocount = pseudocount

    def apply(self, matrix: BioMatrix) -> BioMatrix:
        data = matrix.data.astype(float)
        if self.pseudocount == 1.0:
            logged = np.log1p(data)
        else:
            logged = np.log(data + self.pseudocount)
        return matrix.with_data(logged / np.log(self.base))

    def validate(self, matrix: BioMatrix) -> list[str]:
        errors = super().validate(matrix)
        if errors or matrix.data.size == 0 or np.isnan(matrix.data).all():
            return errors
        if np.nanmin(matrix.data) + self.pseudocount <= 0:
            errors.append(
                f"Values <= -{self.pseudocount} would make log(x + {self.pseudocount}) undefined"
            )
        return errors


class HighVarianceSelector(Transform):
    """
    Keep the ``n_top`` features with the largest variance across samples.

    Used to restrict PCA and heatmaps to informative genes. Ties are broken
    by original row order and the selected rows keep their original order.

    Params:
        n_top: Number of features to keep (all features if fewer exist)
        ddof: Delta degrees of freedom for the variance (1 = sample variance)
    """

    def __init__(self, n_top: int = 500, ddof: int = 1):
        if n_top <= 0:
            raise ValueError(f"n_top must be positive, got {n_top}")
        super().__init__(name="HighVarianceSelector", params={"n_top": n_top, "ddof": ddof})
        self.n_top = n_top
        self.ddof = ddof

    def feature_variance(self, matrix: BioMatrix) -> np.ndarray:
        if matrix.n_samples <= self.ddof:
            return np.full(matrix.n_features, -np.inf)
        variance = np.nanvar(matrix.data, axis=1, ddof=self.ddof)
        return np.where(np.isnan(variance), -np.inf, variance)

    def apply(self, matrix: BioMatrix) -> BioMatrix:
        variance = self.feature_variance(matrix)
        order = np.argsort(-variance, kind="stable")

        keep_mask = np.zeros(matrix.n_features, dtype=bool)
        keep_mask[order[:self.n_top]] = True

        logger.info(f"Selected {int(keep_mask.sum())} most variable of {matrix.n_features} features")
        return matrix.select_features(keep_mask)
