"""
Filtering and normalization for expression matrices.

Components:
    MetadataFilter: Keep/exclude samples or features by annotation values
    RelabelMetadata: Rename categorical annotation values
    ZeroVarianceFilter: Drop constant features
    PrevalenceFilter: Drop features detected in too few samples
    LogTransform: log(x + pseudocount)
    HighVarianceSelector: Keep the most variable features

Examples:
    >>> from geneflow.quality import ZeroVarianceFilter, PrevalenceFilter, LogTransform
    >>> from geneflow.core import apply_transforms
    >>> processed = apply_transforms(matrix, [
    ...     ZeroVarianceFilter(), PrevalenceFilter(0.2), LogTransform(),
    ... ])
"""

from geneflow.quality.filtering import (
    MetadataFilter,
    RelabelMetadata,
    ZeroVarianceFilter,
    PrevalenceFilter,
    LogTransform,
    HighVarianceSelector,
)

__all__ = [
    'MetadataFilter',
    'RelabelMetadata',
    'ZeroVarianceFilter',
    'PrevalenceFilter',
    'LogTransform',
    'HighVarianceSelector',
]
