"""
Core data structures and abstractions for the expression pipeline.

1. BioMatrix: Expression/count matrix with aligned feature and sample metadata
2. Transform: Abstract base class for immutable matrix transformations

Examples:
    >>> from geneflow.core import BioMatrix, Transform, apply_transforms
    >>>
    >>> class Scale(Transform):
    ...     def __init__(self, factor: float):
    ...         super().__init__(name="Scale", params={"factor": factor})
    ...         self.factor = factor
    ...
    ...     def apply(self, matrix: BioMatrix) -> BioMatrix:
    ...         return matrix.with_data(matrix.data * self.factor)
"""

from geneflow.core.biomatrix import BioMatrix
from geneflow.core.transform import Transform, apply_transforms

__all__ = [
    'BioMatrix',
    'Transform',
    'apply_transforms',
]
