"""
Base transformation framework for immutable matrix operations.

Every preprocessing step of the expression pipeline (metadata filters,
relabelling, variance and prevalence filters, log transform, variable
feature selection) is a Transform: a pure function from one BioMatrix to a
new BioMatrix with its parameters recorded for provenance.

Biological Context:
    The workshop pipeline is a linear chain:
    1. Subset samples (e.g., keep primary tumours and solid tissue normals)
    2. Relabel categorical annotations ("Solid Tissue Normal" -> "normal")
    3. Drop uninformative genes (zero variance, mostly-zero counts)
    4. Log-transform for visualization and PCA

    Each step must be reproducible (same input -> same output) and
    auditable (parameters written to params.json alongside results).

Examples:
    >>> from geneflow.core.transform import Transform, apply_transforms
    >>> from geneflow.quality import ZeroVarianceFilter, LogTransform
    >>>
    >>> processed = apply_transforms(matrix, [ZeroVarianceFilter(), LogTransform()])
    >>> # matrix is unchanged
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence, TYPE_CHECKING
from datetime import datetime

import numpy as np

if TYPE_CHECKING:
    from geneflow.core.biomatrix import BioMatrix

logger = logging.getLogger(__name__)

__all__ = ['Transform', 'apply_transforms']


class Transform(ABC):
    """
    Abstract base class for all matrix transformations.

    Transformations take a matrix and parameters and return a new matrix.
    The input matrix is never modified.

    Attributes:
        name: Human-readable transformation name (e.g., "LogTransform")
        params: Dictionary of parameters used for this transformation
        timestamp: When this transform instance was created (for audit trail)

    Examples:
        >>> class CenterFeatures(Transform):
        ...     def __init__(self):
        ...         super().__init__(name="CenterFeatures", params={})
        ...
        ...     def apply(self, matrix: BioMatrix) -> BioMatrix:
        ...         centered = matrix.data - matrix.data.mean(axis=1, keepdims=True)
        ...         return matrix.with_data(centered)
    """

    def __init__(self, name: str, params: dict[str, Any]) -> None:
        """
        Initialize transformation with name and parameters.

        Args:
            name: Human-readable transformation name
            params: Dictionary of parameters. Must be JSON-serializable for
                provenance tracking.
        """
        self.name = name
        self.params = params
        self.timestamp = datetime.now()

    @abstractmethod
    def apply(self, matrix: BioMatrix) -> BioMatrix:
        """
        Execute transformation and return new matrix.

        Must never modify the input matrix. Empty inputs return empty outputs.

        Raises:
            ValueError: If transformation cannot be applied (check validate() first)
        """

    def validate(self, matrix: BioMatrix) -> list[str]:
        """
        Check preconditions before applying transformation.

        Subclasses should override and call super().validate() first.

        Returns:
            List of error messages (empty list = valid)
        """
        errors: list[str] = []

        if matrix.data.size and not np.issubdtype(matrix.data.dtype, np.number):
            errors.append(f"Matrix values must be numeric, got dtype {matrix.data.dtype}")
        elif matrix.data.size and np.isinf(matrix.data).any():
            errors.append("Matrix contains infinite values")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Provenance record for params.json."""
        return {
            'name': self.name,
            'params': self.params,
            'timestamp': self.timestamp.isoformat(),
        }

    def __repr__(self) -> str:
        """
        String representation for logging.

        Examples:
            >>> print(LogTransform(base=2.0, pseudocount=1.0))
            LogTransform(base=2.0, pseudocount=1.0)
        """
        params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{self.name}({params_str})"


def apply_transforms(matrix: BioMatrix, transforms: Sequence[Transform]) -> BioMatrix:
    """
    Validate and apply a chain of transforms in order.

    Args:
        matrix: Input matrix (left unchanged)
        transforms: Transforms to apply, first to last

    Returns:
        The matrix produced by the last transform

    Raises:
        ValueError: If any transform's validation fails. The message lists
            every problem reported for that step.
    """
    current = matrix
    for transform in transforms:
        errors = transform.validate(current)
        if errors:
            raise ValueError(
                f"Cannot apply {transform!r}:\n" + "\n".join(f"  - {e}" for e in errors)
            )

        before = current.shape
        current = transform.apply(current)
        logger.info(f"{transform!r}: {before[0]}x{before[1]} -> {current.n_features}x{current.n_samples}")

    return current
