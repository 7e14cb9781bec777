"""
Principal component analysis of expression matrices.

Samples are the observations and features the variables: each feature is
centered (and optionally scaled to unit variance) across samples before the
SVD, so PC1 captures the dominant axis of between-sample variation. In the
breast cancer workshop data PC1 separates tumours from solid tissue normals.

Engineering Design:
    - scikit-learn PCA with the full LAPACK solver: deterministic for a
      fixed input, component signs fixed by sklearn's svd_flip
    - Uncentered PCA (center=False) uses a plain SVD with the same sign
      convention
    - Degenerate inputs (fewer than two samples, no features) produce an
      empty PCAResult instead of an exception, so empty filter output
      propagates to the presentation stage

Examples:
    >>> from geneflow.stats.pca import run_pca
    >>> result = run_pca(log_matrix, n_components=10)
    >>> result.variance_table().head(3)
    >>> result.scores[["PC1", "PC2"]]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from geneflow.core.biomatrix import BioMatrix

logger = logging.getLogger(__name__)

__all__ = ['PCAResult', 'run_pca']


def _component_names(n: int) -> list[str]:
    return [f"PC{i + 1}" for i in range(n)]


@dataclass
class PCAResult:
    """Principal components of one matrix.

    Attributes:
        scores: Samples × components coordinates (PC1, PC2, ...)
        loadings: Features × components weights
        explained_variance: Variance captured per component (descending)
        explained_variance_ratio: Fraction of total variance per component
        sample_metadata: Annotations of the scored samples, for colouring plots
        center: Whether features were centered
        scale: Whether features were scaled to unit variance
    """

    scores: pd.DataFrame
    loadings: pd.DataFrame
    explained_variance: pd.Series
    explained_variance_ratio: pd.Series
    sample_metadata: pd.DataFrame = field(default_factory=pd.DataFrame)
    center: bool = True
    scale: bool = False

    @classmethod
    def empty(
        cls,
        sample_ids: pd.Index,
        feature_ids: pd.Index,
        sample_metadata: Optional[pd.DataFrame] = None,
        center: bool = True,
        scale: bool = False,
    ) -> PCAResult:
        return cls(
            scores=pd.DataFrame(index=sample_ids),
            loadings=pd.DataFrame(index=feature_ids),
            explained_variance=pd.Series(dtype=float),
            explained_variance_ratio=pd.Series(dtype=float),
            sample_metadata=sample_metadata if sample_metadata is not None else pd.DataFrame(index=sample_ids),
            center=center,
            scale=scale,
        )

    @property
    def n_components(self) -> int:
        return self.scores.shape[1]

    @property
    def is_empty(self) -> bool:
        return self.n_components == 0

    @property
    def components(self) -> list[str]:
        return list(self.scores.columns)

    def variance_table(self) -> pd.DataFrame:
        """Per-component variance summary (component, variance, ratio, cumulative)."""
        return pd.DataFrame({
            'component': self.explained_variance.index,
            'variance': self.explained_variance.to_numpy(),
            'variance_ratio': self.explained_variance_ratio.to_numpy(),
            'cumulative_ratio': self.explained_variance_ratio.cumsum().to_numpy(),
        })

    def to_dataframe(self) -> pd.DataFrame:
        """Scores joined with sample annotations."""
        return self.scores.join(self.sample_metadata, how='left')

    def top_loadings(self, component: str = "PC1", n: int = 10) -> pd.Series:
        """Features with the largest absolute loading on one component."""
        if component not in self.loadings.columns:
            raise KeyError(f"Unknown component '{component}'; available: {self.components}")
        weights = self.loadings[component]
        return weights.loc[weights.abs().sort_values(ascending=False).index[:n]]


def run_pca(
    matrix: BioMatrix,
    n_components: Optional[int] = None,
    center: bool = True,
    scale: bool = False,
) -> PCAResult:
    """
    Compute principal components of the samples of a matrix.

    Args:
        matrix: Features × samples matrix, typically log-transformed
        n_components: Components to keep (default: min(n_samples, n_features))
        center: Subtract each feature's mean across samples
        scale: Divide each feature by its standard deviation across samples

    Returns:
        PCAResult ordered by descending explained variance

    Raises:
        ValueError: If the matrix contains NaN, n_components is out of range,
            or scale=True with zero-variance features
    """
    from sklearn.decomposition import PCA
    from sklearn.preprocessing import StandardScaler
    from sklearn.utils.extmath import svd_flip

    if matrix.n_samples < 2 or matrix.n_features == 0:
        logger.warning(
            f"PCA needs at least 2 samples and 1 feature, got "
            f"{matrix.n_samples} samples × {matrix.n_features} features; returning empty result"
        )
        return PCAResult.empty(matrix.sample_ids, matrix.feature_ids, matrix.sample_metadata, center, scale)

    if np.isnan(matrix.data).any():
        raise ValueError("PCA input contains NaN values; filter or impute them first")

    max_components = min(matrix.n_samples, matrix.n_features)
    if n_components is None:
        n_components = max_components
    if not 1 <= n_components <= max_components:
        raise ValueError(f"n_components must be in [1, {max_components}], got {n_components}")

    X = matrix.data.T.astype(float)

    if scale:
        zero_variance = np.ptp(X, axis=0) == 0
        if zero_variance.any():
            examples = list(matrix.feature_ids[zero_variance][:3])
            raise ValueError(
                f"Cannot scale {int(zero_variance.sum())} zero-variance features "
                f"(e.g. {examples}); apply ZeroVarianceFilter first"
            )
    if center or scale:
        X = StandardScaler(with_mean=center, with_std=scale).fit_transform(X)

    if center:
        pca = PCA(n_components=n_components, svd_solver="full")
        scores = pca.fit_transform(X)
        components = pca.components_
        variance = pca.explained_variance_
        ratio = pca.explained_variance_ratio_
    else:
        U, S, Vt = np.linalg.svd(X, full_matrices=False)
        U, Vt = svd_flip(U, Vt, u_based_decision=False)
        scores = (U * S)[:, :n_components]
        components = Vt[:n_components]
        squared = S ** 2
        variance = squared[:n_components] / (X.shape[0] - 1)
        total = squared.sum()
        ratio = squared[:n_components] / total if total > 0 else np.zeros(n_components)

    names = _component_names(n_components)
    result = PCAResult(
        scores=pd.DataFrame(scores, index=matrix.sample_ids, columns=names),
        loadings=pd.DataFrame(components.T, index=matrix.feature_ids, columns=names),
        explained_variance=pd.Series(variance, index=names, name="explained_variance"),
        explained_variance_ratio=pd.Series(ratio, index=names, name="explained_variance_ratio"),
        sample_metadata=matrix.sample_metadata,
        center=center,
        scale=scale,
    )

    logger.info(
        f"PCA on {matrix.n_samples} samples × {matrix.n_features} features: "
        f"PC1 explains {result.explained_variance_ratio.iloc[0]:.1%} of variance"
    )
    return result
