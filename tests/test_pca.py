"""
Tests for principal component analysis of samples.
"""

import numpy as np
import pandas as pd
import pytest

from geneflow.core.biomatrix import BioMatrix
from geneflow.quality.filtering import LogTransform
from geneflow.stats.pca import PCAResult, run_pca


@pytest.fixture
def log_matrix(counts_matrix):
    return LogTransform().apply(counts_matrix)


class TestRunPCA:
    """Test scores, variance summary and edge cases."""

    def test_shapes_and_names(self, log_matrix):
        result = run_pca(log_matrix, n_components=3)

        assert result.scores.shape == (8, 3)
        assert result.loadings.shape == (200, 3)
        assert result.components == ["PC1", "PC2", "PC3"]
        assert result.scores.index.equals(log_matrix.sample_ids)

    def test_variance_descending(self, log_matrix):
        result = run_pca(log_matrix)

        variance = result.explained_variance.to_numpy()
        assert np.all(np.diff(variance) <= 1e-10)
        assert result.explained_variance_ratio.sum() == pytest.approx(1.0)

    def test_deterministic(self, log_matrix):
        first = run_pca(log_matrix, n_components=4)
        second = run_pca(log_matrix, n_components=4)
        pd.testing.assert_frame_equal(first.scores, second.scores)

    def test_pc1_separates_conditions(self, log_matrix):
        """The tumour-specific genes dominate PC1, so conditions fall on opposite sides."""
        result = run_pca(log_matrix, n_components=2)
        pc1 = result.scores["PC1"]
        condition = log_matrix.sample_metadata["condition"]

        normal, tumor = pc1[condition == "normal"], pc1[condition == "tumor"]
        assert (normal.max() < tumor.min()) or (tumor.max() < normal.min())

    def test_scores_match_numpy_svd(self, log_matrix):
        """Centered PCA scores equal U*S of the centered samples × features matrix."""
        result = run_pca(log_matrix, n_components=2)

        X = log_matrix.data.T - log_matrix.data.T.mean(axis=0)
        U, S, _ = np.linalg.svd(X, full_matrices=False)
        expected = U[:, :2] * S[:2]
        np.testing.assert_allclose(np.abs(result.scores.to_numpy()), np.abs(expected), atol=1e-8)

    def test_scaled(self, log_matrix):
        result = run_pca(log_matrix, n_components=2, scale=True)
        assert result.scale
        assert result.n_components == 2

    def test_scale_rejects_constant_features(self):
        data = np.array([[1.0, 1.0, 1.0], [1.0, 2.0, 4.0]])
        matrix = BioMatrix(data, pd.Index(["a", "b"]), pd.Index(["s1", "s2", "s3"]))
        with pytest.raises(ValueError, match="zero-variance"):
            run_pca(matrix, scale=True)

    def test_uncentered(self, log_matrix):
        result = run_pca(log_matrix, n_components=2, center=False)
        assert not result.center
        assert result.explained_variance_ratio.iloc[0] > result.explained_variance_ratio.iloc[1]

    def test_nan_rejected(self, log_matrix):
        data = log_matrix.data.copy()
        data[0, 0] = np.nan
        with pytest.raises(ValueError, match="NaN"):
            run_pca(log_matrix.with_data(data))

    def test_n_components_out_of_range(self, log_matrix):
        with pytest.raises(ValueError, match="n_components"):
            run_pca(log_matrix, n_components=9)

    def test_single_sample_gives_empty_result(self, log_matrix):
        one = log_matrix.select_samples(np.arange(8) == 0)
        result = run_pca(one)
        assert result.is_empty
        assert result.variance_table().empty


class TestPCAResult:
    """Test result accessors."""

    def test_variance_table_cumulative(self, log_matrix):
        table = run_pca(log_matrix, n_components=3).variance_table()

        assert list(table.columns) == ["component", "variance", "variance_ratio", "cumulative_ratio"]
        np.testing.assert_allclose(table["cumulative_ratio"], table["variance_ratio"].cumsum())

    def test_to_dataframe_joins_metadata(self, log_matrix):
        frame = run_pca(log_matrix, n_components=2).to_dataframe()
        assert {"PC1", "PC2", "condition"} <= set(frame.columns)

    def test_top_loadings_are_tumor_genes(self, log_matrix):
        top = run_pca(log_matrix, n_components=2).top_loadings("PC1", n=10)
        changed = {f"ENSG{i:08d}" for i in range(20)}
        assert len(set(top.index) & changed) >= 5

    def test_unknown_component(self, log_matrix):
        with pytest.raises(KeyError, match="PC7"):
            run_pca(log_matrix, n_components=2).top_loadings("PC7")

    def test_empty_constructor(self):
        result = PCAResult.empty(pd.Index(["s1"]), pd.Index(["g1"]))
        assert result.n_components == 0
        assert result.is_empty
