"""
Tests for BioMatrix construction, subsetting and the alignment invariant.
"""

import numpy as np
import pandas as pd
import pytest

from geneflow.core.biomatrix import BioMatrix


class TestConstruction:
    """Test constructor validation."""

    def test_default_metadata_is_empty_and_aligned(self):
        """Missing annotation tables default to empty frames with the ids as index."""
        matrix = BioMatrix(
            data=np.zeros((2, 3)),
            feature_ids=pd.Index(["g1", "g2"]),
            sample_ids=pd.Index(["s1", "s2", "s3"]),
        )
        assert matrix.shape == (2, 3)
        assert matrix.sample_metadata.index.equals(matrix.sample_ids)
        assert matrix.feature_metadata.index.equals(matrix.feature_ids)
        assert matrix.sample_metadata.columns.empty

    def test_rejects_non_array_data(self):
        with pytest.raises(TypeError, match="np.ndarray"):
            BioMatrix(data=[[1, 2]], feature_ids=pd.Index(["g1"]), sample_ids=pd.Index(["s1", "s2"]))

    def test_rejects_mismatched_feature_ids(self):
        with pytest.raises(ValueError, match="feature_ids length"):
            BioMatrix(
                data=np.zeros((2, 2)),
                feature_ids=pd.Index(["g1"]),
                sample_ids=pd.Index(["s1", "s2"]),
            )

    def test_rejects_misaligned_sample_metadata(self):
        """Metadata rows in a different order than the sample ids are refused."""
        with pytest.raises(ValueError, match="sample_metadata.index must match"):
            BioMatrix(
                data=np.zeros((1, 2)),
                feature_ids=pd.Index(["g1"]),
                sample_ids=pd.Index(["s1", "s2"]),
                sample_metadata=pd.DataFrame({"x": [1, 2]}, index=["s2", "s1"]),
            )

    def test_empty_matrix(self):
        matrix = BioMatrix(
            data=np.zeros((0, 3)),
            feature_ids=pd.Index([]),
            sample_ids=pd.Index(["s1", "s2", "s3"]),
        )
        assert matrix.is_empty
        assert "empty" in repr(matrix)


class TestSubsetting:
    """Test that selections carry their metadata along."""

    def test_select_samples_keeps_labels_with_columns(self, counts_matrix):
        tumors = counts_matrix.select_samples(counts_matrix.sample_metadata["condition"] == "tumor")

        assert tumors.n_samples == 4
        assert (tumors.sample_metadata["condition"] == "tumor").all()
        assert tumors.sample_metadata.index.equals(tumors.sample_ids)
        original = counts_matrix.to_dataframe()
        np.testing.assert_array_equal(tumors.data, original[tumors.sample_ids].to_numpy())

    def test_select_features_keeps_annotations_with_rows(self, counts_matrix):
        mask = counts_matrix.feature_metadata["gene_type"] == "lncRNA"
        lnc = counts_matrix.select_features(mask)

        assert lnc.n_features == int(mask.sum())
        assert lnc.feature_metadata.index.equals(lnc.feature_ids)
        assert (lnc.feature_metadata["gene_type"] == "lncRNA").all()

    def test_mask_length_checked(self, counts_matrix):
        with pytest.raises(ValueError, match="mask length"):
            counts_matrix.select_samples(np.array([True, False]))

    def test_selection_does_not_modify_input(self, counts_matrix):
        before = counts_matrix.data.copy()
        counts_matrix.select_features(np.arange(counts_matrix.n_features) < 10)
        np.testing.assert_array_equal(counts_matrix.data, before)
        assert counts_matrix.n_features == 200

    def test_with_data_requires_same_shape(self, counts_matrix):
        with pytest.raises(ValueError, match="must match matrix shape"):
            counts_matrix.with_data(np.zeros((3, 3)))

    def test_deep_copy_is_independent(self, counts_matrix):
        copied = counts_matrix.copy()
        copied.data[0, 0] = -1
        assert counts_matrix.data[0, 0] != -1
