"""
Tests for the preprocessing transforms: metadata filters, relabelling,
zero-variance and prevalence filters, log transform and variable-feature
selection.
"""

import numpy as np
import pandas as pd
import pytest

from geneflow.core.biomatrix import BioMatrix
from geneflow.core.transform import apply_transforms
from geneflow.quality.filtering import (
    HighVarianceSelector,
    LogTransform,
    MetadataFilter,
    PrevalenceFilter,
    RelabelMetadata,
    ZeroVarianceFilter,
)


def _matrix(data, sample_metadata=None):
    data = np.asarray(data, dtype=float)
    sample_ids = pd.Index([f"S{i}" for i in range(data.shape[1])])
    feature_ids = pd.Index([f"G{i}" for i in range(data.shape[0])])
    if sample_metadata is not None:
        sample_metadata = pd.DataFrame(sample_metadata, index=sample_ids)
    return BioMatrix(data, feature_ids, sample_ids, sample_metadata=sample_metadata)


class TestMetadataFilter:
    """Test keep/exclude predicates on annotations."""

    def test_keep_values(self, counts_matrix):
        f = MetadataFilter(axis="samples", keep={"condition": "tumor"})
        result = f.apply(counts_matrix)

        assert result.n_samples == 4
        assert set(result.sample_metadata["condition"]) == {"tumor"}
        assert f.n_removed_ == 4

    def test_exclude_values(self, counts_matrix):
        result = MetadataFilter(axis="samples", exclude={"condition": ["normal"]}).apply(counts_matrix)
        assert list(result.sample_ids) == ["S04", "S05", "S06", "S07"]

    def test_feature_axis(self, counts_matrix):
        result = MetadataFilter(axis="features", keep={"gene_type": "protein_coding"}).apply(counts_matrix)
        assert result.n_features == 150
        assert result.n_samples == counts_matrix.n_samples

    def test_no_match_gives_empty_matrix(self, counts_matrix):
        result = MetadataFilter(axis="samples", keep={"condition": "metastatic"}).apply(counts_matrix)
        assert result.n_samples == 0
        assert result.is_empty

    def test_requires_a_criterion(self):
        with pytest.raises(ValueError, match="at least one"):
            MetadataFilter(axis="samples")

    def test_validate_reports_missing_column(self, counts_matrix):
        errors = MetadataFilter(keep={"stage": "II"}).validate(counts_matrix)
        assert errors and "stage" in errors[0]

    def test_apply_transforms_raises_on_invalid(self, counts_matrix):
        with pytest.raises(ValueError, match="Cannot apply MetadataFilter"):
            apply_transforms(counts_matrix, [MetadataFilter(keep={"stage": "II"})])


class TestRelabelMetadata:
    """Test categorical relabelling."""

    def test_relabel_into_new_column(self, counts_matrix):
        relabel = RelabelMetadata(
            "tissue_type",
            {"Primary Tumor": "tumor", "Solid Tissue Normal": "normal"},
            target="short",
        )
        result = relabel.apply(counts_matrix)

        assert list(result.sample_metadata["short"]) == list(counts_matrix.sample_metadata["condition"])
        assert "tissue_type" in result.sample_metadata.columns
        np.testing.assert_array_equal(result.data, counts_matrix.data)

    def test_unmapped_values_kept(self):
        matrix = _matrix([[1, 2, 3]], {"tissue": ["Primary Tumor", "Metastatic", "Solid Tissue Normal"]})
        result = RelabelMetadata("tissue", {"Primary Tumor": "tumor"}).apply(matrix)
        assert list(result.sample_metadata["tissue"]) == ["tumor", "Metastatic", "Solid Tissue Normal"]

    def test_input_not_modified(self, counts_matrix):
        RelabelMetadata("condition", {"tumor": "T"}).apply(counts_matrix)
        assert "T" not in set(counts_matrix.sample_metadata["condition"])


class TestZeroVarianceFilter:
    """Test removal of constant features."""

    def test_constant_rows_removed(self):
        matrix = _matrix([[0, 0, 0, 0], [5, 5, 5, 5], [1, 2, 3, 4]])
        f = ZeroVarianceFilter()
        result = f.apply(matrix)

        assert list(result.feature_ids) == ["G2"]
        assert f.n_removed_ == 2

    def test_repeated_non_integer_value_removed(self):
        """0.1 repeated has exactly zero spread even if np.var would not be exactly 0."""
        matrix = _matrix([[0.1] * 7, [0.1, 0.2, 0.1, 0.1, 0.1, 0.1, 0.1]])
        assert list(ZeroVarianceFilter().apply(matrix).feature_ids) == ["G1"]

    def test_no_samples_passes_through(self):
        matrix = BioMatrix(np.zeros((3, 0)), pd.Index(["a", "b", "c"]), pd.Index([]))
        assert ZeroVarianceFilter().apply(matrix).n_features == 3


class TestPrevalenceFilter:
    """Test the low-count filter and its inclusive boundary."""

    def test_exactly_one_fifth_retained(self):
        """Non-zero in 1 of 5 samples is exactly 20% and is kept."""
        matrix = _matrix([[7, 0, 0, 0, 0], [1, 1, 0, 0, 0]])
        result = PrevalenceFilter(min_fraction=0.2).apply(matrix)
        assert list(result.feature_ids) == ["G0", "G1"]

    def test_below_one_fifth_removed(self):
        """Non-zero in 1 of 6 samples is below 20% and is removed."""
        matrix = _matrix([[7, 0, 0, 0, 0, 0], [1, 1, 0, 0, 0, 0]])
        result = PrevalenceFilter(min_fraction=0.2).apply(matrix)
        assert list(result.feature_ids) == ["G1"]

    def test_nan_is_not_detection(self):
        matrix = _matrix([[np.nan, np.nan, np.nan, 0, 1]])
        f = PrevalenceFilter(min_fraction=0.4)
        np.testing.assert_allclose(f.nonzero_fraction(matrix), [0.2])
        assert f.apply(matrix).n_features == 0

    def test_fraction_bounds(self):
        with pytest.raises(ValueError, match="min_fraction"):
            PrevalenceFilter(min_fraction=1.5)


class TestLogTransform:
    """Test log(x + 1) properties."""

    def test_zero_maps_to_zero(self):
        result = LogTransform().apply(_matrix([[0, 1, 3, 7]]))
        np.testing.assert_allclose(result.data, [[0.0, 1.0, 2.0, 3.0]])

    def test_monotonic_and_finite(self, counts_matrix):
        values = np.sort(counts_matrix.data.ravel())
        logged = LogTransform().apply(_matrix([values])).data.ravel()

        assert np.all(np.isfinite(logged))
        assert np.all(np.diff(logged) >= 0)

    def test_other_base_and_pseudocount(self):
        result = LogTransform(base=10, pseudocount=0.5).apply(_matrix([[9.5, 99.5]]))
        np.testing.assert_allclose(result.data, [[1.0, 2.0]])

    def test_nan_stays_nan(self):
        result = LogTransform().apply(_matrix([[np.nan, 1.0]]))
        assert np.isnan(result.data[0, 0])

    def test_values_below_minus_pseudocount_rejected(self):
        errors = LogTransform().validate(_matrix([[-2.0, 1.0]]))
        assert errors and "undefined" in errors[0]

    def test_invalid_base(self):
        with pytest.raises(ValueError, match="Log base"):
            LogTransform(base=1)

    def test_metadata_preserved(self, counts_matrix):
        result = LogTransform().apply(counts_matrix)
        pd.testing.assert_frame_equal(result.sample_metadata, counts_matrix.sample_metadata)
        pd.testing.assert_frame_equal(result.feature_metadata, counts_matrix.feature_metadata)


class TestHighVarianceSelector:
    """Test variable-feature selection."""

    def test_selects_most_variable_in_original_order(self):
        matrix = _matrix([[1, 1, 2], [0, 10, 20], [5, 5, 5], [0, 3, 6]])
        result = HighVarianceSelector(n_top=2).apply(matrix)
        assert list(result.feature_ids) == ["G1", "G3"]

    def test_n_top_larger_than_matrix(self, counts_matrix):
        assert HighVarianceSelector(n_top=10_000).apply(counts_matrix).n_features == 200


class TestFilterChain:
    """Test the end-to-end filtering scenario."""

    def test_zero_feature_removed_leaving_three_by_six(self, small_matrix):
        """4 features × 6 samples with one all-zero feature filters to 3 × 6."""
        result = apply_transforms(small_matrix, [ZeroVarianceFilter(), PrevalenceFilter(0.2)])

        assert result.shape == (3, 6)
        assert "ENSG_ZERO" not in result.feature_ids
        assert result.feature_metadata.index.equals(result.feature_ids)
        assert list(result.feature_metadata["gene_name"]) == ["A", "B", "C"]

    def test_chain_leaves_input_unchanged(self, small_matrix):
        before = small_matrix.data.copy()
        apply_transforms(small_matrix, [ZeroVarianceFilter(), LogTransform()])
        np.testing.assert_array_equal(small_matrix.data, before)
        assert small_matrix.shape == (4, 6)
