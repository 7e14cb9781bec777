"""
Tests for multiple-testing correction and atomic file writes.
"""

import json
from datetime import datetime
from pathlib import Path

import numpy as np
import pytest

from geneflow.utils.fileio import atomic_write_json, atomic_write_text
from geneflow.utils.statistics import fdr_correction


class TestFDRCorrection:
    """Test adjusted p-values."""

    def test_benjamini_hochberg(self):
        adjusted = fdr_correction([0.01, 0.04, 0.03, 0.5])
        np.testing.assert_allclose(adjusted, [0.04, 0.0533333, 0.0533333, 0.5], rtol=1e-5)

    def test_nan_kept_in_place(self):
        adjusted = fdr_correction([0.01, np.nan, 0.02])
        assert np.isnan(adjusted[1])
        np.testing.assert_allclose(adjusted[[0, 2]], [0.02, 0.02])

    def test_bonferroni_capped_at_one(self):
        np.testing.assert_allclose(fdr_correction([0.3, 0.6], method="bonferroni"), [0.6, 1.0])

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="method"):
            fdr_correction([0.1], method="holm-sidak-x")

    def test_empty(self):
        assert len(fdr_correction([])) == 0


class TestAtomicWrites:
    """Test JSON/text writers."""

    def test_json_with_numpy_and_paths(self, tmp_path):
        data = {
            "n": np.int64(3),
            "x": np.float32(0.5),
            "arr": np.arange(3),
            "path": Path("results/x.csv"),
            "when": datetime(2024, 1, 2, 3, 4, 5),
        }
        path = atomic_write_json(tmp_path / "nested" / "params.json", data)

        loaded = json.loads(path.read_text())
        assert loaded["n"] == 3
        assert loaded["arr"] == [0, 1, 2]
        assert loaded["path"] == "results/x.csv"
        assert loaded["when"].startswith("2024-01-02")

    def test_text_overwrites(self, tmp_path):
        path = tmp_path / "report.html"
        atomic_write_text(path, "first")
        atomic_write_text(path, "second")
        assert path.read_text() == "second"
        assert [p.name for p in tmp_path.iterdir()] == ["report.html"]
