"""
End-to-end tests for the expression pipeline.

Gene sets are passed in memory so no test needs MSigDB access.
"""

import json

import pytest

from geneflow.config import FilterConfig, config_from_dict
from geneflow.knowledge.genesets import GeneSetCollection, GeneSetUnavailableError
from geneflow.pipeline import build_filter_chain, run_pipeline
from geneflow.quality.filtering import MetadataFilter, PrevalenceFilter, RelabelMetadata, ZeroVarianceFilter
from geneflow.stats.enrichment import ENRICHMENT_COLUMNS


class TestBuildFilterChain:
    """Test translation of the filters section."""

    def test_order(self):
        chain = build_filter_chain(FilterConfig(
            samples={"keep": {"tissue_type": ["Primary Tumor"]}},
            features={"exclude": {"gene_type": "lncRNA"}},
            relabel=[{"column": "tissue_type", "mapping": {"Primary Tumor": "tumor"}}],
        ))
        assert [type(t) for t in chain] == [
            MetadataFilter, MetadataFilter, RelabelMetadata, ZeroVarianceFilter, PrevalenceFilter,
        ]
        assert chain[0].axis == "samples"
        assert chain[1].axis == "features"

    def test_disabled_filters(self):
        assert build_filter_chain(FilterConfig(zero_variance=False, min_prevalence=None)) == []


class TestSmallScenario:
    """4 features × 6 samples with one all-zero feature."""

    def test_zero_feature_removed(self, small_matrix, tmp_path):
        config = config_from_dict({
            "pca": {"color_by": "condition"},
            "differential": {"enabled": False},
            "output": {"directory": str(tmp_path / "out")},
        })
        result = run_pipeline(config, matrix=small_matrix)

        assert result.filtered.shape == (3, 6)
        assert "ENSG_ZERO" not in result.filtered.feature_ids
        assert result.log_expression.shape == (3, 6)
        assert result.raw.shape == (4, 6)
        assert result.differential is None
        assert result.enrichment == {}

    def test_outputs_written(self, small_matrix, tmp_path):
        out = tmp_path / "out"
        config = config_from_dict({
            "pca": {"color_by": "condition"},
            "differential": {"enabled": False},
            "output": {"directory": str(out)},
        })
        result = run_pipeline(config, matrix=small_matrix)

        assert (out / "filtered_counts.data.csv").exists()
        assert (out / "tables" / "pca_scores.csv").exists()
        assert (out / "tables" / "sample_counts.csv").exists()
        assert (out / "figures" / "pca.png").exists()
        assert (out / "report.html").exists()

        params = json.loads((out / "params.json").read_text())
        assert params["shapes"] == {"loaded": [4, 6], "filtered": [3, 6]}
        assert [t["name"] for t in params["transforms"]] == ["ZeroVarianceFilter", "PrevalenceFilter"]
        assert params["config"]["differential"]["enabled"] is False
        assert "report" in result.output_files

    def test_single_feature_left(self, small_matrix, tmp_path):
        """One surviving feature gives one component; the 2-D scatter becomes a placeholder."""
        out = tmp_path / "out"
        config = config_from_dict({
            "filters": {"features": {"keep": {"gene_name": ["A", "ZERO"]}}},
            "pca": {"color_by": "condition"},
            "differential": {"enabled": False},
            "output": {"directory": str(out)},
        })
        result = run_pipeline(config, matrix=small_matrix)

        assert result.filtered.shape == (1, 6)
        assert result.pca.n_components == 1
        assert result.figures["pca"].metadata["empty"]
        assert "pca_3d" not in result.figures
        assert (out / "figures" / "scree.png").exists()
        assert (out / "report.html").exists()

    def test_one_component_requested(self, small_matrix, tmp_path):
        config = config_from_dict({
            "pca": {"n_components": 1},
            "differential": {"enabled": False},
            "output": {"directory": str(tmp_path / "out")},
        })
        result = run_pipeline(config, matrix=small_matrix)

        assert result.pca.n_components == 1
        assert result.figures["pca"].metadata["empty"]
        assert (tmp_path / "out" / "tables" / "pca_scores.csv").exists()


class TestFullRun:
    """Filtering, PCA, DESeq2 and GSEA on synthetic counts."""

    @pytest.fixture
    def config(self, tmp_path):
        return config_from_dict({
            "filters": {
                "samples": {"keep": {"tissue_type": ["Primary Tumor", "Solid Tissue Normal"]}},
                "relabel": [{
                    "column": "tissue_type",
                    "target": "group",
                    "mapping": {"Primary Tumor": "tumor", "Solid Tissue Normal": "normal"},
                }],
            },
            "pca": {"n_components": 4, "n_top_features": 100},
            "differential": {"group_column": "group", "reference_level": "normal"},
            "enrichment": {
                "id_column": "gene_name",
                "significant_only": False,
                "permutations": 50,
                "min_size": 5,
            },
            "output": {"directory": str(tmp_path / "run"), "interactive_3d": False},
        })

    def test_run(self, config, session_counts, hallmark_like_sets):
        result = run_pipeline(config, matrix=session_counts, gene_sets=GeneSetCollection(hallmark_like_sets))
        out = config.output.directory

        assert result.pca.n_components == 4
        assert result.pca.loadings.shape[0] == 100
        assert result.differential.contrast_names == ["tumor_vs_normal"]
        assert result.differential["tumor_vs_normal"].n_up >= 10

        table = result.enrichment["tumor_vs_normal"]
        by_name = table.set_index("pathway")
        assert by_name.loc["TUMOR_UP", "es"] > 0
        assert not by_name.loc["NO_OVERLAP", "defined"]
        assert table["pathway"].iloc[-1] == "NO_OVERLAP"

        for name in ["de_summary.csv", "de_tumor_vs_normal.csv", "gsea_tumor_vs_normal.csv"]:
            assert (out / "tables" / name).exists()
        assert (out / "figures" / "volcano_tumor_vs_normal.png").exists()
        assert (out / "figures" / "pca_3d.png").exists()
        report = (out / "report.html").read_text()
        assert "Differential expression summary" in report

    def test_in_memory_only(self, config, session_counts, tmp_path):
        config.enrichment.enabled = False
        result = run_pipeline(config, matrix=session_counts, write_outputs=False)

        assert result.figures is None
        assert result.output_files == {}
        assert not (tmp_path / "run").exists()


class TestEmptySelection:
    """A sample filter that matches nothing carries emptiness through every stage."""

    def test_gene_sets_not_fetched(self, small_matrix, monkeypatch):
        def unreachable(config):
            raise GeneSetUnavailableError("MSigDB unreachable")

        monkeypatch.setattr("geneflow.pipeline.load_gene_sets", unreachable)
        config = config_from_dict({
            "filters": {"samples": {"keep": {"condition": ["metastatic"]}}},
            "differential": {"group_column": "condition", "reference_level": "normal", "test_levels": ["tumor"]},
        })
        result = run_pipeline(config, matrix=small_matrix, write_outputs=False)

        assert result.filtered.n_samples == 0
        assert result.pca.is_empty
        assert result.differential.is_empty
        assert list(result.enrichment) == ["tumor_vs_normal"]
        table = result.enrichment["tumor_vs_normal"]
        assert table.empty
        assert list(table.columns) == ENRICHMENT_COLUMNS


class TestPipelineErrors:
    def test_no_input(self):
        with pytest.raises(ValueError, match="No input"):
            run_pipeline(config_from_dict({}), write_outputs=False)

    def test_differential_needs_grouping(self, small_matrix):
        with pytest.raises(ValueError, match="group_column"):
            run_pipeline(config_from_dict({}), matrix=small_matrix, write_outputs=False)
