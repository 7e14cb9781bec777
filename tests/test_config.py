"""
Tests for pipeline configuration loading, validation and CLI overrides.
"""

import json
from argparse import Namespace
from pathlib import Path

import pytest
import yaml

from geneflow.cli.config import merge_config_with_args
from geneflow.config import PipelineConfig, config_from_dict, load_config, validate_config


@pytest.fixture
def config_file(tmp_path):
    config = {
        "input": {"path": "data/counts.csv", "sample_metadata": "data/samples.csv"},
        "filters": {
            "samples": {"keep": {"tissue_type": ["Primary Tumor", "Solid Tissue Normal"]}},
            "relabel": [{
                "column": "tissue_type",
                "target": "condition",
                "mapping": {"Primary Tumor": "tumor", "Solid Tissue Normal": "normal"},
            }],
            "min_prevalence": 0.2,
        },
        "differential": {"group_column": "condition", "reference_level": "normal", "alpha": 0.05},
        "enrichment": {"source": "msigdb", "category": "H", "id_column": "gene_name"},
        "output": {"directory": "results/brca"},
    }
    path = tmp_path / "pipeline.yaml"
    path.write_text(yaml.safe_dump(config))
    return path


class TestLoadConfig:
    """Test YAML/JSON parsing."""

    def test_yaml_relative_paths_resolved(self, config_file):
        config = load_config(config_file)
        assert config["input"]["path"] == str(config_file.parent / "data/counts.csv")
        assert config["output"]["directory"] == str(config_file.parent / "results/brca")

    def test_json(self, tmp_path):
        path = tmp_path / "pipeline.json"
        path.write_text(json.dumps({"pca": {"n_components": 5}}))
        assert load_config(path) == {"pca": {"n_components": 5}}

    def test_absolute_paths_untouched(self, tmp_path):
        path = tmp_path / "abs.yaml"
        path.write_text(yaml.safe_dump({"input": {"path": "/data/counts.h5ad"}}))
        assert load_config(path)["input"]["path"] == "/data/counts.h5ad"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported config format"):
            load_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("input: [unclosed")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(path)


class TestValidateConfig:
    """Test structural and value checks."""

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown config sections"):
            validate_config({"plots": {}})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown keys in 'pca'"):
            validate_config({"pca": {"components": 3}})

    @pytest.mark.parametrize("config, message", [
        ({"differential": {"alpha": 1.5}}, "differential.alpha"),
        ({"differential": {"n_cpus": 0}}, "differential.n_cpus"),
        ({"filters": {"min_prevalence": -0.1}}, "filters.min_prevalence"),
        ({"transform": {"log_base": 1}}, "log_base"),
        ({"pca": {"n_components": 2.5}}, "pca.n_components"),
        ({"enrichment": {"source": "kegg"}}, "Invalid gene set source"),
        ({"enrichment": {"min_size": 50, "max_size": 10}}, "min_size"),
        ({"output": {"figure_format": "gif"}}, "figure_format"),
        ({"filters": {"relabel": [{"column": "x"}]}}, "relabel"),
    ])
    def test_invalid_values(self, config, message):
        with pytest.raises(ValueError, match=message):
            validate_config(config)

    def test_booleans_are_not_numbers(self):
        with pytest.raises(ValueError, match="must be an integer"):
            validate_config({"enrichment": {"permutations": True}})


class TestConfigFromDict:
    """Test dataclass construction."""

    def test_defaults(self):
        config = config_from_dict({})
        assert isinstance(config, PipelineConfig)
        assert config.filters.min_prevalence == 0.2
        assert config.differential.alpha == 0.05
        assert config.enrichment.category == "H"
        assert config.output.directory == Path("results")

    def test_sections_and_paths(self, config_file):
        config = config_from_dict(load_config(config_file))

        assert isinstance(config.input.path, Path)
        assert config.differential.reference_level == "normal"
        assert config.filters.relabel[0]["target"] == "condition"

    def test_to_dict_is_json_serializable(self, config_file):
        config = config_from_dict(load_config(config_file))
        as_dict = config.to_dict()
        json.dumps(as_dict)
        assert as_dict["input"]["path"].endswith("counts.csv")


class TestMergeWithArgs:
    """Test CLI overrides."""

    def test_explicit_args_override(self, config_file):
        config = config_from_dict(load_config(config_file))
        args = Namespace(output=Path("elsewhere"), alpha=0.01, group_column=None, no_enrichment=False)

        merged = merge_config_with_args(config, args)
        assert merged.output.directory == Path("elsewhere")
        assert merged.differential.alpha == 0.01
        assert merged.differential.group_column == "condition"

    def test_gene_sets_switch_source(self):
        merged = merge_config_with_args(config_from_dict({}), Namespace(gene_sets=Path("h.all.gmt")))
        assert merged.enrichment.source == "gmt"
        assert merged.enrichment.gmt == Path("h.all.gmt")

    def test_no_differential_disables_enrichment(self):
        merged = merge_config_with_args(config_from_dict({}), Namespace(no_differential=True))
        assert not merged.differential.enabled
        assert not merged.enrichment.enabled

    def test_cli_reexports_library_config(self):
        import geneflow.cli.config as cli_config
        import geneflow.pipeline as pipeline

        assert cli_config.PipelineConfig is PipelineConfig
        assert pipeline.PipelineConfig.__module__ == "geneflow.config"
        assert pipeline.EnrichmentConfig.__module__ == "geneflow.config"
