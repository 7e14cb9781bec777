"""
Configuration file support for the geneflow pipeline.

A pipeline file (YAML or JSON) describes one run end to end:

    input:
      path: data/brca_counts.csv
      sample_metadata: data/brca_samples.csv
      feature_metadata: data/brca_genes.csv
    filters:
      samples:
        keep: {tissue_type: [Primary Tumor, Solid Tissue Normal]}
      relabel:
        - column: tissue_type
          target: condition
          mapping: {Primary Tumor: tumor, Solid Tissue Normal: normal}
      zero_variance: true
      min_prevalence: 0.2
    differential:
      group_column: condition
      reference_level: normal
    enrichment:
      source: msigdb
      category: H
      id_column: gene_name
    output:
      directory: results/brca

Priority (highest to lowest): explicit CLI arguments (see
geneflow.cli.config.merge_config_with_args), config file values, dataclass
defaults.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

__all__ = [
    'InputConfig',
    'FilterConfig',
    'TransformConfig',
    'PCAConfig',
    'DifferentialConfig',
    'EnrichmentConfig',
    'OutputConfig',
    'PipelineConfig',
    'load_config',
    'validate_config',
    'config_from_dict',
]

FIGURE_FORMATS = ("png", "pdf", "svg")
MATRIX_FORMATS = ("csv", "h5ad")
GENE_SET_SOURCES = ("msigdb", "enrichr", "gmt")
STYLES = ("paper", "presentation", "notebook")


@dataclass
class InputConfig:
    """Annotated matrix location."""
    path: Optional[Path] = None
    sample_metadata: Optional[Path] = None
    feature_metadata: Optional[Path] = None
    layer: Optional[str] = None


@dataclass
class FilterConfig:
    """Sample/feature subsetting, relabelling and uninformative-feature removal."""
    samples: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    features: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    relabel: List[Dict[str, Any]] = field(default_factory=list)
    zero_variance: bool = True
    min_prevalence: Optional[float] = 0.2


@dataclass
class TransformConfig:
    """Log transform applied before PCA and heatmaps."""
    log_base: float = 2.0
    pseudocount: float = 1.0


@dataclass
class PCAConfig:
    enabled: bool = True
    n_components: Optional[int] = 10
    n_top_features: Optional[int] = 500
    center: bool = True
    scale: bool = False
    color_by: Optional[str] = None


@dataclass
class DifferentialConfig:
    enabled: bool = True
    group_column: Optional[str] = None
    reference_level: Optional[str] = None
    test_levels: Optional[List[str]] = None
    alpha: float = 0.05
    n_cpus: int = 1


@dataclass
class EnrichmentConfig:
    enabled: bool = True
    source: str = "msigdb"
    species: str = "human"
    category: str = "H"
    version: Optional[str] = None
    library: Optional[str] = None
    gmt: Optional[Path] = None
    id_column: Optional[str] = None
    significant_only: bool = True
    permutations: int = 1000
    min_size: int = 15
    max_size: int = 500
    seed: int = 42


@dataclass
class OutputConfig:
    directory: Path = Path("results")
    figure_format: str = "png"
    style: str = "paper"
    interactive_3d: bool = True
    matrix_format: str = "csv"
    write_matrix: bool = True
    report: bool = True
    heatmap_features: int = 50


@dataclass
class PipelineConfig:
    """Complete configuration for ``geneflow run``."""
    input: InputConfig = field(default_factory=InputConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)
    pca: PCAConfig = field(default_factory=PCAConfig)
    differential: DifferentialConfig = field(default_factory=DifferentialConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping (paths as strings) for params.json."""
        def _plain(value):
            if isinstance(value, Path):
                return str(value)
            if isinstance(value, dict):
                return {k: _plain(v) for k, v in value.items()}
            if isinstance(value, list):
                return [_plain(v) for v in value]
            return value
        return _plain(asdict(self))


SECTIONS = {
    'input': InputConfig,
    'filters': FilterConfig,
    'transform': TransformConfig,
    'pca': PCAConfig,
    'differential': DifferentialConfig,
    'enrichment': EnrichmentConfig,
    'output': OutputConfig,
}

_PATH_FIELDS = {
    ('input', 'path'), ('input', 'sample_metadata'), ('input', 'feature_metadata'),
    ('enrichment', 'gmt'), ('output', 'directory'),
}


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from a YAML or JSON file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise ValueError(f"Unsupported config format: {suffix}. Use .yaml, .yml, or .json")

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) if suffix in ('.yaml', '.yml') else json.load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError("Config file must contain a mapping at top level")

    # Relative paths are resolved against the config file's directory
    base = config_path.parent
    for section, key in _PATH_FIELDS:
        value = (config.get(section) or {}).get(key) if isinstance(config.get(section), dict) else None
        if value is not None and not Path(value).is_absolute():
            config[section][key] = str(base / value)
    return config


def _check_number(section: str, key: str, value: Any, low: float, high: Optional[float] = None,
                  inclusive_low: bool = True, integer: bool = False) -> None:
    kind = int if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, kind):
        raise ValueError(f"{section}.{key} must be {'an integer' if integer else 'a number'}, got: {value!r}")
    if value < low or (not inclusive_low and value == low) or (high is not None and value > high):
        bounds = f"{'[' if inclusive_low else '('}{low}, {high if high is not None else 'inf'}]"
        raise ValueError(f"{section}.{key} must be in {bounds}, got: {value}")


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration structure and values.

    Raises:
        ValueError: On unknown sections/keys, invalid choices or out-of-range numbers
    """
    unknown = set(config) - set(SECTIONS)
    if unknown:
        raise ValueError(f"Unknown config sections: {sorted(unknown)}. Valid: {sorted(SECTIONS)}")

    for section, schema in SECTIONS.items():
        values = config.get(section)
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")
        allowed = {f.name for f in fields(schema)}
        bad = set(values) - allowed
        if bad:
            raise ValueError(f"Unknown keys in '{section}': {sorted(bad)}. Valid: {sorted(allowed)}")

    filters = config.get('filters') or {}
    for axis in ('samples', 'features'):
        criteria = filters.get(axis) or {}
        if set(criteria) - {'keep', 'exclude'}:
            raise ValueError(f"filters.{axis} accepts only 'keep' and 'exclude'")
    for i, rule in enumerate(filters.get('relabel') or []):
        if not isinstance(rule, dict) or 'column' not in rule or not isinstance(rule.get('mapping'), dict):
            raise ValueError(f"filters.relabel[{i}] needs 'column' and a 'mapping' dictionary")
    if filters.get('min_prevalence') is not None:
        _check_number('filters', 'min_prevalence', filters['min_prevalence'], 0, 1)

    transform = config.get('transform') or {}
    if 'log_base' in transform:
        _check_number('transform', 'log_base', transform['log_base'], 0, inclusive_low=False)
        if transform['log_base'] == 1:
            raise ValueError("transform.log_base must not be 1")

    pca = config.get('pca') or {}
    for key in ('n_components', 'n_top_features'):
        if pca.get(key) is not None:
            _check_number('pca', key, pca[key], 1, integer=True)

    differential = config.get('differential') or {}
    if 'alpha' in differential:
        _check_number('differential', 'alpha', differential['alpha'], 0, 1, inclusive_low=False)
    if 'n_cpus' in differential:
        _check_number('differential', 'n_cpus', differential['n_cpus'], 1, integer=True)

    enrichment = config.get('enrichment') or {}
    if enrichment.get('source', 'msigdb') not in GENE_SET_SOURCES:
        raise ValueError(
            f"Invalid gene set source '{enrichment['source']}'. Choose from: {', '.join(GENE_SET_SOURCES)}"
        )
    for key in ('permutations', 'min_size', 'max_size'):
        if key in enrichment:
            _check_number('enrichment', key, enrichment[key], 1, integer=True)
    if enrichment.get('min_size', 15) > enrichment.get('max_size', 500):
        raise ValueError("enrichment.min_size must not exceed enrichment.max_size")

    output = config.get('output') or {}
    if output.get('figure_format', 'png') not in FIGURE_FORMATS:
        raise ValueError(f"output.figure_format must be one of {FIGURE_FORMATS}")
    if output.get('matrix_format', 'csv') not in MATRIX_FORMATS:
        raise ValueError(f"output.matrix_format must be one of {MATRIX_FORMATS}")
    if output.get('style', 'paper') not in STYLES:
        raise ValueError(f"output.style must be one of {STYLES}")


def config_from_dict(config: Dict[str, Any]) -> PipelineConfig:
    """Validate a config mapping and build the PipelineConfig dataclasses."""
    validate_config(config)

    sections = {}
    for section, schema in SECTIONS.items():
        values = dict(config.get(section) or {})
        for key in list(values):
            if (section, key) in _PATH_FIELDS and values[key] is not None:
                values[key] = Path(values[key])
        sections[section] = schema(**values)
    return PipelineConfig(**sections)
