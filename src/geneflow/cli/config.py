"""
Command-line overrides for pipeline configuration.

The config sections and file loading live in geneflow.config and are
re-exported here; this module adds the mapping from `geneflow run` options
onto config fields.
"""

from __future__ import annotations

from argparse import Namespace

from geneflow.config import (
    DifferentialConfig,
    EnrichmentConfig,
    FilterConfig,
    InputConfig,
    OutputConfig,
    PCAConfig,
    PipelineConfig,
    TransformConfig,
    config_from_dict,
    load_config,
    validate_config,
)

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
    'merge_config_with_args',
]


# CLI argument -> (section, field)
ARG_TO_FIELD = {
    'input': ('input', 'path'),
    'sample_metadata': ('input', 'sample_metadata'),
    'feature_metadata': ('input', 'feature_metadata'),
    'layer': ('input', 'layer'),
    'output': ('output', 'directory'),
    'group_column': ('differential', 'group_column'),
    'reference_level': ('differential', 'reference_level'),
    'alpha': ('differential', 'alpha'),
    'n_cpus': ('differential', 'n_cpus'),
    'gene_sets': ('enrichment', 'gmt'),
    'id_column': ('enrichment', 'id_column'),
    'permutations': ('enrichment', 'permutations'),
    'seed': ('enrichment', 'seed'),
    'color_by': ('pca', 'color_by'),
    'figure_format': ('output', 'figure_format'),
}


def merge_config_with_args(config: PipelineConfig, args: Namespace) -> PipelineConfig:
    """
    Apply explicitly given CLI arguments on top of a PipelineConfig.

    CLI options default to None, so any non-None value was given by the user
    and wins over the config file. ``--gene-sets`` also switches the
    enrichment source to "gmt".
    """
    for arg_name, (section, key) in ARG_TO_FIELD.items():
        value = getattr(args, arg_name, None)
        if value is None:
            continue
        setattr(getattr(config, section), key, value)
        if arg_name == 'gene_sets':
            config.enrichment.source = "gmt"

    if getattr(args, 'no_enrichment', False):
        config.enrichment.enabled = False
    if getattr(args, 'no_differential', False):
        config.differential.enabled = False
        config.enrichment.enabled = False
    return config
