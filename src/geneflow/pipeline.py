"""
End-to-end expression analysis pipeline.

Sequences the stages of one run:

    load -> filter/relabel -> log transform -> PCA
         -> DESeq2 on filtered counts -> ranked list -> preranked GSEA
         -> tables, figures, HTML report, params.json

Counts and log expression travel separately: DESeq2 models raw integer
counts, while PCA and heatmaps use log2(x + 1) values of the same filtered
features and samples.

Examples:
    >>> from geneflow.config import load_config, config_from_dict
    >>> from geneflow.pipeline import run_pipeline
    >>> config = config_from_dict(load_config(Path("pipeline.yaml")))
    >>> result = run_pipeline(config)
    >>> result.differential.summary()
"""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from geneflow import __version__
from geneflow.config import EnrichmentConfig, FilterConfig, PipelineConfig
from geneflow.core.biomatrix import BioMatrix
from geneflow.core.transform import Transform, apply_transforms
from geneflow.io.loaders import load_matrix
from geneflow.io.writers import write_csv_matrix, write_h5ad, write_table
from geneflow.knowledge.genesets import GeneSetCollection
from geneflow.quality.filtering import (
    HighVarianceSelector,
    LogTransform,
    MetadataFilter,
    PrevalenceFilter,
    RelabelMetadata,
    ZeroVarianceFilter,
)
from geneflow.report import enrichment_for_csv, enrichment_summary, metadata_counts, top_differential
from geneflow.stats.differential import DifferentialResult, rank_features, run_differential_expression
from geneflow.stats.enrichment import ENRICHMENT_COLUMNS, run_preranked_gsea
from geneflow.stats.pca import PCAResult, run_pca
from geneflow.utils.fileio import atomic_write_json
from geneflow.viz.core import FigureCollection

logger = logging.getLogger(__name__)

__all__ = ['PipelineResult', 'build_filter_chain', 'load_gene_sets', 'run_pipeline']


@dataclass
class PipelineResult:
    """Artifacts of one pipeline run.

    Attributes:
        raw: Matrix as loaded
        filtered: Counts after subsetting, relabelling and feature filters
        log_expression: log-transformed ``filtered``
        pca: Principal components of the log expression (None if disabled)
        differential: DESeq2 results (None if disabled)
        enrichment: {contrast name: GSEA table}
        figures: Figures of the run (None if outputs were not written)
        output_files: {label: path} of everything written
        transforms: The filter chain that produced ``filtered``
    """

    raw: BioMatrix
    filtered: BioMatrix
    log_expression: BioMatrix
    pca: Optional[PCAResult] = None
    differential: Optional[DifferentialResult] = None
    enrichment: dict[str, pd.DataFrame] = field(default_factory=dict)
    figures: Optional[FigureCollection] = None
    output_files: dict[str, Path] = field(default_factory=dict)
    transforms: list[Transform] = field(default_factory=list)


def build_filter_chain(config: FilterConfig) -> list[Transform]:
    """
    Translate the filters section into Transforms, in application order:
    sample filter, feature filter, relabelling, zero-variance, prevalence.
    """
    chain: list[Transform] = []
    for axis in ("samples", "features"):
        criteria = config.samples if axis == "samples" else config.features
        if criteria and (criteria.get('keep') or criteria.get('exclude')):
            chain.append(MetadataFilter(axis=axis, keep=criteria.get('keep'), exclude=criteria.get('exclude')))

    for rule in config.relabel:
        chain.append(RelabelMetadata(
            column=rule['column'],
            mapping=rule['mapping'],
            axis=rule.get('axis', 'samples'),
            target=rule.get('target'),
        ))

    if config.zero_variance:
        chain.append(ZeroVarianceFilter())
    if config.min_prevalence is not None:
        chain.append(PrevalenceFilter(min_fraction=config.min_prevalence))
    return chain


def load_gene_sets(config: EnrichmentConfig) -> GeneSetCollection:
    """Fetch the reference gene sets named by the enrichment section."""
    if config.source == "gmt":
        if config.gmt is None:
            raise ValueError("enrichment.source is 'gmt' but enrichment.gmt is not set")
        return GeneSetCollection.from_gmt(config.gmt)
    if config.source == "enrichr":
        if not config.library:
            raise ValueError("enrichment.source is 'enrichr' but enrichment.library is not set")
        organism = "Mouse" if config.species.lower() in ("mouse", "mus musculus") else "Human"
        return GeneSetCollection.from_enrichr(config.library, organism=organism)
    return GeneSetCollection.from_msigdb(
        species=config.species, category=config.category, version=config.version
    )


def _run_pca(config: PipelineConfig, log_expression: BioMatrix) -> PCAResult:
    pca_input = log_expression
    if config.pca.n_top_features is not None and not log_expression.is_empty:
        pca_input = HighVarianceSelector(n_top=config.pca.n_top_features).apply(log_expression)

    n_components = config.pca.n_components
    if n_components is not None:
        n_components = min(n_components, pca_input.n_samples, pca_input.n_features) or None
    return run_pca(pca_input, n_components=n_components, center=config.pca.center, scale=config.pca.scale)


def _run_enrichment(
    config: EnrichmentConfig,
    differential: DifferentialResult,
    gene_sets: Optional[GeneSetCollection],
) -> dict[str, pd.DataFrame]:
    if differential.is_empty:
        logger.warning("No differential expression results; skipping gene set enrichment")
        return {contrast.name: pd.DataFrame(columns=ENRICHMENT_COLUMNS) for contrast in differential}

    if gene_sets is None:
        gene_sets = load_gene_sets(config)

    tables = {}
    for contrast in differential:
        ranked = rank_features(contrast, significant_only=config.significant_only, id_column=config.id_column)
        logger.info(f"{contrast.name}: ranked list of {len(ranked)} features")
        tables[contrast.name] = run_preranked_gsea(
            ranked,
            gene_sets,
            permutations=config.permutations,
            min_size=config.min_size,
            max_size=config.max_size,
            seed=config.seed,
        )
    return tables


def _write_outputs(config: PipelineConfig, result: PipelineResult, started: datetime) -> None:
    from geneflow.viz.expression import ExpressionVisualizer

    out = Path(config.output.directory)
    tables_dir = out / "tables"
    files = result.output_files

    if config.output.write_matrix:
        if config.output.matrix_format == "h5ad":
            files['filtered_matrix'] = write_h5ad(result.filtered, out / "filtered_counts.h5ad")
        else:
            written = write_csv_matrix(result.filtered, out / "filtered_counts")
            files.update({f"filtered_{k}": v for k, v in written.items()})

    report_tables = []
    color_by = config.pca.color_by or config.differential.group_column
    if color_by and color_by in result.filtered.sample_metadata.columns:
        counts = metadata_counts(result.filtered, color_by)
        files['sample_counts'] = write_table(counts, tables_dir / "sample_counts.csv", index=False)
        report_tables.append((f"Samples per {color_by}", counts))
    else:
        color_by = None

    if result.pca is not None and not result.pca.is_empty:
        files['pca_scores'] = write_table(result.pca.to_dataframe(), tables_dir / "pca_scores.csv")
        files['pca_variance'] = write_table(result.pca.variance_table(), tables_dir / "pca_variance.csv", index=False)

    id_column = config.enrichment.id_column
    if result.differential is not None:
        summary = result.differential.summary()
        files['de_summary'] = write_table(summary, tables_dir / "de_summary.csv", index=False)
        report_tables.append(("Differential expression summary", summary))
        for contrast in result.differential:
            files[f"de_{contrast.name}"] = write_table(contrast.table, tables_dir / f"de_{contrast.name}.csv")
            report_tables.append((
                f"Top differential features: {contrast.name}",
                top_differential(contrast, n=15, id_column=id_column),
            ))

    for name, table in result.enrichment.items():
        files[f"gsea_{name}"] = write_table(enrichment_for_csv(table), tables_dir / f"gsea_{name}.csv", index=False)
        report_tables.append((f"Gene set enrichment: {name}", enrichment_summary(table, n=15)))

    heatmap_matrix = None
    if not result.log_expression.is_empty:
        heatmap_matrix = HighVarianceSelector(n_top=config.output.heatmap_features).apply(result.log_expression)
    label_column = id_column if id_column in result.log_expression.feature_metadata.columns else None

    viz = ExpressionVisualizer(style=config.output.style)
    figures = viz.plot_all(
        pca=result.pca,
        color_by=color_by,
        contrasts=list(result.differential) if result.differential is not None else [],
        enrichment=result.enrichment,
        heatmap_matrix=heatmap_matrix,
        id_column=label_column,
        interactive_3d=config.output.interactive_3d,
    )
    for path in figures.save_all(out / "figures", format=config.output.figure_format):
        files[f"figure_{path.stem}"] = path

    if config.output.report:
        files['report'] = figures.to_html_report(
            out / "report.html",
            title="Expression Analysis Report",
            description=(
                f"{result.filtered.n_features} features × {result.filtered.n_samples} samples "
                f"after filtering ({result.raw.n_features} × {result.raw.n_samples} loaded)."
            ),
            tables=report_tables,
        )
    result.figures = figures

    params = {
        'geneflow_version': __version__,
        'python_version': platform.python_version(),
        'started_at': started.isoformat(),
        'finished_at': datetime.now().isoformat(),
        'config': config.to_dict(),
        'transforms': [t.to_dict() for t in result.transforms],
        'shapes': {
            'loaded': list(result.raw.shape),
            'filtered': list(result.filtered.shape),
        },
        'outputs': {label: str(path) for label, path in files.items()},
    }
    files['params'] = atomic_write_json(out / "params.json", params)


def run_pipeline(
    config: PipelineConfig,
    matrix: Optional[BioMatrix] = None,
    gene_sets: Optional[GeneSetCollection] = None,
    write_outputs: bool = True,
) -> PipelineResult:
    """
    Run every enabled stage of the pipeline.

    Args:
        config: Complete pipeline configuration
        matrix: Pre-loaded matrix (default: load config.input.path)
        gene_sets: Pre-loaded gene sets (default: fetch per config.enrichment)
        write_outputs: Write tables, figures, report and params.json to
            config.output.directory

    Returns:
        PipelineResult with every artifact of the run

    Raises:
        ValueError: If required settings are missing or a stage rejects its input
        DifferentialExpressionError: If counts cannot support a DESeq2 fit
        GeneSetUnavailableError: If the gene set source cannot be reached
    """
    started = datetime.now()

    if matrix is None:
        if config.input.path is None:
            raise ValueError("No input: set input.path in the config or pass --input")
        matrix = load_matrix(
            config.input.path,
            sample_metadata_path=config.input.sample_metadata,
            feature_metadata_path=config.input.feature_metadata,
            layer=config.input.layer,
        )
    logger.info(f"Input: {matrix.n_features} features × {matrix.n_samples} samples")

    chain = build_filter_chain(config.filters)
    filtered = apply_transforms(matrix, chain)
    log_expression = apply_transforms(
        filtered, [LogTransform(base=config.transform.log_base, pseudocount=config.transform.pseudocount)]
    )
    result = PipelineResult(raw=matrix, filtered=filtered, log_expression=log_expression, transforms=chain)

    if config.pca.enabled:
        result.pca = _run_pca(config, log_expression)

    if config.differential.enabled:
        if not config.differential.group_column or config.differential.reference_level is None:
            raise ValueError(
                "differential.group_column and differential.reference_level are required "
                "when differential testing is enabled"
            )
        result.differential = run_differential_expression(
            filtered,
            group_column=config.differential.group_column,
            reference_level=config.differential.reference_level,
            test_levels=config.differential.test_levels,
            alpha=config.differential.alpha,
            n_cpus=config.differential.n_cpus,
        )

        if config.enrichment.enabled:
            result.enrichment = _run_enrichment(config.enrichment, result.differential, gene_sets)

    if write_outputs:
        _write_outputs(config, result, started)
        logger.info(f"Wrote {len(result.output_files)} output files to {config.output.directory}")

    return result
