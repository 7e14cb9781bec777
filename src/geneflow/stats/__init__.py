"""
Statistical stages of the expression pipeline.

Modules:
    pca: Principal component analysis (scikit-learn)
    differential: DESeq2 differential expression (pydeseq2)
    enrichment: Preranked GSEA (gseapy)
"""

from geneflow.stats.pca import PCAResult, run_pca
from geneflow.stats.differential import (
    DifferentialExpressionError,
    ContrastResult,
    DifferentialResult,
    run_differential_expression,
    rank_features,
)
from geneflow.stats.enrichment import ENRICHMENT_COLUMNS, run_preranked_gsea

__all__ = [
    'PCAResult',
    'run_pca',
    'DifferentialExpressionError',
    'ContrastResult',
    'DifferentialResult',
    'run_differential_expression',
    'rank_features',
    'ENRICHMENT_COLUMNS',
    'run_preranked_gsea',
]
