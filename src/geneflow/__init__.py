"""
geneflow - Bulk expression analysis pipeline

Loads an annotated expression matrix, filters and log-transforms it,
computes principal components, tests differential expression with DESeq2
and runs preranked gene set enrichment against MSigDB collections.
"""

__version__ = "0.1.0"

from geneflow.core.biomatrix import BioMatrix
from geneflow.core.transform import Transform, apply_transforms

__all__ = [
    "BioMatrix",
    "Transform",
    "apply_transforms",
]
