"""Reference gene set collections (MSigDB, Enrichr, GMT files)."""

from geneflow.knowledge.genesets import (
    GeneSetCollection,
    GeneSetUnavailableError,
    msigdb_collection_name,
)

__all__ = [
    'GeneSetCollection',
    'GeneSetUnavailableError',
    'msigdb_collection_name',
]
