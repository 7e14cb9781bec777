"""
Input/output for annotated expression matrices.

Examples:
    >>> from geneflow.io import load_matrix, write_csv_matrix
    >>> matrix = load_matrix("brca.h5ad")
    >>> write_csv_matrix(matrix, "results/brca")
"""

from geneflow.io.loaders import load_matrix, load_h5ad, load_csv_matrix, load_metadata_table
from geneflow.io.writers import write_csv_matrix, write_h5ad, write_table

__all__ = [
    'load_matrix',
    'load_h5ad',
    'load_csv_matrix',
    'load_metadata_table',
    'write_csv_matrix',
    'write_h5ad',
    'write_table',
]
