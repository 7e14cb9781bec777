"""Shared utilities: atomic file writes and multiple-testing correction."""

from geneflow.utils.fileio import atomic_write_json, atomic_write_text
from geneflow.utils.statistics import fdr_correction

__all__ = [
    'atomic_write_json',
    'atomic_write_text',
    'fdr_correction',
]
