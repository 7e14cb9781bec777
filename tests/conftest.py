"""
Pytest configuration and shared fixtures.

Provides synthetic count matrices with a known tumour/normal effect so the
filtering, PCA, DESeq2 and GSEA stages can be tested without network access
or large data files.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from geneflow.core.biomatrix import BioMatrix


def generate_count_matrix(
    n_genes: int = 200,
    n_per_group: int = 4,
    n_changed: int = 20,
    fold_change: float = 4.0,
    seed: int = 42,
) -> BioMatrix:
    """
    Generate negative binomial counts for a two-group tumour/normal design.

    Args:
        n_genes: Number of genes (features)
        n_per_group: Samples per condition
        n_changed: Genes up-regulated in tumour (the first n_changed rows)
        fold_change: Tumour/normal mean ratio for the changed genes
        seed: Random seed for reproducibility

    Returns:
        BioMatrix with integer counts, a ``condition`` sample annotation and
        ``gene_name``/``gene_type`` feature annotations

    Design:
        - Gene base means are log-normal (realistic RNA-seq spread)
        - Dispersion 0.1, so changed genes are clearly detectable
        - Every gene has a non-zero count in at least one sample
    """
    rng = np.random.default_rng(seed)

    n_samples = 2 * n_per_group
    base = rng.lognormal(mean=5, sigma=1, size=n_genes)
    means = np.tile(base[:, None], (1, n_samples))
    means[:n_changed, n_per_group:] *= fold_change

    dispersion = 0.1
    n = 1.0 / dispersion
    counts = rng.negative_binomial(n, n / (n + means)).astype(float)
    counts[counts.sum(axis=1) == 0, 0] = 1

    sample_ids = pd.Index([f"S{i:02d}" for i in range(n_samples)])
    feature_ids = pd.Index([f"ENSG{i:08d}" for i in range(n_genes)])

    sample_metadata = pd.DataFrame(
        {
            "condition": ["normal"] * n_per_group + ["tumor"] * n_per_group,
            "tissue_type": ["Solid Tissue Normal"] * n_per_group + ["Primary Tumor"] * n_per_group,
        },
        index=sample_ids,
    )
    feature_metadata = pd.DataFrame(
        {
            "gene_name": [f"GENE{i}" for i in range(n_genes)],
            "gene_type": ["protein_coding" if i % 4 else "lncRNA" for i in range(n_genes)],
        },
        index=feature_ids,
    )

    return BioMatrix(
        data=counts,
        feature_ids=feature_ids,
        sample_ids=sample_ids,
        sample_metadata=sample_metadata,
        feature_metadata=feature_metadata,
    )


@pytest.fixture
def counts_matrix():
    """200 genes × 8 samples; GENE0-GENE19 are 4x higher in tumour."""
    return generate_count_matrix()


@pytest.fixture(scope="session")
def session_counts():
    """Same counts as ``counts_matrix``, shared by the slower model-fitting tests."""
    return generate_count_matrix()


@pytest.fixture
def small_matrix():
    """
    4 features × 6 samples (3 normal, 3 tumour), one feature all-zero.

    ENSG_ZERO is zero in every sample and must not survive filtering.
    """
    data = np.array([
        [10, 12, 11, 40, 42, 39],
        [0, 0, 0, 0, 0, 0],
        [5, 3, 4, 6, 2, 5],
        [100, 90, 95, 20, 25, 22],
    ], dtype=float)
    sample_ids = pd.Index([f"S{i}" for i in range(1, 7)])
    feature_ids = pd.Index(["ENSG_A", "ENSG_ZERO", "ENSG_B", "ENSG_C"])
    return BioMatrix(
        data=data,
        feature_ids=feature_ids,
        sample_ids=sample_ids,
        sample_metadata=pd.DataFrame(
            {"condition": ["normal"] * 3 + ["tumor"] * 3},
            index=sample_ids,
        ),
        feature_metadata=pd.DataFrame(
            {"gene_name": ["A", "ZERO", "B", "C"]},
            index=feature_ids,
        ),
    )


@pytest.fixture
def hallmark_like_sets():
    """In-memory gene sets matched to generate_count_matrix gene names."""
    return {
        "TUMOR_UP": [f"GENE{i}" for i in range(20)],
        "BACKGROUND": [f"GENE{i}" for i in range(100, 130)],
        "NO_OVERLAP": [f"OTHER{i}" for i in range(30)],
    }
