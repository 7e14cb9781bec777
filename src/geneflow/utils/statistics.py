"""
Multiple-testing correction shared by the differential and enrichment stages.

Functions:
    fdr_correction: Benjamini-Hochberg / Benjamini-Yekutieli / Bonferroni
        adjustment that leaves undefined (NaN) p-values undefined
"""

from __future__ import annotations

from typing import Literal

import numpy as np
from numpy.typing import ArrayLike, NDArray

__all__ = ['fdr_correction']

_METHODS = {"BH": "fdr_bh", "BY": "fdr_by", "bonferroni": "bonferroni"}


def fdr_correction(
    pvalues: ArrayLike,
    method: Literal["BH", "BY", "bonferroni"] = "BH",
    alpha: float = 0.05,
) -> NDArray[np.float64]:
    """
    Adjust p-values for testing many hypotheses at once.

    Only finite p-values take part in the correction: NaN entries (gene sets
    outside the size bounds, genes DESeq2 refused to test) stay NaN and do
    not inflate the number of tests.

    Args:
        pvalues: Raw p-values.
        method: "BH" (FDR), "BY" (FDR under dependence) or "bonferroni" (FWER).
        alpha: Significance level passed to statsmodels.

    Returns:
        Adjusted p-values, same shape as the input.

    Raises:
        ValueError: If the method is unknown.

    Examples:
        >>> fdr_correction([0.01, 0.04, np.nan, 0.03])
        array([0.03, 0.04,  nan, 0.04])
    """
    from statsmodels.stats.multitest import multipletests

    if method not in _METHODS:
        raise ValueError(f"Unknown correction method {method!r}; choose from {sorted(_METHODS)}")

    pvalues = np.asarray(pvalues, dtype=float)
    adjusted = np.full_like(pvalues, np.nan)

    tested = ~np.isnan(pvalues)
    if not tested.any():
        return adjusted

    _, adjusted[tested], _, _ = multipletests(pvalues[tested], alpha=alpha, method=_METHODS[method])
    return adjusted
