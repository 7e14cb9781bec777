"""
Differential expression with the DESeq2 negative binomial model.

Implements the workshop's tumour-versus-normal comparison:

    counts ~ NB(mean = size_factor * q, dispersion)
    log2(q) ~ group

fitted with pydeseq2 (a Python port of DESeq2) on raw integer counts. One
Wald test is run per non-reference level of the grouping column, giving one
ContrastResult per level.

Relabelling which level is the reference flips the sign of every log2 fold
change and leaves magnitudes and p-values unchanged, because the design
matrices of the two parameterizations span the same space.

References:
    - Love, Huber & Anders (2014) Genome Biology 15:550
    - Muzellec et al. (2023) PyDESeq2. Bioinformatics 39(9):btad547
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence

import numpy as np
import pandas as pd

from geneflow.core.biomatrix import BioMatrix

logger = logging.getLogger(__name__)

__all__ = [
    'DifferentialExpressionError',
    'ContrastResult',
    'DifferentialResult',
    'run_differential_expression',
    'rank_features',
]

RESULT_COLUMNS = ['baseMean', 'log2FoldChange', 'lfcSE', 'stat', 'pvalue', 'padj']

# Factor name used inside the pydeseq2 design formula
_FACTOR = "group"


class DifferentialExpressionError(ValueError):
    """Raised when counts or the sample grouping cannot support a DESeq2 fit."""


@dataclass
class ContrastResult:
    """Per-feature statistics for one test level against the reference level.

    Attributes:
        test_level: Level whose expression is compared
        reference_level: Baseline level (positive log2FoldChange = higher in test_level)
        table: One row per feature with baseMean, log2FoldChange, lfcSE,
            stat, pvalue, padj and significant
        alpha: Adjusted p-value threshold for ``significant``
        feature_metadata: Feature annotations, for mapping ids to symbols
    """

    test_level: str
    reference_level: str
    table: pd.DataFrame
    alpha: float = 0.05
    feature_metadata: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def name(self) -> str:
        return f"{self.test_level}_vs_{self.reference_level}"

    @property
    def n_tested(self) -> int:
        return int(self.table['pvalue'].notna().sum())

    @property
    def n_significant(self) -> int:
        return int(self.table['significant'].sum())

    @property
    def n_up(self) -> int:
        return int((self.table['significant'] & (self.table['log2FoldChange'] > 0)).sum())

    @property
    def n_down(self) -> int:
        return int((self.table['significant'] & (self.table['log2FoldChange'] < 0)).sum())

    def significant_features(self) -> list[str]:
        return self.table.index[self.table['significant']].tolist()

    def top(self, n: int = 10, by: str = 'padj') -> pd.DataFrame:
        """The n features with the smallest ``by`` value (NaN last)."""
        return self.table.sort_values(by, na_position='last', kind='stable').head(n)


@dataclass
class DifferentialResult:
    """All contrasts of one differential expression run.

    Attributes:
        contrasts: {contrast name: ContrastResult}, in test-level order
        group_column: Sample annotation column that defined the groups
        reference_level: Baseline level shared by all contrasts
        alpha: Significance threshold on padj
    """

    contrasts: dict[str, ContrastResult]
    group_column: str
    reference_level: str
    alpha: float = 0.05

    def __getitem__(self, name: str) -> ContrastResult:
        return self.contrasts[name]

    def __iter__(self) -> Iterator[ContrastResult]:
        return iter(self.contrasts.values())

    def __len__(self) -> int:
        return len(self.contrasts)

    @property
    def is_empty(self) -> bool:
        return all(len(c.table) == 0 for c in self.contrasts.values())

    @property
    def contrast_names(self) -> list[str]:
        return list(self.contrasts)

    def summary(self) -> pd.DataFrame:
        """One row per contrast: features tested, significant, up, down."""
        rows = [
            {
                'contrast': c.name,
                'n_features': len(c.table),
                'n_tested': c.n_tested,
                'n_significant': c.n_significant,
                'n_up': c.n_up,
                'n_down': c.n_down,
            }
            for c in self
        ]
        return pd.DataFrame(
            rows, columns=['contrast', 'n_features', 'n_tested', 'n_significant', 'n_up', 'n_down']
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Long table of every contrast with feature_id and contrast columns."""
        frames = []
        for c in self:
            frame = c.table.reset_index()
            frame.insert(1, 'contrast', c.name)
            frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=['feature_id', 'contrast', *RESULT_COLUMNS, 'significant'])
        return pd.concat(frames, ignore_index=True)


def _empty_table() -> pd.DataFrame:
    table = pd.DataFrame(columns=RESULT_COLUMNS, dtype=float)
    table['significant'] = pd.Series(dtype=bool)
    table.index.name = 'feature_id'
    return table


def _validate_counts(matrix: BioMatrix) -> None:
    data = matrix.data
    if np.isnan(data).any():
        raise DifferentialExpressionError("Counts contain NaN values; DESeq2 needs complete counts")
    if (data < 0).any():
        raise DifferentialExpressionError(
            f"Counts contain {int((data < 0).sum())} negative values; DESeq2 needs raw counts"
        )
    if not np.all(data == np.round(data)):
        raise DifferentialExpressionError(
            "Counts contain non-integer values; DESeq2 needs raw counts, not normalized "
            "or log-transformed expression"
        )

    all_zero = ~data.any(axis=1)
    if all_zero.any():
        examples = list(matrix.feature_ids[all_zero][:3])
        raise DifferentialExpressionError(
            f"{int(all_zero.sum())} features have zero counts in every sample (e.g. {examples}); "
            "remove them with ZeroVarianceFilter or PrevalenceFilter first"
        )


def _resolve_levels(
    groups: pd.Series,
    group_column: str,
    reference_level: str,
    test_levels: Optional[Sequence[str]],
) -> list[str]:
    if groups.isna().any():
        raise DifferentialExpressionError(
            f"{int(groups.isna().sum())} samples have no value in '{group_column}'; "
            "filter them out before testing"
        )

    present = list(dict.fromkeys(groups.astype(str)))
    if reference_level not in present:
        raise DifferentialExpressionError(
            f"Reference level '{reference_level}' not found in '{group_column}'; "
            f"levels present: {present}"
        )

    if test_levels is None:
        levels = [level for level in present if level != reference_level]
    else:
        levels = [str(level) for level in test_levels]
        empty = [level for level in levels if level not in present]
        if empty:
            raise DifferentialExpressionError(
                f"Levels {empty} of '{group_column}' have no samples; levels present: {present}"
            )
        if reference_level in levels:
            raise DifferentialExpressionError(
                f"Reference level '{reference_level}' cannot also be a test level"
            )

    if not levels:
        raise DifferentialExpressionError(
            f"'{group_column}' has no level besides the reference '{reference_level}'"
        )
    return levels


def run_differential_expression(
    matrix: BioMatrix,
    group_column: str,
    reference_level: str,
    test_levels: Optional[Sequence[str]] = None,
    alpha: float = 0.05,
    n_cpus: int = 1,
) -> DifferentialResult:
    """
    Test every non-reference level of a sample grouping against the reference.

    Args:
        matrix: Raw integer counts (features × samples) with the grouping
            column in sample_metadata
        group_column: Sample annotation column defining the groups
        reference_level: Baseline level
        test_levels: Levels to compare (default: every other level present)
        alpha: padj threshold for ``significant``; also pydeseq2's
            independent-filtering target
        n_cpus: Worker processes for pydeseq2's inference

    Returns:
        DifferentialResult with one ContrastResult per test level. A matrix
        with no features or no samples gives an empty result.

    Raises:
        DifferentialExpressionError: If counts are negative, non-integer or
            NaN, a feature is zero in every sample, the grouping column is
            missing, or a level is absent

    Examples:
        >>> result = run_differential_expression(
        ...     counts, group_column="condition", reference_level="normal"
        ... )
        >>> result["tumor_vs_normal"].top(10)
    """
    if matrix.is_empty:
        logger.warning(
            f"Differential expression on empty matrix "
            f"({matrix.n_features} features × {matrix.n_samples} samples); returning empty result"
        )
        levels = [str(level) for level in test_levels] if test_levels else []
        return DifferentialResult(
            contrasts={
                f"{level}_vs_{reference_level}": ContrastResult(
                    level, reference_level, _empty_table(), alpha, matrix.feature_metadata
                )
                for level in levels
            },
            group_column=group_column,
            reference_level=reference_level,
            alpha=alpha,
        )

    if group_column not in matrix.sample_metadata.columns:
        raise DifferentialExpressionError(
            f"Grouping column '{group_column}' not found in sample metadata; "
            f"available: {list(matrix.sample_metadata.columns)}"
        )

    reference_level = str(reference_level)
    groups = matrix.sample_metadata[group_column]
    levels = _resolve_levels(groups, group_column, reference_level, test_levels)
    _validate_counts(matrix)

    from pydeseq2.dds import DeseqDataSet
    from pydeseq2.default_inference import DefaultInference
    from pydeseq2.ds import DeseqStats

    # Level codes keep arbitrary labels out of the design formula; the
    # reference sorts first so it is the design's baseline.
    codes = {reference_level: "g0"}
    codes.update({level: f"g{i + 1}" for i, level in enumerate(levels)})

    labels = groups.astype(str)
    keep = labels.isin(list(codes)).to_numpy()
    if not keep.all():
        logger.info(f"Excluding {int((~keep).sum())} samples outside the tested levels")

    counts = pd.DataFrame(
        matrix.data[:, keep].T.astype(np.int64),
        index=matrix.sample_ids[keep].astype(str),
        columns=matrix.feature_ids.astype(str),
    )
    design = pd.DataFrame(
        {_FACTOR: labels[keep].map(codes).to_numpy()},
        index=counts.index,
    )

    logger.info(
        f"Fitting DESeq2 on {counts.shape[1]} features × {counts.shape[0]} samples "
        f"(~{group_column}, reference '{reference_level}')"
    )
    inference = DefaultInference(n_cpus=n_cpus)
    try:
        dds = DeseqDataSet(
            counts=counts,
            metadata=design,
            design=f"~{_FACTOR}",
            inference=inference,
            quiet=True,
        )
        dds.deseq2()
    except (ValueError, np.linalg.LinAlgError) as e:
        raise DifferentialExpressionError(f"DESeq2 model fit failed: {e}") from e

    contrasts: dict[str, ContrastResult] = {}
    for level in levels:
        stats = DeseqStats(
            dds,
            contrast=[_FACTOR, codes[level], codes[reference_level]],
            alpha=alpha,
            inference=inference,
            quiet=True,
        )
        stats.summary()

        table = stats.results_df[RESULT_COLUMNS].astype(float).copy()
        table.index = matrix.feature_ids
        table.index.name = 'feature_id'
        table['significant'] = (table['padj'] < alpha).fillna(False).astype(bool)

        contrast = ContrastResult(level, reference_level, table, alpha, matrix.feature_metadata)
        contrasts[contrast.name] = contrast
        logger.info(
            f"{contrast.name}: {contrast.n_significant} significant at padj < {alpha} "
            f"({contrast.n_up} up, {contrast.n_down} down)"
        )

    return DifferentialResult(
        contrasts=contrasts,
        group_column=group_column,
        reference_level=reference_level,
        alpha=alpha,
    )


def rank_features(
    contrast: ContrastResult,
    significant_only: bool = True,
    id_column: Optional[str] = None,
    score_column: str = 'log2FoldChange',
) -> pd.Series:
    """
    Build the ranked gene list used for preranked GSEA.

    Args:
        contrast: Result of one comparison
        significant_only: Keep only features with padj < alpha
        id_column: Feature annotation column to use as identifiers
            (e.g. "gene_name" to match MSigDB symbols). Features without an
            identifier are dropped; for duplicated identifiers the entry with
            the largest absolute score is kept.
        score_column: Table column used as the ranking score

    Returns:
        Series named "score" indexed by identifier, sorted ascending.
        Features with an undefined score are excluded.
    """
    table = contrast.table
    if significant_only:
        table = table[table['significant']]

    scores = table[score_column].astype(float)
    scores = scores[scores.notna()]

    if id_column is not None:
        if id_column not in contrast.feature_metadata.columns:
            raise KeyError(
                f"Column '{id_column}' not found in feature metadata; "
                f"available: {list(contrast.feature_metadata.columns)}"
            )
        ids = contrast.feature_metadata[id_column].reindex(scores.index)
        mapped = ids.notna() & (ids.astype(str).str.strip() != '')
        if (~mapped).any():
            logger.info(f"Dropping {int((~mapped).sum())} features without a '{id_column}' value")
        scores = pd.Series(scores[mapped].to_numpy(), index=ids[mapped].astype(str).to_numpy())

        ranked_by_magnitude = scores.iloc[np.argsort(-scores.abs().to_numpy(), kind='stable')]
        duplicated = ranked_by_magnitude.index.duplicated(keep='first')
        if duplicated.any():
            logger.info(f"Collapsing {int(duplicated.sum())} duplicated '{id_column}' identifiers")
        scores = ranked_by_magnitude[~duplicated]

    ranked = scores.sort_values(kind='stable')
    ranked.name = 'score'
    ranked.index = ranked.index.astype(str)
    ranked.index.name = None
    return ranked
