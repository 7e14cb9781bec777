"""
Preranked gene set enrichment analysis (GSEA).

Tests whether the members of each reference gene set cluster toward the top
or bottom of a ranked gene list, using gseapy's preranked GSEA with gene-set
permutation for significance.

Statistical Model:
    The enrichment score (ES) is the maximum deviation from zero of a
    running sum that steps up (weighted by |score|) at set members and down
    at non-members while walking the list from highest to lowest score.
    ES > 0: set concentrated among up-regulated genes
    ES < 0: set concentrated among down-regulated genes
    NES normalizes ES by the mean of same-signed permutation ES values so
    sets of different size are comparable.

Size bounds:
    Sets whose overlap with the ranked list falls outside
    [min_size, max_size] are not tested. They are reported with NaN
    statistics and defined=False after the tested sets, so a collection
    that does not match the ranked identifiers yields an all-undefined
    table instead of an error.

References:
    - Subramanian et al. (2005) PNAS 102(43):15545-15550
    - Fang et al. (2023) GSEApy. Bioinformatics 39(1):btac757
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Union

import numpy as np
import pandas as pd

from geneflow.knowledge.genesets import GeneSetCollection
from geneflow.utils.statistics import fdr_correction

logger = logging.getLogger(__name__)

__all__ = ['run_preranked_gsea', 'ENRICHMENT_COLUMNS']

ENRICHMENT_COLUMNS = ['pathway', 'size', 'es', 'nes', 'pvalue', 'padj', 'leading_edge', 'defined']

GeneSets = Union[GeneSetCollection, Mapping[str, Iterable[str]]]


def _prepare_ranking(ranked: pd.Series) -> pd.Series:
    ranked = pd.Series(ranked, dtype=float)
    ranked.index = ranked.index.astype(str)

    n_missing = int(ranked.isna().sum())
    if n_missing:
        logger.info(f"Dropping {n_missing} genes with undefined scores from the ranking")
        ranked = ranked.dropna()

    if ranked.index.has_duplicates:
        duplicates = ranked.index[ranked.index.duplicated()].unique()
        raise ValueError(
            f"Ranked list has {len(duplicates)} duplicated identifiers "
            f"(e.g. {list(duplicates[:3])}); collapse them first (rank_features does this)"
        )
    return ranked


def _undefined_rows(names: Iterable[str], sizes: Mapping[str, int]) -> list[dict]:
    return [
        {
            'pathway': name,
            'size': sizes[name],
            'es': np.nan,
            'nes': np.nan,
            'pvalue': np.nan,
            'padj': np.nan,
            'leading_edge': [],
            'defined': False,
        }
        for name in names
    ]


def run_preranked_gsea(
    ranked: pd.Series,
    gene_sets: GeneSets,
    permutations: int = 1000,
    min_size: int = 15,
    max_size: int = 500,
    seed: int = 42,
    threads: int = 1,
) -> pd.DataFrame:
    """
    Run preranked GSEA of a ranked gene list against reference gene sets.

    Args:
        ranked: Gene identifier -> score (e.g. log2 fold change). Order does
            not matter; undefined scores are dropped.
        gene_sets: GeneSetCollection or {pathway: identifiers}
        permutations: Gene-set permutations for the null distribution
        min_size: Minimum overlap between a set and the ranked list
        max_size: Maximum overlap between a set and the ranked list
        seed: Random seed for the permutations
        threads: Worker threads for gseapy

    Returns:
        DataFrame with columns pathway, size, es, nes, pvalue, padj,
        leading_edge, defined; one row per reference set, tested sets by
        ascending pvalue followed by untested sets. padj is
        Benjamini-Hochberg over the tested sets.

    Raises:
        ValueError: If bounds are invalid or the ranking has duplicated ids

    Examples:
        >>> ranked = rank_features(result["tumor_vs_normal"], id_column="gene_name")
        >>> hallmarks = GeneSetCollection.from_msigdb(category="H")
        >>> table = run_preranked_gsea(ranked, hallmarks)
        >>> table[table.padj < 0.05]
    """
    if min_size < 1 or max_size < min_size:
        raise ValueError(f"Need 1 <= min_size <= max_size, got min_size={min_size}, max_size={max_size}")
    if permutations < 1:
        raise ValueError(f"permutations must be positive, got {permutations}")

    collection = gene_sets if isinstance(gene_sets, GeneSetCollection) else GeneSetCollection(gene_sets)
    ranked = _prepare_ranking(ranked)

    sizes = collection.sizes(universe=ranked.index)
    testable = [name for name in collection if min_size <= sizes[name] <= max_size]
    untestable = [name for name in collection if name not in set(testable)]

    logger.info(
        f"GSEA: {len(ranked)} ranked genes, {len(testable)} of {len(collection)} gene sets "
        f"within size bounds [{min_size}, {max_size}]"
    )

    rows: list[dict] = []
    if testable:
        import gseapy

        rnk = pd.DataFrame({'gene': ranked.index, 'score': ranked.to_numpy()})
        prerank = gseapy.prerank(
            rnk=rnk,
            gene_sets={name: sorted(collection[name]) for name in testable},
            permutation_num=permutations,
            min_size=min_size,
            max_size=max_size,
            seed=seed,
            threads=threads,
            outdir=None,
            no_plot=True,
            verbose=False,
        )
        res = prerank.res2d.set_index('Term')

        for name in testable:
            if name not in res.index:
                untestable.append(name)
                continue
            hit = res.loc[name]
            lead = hit.get('Lead_genes', '')
            rows.append({
                'pathway': name,
                'size': sizes[name],
                'es': float(pd.to_numeric(hit['ES'])),
                'nes': float(pd.to_numeric(hit['NES'])),
                'pvalue': float(pd.to_numeric(hit['NOM p-val'])),
                'padj': np.nan,
                'leading_edge': [g for g in str(lead).split(';') if g] if isinstance(lead, str) else [],
                'defined': True,
            })
    else:
        logger.warning("No gene set overlaps the ranked list within the size bounds; nothing tested")

    tested = pd.DataFrame(rows, columns=ENRICHMENT_COLUMNS)
    if len(tested):
        tested['padj'] = fdr_correction(tested['pvalue'].to_numpy(), method="BH")
        tested = tested.sort_values(['pvalue', 'pathway'], kind='stable')

    skipped = pd.DataFrame(_undefined_rows(untestable, sizes), columns=ENRICHMENT_COLUMNS)
    table = pd.concat([tested, skipped], ignore_index=True) if len(skipped) else tested.reset_index(drop=True)

    table['size'] = table['size'].astype(int)
    table['defined'] = table['defined'].astype(bool)
    for column in ['es', 'nes', 'pvalue', 'padj']:
        table[column] = table[column].astype(float)

    n_sig = int((table['padj'] < 0.05).sum())
    logger.info(f"GSEA: {n_sig} gene sets with padj < 0.05")
    return table
