"""
Tests for preranked GSEA.

Real gseapy runs use a small ranked list and few permutations; the column
mapping and FDR handling are also checked against a stubbed prerank result.
"""

from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest

from geneflow.knowledge.genesets import GeneSetCollection
from geneflow.stats.enrichment import ENRICHMENT_COLUMNS, run_preranked_gsea


@pytest.fixture
def ranked():
    """200 genes; GENE0-GENE19 carry the highest scores, GENE180-199 the lowest."""
    rng = np.random.default_rng(7)
    scores = rng.normal(0, 0.5, size=200)
    scores[:20] = np.linspace(6, 4, 20)
    scores[180:] = np.linspace(-4, -6, 20)
    return pd.Series(scores, index=[f"GENE{i}" for i in range(200)])


@pytest.fixture
def gene_sets():
    return {
        "TOP": [f"GENE{i}" for i in range(20)],
        "BOTTOM": [f"GENE{i}" for i in range(180, 200)],
        "MIDDLE": [f"GENE{i}" for i in range(60, 90)],
        "TINY": ["GENE0", "GENE1", "GENE2"],
        "NO_OVERLAP": [f"OTHER{i}" for i in range(25)],
    }


class TestPrerankedGSEA:
    """Test enrichment on a ranked list with planted signal."""

    @pytest.fixture
    def table(self, ranked, gene_sets):
        return run_preranked_gsea(ranked, gene_sets, permutations=200, min_size=5, max_size=100, seed=1)

    def test_columns(self, table):
        assert list(table.columns) == ENRICHMENT_COLUMNS
        assert len(table) == 5

    def test_top_set_positively_enriched(self, table):
        top = table.set_index("pathway").loc["TOP"]
        assert top["es"] > 0
        assert top["nes"] > 0
        assert top["pvalue"] < 0.05
        assert set(top["leading_edge"]) <= {f"GENE{i}" for i in range(20)}
        assert len(top["leading_edge"]) > 0

    def test_bottom_set_negatively_enriched(self, table):
        bottom = table.set_index("pathway").loc["BOTTOM"]
        assert bottom["es"] < 0
        assert bottom["pvalue"] < 0.05

    def test_out_of_bounds_sets_undefined_and_last(self, table):
        """Sets outside [min_size, max_size] report NaN statistics after every tested set."""
        assert list(table["defined"]) == [True, True, True, False, False]
        undefined = table[~table["defined"]]
        assert set(undefined["pathway"]) == {"TINY", "NO_OVERLAP"}
        assert undefined[["es", "nes", "pvalue", "padj"]].isna().all().all()
        assert undefined.set_index("pathway").loc["NO_OVERLAP", "size"] == 0
        assert undefined.set_index("pathway").loc["TINY", "size"] == 3

    def test_tested_sets_ordered_by_pvalue(self, table):
        tested = table[table["defined"]]
        assert tested["pvalue"].is_monotonic_increasing
        assert (tested["padj"] >= tested["pvalue"]).all()

    def test_same_seed_reproducible(self, ranked, gene_sets, table):
        again = run_preranked_gsea(ranked, gene_sets, permutations=200, min_size=5, max_size=100, seed=1)
        pd.testing.assert_series_equal(table["pvalue"], again["pvalue"])

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_random_set_weaker_than_planted(self, ranked, gene_sets, seed):
        table = run_preranked_gsea(ranked, gene_sets, permutations=100, min_size=5, max_size=100, seed=seed)
        by_name = table.set_index("pathway")
        middle = by_name.loc["MIDDLE"]
        assert middle["pvalue"] > by_name.loc["TOP", "pvalue"]
        assert abs(middle["nes"]) < abs(by_name.loc["TOP", "nes"])
        assert abs(middle["nes"]) < abs(by_name.loc["BOTTOM", "nes"])

    def test_top_scoring_half_enriched(self, ranked):
        top_half = list(ranked.sort_values(ascending=False).index[:len(ranked) // 2])
        table = run_preranked_gsea(ranked, {"TOP_HALF": top_half}, permutations=200,
                                   min_size=5, max_size=500, seed=3)
        row = table.iloc[0]
        assert row["pathway"] == "TOP_HALF"
        assert row["es"] > 0
        assert row["pvalue"] < 0.05

    def test_random_sets_not_significant(self, ranked):
        """Sets drawn at random from the ranked genes follow the permutation null."""
        genes = ranked.index.to_numpy()
        random_sets = {
            f"RANDOM_{seed}": list(np.random.default_rng(seed).choice(genes, size=40, replace=False))
            for seed in range(10)
        }
        table = run_preranked_gsea(ranked, random_sets, permutations=200, min_size=5, max_size=500, seed=11)

        assert table["defined"].all()
        assert (table["pvalue"] > 0.05).sum() >= 8

    def test_accepts_collection(self, ranked, gene_sets):
        collection = GeneSetCollection(gene_sets).subset(["TOP", "NO_OVERLAP"])
        table = run_preranked_gsea(ranked, collection, permutations=50, min_size=5)
        assert list(table["pathway"]) == ["TOP", "NO_OVERLAP"]


class TestDegenerateInputs:
    """Test inputs that must not crash the stage."""

    def test_no_overlap_at_all(self, ranked):
        table = run_preranked_gsea(ranked, {"A": ["X1", "X2"], "B": ["Y1"]}, permutations=10)

        assert list(table["pathway"]) == ["A", "B"]
        assert not table["defined"].any()
        assert table["pvalue"].isna().all()

    def test_empty_ranking(self, gene_sets):
        table = run_preranked_gsea(pd.Series(dtype=float), gene_sets, permutations=10)
        assert len(table) == len(gene_sets)
        assert not table["defined"].any()

    def test_duplicated_identifiers_rejected(self):
        ranked = pd.Series([1.0, 2.0], index=["TP53", "TP53"])
        with pytest.raises(ValueError, match="duplicated"):
            run_preranked_gsea(ranked, {"A": ["TP53"]}, min_size=1)

    def test_invalid_bounds(self, ranked, gene_sets):
        with pytest.raises(ValueError, match="min_size"):
            run_preranked_gsea(ranked, gene_sets, min_size=50, max_size=10)

    def test_invalid_permutations(self, ranked, gene_sets):
        with pytest.raises(ValueError, match="permutations"):
            run_preranked_gsea(ranked, gene_sets, permutations=0)


class TestResultMapping:
    """Test translation of gseapy's result table."""

    def test_padj_is_benjamini_hochberg_over_tested_sets(self, monkeypatch, ranked):
        res2d = pd.DataFrame({
            "Name": ["prerank"] * 3,
            "Term": ["S1", "S2", "S3"],
            "ES": [0.8, -0.6, 0.2],
            "NES": [2.1, -1.7, 0.5],
            "NOM p-val": [0.01, 0.02, 0.6],
            "Lead_genes": ["GENE0;GENE1", "GENE199", ""],
        })
        calls = {}

        def fake_prerank(**kwargs):
            calls.update(kwargs)
            return SimpleNamespace(res2d=res2d)

        monkeypatch.setattr("gseapy.prerank", fake_prerank)

        sets = {name: [f"GENE{i}" for i in range(j, j + 20)] for j, name in enumerate(["S1", "S2", "S3"])}
        sets["EMPTY"] = ["NOPE"] * 20
        table = run_preranked_gsea(ranked, sets, permutations=100, seed=3)

        assert set(calls["gene_sets"]) == {"S1", "S2", "S3"}
        assert calls["permutation_num"] == 100
        assert calls["seed"] == 3
        assert list(table["pathway"]) == ["S1", "S2", "S3", "EMPTY"]
        np.testing.assert_allclose(table["padj"].iloc[:3], [0.03, 0.03, 0.6])
        assert table["leading_edge"].iloc[0] == ["GENE0", "GENE1"]
        assert table["leading_edge"].iloc[2] == []
        assert not table["defined"].iloc[3]
