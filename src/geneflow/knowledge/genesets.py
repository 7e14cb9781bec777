"""
Reference gene set collections for enrichment analysis.

A GeneSetCollection maps pathway names to sets of gene identifiers. The
workshop uses the MSigDB hallmark collection (category "H" for Homo
sapiens); Enrichr libraries and local GMT files are supported as well.

Sources:
    - MSigDB via gseapy.Msigdb (network)
    - Enrichr libraries via gseapy.get_library (network)
    - GMT files via gseapy's GMT parser
    - In-memory mappings (tests, custom signatures)

Usage:
    collection = GeneSetCollection.from_msigdb(species="human", category="H")
    print(len(collection), "hallmark sets")
    collection["HALLMARK_E2F_TARGETS"]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional

logger = logging.getLogger(__name__)

__all__ = ['GeneSetCollection', 'GeneSetUnavailableError', 'msigdb_collection_name']

DEFAULT_MSIGDB_VERSION = "2023.2"

# Species -> MSigDB release suffix and collection prefix
MSIGDB_SPECIES = {
    "human": ("Hs", ""),
    "homo sapiens": ("Hs", ""),
    "mouse": ("Mm", "m"),
    "mus musculus": ("Mm", "m"),
}


class GeneSetUnavailableError(RuntimeError):
    """Raised when a gene set source cannot be reached or returns nothing."""


def msigdb_collection_name(category: str, species: str = "human") -> str:
    """
    Translate an msigdbr-style category into an MSigDB collection name.

    Examples:
        >>> msigdb_collection_name("H")
        'h.all'
        >>> msigdb_collection_name("C2:CP:KEGG")
        'c2.cp.kegg'
        >>> msigdb_collection_name("H", species="mouse")
        'mh.all'
        >>> msigdb_collection_name("h.all")
        'h.all'
    """
    key = species.strip().lower()
    if key not in MSIGDB_SPECIES:
        raise ValueError(f"Unsupported species '{species}'; choose from {sorted(MSIGDB_SPECIES)}")
    _, prefix = MSIGDB_SPECIES[key]

    name = category.strip().lower().replace(':', '.')
    if '.' in name:
        return name
    if prefix and name.startswith('c'):
        # Mouse collections are M1, M2, ... instead of C1, C2, ...
        name = 'm' + name[1:]
    elif prefix:
        name = prefix + name
    return f"{name}.all"


class GeneSetCollection:
    """
    Immutable mapping from pathway name to a frozenset of gene identifiers.

    Attributes:
        source: Where the sets came from (e.g. "msigdb:h.all@2023.2.Hs")
    """

    def __init__(self, gene_sets: Mapping[str, Iterable[str]], source: str = "custom"):
        sets = {}
        for name, members in gene_sets.items():
            if isinstance(members, str):
                raise TypeError(f"Gene set '{name}' must be a collection of identifiers, got a string")
            sets[str(name)] = frozenset(str(m) for m in members if m is not None and str(m) != '')
        self._gene_sets = sets
        self.source = source

    def __len__(self) -> int:
        return len(self._gene_sets)

    def __iter__(self) -> Iterator[str]:
        return iter(self._gene_sets)

    def __contains__(self, name: object) -> bool:
        return name in self._gene_sets

    def __getitem__(self, name: str) -> frozenset[str]:
        return self._gene_sets[name]

    def __repr__(self) -> str:
        return f"GeneSetCollection({len(self)} sets from {self.source})"

    @property
    def names(self) -> list[str]:
        return list(self._gene_sets)

    def items(self):
        return self._gene_sets.items()

    def sizes(self, universe: Optional[Iterable[str]] = None) -> dict[str, int]:
        """Set sizes, or overlap sizes with ``universe`` when given."""
        if universe is None:
            return {name: len(members) for name, members in self._gene_sets.items()}
        universe = set(universe)
        return {name: len(members & universe) for name, members in self._gene_sets.items()}

    def to_dict(self) -> dict[str, list[str]]:
        """Plain {name: sorted members} mapping (the form gseapy accepts)."""
        return {name: sorted(members) for name, members in self._gene_sets.items()}

    def subset(self, names: Iterable[str]) -> GeneSetCollection:
        names = list(names)
        missing = [n for n in names if n not in self._gene_sets]
        if missing:
            raise KeyError(f"Unknown gene sets: {missing}")
        return GeneSetCollection({n: self._gene_sets[n] for n in names}, source=self.source)

    def to_gmt(self, path: Path) -> Path:
        """Write the collection as a GMT file (name, description, members)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            for name, members in self._gene_sets.items():
                f.write("\t".join([name, self.source, *sorted(members)]) + "\n")
        return path

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]], source: str = "custom") -> GeneSetCollection:
        return cls(mapping, source=source)

    @classmethod
    def from_gmt(cls, path: Path) -> GeneSetCollection:
        """
        Load a GMT file (one set per line: name, description, members...).

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file holds no gene sets
        """
        from gseapy.parser import read_gmt

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"GMT file not found: {path}")

        sets = read_gmt(str(path))
        if not sets:
            raise ValueError(f"GMT file contains no gene sets: {path}")

        logger.info(f"Loaded {len(sets)} gene sets from {path}")
        return cls(sets, source=f"gmt:{path.name}")

    @classmethod
    def from_msigdb(
        cls,
        species: str = "human",
        category: str = "H",
        version: Optional[str] = None,
    ) -> GeneSetCollection:
        """
        Download an MSigDB collection.

        Args:
            species: "human" or "mouse"
            category: msigdbr-style category ("H", "C2", "C2:CP:KEGG") or
                MSigDB collection name ("h.all", "c2.cp.kegg")
            version: MSigDB release (default: 2023.2)

        Raises:
            GeneSetUnavailableError: If MSigDB cannot be reached or has no
                such collection
        """
        import gseapy

        suffix, _ = MSIGDB_SPECIES.get(species.strip().lower(), (None, None))
        collection = msigdb_collection_name(category, species)
        dbver = f"{version or DEFAULT_MSIGDB_VERSION}.{suffix}"

        logger.info(f"Fetching MSigDB collection {collection} ({dbver})")
        try:
            sets = gseapy.Msigdb().get_gmt(category=collection, dbver=dbver)
        except Exception as e:
            raise GeneSetUnavailableError(
                f"Could not download MSigDB collection '{collection}' ({dbver}): {e}"
            ) from e

        if not sets:
            raise GeneSetUnavailableError(
                f"MSigDB returned no gene sets for collection '{collection}' ({dbver})"
            )
        return cls(sets, source=f"msigdb:{collection}@{dbver}")

    @classmethod
    def from_enrichr(cls, library: str, organism: str = "Human") -> GeneSetCollection:
        """
        Download an Enrichr library (e.g. "MSigDB_Hallmark_2020").

        Raises:
            GeneSetUnavailableError: If Enrichr cannot be reached or the
                library is empty
        """
        import gseapy

        logger.info(f"Fetching Enrichr library {library} ({organism})")
        try:
            sets = gseapy.get_library(name=library, organism=organism)
        except Exception as e:
            raise GeneSetUnavailableError(f"Could not download Enrichr library '{library}': {e}") from e

        if not sets:
            raise GeneSetUnavailableError(f"Enrichr library '{library}' contains no gene sets")
        return cls(sets, source=f"enrichr:{library}")
