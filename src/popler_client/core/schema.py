from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Literal, Optional, Tuple

import logging

import pandas as pd
from pandas.api import types as ptypes

from popler_client.config import PROJECT_KEY_COL

logger = logging.getLogger(__name__)


ColumnCategory = Literal["key", "text", "numeric", "temporal", "spatial", "taxonomy", "other"]


# Pseudo-column accepted in `vars`; expands to the taxonomy columns of the active mode.
TAXONOMY_ALIAS = "taxonomy"


# ---------------------------------------------------------------------------
# Default view (the 27 standard columns, in display order)
# ---------------------------------------------------------------------------

DEFAULT_VARS: Tuple[str, ...] = (
    "title", PROJECT_KEY_COL, "lterid",
    "datatype",
    "structured_data",
    "studytype",
    "duration_years", "community", "studystartyr", "studyendyr",
    "structured_type_1", "structured_type_2", "structured_type_3",
    "structured_type_4",
    "treatment_type_1", "treatment_type_2", "treatment_type_3",
    "lat_lter", "lng_lter",
    "sppcode", "species", "kingdom", "phylum", "class", "order",
    "family", "genus",
)

# Full taxonomic hierarchy, in rank order
TAXONOMY_FULL: Tuple[str, ...] = (
    "sppcode", "kingdom", "subkingdom", "infrakingdom",
    "superdivision", "division", "subdivision",
    "superphylum", "phylum", "subphylum", "class",
    "subclass", "order", "family", "genus", "species",
    "common_name", "authority",
)


def _known_categories() -> Dict[str, ColumnCategory]:
    cats: Dict[str, ColumnCategory] = {PROJECT_KEY_COL: "key"}

    for name in (
        "title", "metalink", "doi", "doi_citation", "lterid", "lter_name",
        "datatype", "structured_data", "studytype", "community",
        "samplefreq", "derived", "authors", "authors_contact",
        "currently_funded", "homepage", "current_phase", "data_type_units",
    ):
        cats[name] = "text"
    for i in range(1, 5):
        cats[f"structured_type_{i}"] = "text"
        cats[f"structured_type_{i}_units"] = "text"
    for i in range(1, 4):
        cats[f"treatment_type_{i}"] = "text"

    for name in ("duration_years", "studystartyr", "studyendyr", "sitestartyr", "siteendyr"):
        cats[name] = "temporal"

    for name in ("lat_lter", "lng_lter", "tot_spat_rep", "n_spat_levs"):
        cats[name] = "spatial"
    for i in range(1, 6):
        for suffix in ("label", "extent", "extent_units", "number_of_unique_reps"):
            cats[f"spatial_replication_level_{i}_{suffix}"] = "spatial"

    for name in TAXONOMY_FULL:
        cats[name] = "taxonomy"

    return cats


KNOWN_CATEGORIES: Dict[str, ColumnCategory] = _known_categories()


@dataclass(frozen=True)
class ColumnSpec:
    name: str
    category: ColumnCategory
    in_default_view: bool
    textual: bool


class SchemaDescriptor:
    """
    Column name -> category mapping for one metadata table.

    Built from the live table so that columns added remotely are still
    selectable (tagged "other"); the category of known columns never depends on
    the data.
    """

    def __init__(self, specs: Iterable[ColumnSpec]) -> None:
        self._specs: Dict[str, ColumnSpec] = {s.name: s for s in specs}

    @classmethod
    def from_table(cls, df: pd.DataFrame) -> "SchemaDescriptor":
        specs: List[ColumnSpec] = []
        for name in df.columns:
            name = str(name)
            category = KNOWN_CATEGORIES.get(name, "other")
            if category == "other":
                logger.debug("Column %s is not in the known popler schema; tagged as other.", name)
            specs.append(
                ColumnSpec(
                    name=name,
                    category=category,
                    in_default_view=name in DEFAULT_VARS,
                    textual=_is_textual(df[name]),
                )
            )
        return cls(specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def columns(self) -> List[str]:
        return list(self._specs)

    def spec(self, name: str) -> Optional[ColumnSpec]:
        return self._specs.get(name)

    def category(self, name: str) -> Optional[ColumnCategory]:
        s = self._specs.get(name)
        return s.category if s else None

    def unknown(self, names: Iterable[str]) -> List[str]:
        """Names that are not columns of this schema (order kept, no repeats)."""
        seen: List[str] = []
        for n in names:
            if n not in self._specs and n not in seen:
                seen.append(n)
        return seen

    def textual_columns(self) -> List[str]:
        return [s.name for s in self._specs.values() if s.textual]

    def default_columns(self) -> List[str]:
        # Keep DEFAULT_VARS order, not table order
        return [c for c in DEFAULT_VARS if c in self._specs]

    def taxonomy_columns(self, full_tbl: bool = False) -> List[str]:
        """
        Taxonomy columns consulted by the nester.

        The default mode only treats the ranks of the default view as taxonomy;
        full mode uses the whole hierarchy.
        """
        if full_tbl:
            return [c for c in TAXONOMY_FULL]
        return [c for c in TAXONOMY_FULL if c in DEFAULT_VARS]

    def describe(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(
            [
                {
                    "column": s.name,
                    "category": s.category,
                    "default_view": s.in_default_view,
                    "textual": s.textual,
                }
                for s in self._specs.values()
            ],
            columns=["column", "category", "default_view", "textual"],
        )


def _is_textual(series: pd.Series) -> bool:
    return bool(
        ptypes.is_object_dtype(series)
        or ptypes.is_string_dtype(series)
        or isinstance(series.dtype, pd.CategoricalDtype)
    )


def describe_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    One row per metadata column: its name, category tag, whether it is part of
    the default view and whether keyword search looks at it.
    """
    return SchemaDescriptor.from_table(df).describe()
