"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterator, List

import pandas as pd
import pytest

from popler_client import config
from popler_client.core import metadata_loader

_PROJECTS: Dict[int, Dict[str, Any]] = {
    1: {
        "title": "Sevilleta grassland plant cover",
        "lterid": "SEV",
        "datatype": "cover",
        "studytype": "obs",
        "community": "yes",
        "studystartyr": 1989,
        "studyendyr": 2012,
        "lat_lter": 34.35,
        "lng_lter": -106.88,
        "metalink": "https://portal.lternet.edu/sev-1",
        "doi": "10.6073/pasta.0001",
    },
    2: {
        "title": "Niwot Ridge alpine plant survey",
        "lterid": "NWT",
        "datatype": "count",
        "studytype": "obs",
        "community": "yes",
        "studystartyr": 1995,
        "studyendyr": 2010,
        "lat_lter": 40.05,
        "lng_lter": -105.59,
        "metalink": None,
        "doi": None,
    },
    3: {
        "title": "Parasite loads in kelp forest fish",
        "lterid": "SBC",
        "datatype": "count",
        "studytype": "exp",
        "community": "no",
        "studystartyr": 2000,
        "studyendyr": 2015,
        "lat_lter": 34.41,
        "lng_lter": -119.84,
        "metalink": "https://portal.lternet.edu/sbc-3",
        "doi": None,
    },
    4: {
        "title": "Black grama demography",
        "lterid": "SEV",
        "datatype": "individual",
        "studytype": "obs",
        "community": "no",
        "studystartyr": 1999,
        "studyendyr": 2008,
        "lat_lter": 34.35,
        "lng_lter": -106.88,
        "metalink": None,
        "doi": None,
    },
    5: {
        "title": "Jornada bluegrass transects",
        "lterid": "JRN",
        "datatype": "cover",
        "studytype": "obs",
        "community": "yes",
        "studystartyr": 1982,
        "studyendyr": 2016,
        "lat_lter": 32.62,
        "lng_lter": -106.74,
        "metalink": None,
        "doi": "10.6073/pasta.0005",
    },
}

# (project, sppcode, kingdom, phylum, class, order, family, genus, species, common_name)
_TAXA = [
    (1, "POFE", "Plantae", "Magnoliophyta", "Liliopsida", "Poales", "Poaceae", "Poa", "fendleriana", "muttongrass"),
    (1, "BOGR", "Plantae", "Magnoliophyta", "Liliopsida", "Poales", "Poaceae", "Bouteloua", "gracilis", "blue grama"),
    (2, "POFE", "Plantae", "Magnoliophyta", "Liliopsida", "Poales", "Poaceae", "Poa", "fendleriana", "muttongrass"),
    (3, "SEMY", "Animalia", "Chordata", "Actinopterygii", "Scorpaeniformes", "Sebastidae", "Sebastes", "mystinus", "blue rockfish"),
    (3, "ANSP", "Animalia", "Platyhelminthes", "Trematoda", None, None, None, None, None),
    (4, "BOER", "Plantae", "Magnoliophyta", "Liliopsida", "Poales", "Poaceae", "Bouteloua", "eriopoda", "black grama"),
    (5, "POFE", "Plantae", "Magnoliophyta", "Liliopsida", "Poales", "Poaceae", "Poa", "fendleriana", "muttongrass"),
    (5, "POPR", "Plantae", "Magnoliophyta", "Liliopsida", "Poales", "Poaceae", "Poa", "pratensis", "Kentucky bluegrass"),
    (5, "BOER", "Plantae", "Magnoliophyta", "Liliopsida", "Poales", "Poaceae", "Bouteloua", "eriopoda", "black grama"),
]


def make_summary_table() -> pd.DataFrame:
    """One row per (project, taxon), as the popler summary endpoint returns it."""
    rows: List[Dict[str, Any]] = []
    for key, sppcode, kingdom, phylum, klass, order, family, genus, species, common in _TAXA:
        p = _PROJECTS[key]
        rows.append(
            {
                "title": p["title"],
                "proj_metadata_key": key,
                "lterid": p["lterid"],
                "datatype": p["datatype"],
                "structured_data": "no",
                "studytype": p["studytype"],
                "duration_years": p["studyendyr"] - p["studystartyr"],
                "community": p["community"],
                "studystartyr": p["studystartyr"],
                "studyendyr": p["studyendyr"],
                "structured_type_1": None,
                "structured_type_2": None,
                "structured_type_3": None,
                "structured_type_4": None,
                "treatment_type_1": "grazing" if key == 4 else None,
                "treatment_type_2": None,
                "treatment_type_3": None,
                "lat_lter": p["lat_lter"],
                "lng_lter": p["lng_lter"],
                "sppcode": sppcode,
                "species": species,
                "kingdom": kingdom,
                "phylum": phylum,
                "class": klass,
                "order": order,
                "family": family,
                "genus": genus,
                "subkingdom": None,
                "common_name": common,
                "authority": None,
                "metalink": p["metalink"],
                "doi": p["doi"],
            }
        )
    df = pd.DataFrame.from_records(rows)
    df["proj_metadata_key"] = df["proj_metadata_key"].astype("Int64")
    return df


@pytest.fixture
def summary_table() -> pd.DataFrame:
    return make_summary_table()


@pytest.fixture(autouse=True)
def isolated_cache(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point every cache path at tmp_path and start with an empty in-memory cache."""
    cache_dir = tmp_path / "cache"
    monkeypatch.setattr(config, "CACHE_DIR", cache_dir)
    monkeypatch.setattr(config, "METADATA_CACHE_FILE", cache_dir / "summary_table.pkl.gz")
    monkeypatch.setattr(config, "REPORT_DIR", cache_dir / "reports")
    monkeypatch.setattr(config, "POPLER_API_URL", "https://popler.test/api")
    metadata_loader.invalidate_metadata_cache()
    yield cache_dir
    metadata_loader.invalidate_metadata_cache()


@pytest.fixture
def installed_summary(summary_table: pd.DataFrame) -> pd.DataFrame:
    """Summary table installed as the process-wide copy (no network)."""
    metadata_loader.set_metadata_table(summary_table)
    return summary_table
