from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import logging

import pandas as pd

from popler_client import config
from popler_client.config import PROJECT_KEY_COL
from popler_client.core.data_loader import fetch_summary_table
from popler_client.core.persistence import load_table, save_table
from popler_client.core.schema import SchemaDescriptor

logger = logging.getLogger(__name__)

# Process-wide cache. The first call to load_metadata_table() fills it
# (from the on-disk cache when fresh, else from the popler API); every later
# call returns the same object until invalidate_metadata_cache() is called.
_SUMMARY_CACHE: Optional[pd.DataFrame] = None
_SCHEMA_CACHE: Optional[SchemaDescriptor] = None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _cache_file() -> Path:
    return Path(config.METADATA_CACHE_FILE)


def _cache_is_fresh(path: Path) -> bool:
    if not path.exists():
        return False
    age_days = (time.time() - path.stat().st_mtime) / 86_400
    if age_days > config.CACHE_MAX_AGE_DAYS:
        logger.info("Metadata cache %s is %.1f days old; refetching.", path, age_days)
        return False
    return True


def _normalize_summary(df: pd.DataFrame) -> pd.DataFrame:
    """
    Enforce the primary-key invariant on a freshly fetched table.
    """
    out = df.copy()
    out[PROJECT_KEY_COL] = pd.to_numeric(out[PROJECT_KEY_COL], errors="coerce").astype("Int64")

    missing = out[PROJECT_KEY_COL].isna()
    if missing.any():
        logger.warning("Dropping %s summary rows without a %s.", int(missing.sum()), PROJECT_KEY_COL)
        out = out[~missing]

    # The summary table repeats a project once per taxon; the key is unique
    # per (project, taxon) row, not per row, so no dedup on the key alone.
    return out.reset_index(drop=True)


def _read_or_fetch() -> pd.DataFrame:
    path = _cache_file()
    if _cache_is_fresh(path):
        logger.info("Loading metadata table from cache: %s", path)
        return load_table(path)

    df = _normalize_summary(fetch_summary_table())
    try:
        save_table(df, path)
    except OSError as exc:
        # A read-only cache dir should not block browsing
        logger.warning("Could not write metadata cache %s: %s", path, exc)
    return df


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_metadata_table(refresh: bool = False) -> pd.DataFrame:
    """
    Return the popler project-metadata (summary) table, cached in memory.

    refresh=True bypasses both the in-memory and on-disk caches.
    """
    global _SUMMARY_CACHE, _SCHEMA_CACHE
    if _SUMMARY_CACHE is not None and not refresh:
        return _SUMMARY_CACHE

    if refresh:
        invalidate_metadata_cache(remove_file=True)

    df = _read_or_fetch()
    logger.info("Metadata table ready: %s rows, %s columns", df.shape[0], df.shape[1])
    _SUMMARY_CACHE = df
    _SCHEMA_CACHE = None
    return df


def load_metadata_schema(refresh: bool = False) -> SchemaDescriptor:
    """
    Schema descriptor of the cached metadata table.
    """
    global _SCHEMA_CACHE
    if _SCHEMA_CACHE is not None and not refresh:
        return _SCHEMA_CACHE

    _SCHEMA_CACHE = SchemaDescriptor.from_table(load_metadata_table(refresh=refresh))
    return _SCHEMA_CACHE


def set_metadata_table(df: pd.DataFrame) -> None:
    """
    Install an already-loaded table as the process-wide copy, e.g. one
    restored with load_table() for offline work.
    """
    global _SUMMARY_CACHE, _SCHEMA_CACHE
    if PROJECT_KEY_COL not in df.columns:
        raise ValueError(f"Metadata table must contain the '{PROJECT_KEY_COL}' column.")
    _SUMMARY_CACHE = df
    _SCHEMA_CACHE = None


def invalidate_metadata_cache(remove_file: bool = False) -> None:
    """
    Forget the in-memory table; with remove_file=True also delete the on-disk
    copy so the next access goes to the network.
    """
    global _SUMMARY_CACHE, _SCHEMA_CACHE
    _SUMMARY_CACHE = None
    _SCHEMA_CACHE = None

    if remove_file:
        path = _cache_file()
        if path.exists():
            path.unlink()
            logger.info("Removed metadata cache file %s", path)


def refresh_metadata_table() -> pd.DataFrame:
    return load_metadata_table(refresh=True)
