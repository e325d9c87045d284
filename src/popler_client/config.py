from __future__ import annotations

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------

# Root of the project (repo root)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Local cache for the metadata table and saved downloads.
# Override with POPLER_CACHE_DIR when the package is installed read-only.
CACHE_DIR = Path(
    os.getenv("POPLER_CACHE_DIR", str(PROJECT_ROOT / "data" / "cache"))
).expanduser()

METADATA_CACHE_FILE = CACHE_DIR / "summary_table.pkl.gz"
REPORT_DIR = CACHE_DIR / "reports"

# A cached metadata table older than this is refetched on first access.
CACHE_MAX_AGE_DAYS = float(os.getenv("POPLER_CACHE_MAX_AGE_DAYS", "30"))

# ---------------------------------------------------------------------------
# App identity
# ---------------------------------------------------------------------------

APP_NAME = "Popler Browser"
APP_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Remote popler API
#
# The API exposes two read-only resources:
#   {POPLER_API_URL}/{POPLER_SUMMARY_ENDPOINT}  -> one row per project
#   {POPLER_API_URL}/{POPLER_DATA_ENDPOINT}     -> observations, filtered by
#                                                 proj_metadata_key, paged
#                                                 with offset/limit
# Both answer with {"success": true, "result": {"records": [...]}}.
# ---------------------------------------------------------------------------

POPLER_API_URL = os.getenv("POPLER_API_URL", "").strip().rstrip("/")
POPLER_SUMMARY_ENDPOINT = os.getenv("POPLER_SUMMARY_ENDPOINT", "summary").strip("/ ")
POPLER_DATA_ENDPOINT = os.getenv("POPLER_DATA_ENDPOINT", "data").strip("/ ")

HTTP_TIMEOUT_SECONDS = int(os.getenv("POPLER_TIMEOUT_SECONDS", "90"))
PAGE_SIZE = int(os.getenv("POPLER_PAGE_SIZE", "10000"))

# Primary key of the metadata table
PROJECT_KEY_COL = "proj_metadata_key"
COVARIATES_COL = "covariates"
