from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import logging

import pandas as pd
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from popler_client import config
from popler_client.config import PROJECT_KEY_COL

logger = logging.getLogger(__name__)


class DataLoaderError(Exception):
    """Raised when popler API calls fail or return unexpected shapes."""


@dataclass
class PoplerPage:
    records: List[Dict[str, Any]]
    total: Optional[int] = None


def _build_retry_session() -> requests.Session:
    """
    Build a requests Session with conservative retries.
    The popler API sits on a single small host and drops connections under load.
    """
    session = requests.Session()

    retry = Retry(
        total=5,
        connect=5,
        read=5,
        status=5,
        backoff_factor=0.6,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=4)
    session.mount("https://", adapter)
    session.mount("http://", adapter)

    return session


_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = _build_retry_session()
    return _SESSION


def _endpoint_url(endpoint: str) -> str:
    base = config.POPLER_API_URL
    if not base:
        raise DataLoaderError(
            "Missing popler API location. Set the POPLER_API_URL environment variable."
        )
    return f"{base}/{endpoint}"


def _popler_get(
    *,
    endpoint: str,
    params: Dict[str, Any],
    timeout_seconds: int,
) -> PoplerPage:
    """
    Single GET against the popler API, unwrapped to its record list.
    """
    url = _endpoint_url(endpoint)
    try:
        resp = _get_session().get(url, params=params, timeout=timeout_seconds)
    except requests.RequestException as exc:
        raise DataLoaderError(f"HTTP error while calling {url}: {exc}") from exc

    if resp.status_code >= 400:
        preview = (resp.text or "")[:200]
        raise DataLoaderError(f"popler API returned status={resp.status_code} for {url}. Preview: {preview}")

    try:
        data = resp.json()
    except ValueError as exc:
        preview = (resp.text or "")[:200]
        raise DataLoaderError(f"Non-JSON response from popler (status={resp.status_code}). Preview: {preview}") from exc

    if not isinstance(data, dict):
        raise DataLoaderError(f"Unexpected popler response type: {type(data)}")

    if not data.get("success", False):
        msg = data.get("error") or data.get("help") or data
        raise DataLoaderError(f"popler API returned success=false. Status={resp.status_code}. Detail={msg}")

    result = data.get("result") or {}
    records = result.get("records") or []
    total = result.get("total")

    if not isinstance(records, list):
        raise DataLoaderError("popler result.records is not a list")

    return PoplerPage(records=records, total=total)


def _paged_records(
    *,
    endpoint: str,
    filters: Optional[Dict[str, Any]],
    max_rows: int,
    page_size: int,
    timeout_seconds: int,
) -> List[Dict[str, Any]]:
    if page_size <= 0:
        page_size = config.PAGE_SIZE

    all_records: List[Dict[str, Any]] = []
    offset = 0

    # Hard cap to avoid runaway loops if the API ignores offset
    hard_page_cap = max(1, (max_rows // page_size) + 5)

    pages = 0
    while True:
        pages += 1
        if pages > hard_page_cap:
            logger.warning("Stopped paging %s after %s pages (cap reached).", endpoint, hard_page_cap)
            break

        limit = min(page_size, max_rows - len(all_records))
        if limit <= 0:
            break

        params: Dict[str, Any] = {"offset": int(offset), "limit": int(limit)}
        if filters:
            params.update(filters)

        page = _popler_get(endpoint=endpoint, params=params, timeout_seconds=timeout_seconds)

        recs = page.records
        if not recs:
            break

        all_records.extend(recs)
        offset += len(recs)

        # Fewer than requested means we reached the end
        if len(recs) < limit:
            break

        if page.total is not None and offset >= int(page.total):
            break

    return all_records


def fetch_summary_table(
    *,
    max_rows: int = 100_000,
    page_size: Optional[int] = None,
    timeout_seconds: Optional[int] = None,
) -> pd.DataFrame:
    """
    Download the full project-metadata (summary) table.

    Raises DataLoaderError when the API is unreachable or the table comes back
    without the primary key column.
    """
    records = _paged_records(
        endpoint=config.POPLER_SUMMARY_ENDPOINT,
        filters=None,
        max_rows=int(max_rows),
        page_size=int(page_size or config.PAGE_SIZE),
        timeout_seconds=int(timeout_seconds or config.HTTP_TIMEOUT_SECONDS),
    )
    if not records:
        raise DataLoaderError("popler summary endpoint returned no projects.")

    df = pd.DataFrame.from_records(records)
    if PROJECT_KEY_COL not in df.columns:
        raise DataLoaderError(
            f"Summary table is missing the primary key column '{PROJECT_KEY_COL}'. "
            f"Present columns: {list(df.columns)}"
        )
    logger.info("Fetched summary table: %s projects x %s columns", df.shape[0], df.shape[1])
    return df


def fetch_project_data(
    proj_key: int,
    *,
    max_rows: int = 5_000_000,
    page_size: Optional[int] = None,
    timeout_seconds: Optional[int] = None,
) -> pd.DataFrame:
    """
    Download every observation row of one project.

    Returns an empty DataFrame when the project has no rows.
    """
    records = _paged_records(
        endpoint=config.POPLER_DATA_ENDPOINT,
        filters={PROJECT_KEY_COL: int(proj_key)},
        max_rows=int(max_rows),
        page_size=int(page_size or config.PAGE_SIZE),
        timeout_seconds=int(timeout_seconds or config.HTTP_TIMEOUT_SECONDS),
    )
    if not records:
        return pd.DataFrame()

    df = pd.DataFrame.from_records(records)
    if PROJECT_KEY_COL not in df.columns:
        df.insert(0, PROJECT_KEY_COL, int(proj_key))
    return df

