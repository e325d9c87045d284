from __future__ import annotations

from typing import Iterable, List, Optional, Union

import logging

import pandas as pd

from popler_client.config import COVARIATES_COL, PROJECT_KEY_COL
from popler_client.core.browse import BrowseResult, select_by_criteria
from popler_client.core import covariates
from popler_client.core.data_loader import fetch_project_data
from popler_client.core.errors import EmptyResultError
from popler_client.core.metadata_loader import load_metadata_table
from popler_client.core.predicates import Predicate

logger = logging.getLogger(__name__)

DataSource = Union[BrowseResult, Predicate, Iterable[int]]


def resolve_project_keys(
    source: DataSource,
    table: Optional[pd.DataFrame] = None,
) -> List[int]:
    """
    Project keys selected by a browse result, a predicate over the metadata
    table, or an explicit key list (checked against the metadata table).
    """
    if isinstance(source, BrowseResult):
        keys = source.project_keys
    else:
        summary = table if table is not None else load_metadata_table()
        if isinstance(source, Predicate):
            rows = select_by_criteria(summary, source)
            keys = [int(k) for k in rows[PROJECT_KEY_COL].drop_duplicates().tolist()]
        else:
            wanted = [int(k) for k in source]
            known = set(int(k) for k in summary[PROJECT_KEY_COL].dropna().tolist())
            unknown = [k for k in wanted if k not in known]
            if unknown:
                logger.warning("Ignoring project keys not in the metadata table: %s", unknown)
            keys = list(dict.fromkeys(k for k in wanted if k in known))

    if not keys:
        raise EmptyResultError("No project selected; nothing to download.")
    return keys


def get_data(
    source: DataSource,
    *,
    cov_unpack: bool = False,
    table: Optional[pd.DataFrame] = None,
) -> pd.DataFrame:
    """
    Download the observations of every selected project, stacked into one
    table. Projects that return no rows are skipped with a warning.

    With cov_unpack=True the covariates text column is replaced by
    one typed column per covariate key.
    """
    keys = resolve_project_keys(source, table=table)
    logger.info("Downloading %s project(s): %s", len(keys), keys)

    frames: List[pd.DataFrame] = []
    for k in keys:
        df_k = fetch_project_data(k)
        if df_k.empty:
            logger.warning("Project %s returned no rows.", k)
            continue
        logger.info("Project %s: %s rows", k, len(df_k))
        frames.append(df_k)

    if not frames:
        raise EmptyResultError(f"None of the selected projects returned data: {keys}")

    data = pd.concat(frames, ignore_index=True)

    if cov_unpack:
        if COVARIATES_COL in data.columns:
            data = covariates.cov_unpack(data)
        else:
            logger.warning("Downloaded data has no '%s' column; nothing to unpack.", COVARIATES_COL)

    return data
