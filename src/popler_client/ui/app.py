from __future__ import annotations

import time
import traceback
from typing import Any, List, Optional

import pandas as pd
import streamlit as st

from popler_client.config import APP_NAME, APP_VERSION, PROJECT_KEY_COL
from popler_client.core.browse import BrowseResult, browse
from popler_client.core.data_loader import DataLoaderError
from popler_client.core.errors import PoplerError
from popler_client.core.get_data import get_data
from popler_client.core.metadata_loader import (
    invalidate_metadata_cache,
    load_metadata_schema,
    load_metadata_table,
)
from popler_client.core.predicates import Predicate, all_of, col
from popler_client.core.report import render_metadata_report
from popler_client.core.schema import TAXONOMY_ALIAS

COLUMN_MODES = ["Default columns", "Full table", "Choose columns"]


def _normalize_text(x: Any) -> str:
    if x is None:
        return ""
    try:
        if pd.isna(x):
            return ""
    except (TypeError, ValueError):
        pass
    s = str(x).replace("\u00A0", " ").strip()
    if s.lower() in {"nan", "none", "null"}:
        return ""
    return s


def _display_table(result: BrowseResult) -> pd.DataFrame:
    """
    st.dataframe cannot render nested DataFrames; show the taxa count and
    the first few names instead.
    """
    df = result.table.copy()
    nested = result.nested_column
    if nested and nested in df.columns:
        def _summary(cell: Any) -> str:
            if not isinstance(cell, pd.DataFrame):
                return ""
            first = cell.iloc[:3].astype(str).agg(" ".join, axis=1).tolist()
            more = "" if len(cell) <= 3 else f" ... (+{len(cell) - 3})"
            return f"{len(cell)} taxa: " + "; ".join(first) + more

        df[nested] = df[nested].apply(_summary)
    return df


def _render_filters(columns: List[str]) -> tuple[Optional[Predicate], Optional[str]]:
    mode = st.radio("Select projects by", ["All projects", "Keyword", "Column values"], horizontal=True)

    if mode == "Keyword":
        keyword = _normalize_text(st.text_input("Keyword (case-insensitive):", value=""))
        return None, (keyword or None)

    if mode == "Column values":
        n_terms = int(st.number_input("Number of conditions (combined with AND)", min_value=1, max_value=5, value=1))
        terms: List[Predicate] = []
        for i in range(n_terms):
            c1, c2 = st.columns([1, 2])
            with c1:
                name = st.selectbox("Column", options=columns, key=f"crit_col_{i}")
            with c2:
                raw = _normalize_text(st.text_input("equals", value="", key=f"crit_val_{i}"))
            if not raw:
                continue
            value: Any = int(raw) if raw.lstrip("-").isdigit() else raw
            terms.append(col(name) == value)
        return (all_of(terms) if terms else None), None

    return None, None


def _render_metadata_status() -> None:
    with st.expander("Metadata status", expanded=False):
        if st.button("Refresh metadata table from popler"):
            try:
                with st.spinner("Refetching metadata table..."):
                    invalidate_metadata_cache(remove_file=True)
                    df = load_metadata_table()
                st.success(f"Metadata table reloaded: {df.shape[0]} rows x {df.shape[1]} columns")
            except DataLoaderError as exc:
                st.error(f"Could not reach popler: {exc}")
            except Exception:
                st.error("Unexpected error while loading metadata.")
                st.text_area("Traceback", value=traceback.format_exc(), height=220)

        try:
            schema = load_metadata_schema()
            st.dataframe(schema.describe(), use_container_width=True)
        except DataLoaderError as exc:
            st.warning(f"Metadata table not available: {exc}")


def _render_download(result: BrowseResult) -> None:
    with st.expander("Download data for the selected projects", expanded=False):
        unpack = st.checkbox("Unpack covariates into columns", value=False)
        if st.button("Download", key="download_btn"):
            status = st.status("Downloading...", expanded=True)
            t0 = time.perf_counter()
            try:
                data = get_data(result, cov_unpack=unpack)
                status.update(label=f"Done in {time.perf_counter() - t0:0.2f}s.", state="complete")
                st.write(f"Returned: {data.shape[0]} rows x {data.shape[1]} columns")
                st.dataframe(data.head(1_000), use_container_width=True)
                st.download_button(
                    "Save as CSV",
                    data=data.to_csv(index=False).encode("utf-8"),
                    file_name="popler_data.csv",
                    mime="text/csv",
                )
            except (PoplerError, DataLoaderError) as exc:
                status.update(label="Download failed.", state="error")
                st.error(str(exc))


def run_app() -> None:
    st.set_page_config(page_title=APP_NAME, page_icon="🌿", layout="wide")
    st.title(APP_NAME)
    st.caption(f"Version {APP_VERSION}")

    _render_metadata_status()

    try:
        schema = load_metadata_schema()
    except DataLoaderError as exc:
        st.error(f"Metadata table not available: {exc}")
        return

    criteria, keyword = _render_filters(schema.columns)

    mode = st.radio("Columns", COLUMN_MODES, horizontal=True)
    full_tbl = mode == "Full table"
    vars: Optional[List[str]] = None
    if mode == "Choose columns":
        vars = st.multiselect(
            "Columns",
            options=[TAXONOMY_ALIAS] + schema.columns,
            default=["title", PROJECT_KEY_COL, TAXONOMY_ALIAS],
        )

    try:
        result = browse(criteria, full_tbl=full_tbl, vars=vars or None, keyword=keyword)
    except PoplerError as exc:
        st.warning(str(exc))
        return

    selection = str(result.search_expr) if result.search_expr is not None else "all projects"
    st.write(f"{len(result)} projects. Selection: `{selection}`")
    st.dataframe(_display_table(result), use_container_width=True)

    if st.button("Write HTML report"):
        path = render_metadata_report(result)
        st.success(f"Report written to {path}")

    _render_download(result)
