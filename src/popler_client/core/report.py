from __future__ import annotations

import html
import webbrowser
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional, Union

import logging

import pandas as pd

from popler_client import config
from popler_client.config import APP_NAME, PROJECT_KEY_COL

if TYPE_CHECKING:
    from popler_client.core.browse import BrowseResult

logger = logging.getLogger(__name__)

# Summary fields shown per project, with their display labels
REPORT_FIELDS = [
    ("lterid", "LTER site"),
    ("datatype", "Data type"),
    ("studytype", "Study type"),
    ("community", "Community data"),
    ("studystartyr", "Start year"),
    ("studyendyr", "End year"),
    ("duration_years", "Duration (years)"),
    ("structured_data", "Structured data"),
    ("treatment_type_1", "Treatment"),
    ("lat_lter", "Latitude"),
    ("lng_lter", "Longitude"),
]

LINK_FIELDS = [("metalink", "Metadata"), ("doi", "DOI")]


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, pd.DataFrame):
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _link(url: str, label: str) -> str:
    target = url if url.lower().startswith(("http://", "https://")) else f"https://doi.org/{url}"
    return f'<a href="{html.escape(target, quote=True)}">{html.escape(label)}</a>'


def _project_section(row: pd.Series, nested_column: Optional[str]) -> str:
    key = _text(row.get(PROJECT_KEY_COL))
    title = _text(row.get("title")) or f"Project {key}"

    parts: List[str] = [f'<section id="project-{html.escape(key)}">']
    parts.append(f"<h2>{html.escape(title)}</h2>")
    parts.append(f"<p class=\"key\">{PROJECT_KEY_COL}: {html.escape(key)}</p>")

    items = []
    for col, label in REPORT_FIELDS:
        val = _text(row.get(col))
        if val:
            items.append(f"<dt>{html.escape(label)}</dt><dd>{html.escape(val)}</dd>")
    if items:
        parts.append("<dl>" + "".join(items) + "</dl>")

    links = [_link(_text(row.get(col)), label) for col, label in LINK_FIELDS if _text(row.get(col))]
    if links:
        parts.append("<p class=\"links\">" + " | ".join(links) + "</p>")

    if nested_column and isinstance(row.get(nested_column), pd.DataFrame):
        taxa: pd.DataFrame = row[nested_column]
        parts.append(f"<h3>Taxa ({len(taxa)})</h3>")
        parts.append(taxa.to_html(index=False, na_rep="", border=0, classes="taxa"))

    parts.append("</section>")
    return "\n".join(parts)


def build_report_html(result: "BrowseResult") -> str:
    table = result.table
    toc = []
    for _, row in table.iterrows():
        key = _text(row.get(PROJECT_KEY_COL))
        title = _text(row.get("title")) or f"Project {key}"
        toc.append(f'<li><a href="#project-{html.escape(key)}">{html.escape(title)}</a></li>')

    sections = [_project_section(row, result.nested_column) for _, row in table.iterrows()]
    search = html.escape(str(result.search_expr)) if result.search_expr is not None else "all projects"
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

    return "\n".join(
        [
            "<!DOCTYPE html>",
            "<html><head><meta charset=\"utf-8\">",
            f"<title>{html.escape(APP_NAME)} metadata report</title>",
            "<style>body{font-family:sans-serif;max-width:60em;margin:auto}"
            "dt{font-weight:bold}table.taxa{font-size:small}</style>",
            "</head><body>",
            f"<h1>{html.escape(APP_NAME)} metadata report</h1>",
            f"<p>Selection: <code>{search}</code> ({len(table)} projects, generated {stamp})</p>",
            "<ol>" + "".join(toc) + "</ol>",
            *sections,
            "</body></html>",
        ]
    )


def render_metadata_report(
    result: "BrowseResult",
    path: Optional[Union[str, Path]] = None,
    open_browser: bool = False,
) -> Path:
    """
    Write a static HTML page with one hyperlinked section per project and
    return its path. Defaults to REPORT_DIR/metadata_report.html.
    """
    target = Path(path).expanduser() if path is not None else Path(config.REPORT_DIR) / "metadata_report.html"
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(build_report_html(result), encoding="utf-8")
    logger.info("Wrote metadata report for %s projects to %s", len(result.table), target)

    if open_browser:
        webbrowser.open(target.resolve().as_uri())
    return target
