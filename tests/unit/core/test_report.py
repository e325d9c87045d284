"""Unit tests for the HTML metadata report."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from popler_client.core import report
from popler_client.core.browse import browse
from popler_client.core.predicates import col


def test_report_lists_each_project_with_links(summary_table: pd.DataFrame) -> None:
    """Each project should get a titled section and resolvable links."""
    result = browse(col("lterid") == "SEV", full_tbl=True, table=summary_table)

    page = report.build_report_html(result)

    assert "Sevilleta grassland plant cover" in page
    assert "Black grama demography" in page
    assert 'href="#project-1"' in page
    assert 'href="https://portal.lternet.edu/sev-1"' in page
    assert 'href="https://doi.org/10.6073/pasta.0001"' in page
    assert "Taxa (2)" in page
    assert "lterid == &#x27;SEV&#x27;" in page


def test_report_without_selection_says_all_projects(summary_table: pd.DataFrame) -> None:
    """An unfiltered browse should be labelled as such."""
    page = report.build_report_html(browse(table=summary_table))

    assert "<code>all projects</code>" in page
    assert "(5 projects," in page


def test_render_writes_to_report_dir_by_default(summary_table: pd.DataFrame, isolated_cache: Path) -> None:
    """Without a path the page should land in the configured report directory."""
    target = report.render_metadata_report(browse(table=summary_table))

    assert target == isolated_cache / "reports" / "metadata_report.html"
    assert "<!DOCTYPE html>" in target.read_text(encoding="utf-8")


def test_render_opens_browser_on_request(
    summary_table: pd.DataFrame, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """open_browser=True should hand a file URI to the web browser."""
    opened = []
    monkeypatch.setattr(report.webbrowser, "open", opened.append)

    target = report.render_metadata_report(
        browse(table=summary_table), path=tmp_path / "out.html", open_browser=True
    )

    assert opened == [target.resolve().as_uri()]
