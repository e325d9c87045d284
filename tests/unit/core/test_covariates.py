"""Unit tests for covariate unpacking."""

from __future__ import annotations

import pandas as pd
import pytest

from popler_client.core.covariates import cov_unpack, parse_covariate_text, unpack_covariates


def test_parse_key_value_pairs() -> None:
    """Delimited key=value text should become a dict."""
    assert parse_covariate_text("temp=12.5, plot=control; depth = 3") == {
        "temp": "12.5",
        "plot": "control",
        "depth": "3",
    }


def test_parse_dictionary_rendering() -> None:
    """The quoted dictionary form used by older uploads should parse too."""
    assert parse_covariate_text("{'temp': 12.5, 'site': 'north, upper'}") == {
        "temp": "12.5",
        "site": "north, upper",
    }


def test_parse_skips_malformed_pairs_only() -> None:
    """A bad pair should be dropped while the rest of the cell survives."""
    assert parse_covariate_text("temp=12.5, garbage, =7, plot=B") == {"temp": "12.5", "plot": "B"}


@pytest.mark.parametrize("cell", [None, float("nan"), "", "{}"])
def test_parse_empty_cells(cell: object) -> None:
    """Missing or empty cells should give no covariates."""
    assert parse_covariate_text(cell) == {}


def test_unpack_types_columns_and_keeps_rows() -> None:
    """Each key should become one typed column aligned with the source rows."""
    df = pd.DataFrame(
        {"covariates": ["temp=12.5, plot=A, n=3", "plot=B, n=4", None, "temp=NA, n=5"]},
        index=[10, 11, 12, 13],
    )

    out = unpack_covariates(df)

    assert list(out.columns) == ["temp", "plot", "n"]
    assert list(out.index) == [10, 11, 12, 13]
    assert out["temp"].dtype == "float64"
    assert str(out["n"].dtype) == "Int64"
    assert out["n"].tolist()[:2] == [3, 4]
    assert out.loc[11, "plot"] == "B"
    assert pd.isna(out.loc[13, "temp"])


def test_unpack_raises_for_missing_column() -> None:
    """A dataset without the covariate column cannot be unpacked."""
    with pytest.raises(KeyError):
        unpack_covariates(pd.DataFrame({"count": [1]}))


def test_cov_unpack_replaces_raw_column_and_prefixes_clashes() -> None:
    """Unpacked columns should replace the raw text, renaming clashing keys."""
    df = pd.DataFrame({"count": [1, 2], "covariates": ["count=9, plot=A", "plot=B"]})

    out = cov_unpack(df)

    assert list(out.columns) == ["count", "cov_count", "plot"]
    assert out["count"].tolist() == [1, 2]
