"""Unit tests for the metadata schema descriptor."""

from __future__ import annotations

import pandas as pd

from popler_client.core.schema import (
    DEFAULT_VARS,
    SchemaDescriptor,
    describe_columns,
)


def test_known_columns_get_their_category(summary_table: pd.DataFrame) -> None:
    """Static tags should be applied to known popler columns."""
    schema = SchemaDescriptor.from_table(summary_table)

    assert schema.category("proj_metadata_key") == "key"
    assert schema.category("genus") == "taxonomy"
    assert schema.category("studystartyr") == "temporal"
    assert schema.category("lat_lter") == "spatial"


def test_unknown_column_is_tagged_other() -> None:
    """Columns added remotely should still be part of the schema."""
    schema = SchemaDescriptor.from_table(pd.DataFrame({"proj_metadata_key": [1], "new_field": ["x"]}))

    assert "new_field" in schema
    assert schema.category("new_field") == "other"


def test_textual_columns_follow_dtypes(summary_table: pd.DataFrame) -> None:
    """Keyword search should only look at text-valued columns."""
    textual = SchemaDescriptor.from_table(summary_table).textual_columns()

    assert "title" in textual
    assert "genus" in textual
    assert "studystartyr" not in textual
    assert "proj_metadata_key" not in textual


def test_taxonomy_sets_differ_between_modes(summary_table: pd.DataFrame) -> None:
    """Default mode should only use the ranks of the default view."""
    schema = SchemaDescriptor.from_table(summary_table)

    default = schema.taxonomy_columns(full_tbl=False)
    full = schema.taxonomy_columns(full_tbl=True)

    assert set(default) == {"sppcode", "species", "kingdom", "phylum", "class", "order", "family", "genus"}
    assert set(default) < set(full)
    assert "common_name" in full


def test_default_columns_keep_display_order(summary_table: pd.DataFrame) -> None:
    """Default view should follow DEFAULT_VARS order."""
    schema = SchemaDescriptor.from_table(summary_table)

    assert schema.default_columns() == list(DEFAULT_VARS)


def test_unknown_lists_each_name_once(summary_table: pd.DataFrame) -> None:
    """Misspelled names should be reported once, in request order."""
    schema = SchemaDescriptor.from_table(summary_table)

    assert schema.unknown(["titel", "genus", "titel", "lter"]) == ["titel", "lter"]


def test_describe_columns_lists_every_column(summary_table: pd.DataFrame) -> None:
    """Dictionary helper should cover the whole table."""
    described = describe_columns(summary_table)

    assert described["column"].tolist() == list(summary_table.columns)
    assert bool(described.loc[described["column"] == "title", "default_view"].item())
