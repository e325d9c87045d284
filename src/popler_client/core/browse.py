from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import logging

import numpy as np
import pandas as pd

from popler_client.config import PROJECT_KEY_COL
from popler_client.core.errors import (
    ConflictingFiltersError,
    EmptyResultError,
    MalformedExpressionError,
    MisspelledColumnError,
)
from popler_client.core.metadata_loader import load_metadata_schema, load_metadata_table
from popler_client.core.predicates import Predicate, keys_expression, validate
from popler_client.core.schema import TAXONOMY_ALIAS, SchemaDescriptor

logger = logging.getLogger(__name__)

# Name of the joint list-column when more than one taxonomy column is nested
NESTED_TAXA_COL = "taxas"
NESTED_LABEL_PREFIX = "taxa_project_"


@dataclass
class KeywordMatch:
    table: pd.DataFrame
    expression: Optional[Predicate]


@dataclass(eq=False)
class BrowseResult:
    """
    Output of browse(): the (nested) metadata view plus the row selection
    that produced it, so get_data() can replay the same project set.
    """
    table: pd.DataFrame
    search_expr: Optional[Predicate]
    full_tbl: bool = False
    vars: Optional[List[str]] = None
    keyword: Optional[str] = None
    nested_column: Optional[str] = None
    taxonomy_columns: List[str] = field(default_factory=list)

    @property
    def project_keys(self) -> List[int]:
        keys = self.table[PROJECT_KEY_COL].drop_duplicates().tolist()
        return [int(k) for k in keys if pd.notna(k)]

    def __len__(self) -> int:
        return len(self.table)

    def unnest(self) -> pd.DataFrame:
        return taxa_unnest(self.table, column=self.nested_column)


# ---------------------------------------------------------------------------
# Row selection
# ---------------------------------------------------------------------------

def select_by_criteria(
    table: pd.DataFrame,
    criteria: Optional[Predicate],
    schema: Optional[SchemaDescriptor] = None,
) -> pd.DataFrame:
    """
    Rows of `table` for which `criteria` holds. None keeps every row.

    Raises MalformedExpressionError if the predicate names unknown columns and
    EmptyResultError if nothing matches.
    """
    if criteria is not None:
        columns = schema.columns if schema is not None else table.columns
        validate(criteria, columns)
        mask = criteria.evaluate(table)
        out = table.loc[mask]
    else:
        out = table

    if out.empty:
        raise EmptyResultError()

    logger.info("Criteria %s matched %s rows", criteria, len(out))
    return out.reset_index(drop=True)


def keyword_subset(
    table: pd.DataFrame,
    keyword: str,
    schema: Optional[SchemaDescriptor] = None,
) -> KeywordMatch:
    """
    Case-insensitive literal search of `keyword` in every textual column.

    Every project with at least one matching cell is selected, with all its
    rows. The returned expression (key == k1 | key == k2 | ...) selects the
    same rows through select_by_criteria(). No match gives an empty table and
    expression None.
    """
    if not isinstance(keyword, str) or not keyword.strip():
        raise MalformedExpressionError(f"keyword must be a non-empty string, got {keyword!r}")

    schema = schema or SchemaDescriptor.from_table(table)
    text_cols = [c for c in schema.textual_columns() if c in table.columns]

    hit = pd.Series(False, index=table.index)
    for c in text_cols:
        found = table[c].astype("string").str.contains(keyword, case=False, regex=False, na=False)
        hit = hit | found.astype(bool)

    if not hit.any():
        logger.info("Keyword %r matched no project", keyword)
        return KeywordMatch(table=table.iloc[0:0].reset_index(drop=True), expression=None)

    keys = table.loc[hit, PROJECT_KEY_COL].drop_duplicates().tolist()
    expression = keys_expression(keys, PROJECT_KEY_COL)
    out = table.loc[expression.evaluate(table)].reset_index(drop=True)

    logger.info("Keyword %r matched %s projects (%s rows)", keyword, len(keys), len(out))
    return KeywordMatch(table=out, expression=expression)


# ---------------------------------------------------------------------------
# Column selection
# ---------------------------------------------------------------------------

def check_vars_spelling(vars: Optional[Sequence[str]], schema: SchemaDescriptor) -> None:
    if not vars:
        return
    bad = [v for v in schema.unknown(vars) if v != TAXONOMY_ALIAS]
    if bad:
        raise MisspelledColumnError(bad)


def vars_check(vars: Sequence[str]) -> List[str]:
    """Prepend the primary key when the caller left it out."""
    out = list(vars)
    if PROJECT_KEY_COL not in out:
        out.insert(0, PROJECT_KEY_COL)
    return out


def _expand_vars(vars: Sequence[str], schema: SchemaDescriptor, full_tbl: bool) -> List[str]:
    out: List[str] = []
    for v in vars:
        names = (
            [c for c in schema.taxonomy_columns(full_tbl) if c in schema]
            if v == TAXONOMY_ALIAS
            else [v]
        )
        for n in names:
            if n not in out:
                out.append(n)
    return out


def select_columns(
    table: pd.DataFrame,
    *,
    full_tbl: bool = False,
    vars: Optional[Sequence[str]] = None,
    schema: Optional[SchemaDescriptor] = None,
) -> pd.DataFrame:
    """
    Default view, full table, or an explicit column list. The primary key is
    always part of the output.
    """
    schema = schema or SchemaDescriptor.from_table(table)

    if vars is None:
        if full_tbl:
            return table.copy()
        return table[schema.default_columns()].copy()

    check_vars_spelling(vars, schema)
    columns = vars_check(_expand_vars(vars, schema, full_tbl))
    return table[columns].copy()


# ---------------------------------------------------------------------------
# Taxonomic nesting
# ---------------------------------------------------------------------------

def _object_column(values: List[object]) -> np.ndarray:
    # np.array() would try to broadcast DataFrames into a 3-d array
    arr = np.empty(len(values), dtype=object)
    for i, v in enumerate(values):
        arr[i] = v
    return arr


def taxa_nest(
    table: pd.DataFrame,
    full_tbl: bool = False,
    schema: Optional[SchemaDescriptor] = None,
    taxonomy: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """
    Collapse the taxonomy columns of `table` into one list-column.

    - no taxonomy column: duplicate rows are dropped;
    - one: rows are grouped on every other column and that column is nested
      under its own name;
    - several: they are nested jointly under "taxas", each cell labelled
      taxa_project_<key> in DataFrame.attrs["name"].

    Groups keep missing values and first-appearance order. Each output row
    holds, in its nested cell, every taxon row of its group.
    """
    if taxonomy is None:
        schema = schema or SchemaDescriptor.from_table(table)
        taxonomy = schema.taxonomy_columns(full_tbl)
    taxa_set = set(taxonomy)
    taxa_cols = [c for c in table.columns if c in taxa_set]
    group_cols = [c for c in table.columns if c not in taxa_set]

    if not taxa_cols:
        return table.drop_duplicates().reset_index(drop=True)

    nest_col = taxa_cols[0] if len(taxa_cols) == 1 else NESTED_TAXA_COL
    if nest_col in group_cols:
        raise MalformedExpressionError(
            f"Cannot nest taxonomy into '{nest_col}': a non-taxonomic column already has that name."
        )

    if not group_cols:
        cell = table[taxa_cols].reset_index(drop=True)
        return pd.DataFrame({nest_col: _object_column([cell])})

    group_id = table.groupby(group_cols, dropna=False, sort=False).ngroup().to_numpy()
    first_rows = ~pd.Series(group_id).duplicated().to_numpy()
    head = table.loc[first_rows, group_cols].reset_index(drop=True)

    taxa = table[taxa_cols].reset_index(drop=True)
    cells: List[pd.DataFrame] = []
    for gid, sub in taxa.groupby(group_id, sort=True):
        cell = sub.reset_index(drop=True)
        if nest_col == NESTED_TAXA_COL and PROJECT_KEY_COL in head.columns:
            cell.attrs["name"] = f"{NESTED_LABEL_PREFIX}{head.at[int(gid), PROJECT_KEY_COL]}"
        cells.append(cell)

    head[nest_col] = _object_column(cells)
    logger.debug("Nested %s rows into %s groups under '%s'", len(table), len(head), nest_col)
    return head


def _find_nested_column(table: pd.DataFrame) -> Optional[str]:
    for c in table.columns:
        if table[c].dtype == object and len(table) and isinstance(table[c].iat[0], pd.DataFrame):
            return str(c)
    return None


def taxa_unnest(table: pd.DataFrame, column: Optional[str] = None) -> pd.DataFrame:
    """
    Inverse of taxa_nest(): one row per nested taxon, the group columns
    repeated. Tables without a nested column are returned as a copy.
    """
    nest_col = column or _find_nested_column(table)
    if nest_col is None or nest_col not in table.columns:
        return table.copy()

    base = table.drop(columns=[nest_col])
    pieces: List[pd.DataFrame] = []
    for pos in range(len(table)):
        cell = table[nest_col].iat[pos]
        if not isinstance(cell, pd.DataFrame):
            raise MalformedExpressionError(f"Row {pos} of '{nest_col}' is not a nested table.")
        left = base.iloc[[pos] * len(cell)].reset_index(drop=True)
        pieces.append(pd.concat([left, cell.reset_index(drop=True)], axis=1))

    if not pieces:
        return base.copy()
    return pd.concat(pieces, ignore_index=True)


# ---------------------------------------------------------------------------
# browse()
# ---------------------------------------------------------------------------

def browse(
    criteria: Optional[Predicate] = None,
    *,
    full_tbl: bool = False,
    vars: Optional[Union[str, Sequence[str]]] = None,
    keyword: Optional[str] = None,
    report: bool = False,
    report_path: Optional[Union[str, Path]] = None,
    table: Optional[pd.DataFrame] = None,
) -> BrowseResult:
    """
    Browse the metadata of the projects in popler.

    criteria  - predicate built with col(), e.g. col("lterid") == "SEV"
    full_tbl  - return every metadata column instead of the default view
    vars      - explicit column list ("taxonomy" selects the taxonomic ranks);
                the result is nested against the full taxonomy, so any
                named rank (e.g. common_name) goes into the nested cell
    keyword   - case-insensitive text search over every textual column
    report    - write an HTML metadata report and open it in a browser
    table     - metadata table to browse instead of the process-wide copy

    criteria and keyword are mutually exclusive. Both paths raise
    EmptyResultError when no project is selected.
    """
    if criteria is not None and keyword is not None:
        raise ConflictingFiltersError()

    if table is None:
        summary = load_metadata_table()
        schema = load_metadata_schema()
    else:
        summary = table
        schema = SchemaDescriptor.from_table(table)

    var_list: Optional[List[str]] = [vars] if isinstance(vars, str) else (list(vars) if vars is not None else None)
    check_vars_spelling(var_list, schema)

    if keyword is not None:
        match = keyword_subset(summary, keyword, schema)
        if match.expression is None:
            raise EmptyResultError(f"No project matches the keyword {keyword!r}.")
        subset = match.table
        search_expr = match.expression
    else:
        subset = select_by_criteria(summary, criteria, schema)
        search_expr = criteria

    out_vars = select_columns(subset, full_tbl=full_tbl, vars=var_list, schema=schema)

    # An explicit column list may name any rank, so it nests against the full hierarchy
    taxonomy = schema.taxonomy_columns(full_tbl or var_list is not None)
    out_form = taxa_nest(out_vars, taxonomy=taxonomy)
    nested_column = _find_nested_column(out_form)

    result = BrowseResult(
        table=out_form,
        search_expr=search_expr,
        full_tbl=full_tbl,
        vars=var_list,
        keyword=keyword,
        nested_column=nested_column,
        taxonomy_columns=[c for c in out_vars.columns if c in set(taxonomy)],
    )

    if report:
        from popler_client.core.report import render_metadata_report

        render_metadata_report(result, path=report_path, open_browser=True)

    return result
