"""
Row predicates over the metadata table.

A predicate is a small expression tree built with `col()`:

    (col("genus") == "Poa") & (col("species") == "fendleriana")
    col("lterid").isin(["SEV", "SBC"]) | (col("studystartyr") < 1990)

Nothing is evaluated when the expression is built. `evaluate()` checks every
referenced column against the table before computing a boolean mask; missing
values never match (as in a SQL WHERE clause), including under `!=` and `~`:
node masks use the nullable "boolean" dtype, so a missing cell stays unknown
through negation and `&`/`|` follow three-valued logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

import operator

import pandas as pd

from popler_client.core.errors import MalformedExpressionError

_OPS: Dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class Predicate:
    """Base class of every expression-tree node."""

    def columns(self) -> FrozenSet[str]:
        raise NotImplementedError

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        raise NotImplementedError

    def _render(self) -> str:
        raise NotImplementedError

    def evaluate(self, df: pd.DataFrame) -> pd.Series:
        """Boolean mask aligned on df.index. Raises MalformedExpressionError on unknown columns."""
        validate(self, df.columns)
        return self._mask(df).fillna(False).astype(bool)

    def __and__(self, other: "Predicate") -> "Predicate":
        _require_predicate(other, "&")
        return And(_flatten(And, (self, other)))

    def __or__(self, other: "Predicate") -> "Predicate":
        _require_predicate(other, "|")
        return Or(_flatten(Or, (self, other)))

    def __invert__(self) -> "Predicate":
        return Not(self)

    def __bool__(self) -> bool:
        # Stops `a and b` / `a or b` from silently dropping one side
        raise MalformedExpressionError(
            "Predicates cannot be used as Python booleans; combine them with & | ~ instead of and/or/not."
        )

    def __str__(self) -> str:
        return self._render()


@dataclass(frozen=True, eq=True)
class Comparison(Predicate):
    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPS:
            raise MalformedExpressionError(f"Unsupported comparison operator: {self.op!r}")

    def columns(self) -> FrozenSet[str]:
        return frozenset({self.column})

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        series = df[self.column]
        try:
            result = _OPS[self.op](series, self.value)
        except (TypeError, ValueError) as exc:
            raise MalformedExpressionError(
                f"Cannot compare column '{self.column}' ({series.dtype}) with {self.value!r} using {self.op}"
            ) from exc
        return _unknown_where_missing(result, series)

    def _render(self) -> str:
        return f"{self.column} {self.op} {self.value!r}"


@dataclass(frozen=True, eq=True)
class Membership(Predicate):
    column: str
    values: Tuple[Any, ...]

    def columns(self) -> FrozenSet[str]:
        return frozenset({self.column})

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        series = df[self.column]
        return _unknown_where_missing(series.isin(list(self.values)), series)

    def _render(self) -> str:
        return f"{self.column} in {list(self.values)!r}"


@dataclass(frozen=True, eq=True)
class Contains(Predicate):
    column: str
    text: str
    case: bool = False

    def columns(self) -> FrozenSet[str]:
        return frozenset({self.column})

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        found = df[self.column].astype("string").str.contains(self.text, case=self.case, regex=False)
        return found.astype("boolean")

    def _render(self) -> str:
        return f"{self.column} contains {self.text!r}"


@dataclass(frozen=True, eq=True)
class IsNull(Predicate):
    column: str

    def columns(self) -> FrozenSet[str]:
        return frozenset({self.column})

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        return df[self.column].isna().astype("boolean")

    def _render(self) -> str:
        return f"{self.column} is null"


@dataclass(frozen=True, eq=True)
class And(Predicate):
    operands: Tuple[Predicate, ...]

    def columns(self) -> FrozenSet[str]:
        return frozenset().union(*(p.columns() for p in self.operands))

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        mask = pd.Series(True, index=df.index, dtype="boolean")
        for p in self.operands:
            mask = mask & p._mask(df)
        return mask

    def _render(self) -> str:
        return " & ".join(_wrap(p, Or) for p in self.operands)


@dataclass(frozen=True, eq=True)
class Or(Predicate):
    operands: Tuple[Predicate, ...]

    def columns(self) -> FrozenSet[str]:
        return frozenset().union(*(p.columns() for p in self.operands))

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        mask = pd.Series(False, index=df.index, dtype="boolean")
        for p in self.operands:
            mask = mask | p._mask(df)
        return mask

    def _render(self) -> str:
        return " | ".join(_wrap(p, And) for p in self.operands)


@dataclass(frozen=True, eq=True)
class Not(Predicate):
    operand: Predicate

    def columns(self) -> FrozenSet[str]:
        return self.operand.columns()

    def _mask(self, df: pd.DataFrame) -> pd.Series:
        return ~self.operand._mask(df)

    def _render(self) -> str:
        return f"~({self.operand._render()})"


class Column:
    """Column reference; comparison operators build predicates."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        if not isinstance(name, str) or not name:
            raise MalformedExpressionError(f"Column name must be a non-empty string, got {name!r}")
        self.name = name

    def __eq__(self, value: Any) -> Comparison:  # type: ignore[override]
        return Comparison(self.name, "==", value)

    def __ne__(self, value: Any) -> Comparison:  # type: ignore[override]
        return Comparison(self.name, "!=", value)

    def __lt__(self, value: Any) -> Comparison:
        return Comparison(self.name, "<", value)

    def __le__(self, value: Any) -> Comparison:
        return Comparison(self.name, "<=", value)

    def __gt__(self, value: Any) -> Comparison:
        return Comparison(self.name, ">", value)

    def __ge__(self, value: Any) -> Comparison:
        return Comparison(self.name, ">=", value)

    def __hash__(self) -> int:
        return hash(("Column", self.name))

    def isin(self, values: Iterable[Any]) -> Membership:
        return Membership(self.name, tuple(values))

    def contains(self, text: str, case: bool = False) -> Contains:
        return Contains(self.name, str(text), case)

    def isna(self) -> IsNull:
        return IsNull(self.name)

    def notna(self) -> Not:
        return Not(IsNull(self.name))

    def __repr__(self) -> str:
        return f"col({self.name!r})"


def col(name: str) -> Column:
    return Column(name)


def all_of(predicates: Iterable[Predicate]) -> Predicate:
    return _combine(And, predicates)


def any_of(predicates: Iterable[Predicate]) -> Predicate:
    return _combine(Or, predicates)


def keys_expression(keys: Sequence[Any], key_col: str) -> Optional[Predicate]:
    """
    `key == k1 | key == k2 | ...` over the given primary keys, in the given
    order; None for an empty key list.
    """
    if len(keys) == 0:
        return None
    return any_of(Comparison(key_col, "==", _plain(k)) for k in keys)


def validate(predicate: Any, columns: Iterable[str]) -> Predicate:
    """
    Check a predicate's shape and that every referenced column exists.
    Returns the predicate so calls can be chained.
    """
    if not isinstance(predicate, Predicate):
        raise MalformedExpressionError(
            f"Expected a predicate built with col(...), got {type(predicate).__name__}: {predicate!r}"
        )
    known = set(str(c) for c in columns)
    missing = sorted(predicate.columns() - known)
    if missing:
        raise MalformedExpressionError(
            f"Expression references unknown column(s): {missing}. "
            "Check the spelling against describe_columns()."
        )
    return predicate


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _require_predicate(other: Any, symbol: str) -> None:
    if not isinstance(other, Predicate):
        raise MalformedExpressionError(f"Cannot combine a predicate with {other!r} using {symbol}")


def _flatten(kind: type, operands: Iterable[Predicate]) -> Tuple[Predicate, ...]:
    out = []
    for p in operands:
        if isinstance(p, kind):
            out.extend(p.operands)  # type: ignore[attr-defined]
        else:
            out.append(p)
    return tuple(out)


def _combine(kind: type, predicates: Iterable[Predicate]) -> Predicate:
    items = list(predicates)
    if not items:
        raise MalformedExpressionError("Cannot combine an empty list of predicates.")
    for p in items:
        _require_predicate(p, kind.__name__)
    if len(items) == 1:
        return items[0]
    return kind(_flatten(kind, items))


def _wrap(p: Predicate, looser: type) -> str:
    text = p._render()
    return f"({text})" if isinstance(p, looser) else text


def _unknown_where_missing(result: Any, series: pd.Series) -> pd.Series:
    # NA marks rows whose outcome is unknown; evaluate() turns them into False
    out = result if isinstance(result, pd.Series) else pd.Series(result, index=series.index)
    return out.astype("boolean").mask(series.isna())


def _plain(value: Any) -> Any:
    # numpy scalars -> python scalars, so rendered expressions stay readable
    item = getattr(value, "item", None)
    if callable(item):
        try:
            return item()
        except (TypeError, ValueError):
            return value
    return value
