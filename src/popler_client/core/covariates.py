from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import logging

import pandas as pd

from popler_client.config import COVARIATES_COL

logger = logging.getLogger(__name__)

# Pairs are separated by commas or semicolons that sit outside quotes.
_PAIR_SPLIT = re.compile(r"""[,;](?=(?:[^'"]*['"][^'"]*['"])*[^'"]*$)""")
# key=value or key: value (the dictionary rendering used by older uploads)
_KEY_VALUE = re.compile(r"""^\s*['"]?(?P<key>[^'"=:]+?)['"]?\s*[=:]\s*(?P<value>.*?)\s*$""")

_NULL_TOKENS = {"", "na", "nan", "none", "null", "nat"}


def _strip_quotes(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    return text


def parse_covariate_text(text: Any) -> Dict[str, Optional[str]]:
    """
    Parse one covariate cell into {key: raw value}.

    Accepts "temp=12.5, plot=control" as well as "{'temp': 12.5, 'plot': 'control'}".
    Pairs without a key/value separator or with an empty key are skipped;
    the rest of the cell is still parsed. Missing cells give {}.
    """
    if text is None:
        return {}
    try:
        if pd.isna(text):
            return {}
    except (TypeError, ValueError):
        pass

    body = str(text).strip()
    if body.startswith("{") and body.endswith("}"):
        body = body[1:-1]
    if not body.strip():
        return {}

    out: Dict[str, Optional[str]] = {}
    for chunk in _PAIR_SPLIT.split(body):
        if not chunk.strip():
            continue
        m = _KEY_VALUE.match(chunk)
        if m is None:
            logger.debug("Skipping malformed covariate pair %r", chunk)
            continue
        key = m.group("key").strip()
        if not key:
            logger.debug("Skipping covariate pair with empty key %r", chunk)
            continue
        value = _strip_quotes(m.group("value"))
        out[key] = None if value.lower() in _NULL_TOKENS else value
    return out


def _coerce_column(values: pd.Series) -> pd.Series:
    """
    Numeric when every present value parses as a number, text otherwise.
    """
    present = values.dropna()
    if present.empty:
        return values.astype("object")

    numeric = pd.to_numeric(present, errors="coerce")
    if numeric.notna().all():
        full = pd.to_numeric(values, errors="coerce")
        if (full.dropna() % 1 == 0).all():
            return full.astype("Int64")
        return full.astype("float64")
    return values.astype("string")


def unpack_covariates(df: pd.DataFrame, column: str = COVARIATES_COL) -> pd.DataFrame:
    """
    One typed column per covariate key found in `column`, one row per source
    row (same index). Keys keep their order of first appearance.
    """
    if column not in df.columns:
        raise KeyError(f"Column '{column}' not found; present columns: {list(df.columns)}")

    parsed: List[Dict[str, Optional[str]]] = [parse_covariate_text(v) for v in df[column].tolist()]

    keys: List[str] = []
    for row in parsed:
        for k in row:
            if k not in keys:
                keys.append(k)

    out = pd.DataFrame(index=df.index)
    for k in keys:
        raw = pd.Series([row.get(k) for row in parsed], index=df.index, dtype="object")
        out[k] = _coerce_column(raw)

    logger.info("Unpacked %s covariate columns from %s rows", len(keys), len(df))
    return out


def cov_unpack(df: pd.DataFrame, column: str = COVARIATES_COL) -> pd.DataFrame:
    """
    Replace the raw covariate text column with its unpacked columns.
    Keys clashing with existing columns get a "cov_" prefix.
    """
    unpacked = unpack_covariates(df, column)
    base = df.drop(columns=[column])
    renames = {c: f"cov_{c}" for c in unpacked.columns if c in base.columns}
    if renames:
        logger.warning("Covariate keys clash with dataset columns; renamed %s", renames)
        unpacked = unpacked.rename(columns=renames)
    return pd.concat([base, unpacked], axis=1)
