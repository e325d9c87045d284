from __future__ import annotations

from pathlib import Path
from typing import Any, Union

import logging

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Single-file format: gzip-compressed pickle. Round-trips nested DataFrame
# cells, dtypes and DataFrame.attrs exactly.
COMPRESSION = "gzip"


def save_table(obj: Any, path: PathLike) -> Path:
    """
    Save a table (or any picklable result, e.g. a BrowseResult) to one
    compressed file. Parent directories are created; an existing file is
    overwritten.
    """
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    pd.to_pickle(obj, target, compression=COMPRESSION)
    logger.info("Saved %s to %s", type(obj).__name__, target)
    return target


def load_table(path: PathLike) -> Any:
    """
    Load an object written by save_table(). I/O errors propagate unchanged.
    """
    source = Path(path).expanduser()
    obj = pd.read_pickle(source, compression=COMPRESSION)
    logger.info("Loaded %s from %s", type(obj).__name__, source)
    return obj
