"""Browse and query errors.

All of them are raised synchronously by the pure-data layer and terminate the
current call. Network failures stay in data_loader.DataLoaderError.
"""

from __future__ import annotations

from typing import Iterable


class PoplerError(Exception):
    """Base exception for browse/query failures."""


class EmptyResultError(PoplerError):
    """Raised when a filter leaves no project (or a download returns no rows)."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or (
                "No matches found. Either:\n"
                "  1. the name of the variable(s) you specified is/are incorrect, or\n"
                "  2. the values you are looking for are not contained in the variable(s) you specified."
            )
        )


class MisspelledColumnError(PoplerError):
    """Raised when a requested column is not part of the metadata schema."""

    def __init__(self, columns: Iterable[str]) -> None:
        self.columns = list(columns)
        names = ", ".join(f"'{c}'" for c in self.columns)
        super().__init__(f"The following column name(s) were misspelled: {names}")


class ConflictingFiltersError(PoplerError):
    """Raised when both a criteria expression and a keyword are supplied."""

    def __init__(self) -> None:
        super().__init__(
            "browse() cannot subset on both a logical expression and the 'keyword' argument. "
            "Please use only one of the two methods, or refine your search with get_data()."
        )


class MalformedExpressionError(PoplerError):
    """Raised when a predicate references unknown columns or has an unsupported shape."""
