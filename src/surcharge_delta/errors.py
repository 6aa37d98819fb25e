"""Named failure conditions raised to callers of the engine."""

from __future__ import annotations


class SurchargeDeltaError(Exception):
    """Base class for every failure the engine reports to its caller."""


class UnreadableWorkbookError(SurchargeDeltaError, ValueError):
    """The input bytes could not be decoded as a workbook."""


class MissingDatasetError(SurchargeDeltaError, ValueError):
    """A comparison was requested without both datasets loaded."""


class NoChangesError(SurchargeDeltaError, ValueError):
    """An export was requested for a change set with no changed records."""


class DuplicateKeyError(SurchargeDeltaError, ValueError):
    """A composite key occurs more than once under the ``reject`` policy."""

    def __init__(self, sheet: str, key: str) -> None:
        super().__init__(f"Duplicate key {key!r} in sheet {sheet!r}")
        self.sheet = sheet
        self.key = key
