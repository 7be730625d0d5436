"""Failures raised inside the sync engine and caught at its boundaries."""

from __future__ import annotations

from typing import Optional


class FetchFailure(RuntimeError):
    """Existing history could not be read, so a safe dedup baseline is unavailable."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to fetch history at {path!r}{detail}")
        self.path = path


class WriteFailure(RuntimeError):
    """A single history entry could not be written."""

    def __init__(self, history_key: str, cause: Optional[BaseException] = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to write history entry {history_key!r}{detail}")
        self.history_key = history_key
