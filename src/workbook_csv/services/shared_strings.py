"""Shared string table lookups."""

from __future__ import annotations

from collections.abc import Iterable

from workbook_csv.utils.logging import get_logger

logger = get_logger(__name__)


class SharedStringTable:
    """Ordered pool of deduplicated strings referenced by index.

    The ZIP/XML reader fills the table before the first cell is decoded. The
    BIFF decoder fills it when the SST record arrives, so lookups made
    earlier resolve to an empty string.
    """

    def __init__(self, strings: Iterable[str] | None = None) -> None:
        self._strings: list[str] | None = None
        if strings is not None:
            self.load(strings)

    def load(self, strings: Iterable[str]) -> None:
        """Replace the table contents."""
        self._strings = list(strings)
        logger.debug("Shared string table loaded", count=len(self._strings))

    def resolve(self, index: int | str | None) -> str:
        """Return the string at ``index`` or ``""`` when it cannot be resolved."""
        if self._strings is None or index is None:
            return ""
        try:
            position = int(index)
        except (TypeError, ValueError):
            return ""
        if not 0 <= position < len(self._strings):
            return ""
        return self._strings[position]

    def __len__(self) -> int:
        return len(self._strings) if self._strings is not None else 0
