"""Data models for Google Sheets operations."""

from typing import Any, Optional
from pydantic import BaseModel, Field


class SheetValues(BaseModel):
    """All values read from one sheet."""

    spreadsheet_id: str
    sheet_name: str
    values: list[list[Any]] = Field(default_factory=list)

    def column_pairs(self, skip_header: bool = False) -> list[tuple[str, str]]:
        """Return the first two columns of every row as string pairs."""
        rows = self.values[1:] if skip_header else self.values
        pairs = []
        for row in rows:
            first = str(row[0]) if len(row) > 0 and row[0] is not None else ""
            second = str(row[1]) if len(row) > 1 and row[1] is not None else ""
            pairs.append((first, second))
        return pairs


class UpdateResult(BaseModel):
    """Result of writing values."""

    success: bool
    spreadsheet_id: str
    updated_range: Optional[str] = None
    updated_rows: int = 0
    updated_cells: int = 0
    errors: list[str] = Field(default_factory=list)
