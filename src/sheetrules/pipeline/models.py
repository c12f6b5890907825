"""Data models for the row pipeline."""

from typing import Any

from pydantic import BaseModel, Field

from ..rules.models import FilterRule, OutputInstruction
from ..rules.syntax import COMMENT_MARKER


class MappingRule(BaseModel):
    """One row of the mapping table."""

    header: str
    instruction: str = ""

    @property
    def is_skipped(self) -> bool:
        """Empty headers and ``//`` comment rows never reach the parser."""
        header = self.header.strip()
        return not header or header.startswith(COMMENT_MARKER)


class SourceTable(BaseModel):
    """Header names plus display-formatted rows."""

    headers: list[str]
    rows: list[list[str]] = Field(default_factory=list)

    @classmethod
    def from_values(cls, values: list[list[Any]]) -> "SourceTable":
        """Build a table from a raw value grid whose first row is the header."""
        if not values:
            return cls(headers=[])
        headers = [str(h).strip() for h in values[0]]
        rows = [["" if v is None else str(v) for v in row] for row in values[1:]]
        return cls(headers=headers, rows=rows)

    def row_dict(self, row: list[str]) -> dict[str, str]:
        """Map header -> value, padding short rows with empty strings."""
        padded = list(row[: len(self.headers)])
        padded.extend([""] * (len(self.headers) - len(padded)))
        return dict(zip(self.headers, padded))


class RuleSet(BaseModel):
    """Parsed mapping: output columns in order plus filters."""

    outputs: list[OutputInstruction] = Field(default_factory=list)
    filters: list[FilterRule] = Field(default_factory=list)

    @property
    def output_headers(self) -> list[str]:
        return [instruction.header for instruction in self.outputs]


class TransformResult(BaseModel):
    """Result of running the pipeline over a source table."""

    headers: list[str]
    rows: list[list[str]] = Field(default_factory=list)
    rows_read: int = 0
    rows_filtered: int = 0

    def to_values(self) -> list[list[str]]:
        """Rows for the output sink, header row first."""
        return [list(self.headers)] + [list(row) for row in self.rows]
