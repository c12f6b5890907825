"""Formula sandbox backed by a scratch cell in the spreadsheet."""

import logging
import threading
from typing import Any

from .client import GoogleSheetsClient, parse_cell_notation, sheet_range

logger = logging.getLogger(__name__)

# One lock per scratch cell, shared by every sandbox writing to it
_cell_locks: dict[tuple[str, str, str], threading.Lock] = {}
_cell_locks_guard = threading.Lock()


def _lock_for_cell(spreadsheet_id: str, sheet_name: str, cell: str) -> threading.Lock:
    key = (spreadsheet_id, sheet_name, cell.replace("$", "").upper())
    with _cell_locks_guard:
        return _cell_locks.setdefault(key, threading.Lock())


class SheetsFormulaSandbox:
    """
    Evaluate spreadsheet formulas in a single hidden scratch cell.

    Each call clears the cell, writes the formula, reads back the computed
    value and clears the cell again. Sandboxes pointing at the same cell share
    one lock, so calls are serialized across instances and threads.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        spreadsheet_id: str,
        sheet_name: str,
        cell: str = "A1",
    ):
        parse_cell_notation(cell)
        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.cell = cell
        self._lock = _lock_for_cell(spreadsheet_id, sheet_name, cell)
        self._ready = False

    @property
    def range_notation(self) -> str:
        return sheet_range(self.sheet_name, self.cell)

    def ensure_sheet(self) -> None:
        """Create the sandbox sheet if the spreadsheet does not have it yet."""
        if self._ready:
            return
        if self.sheet_name not in self.client.get_sheet_titles(self.spreadsheet_id):
            self.client.add_sheet(self.spreadsheet_id, self.sheet_name)
        self._ready = True

    def evaluate(self, formula_text: str) -> Any:
        """
        Compute the value of ``formula_text``.

        Args:
            formula_text: A formula starting with '='

        Returns:
            The unformatted computed value (bool, number or text); "" if empty
        """
        with self._lock:
            self.ensure_sheet()
            self.client.clear_range(self.spreadsheet_id, self.range_notation)
            try:
                values = self._write_and_read(formula_text)
            except Exception:
                self._clear_after_failure()
                raise
            self.client.clear_range(self.spreadsheet_id, self.range_notation)

        value = values[0][0] if values and values[0] else ""
        logger.debug(f"Sandbox {formula_text} -> {value!r}")
        return value

    def _write_and_read(self, formula_text: str) -> list[list[Any]]:
        result = self.client.write_values(
            self.spreadsheet_id, self.range_notation, [[formula_text]]
        )
        if not result.success:
            raise RuntimeError(f"Failed to write sandbox formula: {'; '.join(result.errors)}")
        return self.client.read_values(
            self.spreadsheet_id,
            self.range_notation,
            value_render_option="UNFORMATTED_VALUE",
        )

    def _clear_after_failure(self) -> None:
        # The original evaluation error is the one worth reporting
        try:
            self.client.clear_range(self.spreadsheet_id, self.range_notation)
        except Exception as e:
            logger.warning(f"Failed to clear sandbox cell {self.range_notation}: {e}")
