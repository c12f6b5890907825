"""Pytest configuration and shared fixtures."""

from typing import Any, Optional
from unittest.mock import Mock

import pytest

from sheetrules.config import Settings
from sheetrules.pipeline import SourceTable
from sheetrules.rules import EvaluationContext
from sheetrules.sheets import GoogleSheetsClient, UpdateResult


class FakeSandbox:
    """In-memory formula sandbox returning canned results and recording calls."""

    def __init__(self, results: Optional[dict[str, Any]] = None, default: Any = ""):
        self.results = results or {}
        self.default = default
        self.calls: list[str] = []

    def evaluate(self, formula_text: str) -> Any:
        self.calls.append(formula_text)
        return self.results.get(formula_text, self.default)


@pytest.fixture
def sandbox() -> FakeSandbox:
    """Create an empty fake sandbox."""
    return FakeSandbox()


@pytest.fixture
def people() -> SourceTable:
    """A small source table."""
    return SourceTable(
        headers=["Name", "Age", "Score", "Joined"],
        rows=[
            ["Ana", "17", "4,6", "15/03/2024"],
            ["Bruno", "25", "3.9", "01-12-2023"],
            ["Carla", "40", "abc", ""],
        ],
    )


@pytest.fixture
def make_context():
    """Build an evaluation context from plain dicts."""

    def _make(
        source_row: Optional[dict] = None,
        output_so_far: Optional[dict] = None,
        output_cell_refs: Optional[dict] = None,
    ) -> EvaluationContext:
        return EvaluationContext(
            source_row=dict(source_row or {}),
            output_so_far=dict(output_so_far or {}),
            output_cell_refs=dict(output_cell_refs or {}),
        )

    return _make


@pytest.fixture
def run_settings(tmp_path) -> Settings:
    """Settings pointing at a test spreadsheet."""
    return Settings(
        google_credentials_path=tmp_path / "credentials.json",
        google_token_path=tmp_path / "token.json",
        spreadsheet_id="test-sheet-123",
        source_sheet="Source",
        mapping_sheet="Mapping",
        output_sheet="Output",
        sandbox_sheet="_sandbox",
        sandbox_cell="A1",
        mapping_has_header_row=True,
    )


@pytest.fixture
def mock_sheets_client() -> Mock:
    """Create a mocked Google Sheets client."""
    client = Mock(spec=GoogleSheetsClient)
    client.get_sheet_titles = Mock(return_value=["Source", "Mapping", "Output", "_sandbox"])
    client.write_values = Mock(
        return_value=UpdateResult(success=True, spreadsheet_id="test-sheet-123")
    )
    client.read_values = Mock(return_value=[])
    client.clear_range = Mock()
    client.add_sheet = Mock()
    return client
