"""Spreadsheet-to-spreadsheet transformation run."""

import logging
from typing import Optional

from ..config import Settings, settings as default_settings
from ..rules.models import ConfigError
from ..sheets import GoogleSheetsClient, SheetsFormulaSandbox
from ..sheets.client import sheet_range
from .models import MappingRule, RuleSet, SourceTable, TransformResult
from .runner import RowPipeline

logger = logging.getLogger(__name__)


class SheetTransformService:
    """Read source and mapping sheets, run the pipeline, write the output sheet."""

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        config: Optional[Settings] = None,
        spreadsheet_id: Optional[str] = None,
    ):
        """
        Initialize the service.

        Args:
            client: Google Sheets client (created if not provided)
            config: Settings to use (module settings if not provided)
            spreadsheet_id: Overrides the configured spreadsheet id

        Raises:
            ConfigError: If the spreadsheet id or sheet names are invalid
        """
        self.config = config or default_settings
        self.spreadsheet_id = self.config.require_sheet_names(spreadsheet_id)
        self.client = client or GoogleSheetsClient()
        self.sandbox = SheetsFormulaSandbox(
            self.client,
            self.spreadsheet_id,
            self.config.sandbox_sheet,
            self.config.sandbox_cell,
        )
        self.pipeline = RowPipeline(self.sandbox)
        self._sheets_checked = False

    def check_sheets(self) -> None:
        """
        Check that the source, mapping and output sheets exist.

        Raises:
            ConfigError: If a sheet is missing
        """
        if self._sheets_checked:
            return
        titles = set(self.client.get_sheet_titles(self.spreadsheet_id))
        for name in (
            self.config.source_sheet,
            self.config.mapping_sheet,
            self.config.output_sheet,
        ):
            if name not in titles:
                raise ConfigError(
                    f"Sheet '{name}' not found in spreadsheet {self.spreadsheet_id}"
                )
        self._sheets_checked = True

    def read_source(self) -> SourceTable:
        """Read the source sheet (first row is the header)."""
        self.check_sheets()
        sheet = self.client.read_sheet(self.spreadsheet_id, self.config.source_sheet)
        return SourceTable.from_values(sheet.values)

    def read_mapping(self) -> list[MappingRule]:
        """Read the (header, instruction) pairs of the mapping sheet."""
        self.check_sheets()
        sheet = self.client.read_sheet(self.spreadsheet_id, self.config.mapping_sheet)
        pairs = sheet.column_pairs(skip_header=self.config.mapping_has_header_row)
        return [MappingRule(header=header, instruction=instruction) for header, instruction in pairs]

    def validate(self) -> RuleSet:
        """Parse the mapping against the source headers without processing rows."""
        source = self.read_source()
        return self.pipeline.load_rules(self.read_mapping(), source.headers)

    def run(self, dry_run: bool = False) -> TransformResult:
        """
        Run the full transformation.

        Parsing happens before any row is touched; nothing is written when a
        rule is invalid.

        Args:
            dry_run: Compute the result without writing the output sheet

        Returns:
            TransformResult with the output rows
        """
        source = self.read_source()
        rule_set = self.pipeline.load_rules(self.read_mapping(), source.headers)
        result = self.pipeline.run(source, rule_set)

        if dry_run:
            logger.info("Dry run: output sheet left untouched")
            return result

        output_range = sheet_range(self.config.output_sheet)
        self.client.clear_range(self.spreadsheet_id, output_range)
        update = self.client.write_values(
            self.spreadsheet_id, sheet_range(self.config.output_sheet, "A1"), result.to_values()
        )
        if not update.success:
            raise RuntimeError(f"Failed to write output: {'; '.join(update.errors)}")

        logger.info(
            f"Wrote {len(result.rows)} rows to sheet '{self.config.output_sheet}'"
        )
        return result
