"""Configuration management for SheetRules."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from .rules.models import ConfigError

load_dotenv()


def _parse_cors_origins() -> list[str]:
    """Parse CORS origins from environment variable."""
    cors_env = os.getenv("CORS_ALLOW_ORIGINS")
    if cors_env:
        return cors_env.split(",")
    return ["*"]


class Settings(BaseModel):
    """Application settings."""

    # Google Sheets API credentials
    google_credentials_path: Path = Path(os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"))
    google_token_path: Path = Path(os.getenv("GOOGLE_TOKEN_PATH", "token.json"))

    # Spreadsheet and sheet names
    spreadsheet_id: Optional[str] = os.getenv("SPREADSHEET_ID") or None
    source_sheet: str = os.getenv("SOURCE_SHEET", "Source")
    mapping_sheet: str = os.getenv("MAPPING_SHEET", "Mapping")
    output_sheet: str = os.getenv("OUTPUT_SHEET", "Output")
    mapping_has_header_row: bool = os.getenv("MAPPING_HAS_HEADER_ROW", "true").lower() == "true"

    # Scratch cell used to evaluate formulas
    sandbox_sheet: str = os.getenv("SANDBOX_SHEET", "_sandbox")
    sandbox_cell: str = os.getenv("SANDBOX_CELL", "A1")

    # Server settings
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "8000"))
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"

    # CORS settings (comma-separated list of allowed origins, or * for all)
    cors_allow_origins: list[str] = _parse_cors_origins()

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def require_sheet_names(self, spreadsheet_id: Optional[str] = None) -> str:
        """
        Check that everything needed for a spreadsheet run is configured.

        Args:
            spreadsheet_id: Overrides the configured spreadsheet id

        Returns:
            The spreadsheet id to use

        Raises:
            ConfigError: If the id or a sheet name is missing, or the sheets
                are not distinct
        """
        spreadsheet_id = spreadsheet_id or self.spreadsheet_id
        if not spreadsheet_id:
            raise ConfigError("No spreadsheet id configured (set SPREADSHEET_ID)")

        names = {
            "source sheet": self.source_sheet,
            "mapping sheet": self.mapping_sheet,
            "output sheet": self.output_sheet,
            "sandbox sheet": self.sandbox_sheet,
        }
        for label, name in names.items():
            if not name or not name.strip():
                raise ConfigError(f"The {label} name is empty")

        data_sheets = [self.source_sheet, self.mapping_sheet, self.output_sheet]
        if len(set(data_sheets)) != len(data_sheets) or self.sandbox_sheet in data_sheets:
            raise ConfigError(
                "Source, mapping, output and sandbox sheets must be different "
                f"(got {', '.join(data_sheets + [self.sandbox_sheet])})"
            )
        return spreadsheet_id


settings = Settings()
