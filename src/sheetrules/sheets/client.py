"""Google Sheets API client."""

import logging
import re
from typing import Any

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import settings
from .models import SheetValues, UpdateResult

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def col_letter_to_index(col: str) -> int:
    """Convert column letter(s) to 0-based index. A=0, B=1, ..., Z=25, AA=26, etc."""
    result = 0
    for char in col.upper():
        result = result * 26 + (ord(char) - ord("A") + 1)
    return result - 1


def index_to_col_letter(index: int) -> str:
    """Convert 0-based index to column letter(s)."""
    result = ""
    index += 1
    while index > 0:
        index -= 1
        result = chr(ord("A") + (index % 26)) + result
        index //= 26
    return result


def parse_cell_notation(cell: str) -> tuple[str, int]:
    """Parse A1 notation into column letters and row number."""
    match = re.fullmatch(r"\$?([A-Za-z]+)\$?(\d+)", cell.strip())
    if not match:
        raise ValueError(f"Invalid cell notation: {cell}")
    return match.group(1).upper(), int(match.group(2))


def sheet_range(sheet_name: str, cells: str = "") -> str:
    """Build a quoted range like ``'My Sheet'!A1:B2``."""
    quoted = "'" + sheet_name.replace("'", "''") + "'"
    return f"{quoted}!{cells}" if cells else quoted


class GoogleSheetsClient:
    """Client for interacting with Google Sheets API."""

    def __init__(self):
        self._service = None
        self._credentials = None

    def _get_credentials(self) -> Credentials:
        """Get or refresh OAuth2 credentials."""
        creds = None

        if settings.google_token_path.exists():
            creds = Credentials.from_authorized_user_file(str(settings.google_token_path), SCOPES)

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                creds.refresh(Request())
            else:
                if not settings.google_credentials_path.exists():
                    raise FileNotFoundError(
                        f"Google credentials file not found at {settings.google_credentials_path}. "
                        "Please download it from Google Cloud Console."
                    )
                flow = InstalledAppFlow.from_client_secrets_file(
                    str(settings.google_credentials_path), SCOPES
                )
                creds = flow.run_local_server(port=0)

            settings.google_token_path.parent.mkdir(parents=True, exist_ok=True)
            with open(settings.google_token_path, "w") as token:
                token.write(creds.to_json())

        return creds

    @property
    def service(self):
        """Get or create the Sheets API service."""
        if self._service is None:
            self._credentials = self._get_credentials()
            self._service = build("sheets", "v4", credentials=self._credentials)
        return self._service

    def get_sheet_titles(self, spreadsheet_id: str) -> list[str]:
        """List the titles of every sheet in a spreadsheet."""
        try:
            result = (
                self.service.spreadsheets()
                .get(spreadsheetId=spreadsheet_id, fields="sheets.properties.title")
                .execute()
            )
        except HttpError as e:
            raise RuntimeError(f"Failed to get spreadsheet info: {e}")
        return [sheet["properties"]["title"] for sheet in result.get("sheets", [])]

    def add_sheet(self, spreadsheet_id: str, title: str) -> None:
        """Create a new sheet tab."""
        body = {"requests": [{"addSheet": {"properties": {"title": title}}}]}
        try:
            self.service.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id, body=body
            ).execute()
        except HttpError as e:
            raise RuntimeError(f"Failed to add sheet '{title}': {e}")
        logger.info(f"Created sheet '{title}'")

    def read_values(
        self,
        spreadsheet_id: str,
        range_notation: str,
        value_render_option: str = "FORMATTED_VALUE",
    ) -> list[list[Any]]:
        """Read a range as a grid of values (trailing empties are omitted by the API)."""
        try:
            result = (
                self.service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=spreadsheet_id,
                    range=range_notation,
                    valueRenderOption=value_render_option,
                )
                .execute()
            )
        except HttpError as e:
            raise RuntimeError(f"Failed to read range: {e}")
        return result.get("values", [])

    def read_sheet(self, spreadsheet_id: str, sheet_name: str) -> SheetValues:
        """Read every display value of a sheet."""
        values = self.read_values(spreadsheet_id, sheet_range(sheet_name))
        logger.info(f"Read {len(values)} rows from sheet '{sheet_name}'")
        return SheetValues(
            spreadsheet_id=spreadsheet_id,
            sheet_name=sheet_name,
            values=values,
        )

    def write_values(
        self,
        spreadsheet_id: str,
        range_notation: str,
        values: list[list[Any]],
    ) -> UpdateResult:
        """Write a grid of values, letting the spreadsheet parse formulas."""
        if not values:
            return UpdateResult(success=True, spreadsheet_id=spreadsheet_id)

        try:
            result = (
                self.service.spreadsheets()
                .values()
                .update(
                    spreadsheetId=spreadsheet_id,
                    range=range_notation,
                    valueInputOption="USER_ENTERED",
                    body={"values": values},
                )
                .execute()
            )
        except HttpError as e:
            return UpdateResult(
                success=False,
                spreadsheet_id=spreadsheet_id,
                errors=[str(e)],
            )

        return UpdateResult(
            success=True,
            spreadsheet_id=spreadsheet_id,
            updated_range=result.get("updatedRange"),
            updated_rows=result.get("updatedRows", 0),
            updated_cells=result.get("updatedCells", 0),
        )

    def clear_range(self, spreadsheet_id: str, range_notation: str) -> None:
        """Clear values (not formatting) in a range."""
        try:
            self.service.spreadsheets().values().clear(
                spreadsheetId=spreadsheet_id, range=range_notation, body={}
            ).execute()
        except HttpError as e:
            raise RuntimeError(f"Failed to clear range: {e}")
