"""Google Sheets API integration."""

from .client import GoogleSheetsClient
from .models import SheetValues, UpdateResult
from .sandbox import SheetsFormulaSandbox

__all__ = [
    "GoogleSheetsClient",
    "SheetValues",
    "UpdateResult",
    "SheetsFormulaSandbox",
]
