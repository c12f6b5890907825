"""API routes for SheetRules."""

from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..config import settings
from ..pipeline import (
    MappingRule,
    RowPipeline,
    SheetTransformService,
    SourceTable,
    TransformResult,
)
from ..rules import ConfigError, FormulaSandbox, RuleSyntaxError, tokenize
from ..sheets import GoogleSheetsClient, SheetsFormulaSandbox

router = APIRouter()

# Global sheets client instance
_sheets_client: Optional[GoogleSheetsClient] = None


def get_sheets_client() -> GoogleSheetsClient:
    """Get the global Google Sheets client."""
    global _sheets_client
    if _sheets_client is None:
        _sheets_client = GoogleSheetsClient()
    return _sheets_client


class TokenizeRequest(BaseModel):
    """Request to tokenize one instruction."""

    instruction: str


class TokenInfo(BaseModel):
    kind: str
    value: str
    raw: str


class ValidateRequest(BaseModel):
    """Request to validate a mapping against source headers."""

    source_headers: list[str]
    rules: list[MappingRule]


class ValidateResponse(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    output_headers: list[str] = Field(default_factory=list)
    filters: list[str] = Field(default_factory=list)


class TransformRequest(BaseModel):
    """Request to transform in-memory rows; formulas run in the spreadsheet's sandbox."""

    spreadsheet_id: str
    source: SourceTable
    rules: list[MappingRule]


class RunRequest(BaseModel):
    """Request to run the configured sheet-to-sheet transformation."""

    spreadsheet_id: Optional[str] = None
    dry_run: bool = False


def get_sandbox_factory() -> Callable[[str], FormulaSandbox]:
    """Return a function building the scratch-cell sandbox for a spreadsheet."""

    def factory(spreadsheet_id: str) -> FormulaSandbox:
        return SheetsFormulaSandbox(
            get_sheets_client(),
            spreadsheet_id,
            settings.sandbox_sheet,
            settings.sandbox_cell,
        )

    return factory


@router.get("/health")
async def health_check():
    """Health check endpoint with diagnostics."""
    return {
        "status": "ok",
        "service": "sheetrules",
        "config": {
            "spreadsheet_configured": bool(settings.spreadsheet_id),
            "source_sheet": settings.source_sheet,
            "mapping_sheet": settings.mapping_sheet,
            "output_sheet": settings.output_sheet,
            "google_credentials_configured": settings.google_credentials_path.exists(),
        },
    }


@router.post("/rules/tokenize", response_model=list[TokenInfo])
async def tokenize_instruction(request: TokenizeRequest):
    """Show how an instruction is split into tokens."""
    return [
        TokenInfo(kind=token.kind.value, value=token.value, raw=token.raw)
        for token in tokenize(request.instruction)
    ]


@router.post("/rules/validate", response_model=ValidateResponse)
async def validate_rules(request: ValidateRequest):
    """Parse a mapping against source headers and report the first error."""
    try:
        rule_set = RowPipeline.load_rules(request.rules, request.source_headers)
    except RuleSyntaxError as e:
        return ValidateResponse(valid=False, errors=[str(e)])

    return ValidateResponse(
        valid=True,
        output_headers=rule_set.output_headers,
        filters=[rule.header for rule in rule_set.filters],
    )


@router.post("/transform", response_model=TransformResult)
def transform(
    request: TransformRequest,
    sandbox_factory: Callable[[str], FormulaSandbox] = Depends(get_sandbox_factory),
):
    """Run a mapping over the given rows."""
    pipeline = RowPipeline(sandbox_factory(request.spreadsheet_id))
    try:
        return pipeline.transform(request.source, request.rules)
    except RuleSyntaxError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/run", response_model=TransformResult)
def run_transformation(request: RunRequest):
    """Run the configured source -> output transformation in a spreadsheet."""
    try:
        service = SheetTransformService(
            client=get_sheets_client(), spreadsheet_id=request.spreadsheet_id
        )
        return service.run(dry_run=request.dry_run)
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuleSyntaxError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=502, detail=str(e))
