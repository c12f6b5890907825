"""Row pipeline: mapping table in, filtered output rows out."""

from .models import MappingRule, SourceTable, RuleSet, TransformResult
from .runner import RowPipeline
from .service import SheetTransformService

__all__ = [
    "MappingRule",
    "SourceTable",
    "RuleSet",
    "TransformResult",
    "RowPipeline",
    "SheetTransformService",
]
