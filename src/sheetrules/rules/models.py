"""Data models for the rule interpreter."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field


class TokenKind(str, Enum):
    """Kind of a lexical token."""

    SOURCE_REF = "source_ref"  # src[Column]
    SELF_REF = "self_ref"  # self[Column]
    STRING = "string"  # "quoted text"
    NUMBER = "number"  # 42, 4.5, 4,5
    OPERATOR = "operator"  # == != >= <= > <
    OR = "or"  # ||
    FORMULA = "formula"  # =SOMETHING(...)
    TEXT = "text"  # anything else


@dataclass(frozen=True)
class Token:
    """A single lexical unit produced by the lexer."""

    kind: TokenKind
    value: str  # Decoded payload (column name, operator, literal text...)
    raw: str  # Exact substring consumed


# Operands


class SourceRef(BaseModel):
    kind: Literal["source_ref"] = "source_ref"
    column: str


class SelfRef(BaseModel):
    kind: Literal["self_ref"] = "self_ref"
    column: str


class StringLit(BaseModel):
    kind: Literal["string"] = "string"
    value: str


class NumberLit(BaseModel):
    kind: Literal["number"] = "number"
    value: float


class FormulaLit(BaseModel):
    kind: Literal["formula"] = "formula"
    formula: str


class TextLit(BaseModel):
    """Raw text that matched no other token kind."""

    kind: Literal["text"] = "text"
    value: str


class CompoundExpr(BaseModel):
    """Several tokens resolved together like a template."""

    kind: Literal["compound"] = "compound"
    tokens: list[Token]
    raw: str


Operand = Union[SourceRef, SelfRef, StringLit, NumberLit, FormulaLit, TextLit, CompoundExpr]


# Conditions


class Comparison(BaseModel):
    """``left op right``."""

    left: Operand = Field(discriminator="kind")
    op: str
    right: Operand = Field(discriminator="kind")


class FormulaCondition(BaseModel):
    """A condition that is itself a spreadsheet boolean formula."""

    op: Literal["FORMULA"] = "FORMULA"
    formula: str


Condition = Union[Comparison, FormulaCondition]


# Instructions


class Direct(BaseModel):
    """Output equals the row's value in ``column``."""

    kind: Literal["direct"] = "direct"
    header: str
    column: str


class Constant(BaseModel):
    """Output is a fixed literal."""

    kind: Literal["constant"] = "constant"
    header: str
    value: str


class FormulaRule(BaseModel):
    """Output is a spreadsheet formula with unresolved references."""

    kind: Literal["formula"] = "formula"
    header: str
    formula_template: str


class Expression(BaseModel):
    """Mixed literal/reference text substituted token by token."""

    kind: Literal["expression"] = "expression"
    header: str
    tokens: list[Token] = Field(default_factory=list)
    raw: str = ""
    is_formula_like: bool = False


class FilterRule(BaseModel):
    """Row filter; never produces an output column."""

    kind: Literal["filter"] = "filter"
    header: str
    raw: str
    is_eval: bool = False
    is_formula: bool = False
    conditions: list[Condition] = Field(default_factory=list)
    formula_template: Optional[str] = None


Instruction = Union[Direct, Constant, FormulaRule, Expression, FilterRule]
OutputInstruction = Union[Direct, Constant, FormulaRule, Expression]


@dataclass
class EvaluationContext:
    """Per-row evaluation state. Never shared between rows."""

    source_row: dict[str, str] = field(default_factory=dict)
    output_so_far: dict[str, Any] = field(default_factory=dict)
    output_cell_refs: dict[str, str] = field(default_factory=dict)
    rule_header: str = ""
    formula_mode: bool = False

    def for_rule(self, header: str) -> "EvaluationContext":
        """Return a view of this context for another rule (shares the row maps)."""
        return replace(self, rule_header=header)

    def in_formula_mode(self, enabled: bool = True) -> "EvaluationContext":
        """Return a view of this context with formula-mode formatting toggled."""
        return replace(self, formula_mode=enabled)


# Errors


class RuleError(Exception):
    """Base class for rule configuration and syntax errors."""

    pass


class ConfigError(RuleError):
    """Raised when required configuration or sheet names are missing or invalid."""

    pass


class RuleSyntaxError(RuleError):
    """Raised when a mapping rule cannot be parsed."""

    def __init__(self, header: str, message: str):
        self.header = header
        self.message = message
        super().__init__(f"Rule '{header}': {message}")


class ColumnNotFoundError(RuleSyntaxError):
    """Raised when ``src[...]`` names a column missing from the source headers."""

    def __init__(self, header: str, column: str):
        self.column = column
        super().__init__(header, f"Column '{column}' not found in source headers")
