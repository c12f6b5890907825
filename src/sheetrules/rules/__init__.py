"""Rule interpreter: lexer, parser and evaluator for the mapping mini-language.

Rules are short prefixed strings such as ``src[Amount]``,
``constant:EUR``, ``formula:=src[Price]*1.2`` or, in a ``_filter:`` row,
``eval:src[Age] >= 18 || src[Age] < 0``. They are parsed once and evaluated
per row without ever executing general-purpose code.
"""

from .models import (
    Token,
    TokenKind,
    SourceRef,
    SelfRef,
    StringLit,
    NumberLit,
    FormulaLit,
    TextLit,
    CompoundExpr,
    Comparison,
    FormulaCondition,
    Direct,
    Constant,
    FormulaRule,
    Expression,
    FilterRule,
    EvaluationContext,
    RuleError,
    ConfigError,
    RuleSyntaxError,
    ColumnNotFoundError,
)
from .lexer import tokenize
from .parser import RuleParser, parse_instruction, parse_rules
from .evaluator import FormulaSandbox, RuleEvaluator, format_formula_value

__all__ = [
    "Token",
    "TokenKind",
    "SourceRef",
    "SelfRef",
    "StringLit",
    "NumberLit",
    "FormulaLit",
    "TextLit",
    "CompoundExpr",
    "Comparison",
    "FormulaCondition",
    "Direct",
    "Constant",
    "FormulaRule",
    "Expression",
    "FilterRule",
    "EvaluationContext",
    "RuleError",
    "ConfigError",
    "RuleSyntaxError",
    "ColumnNotFoundError",
    "tokenize",
    "RuleParser",
    "parse_instruction",
    "parse_rules",
    "FormulaSandbox",
    "RuleEvaluator",
    "format_formula_value",
]
