"""Evaluator resolving operands, filters and output columns for one row."""

import logging
import math
import operator
from typing import Any, Callable, Protocol

from .models import (
    Comparison,
    CompoundExpr,
    Condition,
    Constant,
    Direct,
    EvaluationContext,
    Expression,
    FilterRule,
    FormulaCondition,
    FormulaLit,
    FormulaRule,
    NumberLit,
    Operand,
    OutputInstruction,
    SelfRef,
    SourceRef,
    StringLit,
    TextLit,
)
from .syntax import (
    DATE_PATTERN,
    REFERENCE_PATTERN,
    display_value,
    is_numeric_text,
    is_true_result,
    normalize_decimal,
    parse_float,
)

logger = logging.getLogger(__name__)


class FormulaSandbox(Protocol):
    """Computes the value of a spreadsheet formula without touching user data."""

    def evaluate(self, formula_text: str) -> Any:
        ...


def format_formula_value(value: Any) -> str:
    """
    Format a resolved value so it can be spliced into formula text.

    - empty or missing -> ``""``
    - ``DD/MM/YYYY`` or ``DD-MM-YYYY`` -> ``DATE(YYYY,MM,DD)``
    - numeric (after comma->dot and ignoring a trailing ``%``) -> unquoted
    - anything else -> double-quoted string literal

    Args:
        value: Raw cell value or previously evaluated output

    Returns:
        Formula-safe literal text
    """
    text = display_value(value).strip()
    if not text:
        return '""'

    date_match = DATE_PATTERN.match(text)
    if date_match:
        day, month, year = (int(part) for part in date_match.groups())
        return f"DATE({year},{month},{day})"

    if isinstance(value, bool):
        return text

    normalized = normalize_decimal(text)
    numeric_part = normalized[:-1] if normalized.endswith("%") else normalized
    if is_numeric_text(numeric_part):
        return normalized

    escaped = text.replace('"', '""')
    return f'"{escaped}"'


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_number(value: Any) -> float:
    """``Number()`` coercion used by loose equality."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if _is_number(value):
        return float(value)
    text = display_value(value).strip()
    if not text:
        return 0.0
    if is_numeric_text(text):
        return float(text)
    return math.nan


def loose_equals(left: Any, right: Any) -> bool:
    """
    Loose equality between resolved values.

    Values of the same kind are compared as given ("5" != "5.0"). A number
    compared to text or a boolean coerces the other side to a number.
    """
    left = "" if left is None else left
    right = "" if right is None else right

    if isinstance(left, bool) or isinstance(right, bool):
        if isinstance(left, bool) and isinstance(right, bool):
            return left == right
        return _to_number(left) == _to_number(right)
    if _is_number(left) and _is_number(right):
        return float(left) == float(right)
    if _is_number(left) or _is_number(right):
        return _to_number(left) == _to_number(right)
    return str(left) == str(right)


def _numeric(compare: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        # NaN on either side is never true
        return compare(parse_float(left), parse_float(right))

    return apply


OPERATOR_FUNCTIONS: dict[str, Callable[[Any, Any], bool]] = {
    "==": loose_equals,
    "!=": lambda left, right: not loose_equals(left, right),
    ">": _numeric(operator.gt),
    "<": _numeric(operator.lt),
    ">=": _numeric(operator.ge),
    "<=": _numeric(operator.le),
}


class RuleEvaluator:
    """Evaluate parsed rules against one row at a time."""

    def __init__(self, sandbox: FormulaSandbox):
        """
        Initialize the evaluator.

        Args:
            sandbox: Formula sandbox used for every spreadsheet-formula
                evaluation. Calls are made one at a time.
        """
        self.sandbox = sandbox

    # Filters

    def evaluate_filter(self, rule: FilterRule, ctx: EvaluationContext) -> bool:
        """Return True if the row passes ``rule``."""
        if not rule.is_eval:
            return True

        ctx = ctx.for_rule(rule.header)
        if rule.is_formula:
            return is_true_result(self.evaluate_formula(rule.formula_template, ctx))

        for condition in rule.conditions:
            if self.evaluate_condition(condition, ctx):
                return True
        return False

    def evaluate_condition(self, condition: Condition, ctx: EvaluationContext) -> bool:
        """Evaluate a single comparison or formula condition."""
        if isinstance(condition, FormulaCondition):
            return is_true_result(self.evaluate_formula(condition.formula, ctx))
        elif isinstance(condition, Comparison):
            apply = OPERATOR_FUNCTIONS.get(condition.op)
            if apply is None:
                raise ValueError(f"Unknown operator: {condition.op}")
            left = self.resolve_operand(condition.left, ctx)
            right = self.resolve_operand(condition.right, ctx)
            result = apply(left, right)
            logger.debug(
                f"Filter '{ctx.rule_header}': {left!r} {condition.op} {right!r} -> {result}"
            )
            return result
        else:
            raise ValueError(f"Unknown condition type: {type(condition).__name__}")

    # Operands and templates

    def resolve_operand(self, operand: Operand, ctx: EvaluationContext) -> Any:
        """Resolve an operand to a value for the current row."""
        if isinstance(operand, SourceRef):
            return self._substitute(self._lookup("src", operand.column, ctx), ctx)
        elif isinstance(operand, SelfRef):
            return self._substitute(self._lookup("self", operand.column, ctx), ctx)
        elif isinstance(operand, (StringLit, NumberLit, TextLit)):
            return operand.value
        elif isinstance(operand, FormulaLit):
            return is_true_result(self.evaluate_formula(operand.formula, ctx))
        elif isinstance(operand, CompoundExpr):
            return self.resolve_template(operand.raw, ctx)
        else:
            raise ValueError(f"Unknown operand type: {type(operand).__name__}")

    def resolve_template(
        self, raw: str, ctx: EvaluationContext, use_cell_refs: bool = False
    ) -> str:
        """
        Substitute every ``src[...]`` and ``self[...]`` in ``raw``.

        Only whole reference spans are rewritten, so a column whose name is a
        substring of another column is never mis-substituted.

        Args:
            raw: Template text
            ctx: Row context; ``ctx.formula_mode`` selects formula-safe formatting
            use_cell_refs: Render ``self[...]`` as the output cell address
                when one is known (live formulas written to the output)

        Returns:
            The substituted text
        """
        pieces = []
        pos = 0
        for match in REFERENCE_PATTERN.finditer(raw):
            kind, column = match.group(1), match.group(2)
            pieces.append(raw[pos:match.start()])

            if use_cell_refs and kind == "self" and column in ctx.output_cell_refs:
                pieces.append(ctx.output_cell_refs[column])
            else:
                pieces.append(self._substitute(self._lookup(kind, column, ctx), ctx))
            pos = match.end()
        pieces.append(raw[pos:])
        return "".join(pieces)

    def evaluate_formula(self, template: str, ctx: EvaluationContext) -> Any:
        """Resolve references in a formula template and run it in the sandbox."""
        formula = self.resolve_template(template, ctx.in_formula_mode())
        logger.debug(f"Rule '{ctx.rule_header}': evaluating {formula}")
        return self.sandbox.evaluate(formula)

    # Output columns

    def resolve_output(
        self, instruction: OutputInstruction, ctx: EvaluationContext
    ) -> tuple[Any, Any]:
        """
        Resolve an output column.

        Returns:
            ``(literal, evaluated)``: the literal goes to the output row, the
            evaluated value is what later ``self[...]`` references observe
        """
        ctx = ctx.for_rule(instruction.header)

        if isinstance(instruction, Direct):
            value = ctx.source_row.get(instruction.column, "")
            return value, value
        elif isinstance(instruction, Constant):
            return instruction.value, instruction.value
        elif isinstance(instruction, FormulaRule):
            return self._resolve_formula_output(instruction.formula_template, ctx)
        elif isinstance(instruction, Expression):
            if instruction.raw.startswith("="):
                if instruction.is_formula_like:
                    return self._resolve_formula_output(instruction.raw, ctx)
                return instruction.raw, self.sandbox.evaluate(instruction.raw)
            value = self.resolve_template(instruction.raw, ctx.in_formula_mode(False))
            return value, value
        else:
            raise ValueError(f"Unknown instruction type: {type(instruction).__name__}")

    def _resolve_formula_output(self, template: str, ctx: EvaluationContext) -> tuple[str, Any]:
        formula_ctx = ctx.in_formula_mode()
        literal = self.resolve_template(template, formula_ctx, use_cell_refs=True)
        evaluated = self.evaluate_formula(template, formula_ctx)
        return literal, evaluated

    def _lookup(self, kind: str, column: str, ctx: EvaluationContext) -> Any:
        if kind == "src":
            values = ctx.source_row
        else:
            values = ctx.output_so_far

        if column not in values:
            logger.warning(
                f"Rule '{ctx.rule_header}': {kind}[{column}] has no value, using empty"
            )
            return ""
        return values[column]

    def _substitute(self, value: Any, ctx: EvaluationContext) -> Any:
        if ctx.formula_mode:
            return format_formula_value(value)
        return display_value(value) if not isinstance(value, str) else value
