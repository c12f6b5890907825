"""Mini-language syntax definitions, patterns and small helpers."""

import math
import re
from typing import Pattern

# Rule prefixes (user-facing, stable)
FILTER_MARKER = "_filter:"
EVAL_MARKER = "eval:"
CONSTANT_MARKER = "constant:"
FORMULA_MARKER = "formula:"
COMMENT_MARKER = "//"

OR_DELIMITER = "||"
OPERATORS = ("==", "!=", ">=", "<=", ">", "<")

# Token patterns, anchored at the start of the remaining input.
SOURCE_REF_PATTERN: Pattern = re.compile(r"src\[([^\[\]]*)\]")
SELF_REF_PATTERN: Pattern = re.compile(r"self\[([^\[\]]*)\]")
OPERATOR_PATTERN: Pattern = re.compile(r"==|!=|>=|<=|>|<")
FORMULA_PATTERN: Pattern = re.compile(r"=[^\"\s|=]+")
STRING_PATTERN: Pattern = re.compile(r"\"([^\"]*)\"")
NUMBER_PATTERN: Pattern = re.compile(r"\d+(?:[.,]\d+)?")
OR_PATTERN: Pattern = re.compile(r"\|\|")

# Any src[...] or self[...] occurrence inside a template
REFERENCE_PATTERN: Pattern = re.compile(r"(src|self)\[([^\[\]]*)\]")

# DD/MM/YYYY or DD-MM-YYYY
DATE_PATTERN: Pattern = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")

# A complete numeric literal (Number() semantics, no hex)
NUMERIC_PATTERN: Pattern = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

# Leading numeric prefix (parseFloat semantics)
FLOAT_PREFIX_PATTERN: Pattern = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def check_brackets_balanced(text: str) -> bool:
    """
    Check that column brackets are balanced.

    The running count of ``[`` minus ``]`` must never go negative and must
    end at zero.

    Args:
        text: Raw instruction text

    Returns:
        True if balanced, False otherwise
    """
    depth = 0
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def normalize_decimal(value: str) -> str:
    """Replace a comma decimal separator with a dot ("4,5" -> "4.5")."""
    if "," in value and "." not in value and value.count(",") == 1:
        return value.replace(",", ".")
    return value


def display_value(value) -> str:
    """Render a resolved value as the text a cell would display."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def is_numeric_text(value: str) -> bool:
    """Return True if the whole string is a number literal."""
    return bool(NUMERIC_PATTERN.match(value.strip()))


def parse_float(value) -> float:
    """
    Convert a value to float the way ``parseFloat`` does.

    Leading whitespace is skipped, the longest numeric prefix is used and
    anything after it is ignored. A comma decimal separator is accepted.
    Returns NaN when there is no numeric prefix.
    """
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)

    text = normalize_decimal(display_value(value).strip())
    match = FLOAT_PREFIX_PATTERN.match(text)
    if not match:
        lowered = text.lstrip("+-").lower()
        if lowered.startswith("infinity"):
            return -math.inf if text.startswith("-") else math.inf
        return math.nan
    return float(match.group(0))


def is_true_result(value) -> bool:
    """Interpret a sandbox result as a boolean pass."""
    if value is True:
        return True
    return isinstance(value, str) and value.strip().lower() == "true"
