"""Parser turning mapping-table rows into typed instructions."""

import logging

from .lexer import tokenize
from .models import (
    ColumnNotFoundError,
    Comparison,
    CompoundExpr,
    Condition,
    Constant,
    Direct,
    Expression,
    FilterRule,
    FormulaCondition,
    FormulaLit,
    FormulaRule,
    Instruction,
    NumberLit,
    Operand,
    RuleSyntaxError,
    SelfRef,
    SourceRef,
    StringLit,
    TextLit,
    Token,
    TokenKind,
)
from .syntax import (
    CONSTANT_MARKER,
    EVAL_MARKER,
    FILTER_MARKER,
    FORMULA_MARKER,
    OR_DELIMITER,
    REFERENCE_PATTERN,
    check_brackets_balanced,
    normalize_decimal,
)

logger = logging.getLogger(__name__)


def has_formula_prefix(body: str) -> bool:
    """A formula body must start with exactly one '='."""
    return body.startswith("=") and not body.startswith("==")


def contains_reference(tokens: list[Token]) -> bool:
    """True if any token is, or embeds, a src[]/self[] reference."""
    for token in tokens:
        if token.kind in (TokenKind.SOURCE_REF, TokenKind.SELF_REF):
            return True
        if token.kind == TokenKind.FORMULA and REFERENCE_PATTERN.search(token.raw):
            return True
    return False


class RuleParser:
    """Parse mapping rules into instructions, validating them as it goes."""

    def __init__(self, source_headers: list[str]):
        """
        Initialize the parser.

        Args:
            source_headers: Header row of the source table, used to validate
                ``src[...]`` references
        """
        self.source_headers = list(source_headers)
        self._known_columns = set(self.source_headers)

    def parse_instruction(self, header: str, raw_instruction: str) -> Instruction:
        """
        Parse one mapping rule.

        Args:
            header: Output header (or ``_filter:`` name) of the rule
            raw_instruction: The instruction text

        Returns:
            The typed instruction

        Raises:
            RuleSyntaxError: If the rule is malformed
        """
        header = header.strip()
        raw = (raw_instruction or "").strip()

        if not check_brackets_balanced(raw):
            raise RuleSyntaxError(header, f"Unbalanced brackets in '{raw}'")

        if header.startswith(FILTER_MARKER):
            rule = self.parse_filter(header, raw)
        elif raw.startswith(CONSTANT_MARKER):
            rule = Constant(header=header, value=raw[len(CONSTANT_MARKER):].strip())
        elif raw.startswith(FORMULA_MARKER):
            body = self._formula_body(header, raw[len(FORMULA_MARKER):])
            self.validate_references(header, body)
            rule = FormulaRule(header=header, formula_template=body)
        else:
            self.validate_references(header, raw)
            tokens = tokenize(raw)
            if len(tokens) == 1 and tokens[0].kind == TokenKind.TEXT:
                rule = Direct(header=header, column=tokens[0].value)
            else:
                rule = Expression(
                    header=header,
                    tokens=tokens,
                    raw=raw,
                    is_formula_like=contains_reference(tokens),
                )

        logger.debug(f"Parsed rule '{header}' as {rule.kind}")
        return rule

    def parse_filter(self, header: str, raw: str) -> FilterRule:
        """Parse a ``_filter:`` rule into a FilterRule."""
        name = header[len(FILTER_MARKER):].strip()

        is_eval = raw.startswith(EVAL_MARKER)
        body = raw[len(EVAL_MARKER):].strip() if is_eval else raw

        if body.startswith(FORMULA_MARKER):
            template = self._formula_body(header, body[len(FORMULA_MARKER):])
            self.validate_references(header, template)
            return FilterRule(
                header=name,
                raw=raw,
                is_eval=is_eval,
                is_formula=True,
                formula_template=template,
            )

        self.validate_references(header, body)

        # Documentation-only filters never run, so their text is not parsed
        if not is_eval:
            return FilterRule(header=name, raw=raw, is_eval=False)

        conditions = [
            self.parse_condition(header, segment.strip())
            for segment in body.split(OR_DELIMITER)
        ]
        return FilterRule(header=name, raw=raw, is_eval=True, conditions=conditions)

    def parse_condition(self, header: str, segment: str) -> Condition:
        """Parse one ``||``-separated filter segment."""
        if not segment:
            raise RuleSyntaxError(header, "Empty filter condition")

        tokens = tokenize(segment)
        offsets = _token_offsets(segment, tokens)

        op_index = next(
            (i for i, token in enumerate(tokens) if token.kind == TokenKind.OPERATOR),
            None,
        )

        if op_index is None:
            if any(token.kind == TokenKind.FORMULA for token in tokens):
                return FormulaCondition(formula=segment)
            raise RuleSyntaxError(
                header, f"Condition '{segment}' has no comparison operator or formula"
            )

        left_tokens = tokens[:op_index]
        right_tokens = tokens[op_index + 1:]
        if not left_tokens or not right_tokens:
            raise RuleSyntaxError(
                header, f"Condition '{segment}' is missing an operand"
            )

        op_start, op_end = offsets[op_index]
        return Comparison(
            left=self._to_operand(left_tokens, segment[:op_start].strip()),
            op=tokens[op_index].value,
            right=self._to_operand(right_tokens, segment[op_end:].strip()),
        )

    def validate_references(self, header: str, text: str) -> None:
        """
        Check that every ``src[...]`` in ``text`` names a known source column.

        Raises:
            ColumnNotFoundError: On the first unknown column
        """
        for match in REFERENCE_PATTERN.finditer(text):
            if match.group(1) == "src" and match.group(2) not in self._known_columns:
                raise ColumnNotFoundError(header, match.group(2))

    def _formula_body(self, header: str, body: str) -> str:
        body = body.strip()
        if not has_formula_prefix(body):
            raise RuleSyntaxError(
                header, f"Formula '{body}' must start with a single '='"
            )
        return body

    def _to_operand(self, tokens: list[Token], raw: str) -> Operand:
        """Reduce a token span to a single operand."""
        if len(tokens) > 1:
            return CompoundExpr(tokens=tokens, raw=raw)

        token = tokens[0]
        if token.kind == TokenKind.SOURCE_REF:
            return SourceRef(column=token.value)
        elif token.kind == TokenKind.SELF_REF:
            return SelfRef(column=token.value)
        elif token.kind == TokenKind.STRING:
            return StringLit(value=token.value)
        elif token.kind == TokenKind.NUMBER:
            return NumberLit(value=float(normalize_decimal(token.value)))
        elif token.kind == TokenKind.FORMULA:
            return FormulaLit(formula=token.value)
        else:
            return TextLit(value=token.raw)


def _token_offsets(text: str, tokens: list[Token]) -> list[tuple[int, int]]:
    """Locate each token's raw text in ``text``, in order."""
    offsets = []
    pos = 0
    for token in tokens:
        start = text.find(token.raw, pos)
        end = start + len(token.raw)
        offsets.append((start, end))
        pos = end
    return offsets


def parse_instruction(
    header: str, raw_instruction: str, source_headers: list[str]
) -> Instruction:
    """Parse a single rule against ``source_headers``."""
    return RuleParser(source_headers).parse_instruction(header, raw_instruction)


def parse_rules(
    rules: list[tuple[str, str]], source_headers: list[str]
) -> list[Instruction]:
    """Parse ``(header, instruction)`` pairs in order, failing on the first bad rule."""
    parser = RuleParser(source_headers)
    instructions: list[Instruction] = []
    for header, raw in rules:
        try:
            instructions.append(parser.parse_instruction(header, raw))
        except RuleSyntaxError as e:
            logger.error(f"Invalid mapping rule: {e}")
            raise
    return instructions
