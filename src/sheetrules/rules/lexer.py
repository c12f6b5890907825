"""Lexer turning a raw instruction string into typed tokens."""

import logging
import re
from typing import Optional, Pattern

from .models import Token, TokenKind
from .syntax import (
    SOURCE_REF_PATTERN,
    SELF_REF_PATTERN,
    OPERATOR_PATTERN,
    FORMULA_PATTERN,
    STRING_PATTERN,
    NUMBER_PATTERN,
    OR_PATTERN,
)

logger = logging.getLogger(__name__)

# Precedence order matters: operators before formulas so "==" is never the
# start of a formula, references before anything that could fragment them.
TOKEN_PATTERNS: list[tuple[TokenKind, Pattern]] = [
    (TokenKind.SOURCE_REF, SOURCE_REF_PATTERN),
    (TokenKind.SELF_REF, SELF_REF_PATTERN),
    (TokenKind.OPERATOR, OPERATOR_PATTERN),
    (TokenKind.FORMULA, FORMULA_PATTERN),
    (TokenKind.STRING, STRING_PATTERN),
    (TokenKind.NUMBER, NUMBER_PATTERN),
    (TokenKind.OR, OR_PATTERN),
]

# Kinds that only start a token on a word boundary ("Name2" stays text)
WORD_KINDS = {TokenKind.SOURCE_REF, TokenKind.SELF_REF, TokenKind.NUMBER}

_WORD_CHAR = re.compile(r"\w")


def _match_token(text: str, pos: int = 0) -> Optional[Token]:
    """Try every pattern, in precedence order, at ``pos``."""
    for kind, pattern in TOKEN_PATTERNS:
        match = pattern.match(text, pos)
        if not match:
            continue
        if kind in WORD_KINDS and pos > 0 and _WORD_CHAR.match(text[pos - 1]):
            continue

        raw = match.group(0)
        if kind in (TokenKind.SOURCE_REF, TokenKind.SELF_REF, TokenKind.STRING):
            value = match.group(1)
        else:
            value = raw
        return Token(kind=kind, value=value, raw=raw)
    return None


def _next_token_start(text: str) -> int:
    """Find the first position after 0 where some token pattern matches."""
    for pos in range(1, len(text)):
        if text[pos].isspace():
            continue
        if _match_token(text, pos) is not None:
            return pos
    return len(text)


def tokenize(text: str) -> list[Token]:
    """
    Split an instruction into tokens.

    Never fails: any span that matches no pattern becomes a TEXT token.

    Args:
        text: Raw instruction string

    Returns:
        Ordered list of tokens
    """
    tokens: list[Token] = []
    remaining = text.lstrip()

    while remaining:
        token = _match_token(remaining)
        if token is None:
            end = _next_token_start(remaining)
            raw = remaining[:end].strip()
            token = Token(kind=TokenKind.TEXT, value=raw, raw=raw)
            remaining = remaining[end:]
        else:
            remaining = remaining[len(token.raw):]

        tokens.append(token)
        remaining = remaining.lstrip()

    logger.debug(f"Tokenized {text!r} into {len(tokens)} tokens")
    return tokens


def join_raw(tokens: list[Token]) -> str:
    """Rebuild source text from tokens, one space between tokens."""
    return " ".join(token.raw for token in tokens)
