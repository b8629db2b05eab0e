"""Token classification for structured statements.

A structured statement is a ``list`` of tokens:

- ``":select"`` style strings are directives,
- ``"$s1"`` style strings are template slots (``i`` identifier, ``s`` scalar,
  ``v`` row-vector, ``S`` schema; 1-based positional index),
- any other string of identifier shape is an identifier,
- nested ``list`` objects are row-groups (or sub-statements when headed by a
  directive),
- ``tuple`` objects are prefix expressions ``(operator, operand, ...)``,
- everything else is a literal value.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final, Optional, Union

__all__ = (
    "IDENTIFIER_PATTERN",
    "Fragment",
    "Part",
    "Slot",
    "SlotContext",
    "SlotKind",
    "TokenKind",
    "classify",
    "directive_keyword",
    "directive_name",
    "is_directive",
    "is_identifier",
    "is_schema",
    "is_statement",
    "parse_slot",
)

_NAME: Final = r"(?:\*|[A-Za-z_][A-Za-z0-9_-]*)"
IDENTIFIER_PATTERN: Final = re.compile(rf"^{_NAME}(?:[.:]{_NAME})?$")
_DIRECTIVE_PATTERN: Final = re.compile(r"^:[A-Za-z][A-Za-z0-9-]*$")
_SLOT_PATTERN: Final = re.compile(r"^\$([isvS])([1-9][0-9]*)$")


class TokenKind(Enum):
    DIRECTIVE = "directive"
    SLOT = "slot"
    IDENTIFIER = "identifier"
    ROW_GROUP = "row-group"
    EXPRESSION = "expression"
    LITERAL = "literal"
    INVALID = "invalid"


class SlotKind(str, Enum):
    """Template slot kinds, keyed by their one-letter tag."""

    IDENTIFIER = "i"
    SCALAR = "s"
    VECTOR = "v"
    SCHEMA = "S"


class SlotContext(Enum):
    """Where a slot sits, which decides how its argument is rendered."""

    PLAIN = "plain"
    VALUES = "values"
    PATTERN = "pattern"


@dataclass(frozen=True)
class Slot:
    """An unresolved template slot in compiled SQL."""

    kind: SlotKind
    index: int
    context: SlotContext = SlotContext.PLAIN

    @property
    def marker(self) -> str:
        return f"${self.kind.value}{self.index}"


Part = Union[str, Slot]


class Fragment:
    """SQL text interleaved with unresolved slots."""

    __slots__ = ("parts",)

    def __init__(self, *parts: Part) -> None:
        merged: list[Part] = []
        for part in parts:
            if isinstance(part, str):
                if not part:
                    continue
                if merged and isinstance(merged[-1], str):
                    merged[-1] += part
                    continue
            merged.append(part)
        self.parts: tuple[Part, ...] = tuple(merged)

    def __add__(self, other: "Union[Fragment, str]") -> "Fragment":
        if isinstance(other, str):
            return Fragment(*self.parts, other)
        return Fragment(*self.parts, *other.parts)

    def __radd__(self, other: str) -> "Fragment":
        return Fragment(other, *self.parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fragment):
            return False
        return self.parts == other.parts

    def __hash__(self) -> int:
        return hash(self.parts)

    def __repr__(self) -> str:
        return f"Fragment({self.text!r})"

    @property
    def text(self) -> str:
        """The fragment with slots shown as their ``$kN`` markers."""
        return "".join(part if isinstance(part, str) else part.marker for part in self.parts)

    @property
    def slots(self) -> "tuple[Slot, ...]":
        return tuple(part for part in self.parts if isinstance(part, Slot))

    def parenthesize(self) -> "Fragment":
        return Fragment("(", *self.parts, ")")

    @staticmethod
    def join(separator: str, fragments: "list[Fragment]") -> "Fragment":
        parts: list[Part] = []
        for position, fragment in enumerate(fragments):
            if position:
                parts.append(separator)
            parts.extend(fragment.parts)
        return Fragment(*parts)


def is_directive(token: Any) -> bool:
    return isinstance(token, str) and _DIRECTIVE_PATTERN.match(token) is not None


def is_identifier(token: Any) -> bool:
    return (
        isinstance(token, str)
        and IDENTIFIER_PATTERN.match(token) is not None
        and not is_directive(token)
    )


def parse_slot(token: Any) -> "Optional[tuple[SlotKind, int]]":
    """Return ``(kind, index)`` when ``token`` is a template slot."""
    if not isinstance(token, str):
        return None
    match = _SLOT_PATTERN.match(token)
    if match is None:
        return None
    return SlotKind(match.group(1)), int(match.group(2))


def is_statement(token: Any) -> bool:
    """A list headed by a directive is a (sub-)statement."""
    return isinstance(token, list) and bool(token) and is_directive(token[0])


def is_schema(token: Any) -> bool:
    """A schema is a row-group whose first element is itself a row-group."""
    return isinstance(token, list) and bool(token) and isinstance(token[0], list)


def directive_name(token: str) -> str:
    """``":If-Not-Exists"`` -> ``"if-not-exists"``."""
    return token[1:].lower()


def directive_keyword(token: str) -> str:
    """``":if-not-exists"`` -> ``"IF NOT EXISTS"``."""
    return token[1:].replace("-", " ").upper()


def classify(token: Any) -> TokenKind:
    if isinstance(token, str):
        if is_directive(token):
            return TokenKind.DIRECTIVE
        if parse_slot(token) is not None:
            return TokenKind.SLOT
        if IDENTIFIER_PATTERN.match(token):
            return TokenKind.IDENTIFIER
        return TokenKind.INVALID
    if isinstance(token, list):
        return TokenKind.ROW_GROUP
    if isinstance(token, tuple):
        return TokenKind.EXPRESSION
    return TokenKind.LITERAL
