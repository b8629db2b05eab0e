"""Identifier rendering for a backend dialect."""

from typing import Final, Optional

from sqlglot import exp

from symql.core.tokens import is_identifier
from symql.exceptions import MalformedStatement

__all__ = ("Dialect",)

_QUALIFIER_SEPARATORS: Final = (":", ".")


class Dialect:
    """Backend naming rules used by the statement compiler.

    Args:
        name: Dialect name. It is also the sqlglot dialect used to quote
            identifiers that collide with a reserved word.
        reserved_words: Lower-case words that must be quoted when used as identifiers.
    """

    __slots__ = ("_quoting_dialect", "name", "reserved_words")

    def __init__(self, name: str, reserved_words: "frozenset[str]" = frozenset(), quoting_dialect: Optional[str] = None) -> None:
        self.name = name
        self.reserved_words = frozenset(word.lower() for word in reserved_words)
        self._quoting_dialect = quoting_dialect if quoting_dialect is not None else name

    def __repr__(self) -> str:
        return f"Dialect({self.name!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Dialect):
            return False
        return self.name == other.name and self.reserved_words == other.reserved_words

    def __hash__(self) -> int:
        return hash((self.name, self.reserved_words))

    def needs_quoting(self, name: str) -> bool:
        return name.lower() in self.reserved_words

    def quote(self, name: str) -> str:
        return exp.to_identifier(name, quoted=True).sql(dialect=self._quoting_dialect)

    def identifier(self, token: str) -> str:
        """Render an identifier token as SQL.

        ``-`` becomes ``_`` and a ``table:column`` qualifier becomes
        ``table.column``; each part is quoted when it is a reserved word.

        Raises:
            MalformedStatement: If ``token`` is not of identifier shape.
        """
        if not is_identifier(token):
            msg = f"{token!r} is not an identifier; quote literal strings"
            raise MalformedStatement(msg, token)
        for separator in _QUALIFIER_SEPARATORS:
            if separator in token:
                table, column = token.split(separator, 1)
                return f"{self._part(table)}.{self._part(column)}"
        return self._part(token)

    def _part(self, name: str) -> str:
        if name == "*":
            return name
        name = name.replace("-", "_")
        if self.needs_quoting(name):
            return self.quote(name)
        return name
