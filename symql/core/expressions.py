"""Expression compiler.

Compiles one prefix expression such as ``(">", "salary", "$s1")`` into a
:class:`~symql.core.tokens.Fragment`. Operators come from the closed
:class:`Operator` table; any other name of call shape is compiled as a
function call, ``("max", "salary")`` -> ``MAX(salary)``.
"""

import re
from collections.abc import Callable
from enum import Enum
from typing import Any, Final, Optional

from symql import codec
from symql.core.dialect import Dialect
from symql.core.tokens import (
    Fragment,
    Slot,
    SlotContext,
    SlotKind,
    is_directive,
    is_identifier,
    is_statement,
    parse_slot,
)
from symql.exceptions import MalformedStatement, UnknownOperator

__all__ = ("ExpressionCompiler", "Operator")

_CALL_NAME: Final = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


class Operator(Enum):
    """Known expression operators, keyed by their name in a statement."""

    EQ = "="
    NE = "!="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    AND = "and"
    OR = "or"
    NOT = "not"
    IS = "is"
    IS_NOT = "is-not"
    ISNULL = "isnull"
    NOTNULL = "notnull"
    IN = "in"
    NOT_IN = "not-in"
    LIKE = "like"
    NOT_LIKE = "not-like"
    GLOB = "glob"
    REGEXP = "regexp"
    MATCH = "match"
    EXISTS = "exists"
    NOT_EXISTS = "not-exists"
    AS = "as"
    ASC = "asc"
    DESC = "desc"
    CAST = "cast"
    QUOTE = "quote"
    CALL = "call"
    FUNCALL = "funcall"
    CONCAT = "||"

    @classmethod
    def lookup(cls, name: str) -> "Optional[Operator]":
        return _OPERATORS.get(name.lower())


_OPERATORS: Final = {operator.value: operator for operator in Operator}

_BINARY: Final = {
    Operator.EQ: "=",
    Operator.NE: "!=",
    Operator.LT: "<",
    Operator.GT: ">",
    Operator.LE: "<=",
    Operator.GE: ">=",
    Operator.IS: "IS",
    Operator.IS_NOT: "IS NOT",
    Operator.DIV: "/",
    Operator.MOD: "%",
}
_VARIADIC: Final = {Operator.ADD: " + ", Operator.MUL: " * ", Operator.AND: " AND ", Operator.OR: " OR "}
_PATTERNS: Final = {
    Operator.LIKE: "LIKE",
    Operator.NOT_LIKE: "NOT LIKE",
    Operator.GLOB: "GLOB",
    Operator.REGEXP: "REGEXP",
    Operator.MATCH: "MATCH",
}
_MEMBERSHIP: Final = {Operator.IN: "IN", Operator.NOT_IN: "NOT IN"}
_POSTFIX: Final = {Operator.ISNULL: "ISNULL", Operator.NOTNULL: "NOTNULL", Operator.ASC: "ASC", Operator.DESC: "DESC"}

_SELF_DELIMITED: Final = frozenset({
    Operator.CAST,
    Operator.QUOTE,
    Operator.CALL,
    Operator.FUNCALL,
    Operator.EXISTS,
    Operator.NOT_EXISTS,
})


class ExpressionCompiler:
    """Compile prefix expressions for one dialect.

    Args:
        dialect: Naming rules for identifiers.
        compile_statement: Callback used for nested statements (subqueries).
    """

    __slots__ = ("_compile_statement", "dialect")

    def __init__(self, dialect: Dialect, compile_statement: "Callable[[list[Any]], Fragment]") -> None:
        self.dialect = dialect
        self._compile_statement = compile_statement

    def compile(self, node: Any) -> Fragment:
        """Compile any expression operand: leaf, expression, vector or subquery."""
        if isinstance(node, str):
            return self._compile_symbol(node)
        if isinstance(node, tuple):
            return self._compile_form(node)
        if isinstance(node, list):
            return self.compile_vector(node)
        return Fragment(codec.encode(node))

    def compile_vector(self, node: "list[Any]") -> Fragment:
        """``[a, b]`` -> ``(a, b)``; a list headed by a directive is a subquery."""
        if not node:
            msg = "Empty vector in expression"
            raise MalformedStatement(msg, node)
        if is_statement(node):
            return self._compile_statement(node).parenthesize()
        return Fragment.join(", ", [self.compile(element) for element in node]).parenthesize()

    def operand(self, node: Any) -> Fragment:
        """Compile ``node`` as the operand of another operator, parenthesizing infix forms."""
        fragment = self.compile(node)
        if isinstance(node, tuple) and node and self._is_infix(node[0]):
            return fragment.parenthesize()
        return fragment

    def _is_infix(self, name: Any) -> bool:
        if not isinstance(name, str):
            return False
        operator = Operator.lookup(name)
        return operator is not None and operator not in _SELF_DELIMITED and operator not in {Operator.ASC, Operator.DESC}

    def _compile_symbol(self, token: str) -> Fragment:
        slot = parse_slot(token)
        if slot is not None:
            kind, index = slot
            if kind is SlotKind.SCHEMA:
                msg = f"Schema slot {token} cannot appear inside an expression"
                raise MalformedStatement(msg, token)
            return Fragment(Slot(kind, index))
        if is_directive(token):
            msg = f"Directive {token} cannot appear inside an expression"
            raise MalformedStatement(msg, token)
        if not is_identifier(token):
            msg = f"{token!r} is not an identifier; quote literal strings"
            raise MalformedStatement(msg, token)
        return Fragment(self.dialect.identifier(token))

    def _compile_form(self, node: "tuple[Any, ...]") -> Fragment:
        if not node:
            msg = "Empty expression"
            raise MalformedStatement(msg, node)
        name, *args = node
        if not isinstance(name, str):
            msg = f"Expression operator must be a name, got {name!r}"
            raise MalformedStatement(msg, node)
        operator = Operator.lookup(name)
        if operator is None:
            return self._compile_call(name, args, node)
        return self._compile_operator(operator, args, node)

    def _compile_operator(self, operator: Operator, args: "list[Any]", node: "tuple[Any, ...]") -> Fragment:  # noqa: C901, PLR0911, PLR0912
        if operator is Operator.CONCAT:
            msg = "Concatenation is unsupported: joined printed values do not read back as a value"
            raise UnknownOperator(msg, node, operator.value)
        if operator is Operator.QUOTE:
            self._check_arity(node, args, 1)
            return Fragment(codec.encode(args[0]))
        if operator in {Operator.LE, Operator.GE} and len(args) == 3:  # noqa: PLR2004
            return self._compile_between(operator, args)
        if operator in _BINARY:
            self._check_arity(node, args, 2)
            return Fragment.join(f" {_BINARY[operator]} ", [self.operand(arg) for arg in args])
        if operator in _VARIADIC:
            self._check_min_arity(node, args, 1 if operator in {Operator.AND, Operator.OR} else 2)
            return Fragment.join(_VARIADIC[operator], [self.operand(arg) for arg in args])
        if operator is Operator.SUB:
            self._check_min_arity(node, args, 1)
            if len(args) == 1:
                return "-" + self.operand(args[0])
            return Fragment.join(" - ", [self.operand(arg) for arg in args])
        if operator is Operator.NOT:
            self._check_arity(node, args, 1)
            return "NOT " + self.operand(args[0])
        if operator in _POSTFIX:
            self._check_arity(node, args, 1)
            return self.operand(args[0]) + f" {_POSTFIX[operator]}"
        if operator in _PATTERNS:
            self._check_arity(node, args, 2)
            return self.operand(args[0]) + f" {_PATTERNS[operator]} " + self._compile_pattern(args[1], node)
        if operator in _MEMBERSHIP:
            self._check_arity(node, args, 2)
            return self.operand(args[0]) + f" {_MEMBERSHIP[operator]} " + self._compile_collection(args[1], node)
        if operator in {Operator.EXISTS, Operator.NOT_EXISTS}:
            self._check_arity(node, args, 1)
            if not is_statement(args[0]):
                msg = "EXISTS takes a nested statement"
                raise MalformedStatement(msg, node)
            keyword = "EXISTS " if operator is Operator.EXISTS else "NOT EXISTS "
            return keyword + self._compile_statement(args[0]).parenthesize()
        if operator is Operator.AS:
            self._check_arity(node, args, 2)
            return self.operand(args[0]) + " AS " + self._compile_alias(args[1], node)
        if operator is Operator.CAST:
            self._check_arity(node, args, 2)
            type_name = args[1]
            if not is_identifier(type_name):
                msg = f"CAST target must be a type name, got {type_name!r}"
                raise MalformedStatement(msg, node)
            return "CAST(" + self.compile(args[0]) + f" AS {type_name.replace('-', ' ').upper()})"
        # CALL / FUNCALL
        self._check_min_arity(node, args, 1)
        function, *call_args = args
        return self._compile_call(function, call_args, node)

    def _compile_between(self, operator: Operator, args: "list[Any]") -> Fragment:
        low, value, high = args
        if operator is Operator.GE:
            low, high = high, low
        return self.operand(value) + " BETWEEN " + self.operand(low) + " AND " + self.operand(high)

    def _compile_pattern(self, pattern: Any, node: "tuple[Any, ...]") -> Fragment:
        slot = parse_slot(pattern)
        if slot is not None:
            kind, index = slot
            if kind is not SlotKind.SCALAR:
                msg = f"Pattern operand slot must be scalar, got {pattern}"
                raise MalformedStatement(msg, node)
            return Fragment(Slot(kind, index, SlotContext.PATTERN))
        if isinstance(pattern, tuple) and len(pattern) == 2 and pattern[0] == Operator.QUOTE.value:  # noqa: PLR2004
            return Fragment(codec.encode_text(pattern[1]))
        if isinstance(pattern, (str, tuple, list)):
            return self.operand(pattern)
        return Fragment(codec.encode_text(pattern))

    def _compile_collection(self, collection: Any, node: "tuple[Any, ...]") -> Fragment:
        slot = parse_slot(collection)
        if slot is not None:
            kind, index = slot
            if kind is not SlotKind.VECTOR:
                msg = f"Membership operand slot must be a vector slot, got {collection}"
                raise MalformedStatement(msg, node)
            return Fragment(Slot(kind, index))
        if not isinstance(collection, list):
            msg = "Membership operand must be a vector, a vector slot or a nested statement"
            raise MalformedStatement(msg, node)
        return self.compile_vector(collection)

    def _compile_alias(self, alias: Any, node: "tuple[Any, ...]") -> Fragment:
        slot = parse_slot(alias)
        if slot is not None and slot[0] is SlotKind.IDENTIFIER:
            return Fragment(Slot(*slot))
        if not is_identifier(alias):
            msg = f"Alias must be an identifier, got {alias!r}"
            raise MalformedStatement(msg, node)
        return Fragment(self.dialect.identifier(alias))

    def _compile_call(self, function: Any, args: "list[Any]", node: "tuple[Any, ...]") -> Fragment:
        if not isinstance(function, str) or not _CALL_NAME.match(function):
            msg = f"Unknown operator {function!r}"
            raise UnknownOperator(msg, node, function)
        name = function.replace("-", "_").upper()
        if len(args) == 1 and args[0] == "*":
            return Fragment(f"{name}(*)")
        return name + Fragment.join(", ", [self.compile(arg) for arg in args]).parenthesize()

    @staticmethod
    def _check_arity(node: "tuple[Any, ...]", args: "list[Any]", expected: int) -> None:
        if len(args) != expected:
            msg = f"Operator {node[0]!r} takes {expected} operand(s), got {len(args)}"
            raise MalformedStatement(msg, node)

    @staticmethod
    def _check_min_arity(node: "tuple[Any, ...]", args: "list[Any]", minimum: int) -> None:
        if len(args) < minimum:
            msg = f"Operator {node[0]!r} takes at least {minimum} operand(s), got {len(args)}"
            raise MalformedStatement(msg, node)
