"""Statement compiler.

Turns a structured statement into SQL text with unresolved template
slots, and binds call arguments into that text later::

    compiler = StatementCompiler(Dialect("sqlite"))
    compiled = compiler.compile([":select", ["name", "id"], ":from", "people", ":where", (">", "salary", "$s1")])
    compiled.sql
    # 'SELECT name, id FROM people WHERE salary > $s1'
    compiler.bind(compiled, (62000,))
    # BoundStatement(sql='SELECT name, id FROM people WHERE salary > ?', parameters=(62000,))

Compilation only depends on the statement's shape, so results are
memoized in a :class:`~symql.core.cache.StatementCache` and shared by every
call that differs only in its arguments.
"""

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Final, NamedTuple, Optional

from mypy_extensions import mypyc_attr

from symql import codec
from symql.core.dialect import Dialect
from symql.core.expressions import ExpressionCompiler
from symql.core.tokens import (
    Fragment,
    Part,
    Slot,
    SlotContext,
    SlotKind,
    directive_keyword,
    directive_name,
    is_directive,
    is_identifier,
    is_schema,
    is_statement,
    parse_slot,
)
from symql.exceptions import ExtraParameterError, MalformedStatement, MissingParameterError, ParameterError
from symql.utils.logging import get_logger

if TYPE_CHECKING:
    from symql.core.cache import StatementCache

__all__ = ("BoundStatement", "CompiledStatement", "StatementCompiler", "format_statement")

logger = get_logger("symql.core.compiler")

_BARE_LIST_DIRECTIVES: Final = frozenset({
    "select",
    "select-distinct",
    "distinct",
    "all",
    "group-by",
    "order-by",
    "partition-by",
    "set",
    "returning",
})
_VALUES_DIRECTIVE: Final = "values"

_COLUMN_TYPES: Final = {
    "integer": "INTEGER",
    "float": "REAL",
    "real": "REAL",
    "numeric": "NUMERIC",
    "text": "TEXT",
    "object": "TEXT",
    "blob": "BLOB",
}
_COLUMN_FLAGS: Final = {
    ":primary": "PRIMARY KEY",
    ":primary-key": "PRIMARY KEY",
    ":autoincrement": "AUTOINCREMENT",
    ":unique": "UNIQUE",
    ":not-null": "NOT NULL",
}
_REFERENTIAL_ACTIONS: Final = frozenset({":cascade", ":set-null", ":set-default", ":restrict", ":no-action"})


@mypyc_attr(allow_interpreted_subclasses=True)
class CompiledStatement:
    """Immutable compiled statement.

    ``sql`` shows unresolved slots as their ``$kN`` markers. ``parts`` holds
    the same text split around :class:`~symql.core.tokens.Slot` objects,
    in source order, for binding.
    """

    __slots__ = ("_hash", "dialect", "parts", "slot_count", "slot_kinds", "slots", "sql")

    def __init__(self, parts: "tuple[Part, ...]", dialect: str) -> None:
        self.parts = parts
        self.dialect = dialect
        self.slots: tuple[Slot, ...] = tuple(part for part in parts if isinstance(part, Slot))
        self.sql = "".join(part if isinstance(part, str) else part.marker for part in parts)
        slot_kinds: dict[int, SlotKind] = {}
        for slot in self.slots:
            known = slot_kinds.setdefault(slot.index, slot.kind)
            if known is not slot.kind:
                msg = f"Slot index {slot.index} is used as both {known.name.lower()} and {slot.kind.name.lower()}"
                raise MalformedStatement(msg, self.sql)
        self.slot_kinds = slot_kinds
        self.slot_count = max(slot_kinds, default=0)
        if len(slot_kinds) != self.slot_count:
            missing = sorted(set(range(1, self.slot_count + 1)) - set(slot_kinds))
            msg = f"Slot indices must run from 1 without gaps; missing {', '.join(map(str, missing))}"
            raise MalformedStatement(msg, self.sql)
        self._hash: Optional[int] = None

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash((self.parts, self.dialect))
        return self._hash

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompiledStatement):
            return False
        return self.parts == other.parts and self.dialect == other.dialect

    def __repr__(self) -> str:
        return f"CompiledStatement(sql={self.sql!r}, slots={self.slot_count})"


class BoundStatement(NamedTuple):
    """SQL ready to send, with values for the parameter channel."""

    sql: str
    parameters: "tuple[Any, ...]"


@mypyc_attr(allow_interpreted_subclasses=True)
class StatementCompiler:
    """Compile structured statements for one dialect.

    Args:
        dialect: Identifier rules of the target backend.
        cache: Optional memoization cache; ``None`` compiles every call.
    """

    __slots__ = ("_cache", "_expressions", "dialect")

    def __init__(self, dialect: Dialect, cache: "Optional[StatementCache]" = None) -> None:
        self.dialect = dialect
        self._cache = cache
        self._expressions = ExpressionCompiler(dialect, self.compile_fragment)

    def compile(self, statement: "list[Any]") -> CompiledStatement:
        """Compile ``statement``, reusing a cached result for the same shape."""
        if self._cache is None:
            return self._compile_uncached(statement)
        return self._cache.get_or_compile(self.dialect, statement, self._compile_uncached)

    def _compile_uncached(self, statement: "list[Any]") -> CompiledStatement:
        compiled = CompiledStatement(self.compile_fragment(statement).parts, self.dialect.name)
        logger.debug("Compiled statement: %s", compiled.sql)
        return compiled

    def compile_fragment(self, statement: "list[Any]") -> Fragment:
        """Compile the clause vector of a statement or subquery."""
        if not is_statement(statement):
            msg = "A statement is a non-empty list headed by a directive"
            raise MalformedStatement(msg, statement)
        clauses: list[Fragment] = []
        last_directive: Optional[str] = None
        for token in statement:
            if is_directive(token):
                clauses.append(Fragment(directive_keyword(token)))
                last_directive = directive_name(token)
            elif last_directive == _VALUES_DIRECTIVE:
                clauses.append(self._compile_values(token, statement))
            else:
                clauses.append(self._compile_clause(token, last_directive, statement))
        return Fragment.join(" ", clauses)

    def _compile_clause(self, token: Any, last_directive: Optional[str], statement: "list[Any]") -> Fragment:
        if isinstance(token, list):
            if is_statement(token):
                return self.compile_fragment(token).parenthesize()
            if is_schema(token):
                return self.compile_schema(token)
            if not token:
                msg = "Empty row-group"
                raise MalformedStatement(msg, statement)
            columns = Fragment.join(", ", [self._expressions.compile(element) for element in token])
            if last_directive in _BARE_LIST_DIRECTIVES:
                return columns
            return columns.parenthesize()
        slot = parse_slot(token)
        if slot is not None:
            return Fragment(Slot(*slot))
        if isinstance(token, str) and not is_identifier(token):
            msg = f"{token!r} is not a directive, slot or identifier"
            raise MalformedStatement(msg, statement)
        return self._expressions.compile(token)

    def _compile_values(self, payload: Any, statement: "list[Any]") -> Fragment:
        slot = parse_slot(payload)
        if slot is not None:
            kind, index = slot
            if kind is not SlotKind.VECTOR:
                msg = f"VALUES takes a row-vector slot, got {payload}"
                raise MalformedStatement(msg, statement)
            return Fragment(Slot(kind, index, SlotContext.VALUES))
        if not isinstance(payload, list) or not payload or is_statement(payload):
            msg = "VALUES payload must be a row-vector or a list of row-vectors"
            raise MalformedStatement(msg, statement)
        rows = payload if all(isinstance(row, list) for row in payload) else [payload]
        compiled_rows: list[Fragment] = []
        for row in rows:
            if not row or any(isinstance(value, list) for value in row):
                msg = "VALUES rows must be non-empty and must not mix rows with values"
                raise MalformedStatement(msg, statement)
            compiled_rows.append(Fragment.join(", ", [self._compile_row_value(value) for value in row]).parenthesize())
        return Fragment.join(", ", compiled_rows)

    def _compile_row_value(self, value: Any) -> Fragment:
        # Row data is never a column reference; only tuples stay expressions.
        if isinstance(value, str) and parse_slot(value) is None:
            return Fragment(codec.encode(value))
        return self._expressions.compile(value)

    def compile_schema(self, schema: "list[Any]") -> Fragment:
        """Compile ``[[column, ...], constraint, ...]`` into a parenthesized table definition."""
        if not is_schema(schema) or not schema[0]:
            msg = "A schema is a list whose first element is a non-empty list of column definitions"
            raise MalformedStatement(msg, schema)
        columns, *constraints = schema
        definitions = [self._compile_column(column, schema) for column in columns]
        definitions.extend(self._compile_table_constraint(constraint, schema) for constraint in constraints)
        return Fragment.join(", ", definitions).parenthesize()

    def _compile_column(self, column: Any, schema: "list[Any]") -> Fragment:  # noqa: C901
        if isinstance(column, str):
            return Fragment(self._identifier(column, schema))
        if not isinstance(column, tuple) or not column:
            msg = f"Column definition must be a name or a (name, option, ...) tuple, got {column!r}"
            raise MalformedStatement(msg, schema)
        name, *options = column
        column_type: Optional[str] = None
        constraints: list[Fragment] = []
        position = 0
        while position < len(options):
            option = options[position]
            position += 1
            if option in _COLUMN_FLAGS:
                constraints.append(Fragment(_COLUMN_FLAGS[option]))
                continue
            if option not in {":type", ":default", ":check", ":references"}:
                msg = f"Unknown column option {option!r} for column {name!r}"
                raise MalformedStatement(msg, schema)
            if position >= len(options):
                msg = f"Column option {option} for column {name!r} needs a value"
                raise MalformedStatement(msg, schema)
            value = options[position]
            position += 1
            if option == ":type":
                column_type = self._column_type(value, schema)
            elif option == ":default":
                constraints.append("DEFAULT " + self._expressions.operand(value))
            elif option == ":check":
                constraints.append("CHECK " + self._expressions.compile(value).parenthesize())
            else:
                reference = "REFERENCES " + Fragment(self._identifier(value, schema))
                if position < len(options) and isinstance(options[position], list):
                    reference += " " + self._column_list(options[position], schema)
                    position += 1
                constraints.append(reference)
        head = Fragment(self._identifier(name, schema))
        if column_type is not None:
            head += f" {column_type}"
        return Fragment.join(" ", [head, *constraints])

    def _compile_table_constraint(self, constraint: Any, schema: "list[Any]") -> Fragment:
        if not isinstance(constraint, tuple) or not constraint or not is_directive(constraint[0]):
            msg = f"Table constraint must be a tuple headed by a directive, got {constraint!r}"
            raise MalformedStatement(msg, schema)
        kind, *args = constraint
        if kind in {":primary-key", ":unique"} and len(args) == 1:
            return directive_keyword(kind) + " " + self._column_list(args[0], schema)
        if kind == ":check" and len(args) == 1:
            return "CHECK " + self._expressions.compile(args[0]).parenthesize()
        if kind == ":foreign-key":
            return self._compile_foreign_key(args, schema)
        msg = f"Malformed table constraint {constraint!r}"
        raise MalformedStatement(msg, schema)

    def _compile_foreign_key(self, args: "list[Any]", schema: "list[Any]") -> Fragment:
        # (":foreign-key", [cols], ":references", table, [cols], ":on-delete", ":cascade", ...)
        if len(args) < 3 or args[1] != ":references":  # noqa: PLR2004
            msg = "Foreign key needs [columns] :references table [columns]"
            raise MalformedStatement(msg, schema)
        columns, _, table, *rest = args
        fragment = "FOREIGN KEY " + self._column_list(columns, schema) + " REFERENCES " + self._identifier(table, schema)
        if rest and isinstance(rest[0], list):
            fragment += " " + self._column_list(rest.pop(0), schema)
        if len(rest) % 2:
            msg = "Foreign key actions come in pairs such as :on-delete :cascade"
            raise MalformedStatement(msg, schema)
        for trigger, action in zip(rest[::2], rest[1::2]):
            if trigger not in {":on-delete", ":on-update"} or action not in _REFERENTIAL_ACTIONS:
                msg = f"Unknown foreign key action {trigger!r} {action!r}"
                raise MalformedStatement(msg, schema)
            fragment += f" {directive_keyword(trigger)} {directive_keyword(action)}"
        return fragment

    def _column_list(self, columns: Any, schema: "list[Any]") -> Fragment:
        if not isinstance(columns, list) or not columns:
            msg = f"Expected a non-empty list of column names, got {columns!r}"
            raise MalformedStatement(msg, schema)
        return Fragment("(" + ", ".join(self._identifier(column, schema) for column in columns) + ")")

    def _column_type(self, value: Any, schema: "list[Any]") -> str:
        if not isinstance(value, str) or value.lower() not in _COLUMN_TYPES:
            msg = f"Unknown column type {value!r}; expected one of {sorted(_COLUMN_TYPES)}"
            raise MalformedStatement(msg, schema)
        return _COLUMN_TYPES[value.lower()]

    def _identifier(self, token: Any, schema: "list[Any]") -> str:
        if not is_identifier(token):
            msg = f"{token!r} is not an identifier"
            raise MalformedStatement(msg, schema)
        return self.dialect.identifier(token)

    def bind(self, compiled: CompiledStatement, args: "Sequence[Any]", *, parameterized: bool = True) -> BoundStatement:
        """Resolve every slot of ``compiled`` with positional ``args``.

        Args:
            compiled: Result of :meth:`compile`.
            args: One argument per declared slot index.
            parameterized: Send scalars and row values through the parameter
                channel as ``?`` placeholders instead of inlining them.

        Raises:
            MissingParameterError: Fewer arguments than declared slots.
            ExtraParameterError: More arguments than declared slots.
            ParameterError: An argument does not fit its slot kind.
        """
        if len(args) < compiled.slot_count:
            msg = f"Statement expects {compiled.slot_count} argument(s), got {len(args)}"
            raise MissingParameterError(msg, compiled.sql)
        if len(args) > compiled.slot_count:
            msg = f"Statement expects {compiled.slot_count} argument(s), got {len(args)}"
            raise ExtraParameterError(msg, compiled.sql)
        sql: list[str] = []
        parameters: list[Any] = []
        for part in compiled.parts:
            if isinstance(part, str):
                sql.append(part)
            else:
                sql.append(self._render_slot(part, args[part.index - 1], parameters, parameterized, compiled))
        return BoundStatement("".join(sql), tuple(parameters))

    def _render_slot(  # noqa: PLR0911
        self, slot: Slot, argument: Any, parameters: "list[Any]", parameterized: bool, compiled: CompiledStatement
    ) -> str:
        if slot.kind is SlotKind.IDENTIFIER:
            if not is_identifier(argument):
                msg = f"Argument for {slot.marker} must be an identifier, got {argument!r}"
                raise ParameterError(msg, compiled.sql)
            return self.dialect.identifier(argument)
        if slot.kind is SlotKind.SCHEMA:
            if not is_schema(argument):
                msg = f"Argument for {slot.marker} must be a schema, got {argument!r}"
                raise ParameterError(msg, compiled.sql)
            schema = self.compile_schema(argument)
            if schema.slots:
                msg = f"Schema argument for {slot.marker} must not contain template slots"
                raise ParameterError(msg, compiled.sql)
            return schema.text
        if slot.kind is SlotKind.SCALAR:
            if slot.context is SlotContext.PATTERN:
                if not parameterized:
                    return codec.encode_text(argument)
                parameters.append(argument if isinstance(argument, str) else codec.to_readable(argument))
                return "?"
            return self._render_value(argument, parameters, parameterized)
        if not isinstance(argument, (list, tuple)) or not argument:
            msg = f"Argument for {slot.marker} must be a non-empty list or tuple, got {argument!r}"
            raise ParameterError(msg, compiled.sql)
        rows = [argument]
        if slot.context is SlotContext.VALUES and all(isinstance(row, list) for row in argument):
            rows = argument
        rendered: list[str] = []
        for row in rows:
            if not isinstance(row, (list, tuple)) or not row:
                msg = f"Rows for {slot.marker} must be non-empty lists or tuples, got {row!r}"
                raise ParameterError(msg, compiled.sql)
            rendered.append("(" + ", ".join(self._render_value(value, parameters, parameterized) for value in row) + ")")
        return ", ".join(rendered)

    @staticmethod
    def _render_value(value: Any, parameters: "list[Any]", parameterized: bool) -> str:
        if not parameterized:
            return codec.encode(value)
        parameters.append(codec.to_parameter(value))
        return "?"

    def format(self, statement: "list[Any]", *args: Any) -> str:
        """Compile ``statement`` and inline every argument, for logging and inspection."""
        return self.bind(self.compile(statement), args, parameterized=False).sql


def format_statement(statement: "list[Any]", *args: Any, dialect: Optional[Dialect] = None) -> str:
    """Compile and fully resolve ``statement`` without a connection."""
    return StatementCompiler(dialect or Dialect("")).format(statement, *args)
