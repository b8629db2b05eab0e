"""symql core: statement compilation.

- tokens.py: token classification, slots and SQL fragments
- dialect.py: identifier rendering per backend
- expressions.py: prefix expression compiler
- compiler.py: StatementCompiler and CompiledStatement
- cache.py: shape keyed statement cache
"""

from symql.core.cache import CacheStats, StatementCache, get_statement_cache, reset_statement_cache, shape_key
from symql.core.compiler import BoundStatement, CompiledStatement, StatementCompiler, format_statement
from symql.core.dialect import Dialect
from symql.core.expressions import ExpressionCompiler, Operator
from symql.core.tokens import Fragment, Slot, SlotContext, SlotKind, TokenKind, classify

__all__ = (
    "BoundStatement",
    "CacheStats",
    "CompiledStatement",
    "Dialect",
    "ExpressionCompiler",
    "Fragment",
    "Operator",
    "Slot",
    "SlotContext",
    "SlotKind",
    "StatementCache",
    "StatementCompiler",
    "TokenKind",
    "classify",
    "format_statement",
    "get_statement_cache",
    "reset_statement_cache",
    "shape_key",
)
