from symql.adapters.sqlite.core import SQLITE_DIALECT, SQLITE_KEYWORDS, classify_error
from symql.adapters.sqlite.driver import SqliteBackend

__all__ = ("SQLITE_DIALECT", "SQLITE_KEYWORDS", "SqliteBackend", "classify_error")
