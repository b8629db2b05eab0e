import pytest

from symql.adapters.sqlite import SqliteBackend
from symql.utils.module_loader import import_string


def test_import_string() -> None:
    assert import_string("symql.adapters.sqlite:SqliteBackend") is SqliteBackend
    assert import_string("symql.adapters.sqlite.SqliteBackend") is SqliteBackend


@pytest.mark.parametrize("path", ["SqliteBackend", "symql.adapters.sqlite:Missing", "symql.nowhere:Thing"])
def test_import_string_errors(path: str) -> None:
    with pytest.raises(ImportError):
        import_string(path)
