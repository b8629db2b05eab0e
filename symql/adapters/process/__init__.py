"""SQLite in a worker process, driven over a line protocol on its pipes."""

from symql.adapters.process.backend import ProcessBackend

__all__ = ("ProcessBackend",)
