"""Backend adapters.

- sqlite: in-process SQLite session
- process: SQLite session in a long-lived worker process
"""
