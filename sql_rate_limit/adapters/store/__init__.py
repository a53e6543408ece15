"""Counter store adapters.

The limiter only needs a tiny execute/transaction contract from its store.
Keeping that contract behind an abstraction lets the SQL dialect (SQLite,
PostgreSQL, ...) change without touching the counting algorithm.
"""
