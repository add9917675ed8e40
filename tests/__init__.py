"""
StoreVault Test Suite.

This package contains:
- unit/: Unit tests (in-memory store, temporary directories, fake clock)
- integration/: Integration tests (SQLite store, filesystem artifacts, HTTP API, CLI)
"""
