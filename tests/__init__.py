"""
ThreadACL Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (SQLite, in-memory cache, HTTP API)
"""
