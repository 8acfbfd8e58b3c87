"""
couchview Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Integration tests (in-memory store; live CouchDB when enabled)
"""
