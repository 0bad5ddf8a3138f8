"""
Firehose writer test suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Writer end-to-end against the in-memory delivery stream
"""
