"""
avrowire Test Suite.

This package contains:
- unit/: Unit tests (in-memory fake registry, temporary schema trees)
"""
