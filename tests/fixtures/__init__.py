"""
Test fixtures for deterministic testing.

This module provides:
- fixture_db: Creates temp SQLite databases with seed data dated relative to a pinned clock
"""

from .fixture_db import FIXED_NOW, create_empty_db, create_fixture_db, guard_no_live_db

__all__ = ["FIXED_NOW", "create_empty_db", "create_fixture_db", "guard_no_live_db"]
