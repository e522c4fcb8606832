"""
Database package initialization.

Submodules:
- base: declarative base and mixins
- connection: async engine, session factory and the ``get_db`` dependency
- models: ORM models for every checkout table

Import submodules explicitly to avoid circular imports.
"""

__all__ = []
