"""
Database Module
"""
from .connection import (
    init_database,
    close_database,
    create_engine,
    create_session_factory,
    create_tables,
    session_scope,
)
from .models import Base

__all__ = [
    "init_database",
    "close_database",
    "create_engine",
    "create_session_factory",
    "create_tables",
    "session_scope",
    "Base",
]
