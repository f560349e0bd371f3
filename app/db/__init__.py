"""Database access: async engine, session factory, declarative base and lifecycle hooks."""

from .session import AsyncSessionLocal, Base, close_db, engine, get_db, init_db

__all__ = ["engine", "AsyncSessionLocal", "Base", "get_db", "init_db", "close_db"]
