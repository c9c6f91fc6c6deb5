"""Syncline Database Package."""
from .session import Base, get_engine, get_session_factory, init_db

__all__ = ["Base", "get_engine", "get_session_factory", "init_db"]
