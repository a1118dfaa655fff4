"""
Concrete raw-connection adapters for the pool
"""

from .sqlite import SQLiteConnection, sqlite_connection_factory

__all__ = ['SQLiteConnection', 'sqlite_connection_factory']
