"""
Session records, storage, and authenticated access.
"""

from .store import (
    AuthType,
    InMemorySessionStore,
    JsonFileSessionStore,
    Session,
    SessionStore,
)
from .accessor import ProtectedResourceAccessor

__all__ = [
    "AuthType",
    "InMemorySessionStore",
    "JsonFileSessionStore",
    "Session",
    "SessionStore",
    "ProtectedResourceAccessor",
]
