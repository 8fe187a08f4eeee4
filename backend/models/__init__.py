from .base import Base, async_engine, async_session_factory, get_db
from .user import User
from .document import Document
from .comment import DocumentComment

__all__ = [
    "Base",
    "async_engine",
    "async_session_factory",
    "get_db",
    "User",
    "Document",
    "DocumentComment",
]
