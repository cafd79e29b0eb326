from .connection import get_database_url, get_engine, get_session_factory, session_scope
from .orm_models import Base

__all__ = ["Base", "get_database_url", "get_engine", "get_session_factory", "session_scope"]
