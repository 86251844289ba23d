"""SQLAlchemy integration: engine factory and the session Connection bridge."""

from fieldspine.core.orm.session import (
    SAConnectionBridge,
    create_fieldspine_engine,
    fieldspine_session_factory,
)

__all__ = [
    "SAConnectionBridge",
    "create_fieldspine_engine",
    "fieldspine_session_factory",
]
