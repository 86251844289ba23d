"""
Structured error types for fieldspine.

Manifesto:
    Callers need to tell apart "the row is not there" from "you used the
    API wrong" from "the database refused".  Each family gets its own
    class and category so it can be routed, logged and tested:

    - **NotFound:** ``find_or_fail``-style lookups raise, ``find`` returns None
    - **Invariant:** programmer errors, always fatal, never caught internally
    - **Concurrency:** optimistic revision checks that lost the race
    - **Query:** malformed identifiers, operators or unsafe bulk criteria
    - **Config:** unknown database URLs, dialects or field types

    Validation failures are *not* exceptions: they are returned as data.
    Driver errors (constraint violations, connection loss) are never
    wrapped; they propagate unmodified after any transaction rollback.

Architecture:
    ::

        FieldSpineError (category, context, cause)
        ├── NotFoundError          EntityNotFoundError, FieldNotFoundError
        ├── InvariantError         EntityStateError, UnsupportedCapabilityError,
        │                          UnknownScopeError
        ├── ConcurrencyError       StaleEntityError
        ├── QueryError             InvalidQueryError
        └── ConfigError            UnsupportedDatabaseError, UnknownFieldTypeError

Examples:
    >>> err = EntityNotFoundError("nodes", 42)
    >>> err.category
    <ErrorCategory.NOT_FOUND: 'NOT_FOUND'>
    >>> err.to_dict()["context"]
    {'entity_type': 'nodes', 'entity_id': 42}

Tags:
    error-handling, exception-hierarchy, error-context, fieldspine
"""

from __future__ import annotations

import dataclasses
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and routing."""

    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    QUERY = "QUERY"
    CONCURRENCY = "CONCURRENCY"
    INVARIANT = "INVARIANT"
    INTERNAL = "INTERNAL"


@dataclasses.dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging.

    Attributes:
        entity_type: Entity type (usually the table name) involved
        entity_id: Identifier of the entity involved
        table: Table the failing statement targeted
        field: Field machine name or id involved
        metadata: Additional key-value pairs
    """

    entity_type: str | None = None
    entity_id: Any = None
    table: str | None = None
    field: Any = None
    metadata: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging, dropping unset fields."""
        result = {}
        for key in ("entity_type", "entity_id", "table", "field"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FieldSpineError(Exception):
    """Base exception for all fieldspine errors.

    Subclasses set ``default_category`` so callers rarely pass a category
    explicitly.

    Args:
        message: Human-readable description
        category: Overrides the class default category
        context: Structured metadata
        cause: Underlying exception, also set as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FieldSpineError:
        """Add context fields (unknown keys go to ``metadata``) and return self."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "context": self.context.to_dict(),
        }
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# ── Not found ────────────────────────────────────────────────────────────


class NotFoundError(FieldSpineError):
    """A requested entity or field does not exist."""

    default_category = ErrorCategory.NOT_FOUND


class EntityNotFoundError(NotFoundError):
    """Raised by ``find_or_fail``-style lookups when no row matches."""

    def __init__(self, entity_type: str, entity_id: Any = None, **kwargs: Any) -> None:
        if entity_id is None:
            message = f"No {entity_type} entity matched the query"
        else:
            message = f"Entity {entity_type} with id {entity_id!r} not found"
        kwargs.setdefault("context", ErrorContext(entity_type=entity_type, entity_id=entity_id))
        super().__init__(message, **kwargs)
        self.entity_type = entity_type
        self.entity_id = entity_id


class FieldNotFoundError(NotFoundError):
    """Raised when a field definition cannot be resolved."""

    def __init__(self, field_ref: Any, **kwargs: Any) -> None:
        kwargs.setdefault("context", ErrorContext(field=field_ref))
        super().__init__(f"Field {field_ref!r} not found", **kwargs)
        self.field_ref = field_ref


# ── Programmer errors ────────────────────────────────────────────────────


class InvariantError(FieldSpineError):
    """API misuse.  Always fatal, never caught inside fieldspine."""

    default_category = ErrorCategory.INVARIANT


class EntityStateError(InvariantError):
    """Operation not valid for the entity's persistence state."""


class UnsupportedCapabilityError(InvariantError):
    """Operation requires a capability the entity type does not declare."""


class UnknownScopeError(InvariantError):
    """A repository scope name is not registered."""


# ── Concurrency ──────────────────────────────────────────────────────────


class ConcurrencyError(FieldSpineError):
    """Concurrent modification detected."""

    default_category = ErrorCategory.CONCURRENCY


class StaleEntityError(ConcurrencyError):
    """UPDATE matched no row at the expected revision."""


# ── Query building ───────────────────────────────────────────────────────


class QueryError(FieldSpineError):
    """A query could not be built."""

    default_category = ErrorCategory.QUERY


class InvalidQueryError(QueryError):
    """Bad identifier, operator, sort direction or unsafe bulk criteria."""


# ── Configuration ────────────────────────────────────────────────────────


class ConfigError(FieldSpineError):
    """Invalid configuration."""

    default_category = ErrorCategory.CONFIG


class UnsupportedDatabaseError(ConfigError):
    """Database URL scheme or dialect name is not supported."""


class UnknownFieldTypeError(ConfigError):
    """A field definition names a field type outside the registry."""

    def __init__(self, field_type: Any, **kwargs: Any) -> None:
        kwargs.setdefault("context", ErrorContext(metadata={"field_type": field_type}))
        super().__init__(f"Unknown field type {field_type!r}", **kwargs)
        self.field_type = field_type


__all__ = [
    "ConcurrencyError",
    "ConfigError",
    "EntityNotFoundError",
    "EntityStateError",
    "ErrorCategory",
    "ErrorContext",
    "FieldNotFoundError",
    "FieldSpineError",
    "InvalidQueryError",
    "InvariantError",
    "NotFoundError",
    "QueryError",
    "StaleEntityError",
    "UnknownFieldTypeError",
    "UnknownScopeError",
    "UnsupportedCapabilityError",
    "UnsupportedDatabaseError",
]
