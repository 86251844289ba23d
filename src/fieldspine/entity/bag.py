"""Dynamic attribute bag for EAV-sourced field values.

Declared columns live in the entity's schema; runtime-defined fields live
here, keyed by field machine name.  The two are never mixed: an entity's
``to_storage()`` ignores the bag, and the bag is persisted through
:class:`~fieldspine.fields.storage.FieldValueStorage`.

A normalizer (installed by :meth:`FieldManager.load_fields`) coerces each
assignment to the field type's native Python value and records the bundle
the values were loaded for, so saving writes them back under it.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping, MutableMapping
from typing import Any

Normalizer = Callable[[str, Any], Any]


class AttributeBag(MutableMapping[str, Any]):
    """Mapping of field machine name → native value, with change tracking."""

    def __init__(self, values: Mapping[str, Any] | None = None, *, normalizer: Normalizer | None = None) -> None:
        self._values: dict[str, Any] = {}
        self._changed: set[str] = set()
        self._normalizer = normalizer
        self.bundle_id: int | None = None
        if values:
            self.load(values)

    def bind(self, normalizer: Normalizer | None) -> None:
        """Install the per-field normalizer used on assignment."""
        self._normalizer = normalizer

    def load(self, values: Mapping[str, Any]) -> None:
        """Replace the contents with persisted values; nothing is marked changed."""
        self._values = dict(values)
        self._changed.clear()

    def changed(self) -> dict[str, Any]:
        """Values assigned since the last :meth:`load` / :meth:`mark_clean`."""
        return {name: self._values.get(name) for name in self._changed}

    def is_changed(self) -> bool:
        return bool(self._changed)

    def mark_clean(self) -> None:
        self._changed.clear()

    # -- MutableMapping ----------------------------------------------------

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        if self._normalizer is not None:
            value = self._normalizer(name, value)
        self._values[name] = value
        self._changed.add(name)

    def __delitem__(self, name: str) -> None:
        del self._values[name]
        self._changed.add(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"AttributeBag({self._values!r})"


__all__ = [
    "AttributeBag",
]
