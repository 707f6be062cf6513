"""Owner directory: maps owner ids to public handles.

Conflict results name the existing owner by public handle only.  The
directory never holds e-mail addresses or other contact data; account
management lives outside veridica and is reached through this Protocol.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol, runtime_checkable


@runtime_checkable
class OwnerDirectory(Protocol):
    """Protocol for public-handle lookups."""

    def public_handle(self, owner_id: str) -> str | None:
        """Return the public handle for *owner_id*, or ``None`` if unknown."""
        ...


class MappingOwnerDirectory:
    """Dict-backed directory.

    Unknown owners resolve to their owner id, which is itself a public
    identifier.
    """

    def __init__(self, handles: Mapping[str, str] | None = None) -> None:
        self._handles = dict(handles or {})

    def public_handle(self, owner_id: str) -> str | None:
        return self._handles.get(owner_id, owner_id)

    def add(self, owner_id: str, handle: str) -> None:
        self._handles[owner_id] = handle
