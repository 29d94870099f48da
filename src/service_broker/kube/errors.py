"""Object store error hierarchy.

These errors are shared by every object store implementation (the Kubernetes
API client and the in-memory store) so callers can classify failures without
depending on the kubernetes client or on response bodies.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class ObjectStoreError(Exception):
    """Base error for object store requests."""

    status_code: int
    message: str
    reason: str | None = None
    kind: str | None = None
    name: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"ObjectStoreError(status={self.status_code})", self.message]
        if self.reason:
            bits.append(f"reason={self.reason}")
        if self.kind:
            bits.append(f"kind={self.kind}")
        if self.name:
            bits.append(f"name={self.name}")
        return " ".join(bits)


class ObjectNotFoundError(ObjectStoreError):
    """404: the object (or its namespace) does not exist."""


class ObjectConflictError(ObjectStoreError):
    """409: optimistic-concurrency conflict on update."""


class ObjectAlreadyExistsError(ObjectConflictError):
    """409 with reason AlreadyExists: an object with that name exists."""
