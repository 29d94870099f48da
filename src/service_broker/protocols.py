"""Object store protocol consumed by the broker core.

Concrete implementations: ``KubernetesClient`` (the real cluster) and
``InMemoryObjectStore`` (local development and tests). The app factory accepts
any implementation that matches this protocol.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from .kube.resources import ObjectKind


@runtime_checkable
class ObjectStore(Protocol):
    """CRUD on cluster objects keyed by (kind, namespace, name).

    Failures raise ``ObjectStoreError`` subclasses: ``ObjectNotFoundError``,
    ``ObjectAlreadyExistsError`` and ``ObjectConflictError``.
    """

    async def get(self, kind: ObjectKind, namespace: str | None, name: str) -> dict[str, Any]: ...
    async def create(self, kind: ObjectKind, namespace: str | None, body: dict[str, Any]) -> dict[str, Any]: ...
    async def update(self, kind: ObjectKind, namespace: str | None, body: dict[str, Any]) -> dict[str, Any]: ...
    async def delete(self, kind: ObjectKind, namespace: str | None, name: str) -> None: ...
