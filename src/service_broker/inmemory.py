"""In-memory object store for local development and tests.

Used when ENVIRONMENT=local. It satisfies the ObjectStore protocol with the
same error semantics as the Kubernetes API (not-found, already-exists,
optimistic conflicts on stale resourceVersion) but keeps everything in a dict.

Every call is appended to ``calls`` and failures can be injected per
operation/kind, so tests can assert on call order and exercise error paths.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any

from .kube.errors import (
    ObjectAlreadyExistsError,
    ObjectConflictError,
    ObjectNotFoundError,
    ObjectStoreError,
)
from .kube.resources import ObjectKind, object_name

_Key = tuple[ObjectKind, str, str]


@dataclass
class _Fault:
    error: ObjectStoreError
    remaining: int | None


class InMemoryObjectStore:
    def __init__(self) -> None:
        self._objects: dict[_Key, dict[str, Any]] = {}
        self._version = 0
        self._faults: dict[tuple[str, ObjectKind], _Fault] = {}
        self.calls: list[tuple[str, str, str, str]] = []

    # ── Test helpers ─────────────────────────────────────────────

    def fail(
        self,
        op: str,
        kind: ObjectKind,
        error: ObjectStoreError,
        *,
        times: int | None = None,
    ) -> None:
        """Make the next ``times`` calls of ``op`` on ``kind`` raise ``error``.

        ``times=None`` fails every call until ``clear_faults()``.
        """
        self._faults[(op, kind)] = _Fault(error=error, remaining=times)

    def clear_faults(self) -> None:
        self._faults.clear()

    def objects(self, kind: ObjectKind, namespace: str | None = None) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in self._objects.items()
            if k is kind and (namespace is None or ns == namespace)
        ]

    def calls_for(self, op: str, kind: ObjectKind) -> list[tuple[str, str, str, str]]:
        return [c for c in self.calls if c[0] == op and c[1] == kind.value]

    # ── Object store API ─────────────────────────────────────────

    async def get(self, kind: ObjectKind, namespace: str | None, name: str) -> dict[str, Any]:
        key = self._key(kind, namespace, name)
        self._record("get", key)
        obj = self._objects.get(key)
        if obj is None:
            raise _not_found(kind, name)
        return copy.deepcopy(obj)

    async def create(
        self, kind: ObjectKind, namespace: str | None, body: dict[str, Any],
    ) -> dict[str, Any]:
        key = self._key(kind, namespace, object_name(body))
        self._record("create", key)
        if key in self._objects:
            raise ObjectAlreadyExistsError(
                status_code=409,
                message=f"{kind.value.lower()} {key[2]!r} already exists",
                reason="AlreadyExists",
                kind=kind.value,
                name=key[2],
            )
        obj = self._stamp(kind, key, body)
        self._objects[key] = obj
        return copy.deepcopy(obj)

    async def update(
        self, kind: ObjectKind, namespace: str | None, body: dict[str, Any],
    ) -> dict[str, Any]:
        key = self._key(kind, namespace, object_name(body))
        self._record("update", key)
        current = self._objects.get(key)
        if current is None:
            raise _not_found(kind, key[2])
        sent_version = (body.get("metadata") or {}).get("resourceVersion")
        if sent_version and sent_version != current["metadata"]["resourceVersion"]:
            raise ObjectConflictError(
                status_code=409,
                message="the object has been modified; please apply your changes to the latest version",
                reason="Conflict",
                kind=kind.value,
                name=key[2],
            )
        obj = self._stamp(kind, key, body)
        self._objects[key] = obj
        return copy.deepcopy(obj)

    async def delete(self, kind: ObjectKind, namespace: str | None, name: str) -> None:
        key = self._key(kind, namespace, name)
        self._record("delete", key)
        if self._objects.pop(key, None) is None:
            raise _not_found(kind, name)

    # ── Internals ────────────────────────────────────────────────

    @staticmethod
    def _key(kind: ObjectKind, namespace: str | None, name: str) -> _Key:
        return (kind, (namespace or "") if kind.namespaced else "", name)

    def _record(self, op: str, key: _Key) -> None:
        kind, namespace, name = key
        self.calls.append((op, kind.value, namespace, name))
        fault = self._faults.get((op, kind))
        if fault is None:
            return
        if fault.remaining is not None:
            fault.remaining -= 1
            if fault.remaining <= 0:
                del self._faults[(op, kind)]
        raise fault.error

    def _stamp(self, kind: ObjectKind, key: _Key, body: dict[str, Any]) -> dict[str, Any]:
        self._version += 1
        obj = copy.deepcopy(body)
        obj.setdefault("apiVersion", kind.api_version)
        obj.setdefault("kind", kind.value)
        metadata = obj.setdefault("metadata", {})
        if kind.namespaced:
            metadata["namespace"] = key[1]
        metadata["resourceVersion"] = str(self._version)
        return obj


def _not_found(kind: ObjectKind, name: str) -> ObjectNotFoundError:
    return ObjectNotFoundError(
        status_code=404,
        message=f"{kind.value.lower()} {name!r} not found",
        reason="NotFound",
        kind=kind.value,
        name=name,
    )
