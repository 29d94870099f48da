"""Instance registry: durable instance id -> namespace map.

The registry is a single config map (``habitat-service-broker`` in
``habitat-service-broker-configuration``) whose data holds one entry per
provisioned instance::

    "{instance_id}.namespace": "<namespace>"

The config map is fetched (or created) once at startup and kept in memory.
Reads are served from the in-memory copy. Writes are read-modify-write of the
whole object: the in-memory copy is mutated, the object is persisted, and on
persistence failure the copy is restored to its pre-mutation value before the
error propagates, so the in-memory view never drifts from what was persisted.

Writes are serialized by an internal lock; the lifecycle manager only locks
per instance, so distinct instances may write concurrently.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any

from ..kube.errors import ObjectNotFoundError
from ..kube.resources import ObjectKind
from ..protocols import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAMESPACE = 'habitat-service-broker-configuration'
DEFAULT_CONFIG_MAP_NAME = 'habitat-service-broker'


def namespace_key(instance_id: str) -> str:
    return f'{instance_id}.namespace'


class RegistryNotLoaded(RuntimeError):
    def __init__(self) -> None:
        super().__init__('instance registry used before load()')


class InstanceRegistry:
    def __init__(
        self,
        store: ObjectStore,
        *,
        name: str = DEFAULT_CONFIG_MAP_NAME,
        namespace: str = DEFAULT_CONFIG_NAMESPACE,
    ) -> None:
        self._store = store
        self._name = name
        self._namespace = namespace
        self._config_map: dict[str, Any] | None = None
        self._lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def loaded(self) -> bool:
        return self._config_map is not None

    async def load(self) -> None:
        """Get or create the config namespace and config map."""
        await self._get_or_create(
            ObjectKind.NAMESPACE,
            None,
            {'metadata': {'name': self._namespace}},
        )
        self._config_map = await self._get_or_create(
            ObjectKind.CONFIG_MAP,
            self._namespace,
            {'metadata': {'name': self._name, 'namespace': self._namespace}},
        )
        logger.info(
            'Instance registry loaded: %s/%s (%d entries)',
            self._namespace,
            self._name,
            len(self._data()),
            extra={'config_map': self._name, 'namespace': self._namespace},
        )

    def get(self, key: str) -> str | None:
        return self._data().get(key)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data())

    async def put(self, key: str, value: str) -> None:
        async with self._lock:
            config_map = self._require_loaded()
            previous = copy.deepcopy(config_map.get('data'))
            data = config_map.get('data') or {}
            data[key] = value
            config_map['data'] = data
            await self._persist(previous)

    async def remove(self, key: str) -> None:
        """Remove ``key``. Raises KeyError if it is not in the registry."""
        async with self._lock:
            config_map = self._require_loaded()
            data = config_map.get('data') or {}
            if key not in data:
                raise KeyError(f'key {key!r} not found in config map {self._name}')
            previous = copy.deepcopy(config_map.get('data'))
            del data[key]
            config_map['data'] = data
            await self._persist(previous)

    # ── Internals ────────────────────────────────────────────────

    def _require_loaded(self) -> dict[str, Any]:
        if self._config_map is None:
            raise RegistryNotLoaded()
        return self._config_map

    def _data(self) -> dict[str, str]:
        return self._require_loaded().get('data') or {}

    async def _persist(self, previous: dict[str, str] | None) -> None:
        config_map = self._require_loaded()
        try:
            updated = await self._store.update(
                ObjectKind.CONFIG_MAP, self._namespace, config_map,
            )
        except Exception:
            # Restore the in-memory copy to its pre-mutation state.
            if previous is None:
                config_map.pop('data', None)
            else:
                config_map['data'] = previous
            raise
        self._config_map = updated

    async def _get_or_create(
        self, kind: ObjectKind, namespace: str | None, body: dict[str, Any],
    ) -> dict[str, Any]:
        name = body['metadata']['name']
        try:
            return await self._store.get(kind, namespace, name)
        except ObjectNotFoundError:
            pass
        logger.info(
            'Creating %s %s',
            kind.value,
            name,
            extra={'kind': kind.value, 'object_name': name},
        )
        return await self._store.create(kind, namespace, body)
