"""Object store backed by the Kubernetes API.

Wraps the blocking ``kubernetes`` client; every call runs in a worker thread
via ``asyncio.to_thread``. Namespaces, config maps and secrets go through
``CoreV1Api``, Habitats through ``CustomObjectsApi``. ``ApiException`` is
mapped onto the object store error hierarchy.

Reads, replaces and deletes are retried on 429/5xx and transport failures
with exponential backoff and jitter; ``Retry-After`` is honored. Creates are
sent exactly once: a create that failed in flight may still have been
committed, and a second POST would come back as AlreadyExists.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Awaitable, Callable

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .errors import (
    ObjectAlreadyExistsError,
    ObjectConflictError,
    ObjectNotFoundError,
    ObjectStoreError,
)
from .resources import (
    HABITAT_GROUP,
    HABITAT_PLURAL,
    HABITAT_VERSION,
    ObjectKind,
    object_name,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

_DEFAULT_MAX_RETRIES = 3
_DEFAULT_BASE_DELAY = 0.5  # seconds
_DEFAULT_MAX_DELAY = 10.0  # seconds

# CoreV1Api method suffix per kind, e.g. read_namespaced_secret.
_CORE_RESOURCES: dict[ObjectKind, str] = {
    ObjectKind.NAMESPACE: "namespace",
    ObjectKind.CONFIG_MAP: "namespaced_config_map",
    ObjectKind.SECRET: "namespaced_secret",
}

# CustomObjectsApi spells "read" as "get".
_CUSTOM_VERBS = {"read": "get", "create": "create", "replace": "replace", "delete": "delete"}


class KubernetesClient:
    """Object store over ``CoreV1Api`` and ``CustomObjectsApi``."""

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        *,
        core_api: Any | None = None,
        custom_api: Any | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api_client = api_client or client.ApiClient()
        self._core = core_api or client.CoreV1Api(self._api_client)
        self._custom = custom_api or client.CustomObjectsApi(self._api_client)
        self._timeout = float(timeout_seconds)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        *,
        kubeconfig: str | None = None,
        context: str | None = None,
        **kwargs: Any,
    ) -> KubernetesClient:
        """Load cluster credentials and build a client.

        Without ``kubeconfig`` the pod's service account is used. Raises
        ``kubernetes.config.ConfigException`` when no configuration is found.
        """
        if kubeconfig:
            config.load_kube_config(config_file=kubeconfig, context=context)
        else:
            config.load_incluster_config()
        return cls(client.ApiClient(), **kwargs)

    async def aclose(self) -> None:
        await asyncio.to_thread(self._api_client.close)

    def _invoke(
        self,
        verb: str,
        kind: ObjectKind,
        namespace: str | None,
        name: str | None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        if kind.namespaced and not namespace:
            raise ValueError(f"namespace is required for {kind.value}")

        kwargs: dict[str, Any] = {"_request_timeout": self._timeout}
        if body is not None:
            kwargs["body"] = body

        if kind is ObjectKind.HABITAT:
            method = getattr(self._custom, f"{_CUSTOM_VERBS[verb]}_namespaced_custom_object")
            args = [HABITAT_GROUP, HABITAT_VERSION, namespace, HABITAT_PLURAL]
            if verb != "create":
                args.append(name)
            return method(*args, **kwargs)

        if kind.namespaced:
            kwargs["namespace"] = namespace
        if verb != "create":
            kwargs["name"] = name
        return getattr(self._core, f"{verb}_{_CORE_RESOURCES[kind]}")(**kwargs)

    async def _call(
        self,
        verb: str,
        kind: ObjectKind,
        namespace: str | None,
        name: str,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Run one API call, retrying transient failures unless it is a create."""
        attempts = 1 if verb == "create" else self._max_retries + 1

        for attempt in range(attempts):
            last_attempt = attempt + 1 >= attempts
            try:
                return await asyncio.to_thread(
                    self._invoke, verb, kind, namespace, name, body,
                )
            except ApiException as e:
                if last_attempt or e.status not in _RETRYABLE_STATUS_CODES:
                    raise _translate(e, kind=kind, name=name) from e
                delay = self._retry_after_delay(e, attempt)
                logger.warning(
                    "Kubernetes %s %s %s returned %d (attempt %d/%d), retrying in %.1fs",
                    verb,
                    kind.value,
                    name,
                    e.status,
                    attempt + 1,
                    attempts,
                    delay,
                )
            except urllib3.exceptions.HTTPError as e:
                if last_attempt:
                    raise ObjectStoreError(
                        status_code=0,
                        message=f"transport error: {verb} {kind.value} {name}: {e}",
                        kind=kind.value,
                        name=name,
                    ) from e
                delay = self._backoff_delay(attempt)
                logger.warning(
                    "Kubernetes %s %s %s failed in transport (attempt %d/%d), retrying in %.1fs",
                    verb,
                    kind.value,
                    name,
                    attempt + 1,
                    attempts,
                    delay,
                )
            await self._sleep(delay)

        raise ObjectStoreError(status_code=0, message="exhausted retries with no response")

    def _backoff_delay(self, attempt: int) -> float:
        """Exponential backoff with full jitter."""
        delay = min(self._base_delay * (2 ** attempt), self._max_delay)
        return random.uniform(0, delay)

    def _retry_after_delay(self, exc: ApiException, attempt: int) -> float:
        retry_after = (exc.headers or {}).get("Retry-After")
        if retry_after:
            try:
                return max(float(retry_after), 0.1)
            except ValueError:
                pass
        return self._backoff_delay(attempt)

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self._api_client.sanitize_for_serialization(obj)

    # ── Object store API ─────────────────────────────────────────

    async def get(self, kind: ObjectKind, namespace: str | None, name: str) -> dict[str, Any]:
        """Read an object. Raises ObjectNotFoundError if it doesn't exist."""
        return self._to_dict(await self._call("read", kind, namespace, name))

    async def create(
        self, kind: ObjectKind, namespace: str | None, body: dict[str, Any],
    ) -> dict[str, Any]:
        """Create an object. Raises ObjectAlreadyExistsError on a name clash."""
        name = object_name(body)
        result = await self._call("create", kind, namespace, name, _with_type_meta(kind, body))
        logger.info(
            "Object created: kind=%s namespace=%s name=%s",
            kind.value,
            namespace,
            name,
            extra={"kind": kind.value, "namespace": namespace, "object_name": name},
        )
        return self._to_dict(result)

    async def update(
        self, kind: ObjectKind, namespace: str | None, body: dict[str, Any],
    ) -> dict[str, Any]:
        """Replace an object.

        The ``metadata.resourceVersion`` in ``body`` (if any) is sent along,
        so a stale write fails with ObjectConflictError.
        """
        name = object_name(body)
        result = await self._call("replace", kind, namespace, name, _with_type_meta(kind, body))
        return self._to_dict(result)

    async def delete(self, kind: ObjectKind, namespace: str | None, name: str) -> None:
        """Delete an object. Raises ObjectNotFoundError if it doesn't exist."""
        await self._call("delete", kind, namespace, name)
        logger.info(
            "Object deleted: kind=%s namespace=%s name=%s",
            kind.value,
            namespace,
            name,
            extra={"kind": kind.value, "namespace": namespace, "object_name": name},
        )


def _with_type_meta(kind: ObjectKind, body: dict[str, Any]) -> dict[str, Any]:
    return {"apiVersion": kind.api_version, "kind": kind.value, **body}


def _translate(exc: ApiException, *, kind: ObjectKind, name: str | None) -> ObjectStoreError:
    """Map an ApiException to the object store error for its Status reason."""
    status = exc.status or 0
    body = exc.body.decode("utf-8", "replace") if isinstance(exc.body, bytes) else exc.body
    message = body[:200] if body else (exc.reason or f"HTTP {status}")
    reason: str | None = None

    # The API server answers failures with a Status object.
    try:
        payload = json.loads(body) if body else None
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        message = payload.get("message", message)
        reason = payload.get("reason")

    error_kwargs = {
        "status_code": status,
        "message": message,
        "reason": reason,
        "kind": kind.value,
        "name": name,
    }
    if status == 404 or reason == "NotFound":
        return ObjectNotFoundError(**error_kwargs)
    if reason == "AlreadyExists":
        return ObjectAlreadyExistsError(**error_kwargs)
    if status == 409 or reason == "Conflict":
        return ObjectConflictError(**error_kwargs)
    return ObjectStoreError(**error_kwargs)
