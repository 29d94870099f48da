"""Credential issuance for bindable services.

A credential is delivered as an Opaque Kubernetes secret with a random name
suffix. Two bounded retry loops guard the write:

  * ``issue_secret`` retries on name collisions (AlreadyExists) with a fresh
    name until an absolute deadline passes. Any other store error aborts.
  * ``verify_secret_exists`` polls until the new secret is readable, tolerating
    NotFound (read-after-write propagation) until the deadline passes. Any
    other store error aborts.

Both loops await between attempts, so cancelling the calling task stops them
at the next poll.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ..kube.errors import ObjectAlreadyExistsError, ObjectNotFoundError
from ..kube.resources import ObjectKind
from ..protocols import ObjectStore
from .errors import RetriesExhausted

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPT_WINDOW_SECONDS = 15.0
DEFAULT_POLL_INTERVAL_SECONDS = 1.0
SECRET_SUFFIX_LENGTH = 5

_ALPHABET = string.ascii_lowercase + string.digits


def random_token(length: int) -> str:
    """Random lowercase alphanumeric token (DNS-1123 safe)."""
    return ''.join(secrets.choice(_ALPHABET) for _ in range(length))


@dataclass(frozen=True, slots=True)
class CredentialTemplate:
    """How a bindable service's credential secret is named and rendered."""

    secret_prefix: str
    data_key: str
    password_length: int = 10

    def render(self, password: str) -> str:
        return f'requirepass = "{password}"'


# Services absent from this table are not bindable.
CREDENTIAL_TEMPLATES: dict[str, CredentialTemplate] = {
    'redis': CredentialTemplate(secret_prefix='habitat-osb-redis', data_key='user.toml'),
}


def build_secret(name: str, data_key: str, data_value: str) -> dict[str, Any]:
    encoded = base64.b64encode(data_value.encode()).decode()
    return {
        'apiVersion': 'v1',
        'kind': ObjectKind.SECRET.value,
        'metadata': {'name': name},
        'type': 'Opaque',
        'data': {data_key: encoded},
    }


def decode_secret_value(secret: dict[str, Any], data_key: str) -> str:
    return base64.b64decode(secret['data'][data_key]).decode()


class CredentialIssuer:
    """Creates and verifies uniquely named credential secrets."""

    def __init__(
        self,
        store: ObjectStore,
        *,
        attempt_window: float = DEFAULT_ATTEMPT_WINDOW_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        token_factory: Callable[[int], str] = random_token,
    ) -> None:
        if attempt_window <= 0:
            raise ValueError('attempt_window must be positive')
        if poll_interval <= 0:
            raise ValueError('poll_interval must be positive')
        self._store = store
        self._attempt_window = attempt_window
        self._poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._token_factory = token_factory

    async def issue_secret(
        self,
        name_prefix: str,
        data_key: str,
        data_value: str,
        namespace: str,
    ) -> dict[str, Any]:
        """Create a secret named ``{name_prefix}-{random}`` in ``namespace``.

        Raises:
            RetriesExhausted: If every attempt collided until the deadline.
            ObjectStoreError: On any store error other than AlreadyExists.
        """
        deadline = self._clock() + self._attempt_window
        attempts = 0
        while self._clock() < deadline:
            attempts += 1
            name = f'{name_prefix}-{self._token_factory(SECRET_SUFFIX_LENGTH)}'
            body = build_secret(name, data_key, data_value)
            try:
                secret = await self._store.create(ObjectKind.SECRET, namespace, body)
            except ObjectAlreadyExistsError:
                logger.warning(
                    'Secret with name %s already exists, trying again with a different name',
                    name,
                    extra={'secret_name': name, 'namespace': namespace, 'attempt': attempts},
                )
                await self._sleep(self._poll_interval)
                continue
            logger.info(
                'Secret created: %s/%s',
                namespace,
                name,
                extra={'secret_name': name, 'namespace': namespace, 'attempt': attempts},
            )
            return secret

        raise RetriesExhausted(
            f'max retries exceeded: secret with prefix {name_prefix!r} not created '
            f'after {attempts} attempts',
            attempts=attempts,
        )

    async def verify_secret_exists(self, name: str, namespace: str) -> None:
        """Poll until the secret is readable.

        Raises:
            RetriesExhausted: If the secret stayed invisible until the deadline.
            ObjectStoreError: On any store error other than NotFound.
        """
        deadline = self._clock() + self._attempt_window
        attempts = 0
        while self._clock() < deadline:
            attempts += 1
            try:
                await self._store.get(ObjectKind.SECRET, namespace, name)
            except ObjectNotFoundError:
                logger.warning(
                    'Secret %s not found yet, trying again',
                    name,
                    extra={'secret_name': name, 'namespace': namespace, 'attempt': attempts},
                )
                await self._sleep(self._poll_interval)
                continue
            return

        raise RetriesExhausted(
            f'max retries exceeded: secret {name!r} not found after {attempts} attempts',
            attempts=attempts,
        )

    async def delete_secret(self, name: str, namespace: str) -> None:
        """Delete a secret; one that is already gone counts as deleted."""
        try:
            await self._store.delete(ObjectKind.SECRET, namespace, name)
        except ObjectNotFoundError:
            logger.info(
                'Secret already deleted: %s/%s',
                namespace,
                name,
                extra={'secret_name': name, 'namespace': namespace},
            )
