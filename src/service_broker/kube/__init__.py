"""Kubernetes object store for the broker."""

from .client import KubernetesClient
from .errors import (
    ObjectAlreadyExistsError,
    ObjectConflictError,
    ObjectNotFoundError,
    ObjectStoreError,
)
from .resources import HABITAT_API_VERSION, ObjectKind

__all__ = [
    "HABITAT_API_VERSION",
    "KubernetesClient",
    "ObjectAlreadyExistsError",
    "ObjectConflictError",
    "ObjectKind",
    "ObjectNotFoundError",
    "ObjectStoreError",
]
