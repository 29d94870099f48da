"""Kubernetes object kinds used by the broker."""

from __future__ import annotations

from enum import Enum

HABITAT_GROUP = "habitat.sh"
HABITAT_VERSION = "v1beta1"
HABITAT_PLURAL = "habitats"
HABITAT_API_VERSION = f"{HABITAT_GROUP}/{HABITAT_VERSION}"


class ObjectKind(str, Enum):
    NAMESPACE = "Namespace"
    CONFIG_MAP = "ConfigMap"
    SECRET = "Secret"
    HABITAT = "Habitat"

    @property
    def api_version(self) -> str:
        if self is ObjectKind.HABITAT:
            return HABITAT_API_VERSION
        return "v1"

    @property
    def namespaced(self) -> bool:
        return self is not ObjectKind.NAMESPACE


def object_name(body: dict) -> str:
    """Extract ``metadata.name`` from an object body."""
    name = (body.get("metadata") or {}).get("name")
    if not name:
        raise ValueError("object body has no metadata.name")
    return name
