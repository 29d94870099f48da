"""Habitat workload resource construction and credential reference access.

The resource is plain Kubernetes JSON (``habitat.sh/v1beta1`` ``Habitat``);
the broker never caches it and always re-reads it before mutating.
"""

from __future__ import annotations

import copy
from typing import Any

from ..kube.resources import HABITAT_API_VERSION, ObjectKind
from .plans import WorkloadDescriptor

BINDING_ID_ANNOTATION = 'service-broker.habitat.sh/binding-id'


def build_workload_resource(descriptor: WorkloadDescriptor, namespace: str) -> dict[str, Any]:
    """Render a Habitat resource named after the service type."""
    spec: dict[str, Any] = {
        'image': descriptor.image,
        'count': descriptor.instance_count,
        'service': {
            'name': descriptor.service_name,
            'group': descriptor.group,
            'topology': descriptor.topology.value,
        },
    }
    storage = descriptor.persistent_storage
    if storage is not None:
        spec['persistentStorage'] = {
            'size': storage.size,
            'mountPath': storage.mount_path,
            'storageClassName': storage.storage_class,
        }
    return {
        'apiVersion': HABITAT_API_VERSION,
        'kind': ObjectKind.HABITAT.value,
        'metadata': {'name': descriptor.service_name, 'namespace': namespace},
        'spec': {'v1beta2': spec},
    }


def credential_secret_ref(resource: dict[str, Any]) -> str | None:
    """Return the bound secret name, or None when the instance is unbound."""
    service = (
        resource.get('spec', {}).get('v1beta2', {}).get('service') or {}
    )
    return service.get('configSecretName') or None


def credential_binding_id(resource: dict[str, Any]) -> str | None:
    """Return the binding id that owns the credential reference, if recorded."""
    annotations = (resource.get('metadata') or {}).get('annotations') or {}
    return annotations.get(BINDING_ID_ANNOTATION) or None


def with_credential_secret_ref(
    resource: dict[str, Any],
    secret_name: str | None,
    binding_id: str | None = None,
) -> dict[str, Any]:
    """Return a copy of ``resource`` with the credential reference set or cleared.

    The owning binding id lives in a metadata annotation and is cleared
    together with the reference.
    """
    updated = copy.deepcopy(resource)
    updated['apiVersion'] = HABITAT_API_VERSION
    updated['kind'] = ObjectKind.HABITAT.value
    service = updated.setdefault('spec', {}).setdefault('v1beta2', {}).setdefault('service', {})
    annotations = updated.setdefault('metadata', {}).get('annotations') or {}
    if secret_name is None:
        service.pop('configSecretName', None)
        annotations.pop(BINDING_ID_ANNOTATION, None)
    else:
        service['configSecretName'] = secret_name
        if binding_id:
            annotations[BINDING_ID_ANNOTATION] = binding_id
    if annotations:
        updated['metadata']['annotations'] = annotations
    else:
        updated['metadata'].pop('annotations', None)
    return updated
