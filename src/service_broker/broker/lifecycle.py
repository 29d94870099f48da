"""Workload lifecycle manager: Provision, Deprovision, Bind, Unbind, Update.

Invariants:
  1. At most one mutating operation per instance id is in flight. Each of
     Provision, Deprovision, Bind and Unbind holds the instance's lock for its
     full duration, including object store calls and credential retry loops.
     Distinct instances proceed concurrently.
  2. A registry entry exists iff the instance's Habitat resource exists.
     Provision creates the resource before recording it and deletes the
     resource again if the registry write fails. Deprovision deletes the
     resource before removing the entry and leaves the entry in place if the
     delete fails.
  3. A credential secret exists iff the resource's ``configSecretName`` names
     it. Bind deletes the issued secret again if anything fails before the
     reference is persisted. Unbind clears the reference before deleting the
     secret, so the resource never points at a deleted secret.

Object store failures are wrapped into ``UpstreamError`` at this boundary.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..kube.errors import ObjectNotFoundError, ObjectStoreError
from ..kube.resources import ObjectKind
from ..protocols import ObjectStore
from .catalog import catalog_response
from .credentials import (
    CREDENTIAL_TEMPLATES,
    CredentialIssuer,
    CredentialTemplate,
    random_token,
)
from .errors import (
    BindingAlreadyExists,
    BindingNotFound,
    BrokerNotImplemented,
    InstanceAlreadyExists,
    InstanceNotFound,
    UpstreamError,
)
from .locks import KeyedLock
from .models import (
    BindRequest,
    BindResponse,
    DeprovisionRequest,
    OperationResponse,
    ProvisionRequest,
    UnbindRequest,
    UpdateRequest,
)
from .parameters import parse_context, parse_parameters
from .plans import PLANS, PlanTarget, build_descriptor, resolve_plan
from .registry import InstanceRegistry, namespace_key
from .workload import (
    build_workload_resource,
    credential_binding_id,
    credential_secret_ref,
    with_credential_secret_ref,
)

logger = logging.getLogger(__name__)


class WorkloadLifecycleManager:
    def __init__(
        self,
        store: ObjectStore,
        registry: InstanceRegistry,
        issuer: CredentialIssuer,
        *,
        async_enabled: bool = False,
        plans: Mapping[str, PlanTarget] = PLANS,
        credential_templates: Mapping[str, CredentialTemplate] = CREDENTIAL_TEMPLATES,
    ) -> None:
        self._store = store
        self._registry = registry
        self._issuer = issuer
        self._async_enabled = async_enabled
        self._plans = plans
        self._templates = credential_templates
        self._locks = KeyedLock()

    @property
    def registry(self) -> InstanceRegistry:
        return self._registry

    def is_busy(self, instance_id: str) -> bool:
        return self._locks.locked(instance_id)

    # ── Read-only operations (no lock) ───────────────────────────

    def get_catalog(self) -> dict[str, Any]:
        return catalog_response()

    async def update(self, request: UpdateRequest) -> OperationResponse:
        """Acknowledge an update without mutating anything."""
        logger.info(
            'Update acknowledged for instance %s (no-op)',
            request.instance_id,
            extra={'instance_id': request.instance_id},
        )
        return OperationResponse(is_async=self._is_async(request.accepts_incomplete))

    async def last_operation(self, instance_id: str) -> None:
        raise BrokerNotImplemented(
            'last operation polling is unsupported: '
            'all operations complete before the response is sent'
        )

    # ── Provision / Deprovision ──────────────────────────────────

    async def provision(self, request: ProvisionRequest) -> OperationResponse:
        # Validate everything before taking the lock or touching the store.
        parameters = parse_parameters(request.parameters)
        descriptor = build_descriptor(request.plan_id, parameters, self._plans)
        namespace = parse_context(request.context).namespace
        instance_id = request.instance_id
        key = namespace_key(instance_id)

        async with self._locks.hold(instance_id):
            existing = self._registry.get(key)
            if existing is not None:
                raise InstanceAlreadyExists(instance_id, existing)

            resource = build_workload_resource(descriptor, namespace)
            try:
                await self._store.create(ObjectKind.HABITAT, namespace, resource)
            except ObjectStoreError as exc:
                raise UpstreamError('creating habitat resource', exc) from exc

            try:
                await self._registry.put(key, namespace)
            except ObjectStoreError as exc:
                await self._discard_resource(namespace, descriptor.service_name)
                raise UpstreamError('recording instance in registry', exc) from exc

        logger.info(
            'Provisioned instance %s: %s (%s, count=%d) in %s',
            instance_id,
            descriptor.service_name,
            descriptor.topology.value,
            descriptor.instance_count,
            namespace,
            extra={
                'instance_id': instance_id,
                'service_name': descriptor.service_name,
                'namespace': namespace,
            },
        )
        return OperationResponse(is_async=self._is_async(request.accepts_incomplete))

    async def deprovision(self, request: DeprovisionRequest) -> OperationResponse:
        target = resolve_plan(request.plan_id, self._plans)
        instance_id = request.instance_id

        async with self._locks.hold(instance_id):
            namespace = self._lookup_namespace(instance_id)
            try:
                await self._store.delete(ObjectKind.HABITAT, namespace, target.service_name)
            except ObjectNotFoundError:
                logger.info(
                    'Habitat %s already deleted in %s',
                    target.service_name,
                    namespace,
                    extra={'instance_id': instance_id, 'namespace': namespace},
                )
            except ObjectStoreError as exc:
                raise UpstreamError('deleting habitat resource', exc) from exc

            try:
                await self._registry.remove(namespace_key(instance_id))
            except ObjectStoreError as exc:
                raise UpstreamError('removing instance from registry', exc) from exc

        logger.info(
            'Deprovisioned instance %s from %s',
            instance_id,
            namespace,
            extra={'instance_id': instance_id, 'namespace': namespace},
        )
        return OperationResponse(is_async=self._is_async(request.accepts_incomplete))

    # ── Bind / Unbind ────────────────────────────────────────────

    async def bind(self, request: BindRequest) -> BindResponse:
        target = resolve_plan(request.plan_id, self._plans)
        instance_id = request.instance_id
        is_async = self._is_async(request.accepts_incomplete)

        async with self._locks.hold(instance_id):
            namespace = self._lookup_namespace(instance_id)
            template = self._template_for(target.service_name, 'binding')

            resource = await self._get_resource(namespace, target.service_name)
            bound_secret = credential_secret_ref(resource)
            if bound_secret is not None:
                owner = credential_binding_id(resource)
                if owner != request.binding_id:
                    raise BindingAlreadyExists(instance_id, request.binding_id, owner)
                return BindResponse(is_async=is_async, exists=True, secret_name=bound_secret)

            data_value = template.render(random_token(template.password_length))
            try:
                secret = await self._issuer.issue_secret(
                    template.secret_prefix, template.data_key, data_value, namespace,
                )
            except ObjectStoreError as exc:
                raise UpstreamError('creating credential secret', exc) from exc
            secret_name = secret['metadata']['name']

            try:
                await self._attach_secret(
                    namespace, target.service_name, secret_name, request.binding_id,
                )
            except BaseException:
                await self._discard_secret(namespace, secret_name)
                raise

        logger.info(
            'Bound instance %s (binding %s) to secret %s',
            instance_id,
            request.binding_id,
            secret_name,
            extra={
                'instance_id': instance_id,
                'binding_id': request.binding_id,
                'secret_name': secret_name,
            },
        )
        return BindResponse(is_async=is_async, exists=False, secret_name=secret_name)

    async def unbind(self, request: UnbindRequest) -> OperationResponse:
        target = resolve_plan(request.plan_id, self._plans)
        instance_id = request.instance_id

        async with self._locks.hold(instance_id):
            namespace = self._lookup_namespace(instance_id)
            self._template_for(target.service_name, 'unbinding')

            resource = await self._get_resource(namespace, target.service_name)
            secret_name = credential_secret_ref(resource)
            if secret_name is None:
                raise BindingNotFound(
                    f'unbinding failed for {target.service_name!r}: '
                    f'configSecretName is not set'
                )
            owner = credential_binding_id(resource)
            if owner is not None and owner != request.binding_id:
                raise BindingNotFound(
                    f'unbinding failed for {target.service_name!r}: '
                    f'binding {request.binding_id} does not hold its credentials'
                )

            # Clear the reference first, then delete the secret.
            try:
                await self._store.update(
                    ObjectKind.HABITAT, namespace, with_credential_secret_ref(resource, None),
                )
            except ObjectStoreError as exc:
                raise UpstreamError('clearing credential reference', exc) from exc

            try:
                await self._issuer.delete_secret(secret_name, namespace)
            except ObjectStoreError as exc:
                raise UpstreamError('deleting credential secret', exc) from exc

        logger.info(
            'Unbound instance %s (binding %s), deleted secret %s',
            instance_id,
            request.binding_id,
            secret_name,
            extra={
                'instance_id': instance_id,
                'binding_id': request.binding_id,
                'secret_name': secret_name,
            },
        )
        return OperationResponse(is_async=self._is_async(request.accepts_incomplete))

    # ── Internals ────────────────────────────────────────────────

    def _is_async(self, accepts_incomplete: bool) -> bool:
        return accepts_incomplete and self._async_enabled

    def _lookup_namespace(self, instance_id: str) -> str:
        namespace = self._registry.get(namespace_key(instance_id))
        if namespace is None:
            raise InstanceNotFound(instance_id, self._registry.name)
        return namespace

    def _template_for(self, service_name: str, action: str) -> CredentialTemplate:
        template = self._templates.get(service_name)
        if template is None:
            raise BrokerNotImplemented(f'{action} for {service_name!r} is not implemented')
        return template

    async def _get_resource(self, namespace: str, name: str) -> dict[str, Any]:
        try:
            return await self._store.get(ObjectKind.HABITAT, namespace, name)
        except ObjectStoreError as exc:
            raise UpstreamError('getting habitat resource', exc) from exc

    async def _attach_secret(
        self, namespace: str, service_name: str, secret_name: str, binding_id: str,
    ) -> None:
        try:
            await self._issuer.verify_secret_exists(secret_name, namespace)
        except ObjectStoreError as exc:
            raise UpstreamError('verifying credential secret', exc) from exc

        resource = await self._get_resource(namespace, service_name)
        try:
            await self._store.update(
                ObjectKind.HABITAT,
                namespace,
                with_credential_secret_ref(resource, secret_name, binding_id),
            )
        except ObjectStoreError as exc:
            raise UpstreamError('setting credential reference', exc) from exc

    async def _discard_resource(self, namespace: str, name: str) -> None:
        """Compensating delete after a failed registry write."""
        try:
            await self._store.delete(ObjectKind.HABITAT, namespace, name)
        except ObjectNotFoundError:
            pass
        except ObjectStoreError:
            logger.error(
                'Failed to delete habitat %s/%s after registry failure; resource is orphaned',
                namespace,
                name,
                extra={'namespace': namespace, 'object_name': name},
                exc_info=True,
            )

    async def _discard_secret(self, namespace: str, secret_name: str) -> None:
        """Compensating delete after a failed bind."""
        try:
            await self._issuer.delete_secret(secret_name, namespace)
        except ObjectStoreError:
            logger.error(
                'Failed to delete secret %s/%s after bind failure; secret is orphaned',
                namespace,
                secret_name,
                extra={'namespace': namespace, 'secret_name': secret_name},
                exc_info=True,
            )
