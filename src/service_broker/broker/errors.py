"""Broker error taxonomy.

Every request-level failure raised by the lifecycle manager is a
``BrokerError``. Each class carries the OSB ``error`` code and the HTTP status
the router renders it with, so the protocol layer never has to guess.
"""

from __future__ import annotations

from ..kube.errors import ObjectConflictError, ObjectStoreError


class BrokerError(Exception):
    """Base class for errors surfaced to the OSB protocol layer."""

    code = 'BrokerError'
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidPlan(BrokerError):
    """Plan id is empty or not in the catalog."""

    code = 'InvalidPlan'
    status_code = 400

    def __init__(self, plan_id: str, message: str) -> None:
        self.plan_id = plan_id
        super().__init__(message)


class InvalidParameter(BrokerError):
    """Provision parameters or context failed validation."""

    code = 'InvalidParameter'
    status_code = 400


class InstanceNotFound(BrokerError):
    code = 'InstanceNotFound'
    status_code = 404

    def __init__(self, instance_id: str, registry_name: str) -> None:
        self.instance_id = instance_id
        super().__init__(
            f'could not find namespace for instance {instance_id} '
            f'in configmap {registry_name}'
        )


class InstanceAlreadyExists(BrokerError):
    code = 'InstanceAlreadyExists'
    status_code = 409

    def __init__(self, instance_id: str, namespace: str) -> None:
        self.instance_id = instance_id
        self.namespace = namespace
        super().__init__(
            f'instance {instance_id} is already provisioned in namespace {namespace}'
        )


class BindingNotFound(BrokerError):
    code = 'BindingNotFound'
    status_code = 404


class BindingAlreadyExists(BrokerError):
    """The instance already carries credentials for a different binding."""

    code = 'BindingAlreadyExists'
    status_code = 409

    def __init__(self, instance_id: str, binding_id: str, owner: str | None) -> None:
        self.instance_id = instance_id
        self.binding_id = binding_id
        self.owner = owner
        super().__init__(
            f'instance {instance_id} is already bound by binding {owner or "(unknown)"}; '
            f'cannot bind {binding_id}'
        )


class BrokerNotImplemented(BrokerError):
    """Operation is not supported for this service (or at all)."""

    code = 'NotImplemented'
    status_code = 501


class RetriesExhausted(BrokerError):
    """A bounded retry loop hit its deadline."""

    code = 'RetriesExhausted'
    status_code = 504

    def __init__(self, message: str, *, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(message)


class UpstreamError(BrokerError):
    """Wrapped object store failure not otherwise classified."""

    code = 'UpstreamError'
    status_code = 502

    def __init__(self, action: str, cause: ObjectStoreError) -> None:
        self.action = action
        self.cause = cause
        if isinstance(cause, ObjectConflictError):
            self.status_code = 409
        super().__init__(f'{action}: {cause.message}')
