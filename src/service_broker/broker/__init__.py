"""Provisioning and binding lifecycle for Habitat services."""

from .credentials import CREDENTIAL_TEMPLATES, CredentialIssuer, CredentialTemplate
from .errors import (
    BindingAlreadyExists,
    BindingNotFound,
    BrokerError,
    BrokerNotImplemented,
    InstanceAlreadyExists,
    InstanceNotFound,
    InvalidParameter,
    InvalidPlan,
    RetriesExhausted,
    UpstreamError,
)
from .lifecycle import WorkloadLifecycleManager
from .models import (
    BindRequest,
    BindResponse,
    DeprovisionRequest,
    OperationResponse,
    ProvisionRequest,
    UnbindRequest,
    UpdateRequest,
)
from .parameters import ProvisionParameters, RequestContext, Topology
from .plans import (
    NGINX_PLAN_ID,
    PLANS,
    REDIS_PLAN_ID,
    PlanTarget,
    WorkloadDescriptor,
    build_descriptor,
    resolve_plan,
)
from .registry import InstanceRegistry, namespace_key

__all__ = [
    'BindRequest',
    'BindResponse',
    'BindingAlreadyExists',
    'BindingNotFound',
    'BrokerError',
    'BrokerNotImplemented',
    'CREDENTIAL_TEMPLATES',
    'CredentialIssuer',
    'CredentialTemplate',
    'DeprovisionRequest',
    'InstanceAlreadyExists',
    'InstanceNotFound',
    'InstanceRegistry',
    'InvalidParameter',
    'InvalidPlan',
    'NGINX_PLAN_ID',
    'OperationResponse',
    'PLANS',
    'PlanTarget',
    'ProvisionParameters',
    'ProvisionRequest',
    'REDIS_PLAN_ID',
    'RequestContext',
    'RetriesExhausted',
    'Topology',
    'UnbindRequest',
    'UpdateRequest',
    'UpstreamError',
    'WorkloadDescriptor',
    'WorkloadLifecycleManager',
    'build_descriptor',
    'namespace_key',
    'resolve_plan',
]
