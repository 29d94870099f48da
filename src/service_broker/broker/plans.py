"""Plan resolution and workload descriptor construction.

A plan id selects the service type and container image; the validated
provisioning parameters select the topology and service group. The result is
an immutable ``WorkloadDescriptor`` from which the Habitat resource is built.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from .errors import InvalidPlan
from .parameters import ProvisionParameters, Topology

REDIS_PLAN_ID = '002341cf-f895-49f4-ba04-bb70291b895c'
NGINX_PLAN_ID = '86064792-7ea2-467b-af93-ac9694d96d5b'

# The downstream operator needs a quorum for leader election.
LEADER_MIN_INSTANCE_COUNT = 3
STANDALONE_INSTANCE_COUNT = 1


@dataclass(frozen=True, slots=True)
class PersistentStorage:
    size: str
    mount_path: str
    storage_class: str


@dataclass(frozen=True, slots=True)
class PlanTarget:
    """What a plan id resolves to."""

    service_name: str
    image: str
    persistent_storage: PersistentStorage | None = None


@dataclass(frozen=True, slots=True)
class WorkloadDescriptor:
    service_name: str
    image: str
    topology: Topology
    group: str
    instance_count: int
    persistent_storage: PersistentStorage | None = None


# TODO: pin images to released tags instead of ``latest``.
PLANS: Mapping[str, PlanTarget] = {
    REDIS_PLAN_ID: PlanTarget(service_name='redis', image='kinvolk/osb-redis:latest'),
    NGINX_PLAN_ID: PlanTarget(service_name='nginx', image='kinvolk/osb-nginx:latest'),
}


def resolve_plan(plan_id: str, plans: Mapping[str, PlanTarget] = PLANS) -> PlanTarget:
    """Map a plan id to its service name and image.

    Raises:
        InvalidPlan: If ``plan_id`` is empty or unknown.
    """
    if not plan_id:
        raise InvalidPlan(plan_id, 'plan id could not be matched: plan id was empty')
    target = plans.get(plan_id)
    if target is None:
        raise InvalidPlan(
            plan_id,
            f'plan id {plan_id!r} could not be matched: no such plan in the catalog',
        )
    return target


def build_descriptor(
    plan_id: str,
    parameters: ProvisionParameters,
    plans: Mapping[str, PlanTarget] = PLANS,
) -> WorkloadDescriptor:
    """Build the workload descriptor for a provisioning request."""
    target = resolve_plan(plan_id, plans)
    if parameters.topology is Topology.LEADER:
        count = LEADER_MIN_INSTANCE_COUNT
    else:
        count = STANDALONE_INSTANCE_COUNT
    return WorkloadDescriptor(
        service_name=target.service_name,
        image=target.image,
        topology=parameters.topology,
        group=parameters.group,
        instance_count=count,
        persistent_storage=target.persistent_storage,
    )
