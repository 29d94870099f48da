"""Unit tests for plan resolution, parameters and resource rendering."""

from __future__ import annotations

import pytest

from service_broker.broker.errors import InvalidParameter, InvalidPlan
from service_broker.broker.parameters import (
    ProvisionParameters,
    Topology,
    parameters_schema,
    parse_context,
    parse_parameters,
)
from service_broker.broker.plans import (
    NGINX_PLAN_ID,
    REDIS_PLAN_ID,
    PersistentStorage,
    PlanTarget,
    build_descriptor,
    resolve_plan,
)
from service_broker.broker.workload import (
    build_workload_resource,
    credential_secret_ref,
    with_credential_secret_ref,
)


# ── resolve_plan ──────────────────────────────────────────────────────


def test_resolve_known_plans():
    assert resolve_plan(REDIS_PLAN_ID).service_name == 'redis'
    assert resolve_plan(NGINX_PLAN_ID).service_name == 'nginx'


def test_resolve_empty_plan():
    with pytest.raises(InvalidPlan, match='empty'):
        resolve_plan('')


def test_resolve_unknown_plan():
    with pytest.raises(InvalidPlan) as excinfo:
        resolve_plan('does-not-exist')
    assert excinfo.value.plan_id == 'does-not-exist'
    assert excinfo.value.status_code == 400


# ── parameters ────────────────────────────────────────────────────────


def test_parameters_defaults():
    params = parse_parameters(None)
    assert params.topology is Topology.STANDALONE
    assert params.group == 'default'


def test_parameters_leader():
    params = parse_parameters({'topology': 'leader', 'group': 'blue'})
    assert params.topology is Topology.LEADER
    assert params.group == 'blue'


@pytest.mark.parametrize(
    'raw',
    [
        {'topology': 'mesh'},
        {'topology': 3},
        {'group': ['a']},
        {'unexpected': True},
    ],
)
def test_parameters_rejected(raw):
    with pytest.raises(InvalidParameter, match='invalid parameters'):
        parse_parameters(raw)


def test_context_keeps_platform_fields():
    context = parse_context({'namespace': 'ns1', 'platform': 'kubernetes'})
    assert context.namespace == 'ns1'


def test_parameters_schema_lists_topologies():
    schema = parameters_schema()
    assert schema['additionalProperties'] is False
    assert set(schema['properties']) == {'topology', 'group'}
    assert 'leader' in str(schema)


# ── descriptor ────────────────────────────────────────────────────────


def test_descriptor_standalone_count():
    descriptor = build_descriptor(REDIS_PLAN_ID, ProvisionParameters())
    assert descriptor.instance_count == 1
    assert descriptor.image == 'kinvolk/osb-redis:latest'


def test_descriptor_leader_count():
    descriptor = build_descriptor(
        NGINX_PLAN_ID, ProvisionParameters(topology=Topology.LEADER),
    )
    assert descriptor.instance_count == 3
    assert descriptor.service_name == 'nginx'


def test_descriptor_custom_plan_table():
    storage = PersistentStorage(size='1Gi', mount_path='/data', storage_class='standard')
    plans = {'p': PlanTarget('redis', 'example/redis:1', persistent_storage=storage)}

    descriptor = build_descriptor('p', ProvisionParameters(), plans)

    assert descriptor.persistent_storage == storage
    with pytest.raises(InvalidPlan):
        build_descriptor(REDIS_PLAN_ID, ProvisionParameters(), plans)


# ── workload resource ─────────────────────────────────────────────────


def test_workload_resource_shape():
    descriptor = build_descriptor(REDIS_PLAN_ID, parse_parameters({'topology': 'leader'}))

    resource = build_workload_resource(descriptor, 'ns1')

    assert resource['apiVersion'] == 'habitat.sh/v1beta1'
    assert resource['kind'] == 'Habitat'
    assert resource['metadata'] == {'name': 'redis', 'namespace': 'ns1'}
    assert resource['spec']['v1beta2']['count'] == 3
    assert 'persistentStorage' not in resource['spec']['v1beta2']


def test_workload_resource_persistent_storage():
    storage = PersistentStorage(size='1Gi', mount_path='/data', storage_class='standard')
    plans = {'p': PlanTarget('redis', 'example/redis:1', persistent_storage=storage)}
    descriptor = build_descriptor('p', ProvisionParameters(), plans)

    resource = build_workload_resource(descriptor, 'ns1')

    assert resource['spec']['v1beta2']['persistentStorage'] == {
        'size': '1Gi',
        'mountPath': '/data',
        'storageClassName': 'standard',
    }


def test_credential_secret_ref_round_trip():
    descriptor = build_descriptor(REDIS_PLAN_ID, ProvisionParameters())
    resource = build_workload_resource(descriptor, 'ns1')
    assert credential_secret_ref(resource) is None

    bound = with_credential_secret_ref(resource, 'habitat-osb-redis-abcde')
    assert credential_secret_ref(bound) == 'habitat-osb-redis-abcde'
    assert credential_secret_ref(resource) is None

    cleared = with_credential_secret_ref(bound, None)
    assert credential_secret_ref(cleared) is None
    assert 'configSecretName' not in cleared['spec']['v1beta2']['service']


def test_credential_secret_ref_empty_string_is_unbound():
    resource = {'spec': {'v1beta2': {'service': {'configSecretName': ''}}}}
    assert credential_secret_ref(resource) is None
    assert credential_secret_ref({}) is None
