"""Unit tests for the OSB catalog."""

from __future__ import annotations

from service_broker.broker.catalog import catalog_response
from service_broker.broker.plans import NGINX_PLAN_ID, REDIS_PLAN_ID


def _services():
    return {s['name']: s for s in catalog_response()['services']}


def test_catalog_lists_both_services():
    services = _services()
    assert set(services) == {'nginx-habitat', 'redis-habitat'}


def test_only_redis_is_bindable():
    services = _services()
    assert services['redis-habitat']['bindable'] is True
    assert services['nginx-habitat']['bindable'] is False


def test_plan_ids_match_plan_table():
    services = _services()
    assert [p['id'] for p in services['redis-habitat']['plans']] == [REDIS_PLAN_ID]
    assert [p['id'] for p in services['nginx-habitat']['plans']] == [NGINX_PLAN_ID]


def test_plans_advertise_parameter_schema():
    plan = _services()['redis-habitat']['plans'][0]
    schema = plan['schemas']['service_instance']['create']['parameters']
    assert schema['$schema'].startswith('http://json-schema.org/')
    assert 'topology' in schema['properties']


def test_service_ids_are_stable():
    services = _services()
    assert services['redis-habitat']['id'] == '50e86479-4c66-4236-88fb-a1e61b4c9448'
    assert services['nginx-habitat']['id'] == '1ac7de1d-d89a-41c7-b9a8-744f9256e375'
