"""Unit tests for the broker app factory and OSB routes.

Tests:
  1. create_app() validates settings and object store wiring
  2. Health, metrics and request-ID plumbing
  3. Each OSB route's success status codes
  4. BrokerError classes render as {"error", "description"} envelopes
"""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from service_broker import BrokerSettings, create_app
from service_broker.broker import NGINX_PLAN_ID, REDIS_PLAN_ID
from service_broker.inmemory import InMemoryObjectStore
from service_broker.kube import ObjectKind, ObjectStoreError

REDIS_SERVICE_ID = "50e86479-4c66-4236-88fb-a1e61b4c9448"
NGINX_SERVICE_ID = "1ac7de1d-d89a-41c7-b9a8-744f9256e375"


def _provision_body(plan_id=REDIS_PLAN_ID, namespace="ns1", **extra):
    body = {
        "service_id": REDIS_SERVICE_ID if plan_id == REDIS_PLAN_ID else NGINX_SERVICE_ID,
        "plan_id": plan_id,
        "organization_guid": "org",
        "space_guid": "space",
        "context": {"platform": "kubernetes", "namespace": namespace},
    }
    body.update(extra)
    return body


def _bind_body(plan_id=REDIS_PLAN_ID):
    return {"service_id": REDIS_SERVICE_ID, "plan_id": plan_id}


def _ids(plan_id=REDIS_PLAN_ID):
    return {"service_id": REDIS_SERVICE_ID, "plan_id": plan_id}


def _actions(action: str) -> float:
    return REGISTRY.get_sample_value("osb_broker_actions_total", {"action": action}) or 0.0


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def client(store):
    app = create_app(BrokerSettings(), object_store=store)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def async_client(store):
    app = create_app(BrokerSettings(async_enabled=True), object_store=store)
    with TestClient(app) as test_client:
        yield test_client


# ── Factory ───────────────────────────────────────────────────────────


class TestCreateApp:
    def test_local_defaults_to_inmemory_store(self):
        app = create_app()
        assert isinstance(app.state.object_store, InMemoryObjectStore)
        assert app.title == "Habitat Service Broker"

    def test_non_local_requires_object_store(self):
        with pytest.raises(ValueError, match="object store"):
            create_app(BrokerSettings(environment="production"))

    def test_non_local_with_object_store(self, store):
        app = create_app(BrokerSettings(environment="staging"), object_store=store)
        assert app.state.object_store is store

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError, match="credential_window_seconds"):
            create_app(BrokerSettings(credential_window_seconds=0))

    def test_startup_loads_registry(self, store):
        app = create_app(BrokerSettings(config_namespace="cfg"), object_store=store)
        with TestClient(app):
            assert app.state.manager.registry.loaded
        [namespace] = store.objects(ObjectKind.NAMESPACE)
        assert namespace["metadata"]["name"] == "cfg"


# ── Plumbing ──────────────────────────────────────────────────────────


class TestPlumbing:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "environment": "local"}

    def test_metrics_exposes_action_counter(self, client):
        client.get("/v2/catalog")
        resp = client.get("/metrics")
        assert resp.status_code == 200
        assert "osb_broker_actions_total" in resp.text

    def test_request_id_generated(self, client):
        resp = client.get("/health")
        assert len(resp.headers["X-Request-ID"]) >= 8

    def test_valid_request_id_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "req-12345678"})
        assert resp.headers["X-Request-ID"] == "req-12345678"

    def test_malformed_request_id_replaced(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "bad id!"})
        assert resp.headers["X-Request-ID"] != "bad id!"


# ── Catalog / provision / deprovision ─────────────────────────────────


class TestInstanceRoutes:
    def test_catalog(self, client):
        before = _actions("get_catalog")
        resp = client.get("/v2/catalog")
        assert resp.status_code == 200
        names = {s["name"] for s in resp.json()["services"]}
        assert names == {"nginx-habitat", "redis-habitat"}
        assert _actions("get_catalog") == before + 1

    def test_provision(self, client, store):
        resp = client.put("/v2/service_instances/abc", json=_provision_body())
        assert resp.status_code == 200
        assert client.app.state.manager.registry.get("abc.namespace") == "ns1"
        assert len(store.objects(ObjectKind.HABITAT, "ns1")) == 1

    def test_provision_async(self, async_client):
        resp = async_client.put(
            "/v2/service_instances/abc",
            params={"accepts_incomplete": "true"},
            json=_provision_body(),
        )
        assert resp.status_code == 202

    def test_provision_sync_when_async_disabled(self, client):
        resp = client.put(
            "/v2/service_instances/abc",
            params={"accepts_incomplete": "true"},
            json=_provision_body(),
        )
        assert resp.status_code == 200

    def test_provision_invalid_plan(self, client):
        resp = client.put("/v2/service_instances/abc", json=_provision_body(plan_id="nope"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidPlan"
        assert "nope" in resp.json()["description"]

    def test_provision_invalid_parameters(self, client):
        resp = client.put(
            "/v2/service_instances/abc",
            json=_provision_body(parameters={"topology": "ring"}),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidParameter"

    def test_provision_malformed_body(self, client):
        resp = client.put("/v2/service_instances/abc", json={"service_id": REDIS_SERVICE_ID})
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidRequest"
        assert "plan_id" in resp.json()["description"]

    def test_provision_duplicate(self, client):
        client.put("/v2/service_instances/abc", json=_provision_body())
        resp = client.put("/v2/service_instances/abc", json=_provision_body())
        assert resp.status_code == 409
        assert resp.json()["error"] == "InstanceAlreadyExists"

    def test_provision_upstream_failure(self, client, store):
        store.fail("create", ObjectKind.HABITAT, ObjectStoreError(status_code=500, message="boom"))
        resp = client.put("/v2/service_instances/abc", json=_provision_body())
        assert resp.status_code == 502
        assert resp.json()["error"] == "UpstreamError"

    def test_update_is_acknowledged(self, client, async_client):
        body = {"service_id": REDIS_SERVICE_ID, "parameters": {"topology": "leader"}}
        assert client.patch("/v2/service_instances/abc", json=body).status_code == 200
        resp = async_client.patch(
            "/v2/service_instances/abc", params={"accepts_incomplete": "true"}, json=body,
        )
        assert resp.status_code == 202

    def test_deprovision(self, client, store):
        client.put("/v2/service_instances/abc", json=_provision_body())
        resp = client.delete("/v2/service_instances/abc", params=_ids())
        assert resp.status_code == 200
        assert store.objects(ObjectKind.HABITAT) == []

    def test_deprovision_unknown_instance(self, client):
        resp = client.delete("/v2/service_instances/ghost", params=_ids())
        assert resp.status_code == 404
        body = resp.json()
        assert body["error"] == "InstanceNotFound"
        assert "ghost" in body["description"]

    def test_deprovision_requires_plan_id(self, client):
        resp = client.delete(
            "/v2/service_instances/abc", params={"service_id": REDIS_SERVICE_ID},
        )
        assert resp.status_code == 400

    def test_last_operation_unsupported(self, client):
        resp = client.get("/v2/service_instances/abc/last_operation")
        assert resp.status_code == 501
        assert resp.json()["error"] == "NotImplemented"

    def test_last_operation_logged_as_warning(self, client, caplog):
        caplog.set_level(logging.INFO, logger="service_broker.routes.osb")

        client.get("/v2/service_instances/abc/last_operation")

        [record] = [
            r for r in caplog.records
            if r.name == "service_broker.routes.osb" and r.getMessage().startswith("last_operation failed")
        ]
        assert record.levelno == logging.WARNING


# ── Bind / unbind ─────────────────────────────────────────────────────


class TestBindingRoutes:
    BINDING = "/v2/service_instances/abc/service_bindings/b-1"

    def test_bind_then_rebind(self, client, store):
        client.put("/v2/service_instances/abc", json=_provision_body())

        first = client.put(self.BINDING, json=_bind_body())
        second = client.put(self.BINDING, json=_bind_body())

        assert first.status_code == 201
        assert second.status_code == 200
        assert len(store.objects(ObjectKind.SECRET, "ns1")) == 1

    def test_bind_with_other_binding_id_conflicts(self, client, store):
        client.put("/v2/service_instances/abc", json=_provision_body())
        client.put(self.BINDING, json=_bind_body())

        resp = client.put("/v2/service_instances/abc/service_bindings/b-2", json=_bind_body())

        assert resp.status_code == 409
        assert resp.json()["error"] == "BindingAlreadyExists"
        assert len(store.objects(ObjectKind.SECRET, "ns1")) == 1

    def test_bind_unknown_instance(self, client):
        resp = client.put(self.BINDING, json=_bind_body())
        assert resp.status_code == 404
        assert resp.json()["error"] == "InstanceNotFound"

    def test_bind_non_bindable_service(self, client):
        client.put("/v2/service_instances/abc", json=_provision_body(plan_id=NGINX_PLAN_ID))
        resp = client.put(self.BINDING, json=_bind_body(plan_id=NGINX_PLAN_ID))
        assert resp.status_code == 501
        assert resp.json()["error"] == "NotImplemented"

    def test_unbind(self, client, store):
        client.put("/v2/service_instances/abc", json=_provision_body())
        client.put(self.BINDING, json=_bind_body())
        before = _actions("unbind")

        resp = client.delete(self.BINDING, params=_ids())

        assert resp.status_code == 200
        assert store.objects(ObjectKind.SECRET) == []
        assert _actions("unbind") == before + 1

    def test_unbind_without_binding(self, client):
        client.put("/v2/service_instances/abc", json=_provision_body())
        resp = client.delete(self.BINDING, params=_ids())
        assert resp.status_code == 404
        assert resp.json()["error"] == "BindingNotFound"
