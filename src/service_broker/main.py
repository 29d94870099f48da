"""Broker FastAPI application factory.

The create_app() factory is the single entry point for building the broker
ASGI application. It wires request-ID middleware, the OSB router and the
health/metrics endpoints, and injects the object store.

Usage:
    # Local development (in-memory object store)
    from service_broker import create_app, BrokerSettings
    app = create_app(BrokerSettings())

    # In-cluster
    settings = BrokerSettings.from_env()
    app = create_app(settings, object_store=KubernetesClient(...))

    # Testing (full DI control)
    app = create_app(settings, object_store=InMemoryObjectStore())
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response

from .broker import CredentialIssuer, InstanceRegistry, WorkloadLifecycleManager
from .kube import KubernetesClient
from .observability import RequestIdMiddleware, metrics_text
from .protocols import ObjectStore
from .routes import create_osb_router, error_response
from .settings import BrokerSettings

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"


def create_app(
    settings: BrokerSettings | None = None,
    *,
    object_store: ObjectStore | None = None,
) -> FastAPI:
    """Create a configured broker FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        object_store: Cluster object store. When None, local mode uses an
            in-memory store; non-local mode raises.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
        ValueError: If a non-local environment has no object store.
    """
    if settings is None:
        settings = BrokerSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Broker settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    if object_store is None:
        if not settings.is_local:
            raise ValueError(
                f"Non-local environment ({settings.environment}) requires "
                "an object store to be explicitly provided"
            )
        from .inmemory import InMemoryObjectStore

        object_store = InMemoryObjectStore()

    registry = InstanceRegistry(
        object_store,
        name=settings.config_map_name,
        namespace=settings.config_namespace,
    )
    issuer = CredentialIssuer(
        object_store,
        attempt_window=settings.credential_window_seconds,
        poll_interval=settings.credential_poll_seconds,
    )
    manager = WorkloadLifecycleManager(
        object_store,
        registry,
        issuer,
        async_enabled=settings.async_enabled,
    )

    # Lifespan
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Broker startup (environment=%s, async=%s)",
            settings.environment,
            settings.async_enabled,
        )
        await registry.load()
        try:
            yield
        finally:
            if isinstance(object_store, KubernetesClient):
                await object_store.aclose()
            logger.info("Broker shutdown")

    app = FastAPI(
        title="Habitat Service Broker",
        description="Open Service Broker API for Habitat workloads on Kubernetes",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.object_store = object_store
    app.state.manager = manager

    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        return error_response("InvalidRequest", details or "malformed request", 400)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok" if registry.loaded else "starting",
            "environment": settings.environment,
        }

    @app.get("/metrics")
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    app.include_router(create_osb_router(manager))

    return app


# For uvicorn, use --factory flag:
#   uvicorn service_broker.main:create_app --factory
# This avoids executing create_app() at import time.
