"""Open Service Broker API v2 routes.

Exposes the broker lifecycle over HTTP:
  GET    /v2/catalog                                      → service catalog
  PUT    /v2/service_instances/{instance_id}              → provision
  PATCH  /v2/service_instances/{instance_id}              → update (no-op)
  DELETE /v2/service_instances/{instance_id}              → deprovision
  GET    /v2/service_instances/{instance_id}/last_operation → unsupported
  PUT    /v2/service_instances/{instance_id}/service_bindings/{binding_id} → bind
  DELETE /v2/service_instances/{instance_id}/service_bindings/{binding_id} → unbind

Response contracts:
  - Provision, update and deprovision answer 202 when the caller sent
    ``accepts_incomplete=true`` and the broker runs in async mode, else 200.
  - Bind answers 201 for a fresh binding, 200 when the same binding id
    already holds the instance's credentials, and 409 for any other id.
  - Every ``BrokerError`` renders as ``{"error": code, "description": msg}``
    with the status carried by the error class.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from service_broker.broker import (
    BindRequest,
    BrokerError,
    BrokerNotImplemented,
    DeprovisionRequest,
    ProvisionRequest,
    UnbindRequest,
    UpdateRequest,
    WorkloadLifecycleManager,
)
from service_broker.observability.metrics import (
    OSB_ACTION_DURATION_SECONDS,
    OSB_ACTION_ERRORS_TOTAL,
    OSB_ACTIONS_TOTAL,
)

logger = logging.getLogger(__name__)


# ── Request schemas ───────────────────────────────────────────────────


class ProvisionBody(BaseModel):
    model_config = ConfigDict(extra='ignore')

    service_id: str
    plan_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)
    organization_guid: str = ''
    space_guid: str = ''


class UpdateBody(BaseModel):
    model_config = ConfigDict(extra='ignore')

    service_id: str
    plan_id: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)


class BindBody(BaseModel):
    model_config = ConfigDict(extra='ignore')

    service_id: str
    plan_id: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] = Field(default_factory=dict)
    app_guid: str = ''


# ── Response helpers ──────────────────────────────────────────────────


def error_response(code: str, description: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={'error': code, 'description': description},
    )


def _operation_status(is_async: bool) -> int:
    return 202 if is_async else 200


async def _dispatch(
    action: str,
    handler: Callable[[], Awaitable[JSONResponse]],
) -> JSONResponse:
    """Run one OSB operation with metrics and error rendering."""
    OSB_ACTIONS_TOTAL.labels(action=action).inc()
    started = time.perf_counter()
    try:
        return await handler()
    except BrokerError as exc:
        OSB_ACTION_ERRORS_TOTAL.labels(action=action, code=exc.code).inc()
        expected = exc.status_code < 500 or isinstance(exc, BrokerNotImplemented)
        log = logger.warning if expected else logger.error
        log(
            '%s failed: %s',
            action,
            exc.message,
            extra={'action': action, 'error_code': exc.code},
        )
        return error_response(exc.code, exc.message, exc.status_code)
    finally:
        OSB_ACTION_DURATION_SECONDS.labels(action=action).observe(
            time.perf_counter() - started
        )


# ── Route factory ─────────────────────────────────────────────────────


def create_osb_router(manager: WorkloadLifecycleManager) -> APIRouter:
    """Create the OSB v2 router bound to a lifecycle manager.

    Args:
        manager: Lifecycle manager that performs every operation.

    Returns:
        FastAPI router with the OSB endpoints.
    """
    router = APIRouter(prefix='/v2', tags=['osb'])

    @router.get('/catalog')
    async def get_catalog():
        async def handle() -> JSONResponse:
            return JSONResponse(status_code=200, content=manager.get_catalog())

        return await _dispatch('get_catalog', handle)

    @router.put('/service_instances/{instance_id}')
    async def provision(
        instance_id: str,
        body: ProvisionBody,
        accepts_incomplete: bool = Query(default=False),
    ):
        logger.info(
            'Received provision request for instance %s',
            instance_id,
            extra={'instance_id': instance_id, 'plan_id': body.plan_id},
        )

        async def handle() -> JSONResponse:
            result = await manager.provision(ProvisionRequest(
                instance_id=instance_id,
                plan_id=body.plan_id,
                service_id=body.service_id,
                parameters=body.parameters,
                context=body.context,
                accepts_incomplete=accepts_incomplete,
            ))
            return JSONResponse(status_code=_operation_status(result.is_async), content={})

        return await _dispatch('provision', handle)

    @router.patch('/service_instances/{instance_id}')
    async def update(
        instance_id: str,
        body: UpdateBody,
        accepts_incomplete: bool = Query(default=False),
    ):
        async def handle() -> JSONResponse:
            result = await manager.update(UpdateRequest(
                instance_id=instance_id,
                plan_id=body.plan_id,
                service_id=body.service_id,
                parameters=body.parameters,
                accepts_incomplete=accepts_incomplete,
            ))
            return JSONResponse(status_code=_operation_status(result.is_async), content={})

        return await _dispatch('update', handle)

    @router.delete('/service_instances/{instance_id}')
    async def deprovision(
        instance_id: str,
        service_id: str = Query(...),
        plan_id: str = Query(...),
        accepts_incomplete: bool = Query(default=False),
    ):
        logger.info(
            'Received deprovision request for instance %s',
            instance_id,
            extra={'instance_id': instance_id, 'plan_id': plan_id},
        )

        async def handle() -> JSONResponse:
            result = await manager.deprovision(DeprovisionRequest(
                instance_id=instance_id,
                plan_id=plan_id,
                service_id=service_id,
                accepts_incomplete=accepts_incomplete,
            ))
            return JSONResponse(status_code=_operation_status(result.is_async), content={})

        return await _dispatch('deprovision', handle)

    @router.get('/service_instances/{instance_id}/last_operation')
    async def last_operation(instance_id: str):
        async def handle() -> JSONResponse:
            await manager.last_operation(instance_id)
            return JSONResponse(status_code=200, content={'state': 'succeeded'})

        return await _dispatch('last_operation', handle)

    @router.put('/service_instances/{instance_id}/service_bindings/{binding_id}')
    async def bind(
        instance_id: str,
        binding_id: str,
        body: BindBody,
        accepts_incomplete: bool = Query(default=False),
    ):
        logger.info(
            'Received bind request for instance %s (binding %s)',
            instance_id,
            binding_id,
            extra={'instance_id': instance_id, 'binding_id': binding_id},
        )

        async def handle() -> JSONResponse:
            result = await manager.bind(BindRequest(
                instance_id=instance_id,
                binding_id=binding_id,
                plan_id=body.plan_id,
                service_id=body.service_id,
                parameters=body.parameters,
                accepts_incomplete=accepts_incomplete,
            ))
            if result.is_async:
                status_code = 202
            elif result.exists:
                status_code = 200
            else:
                status_code = 201
            return JSONResponse(status_code=status_code, content={})

        return await _dispatch('bind', handle)

    @router.delete('/service_instances/{instance_id}/service_bindings/{binding_id}')
    async def unbind(
        instance_id: str,
        binding_id: str,
        service_id: str = Query(...),
        plan_id: str = Query(...),
        accepts_incomplete: bool = Query(default=False),
    ):
        logger.info(
            'Received unbind request for instance %s (binding %s)',
            instance_id,
            binding_id,
            extra={'instance_id': instance_id, 'binding_id': binding_id},
        )

        async def handle() -> JSONResponse:
            result = await manager.unbind(UnbindRequest(
                instance_id=instance_id,
                binding_id=binding_id,
                plan_id=plan_id,
                service_id=service_id,
                accepts_incomplete=accepts_incomplete,
            ))
            return JSONResponse(status_code=_operation_status(result.is_async), content={})

        return await _dispatch('unbind', handle)

    return router
