"""Typed OSB operation requests and responses exchanged with the router."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ProvisionRequest:
    instance_id: str
    plan_id: str
    service_id: str = ''
    parameters: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)
    accepts_incomplete: bool = False


@dataclass(frozen=True, slots=True)
class DeprovisionRequest:
    instance_id: str
    plan_id: str
    service_id: str = ''
    accepts_incomplete: bool = False


@dataclass(frozen=True, slots=True)
class BindRequest:
    instance_id: str
    binding_id: str
    plan_id: str
    service_id: str = ''
    parameters: dict[str, Any] = field(default_factory=dict)
    accepts_incomplete: bool = False


@dataclass(frozen=True, slots=True)
class UnbindRequest:
    instance_id: str
    binding_id: str
    plan_id: str
    service_id: str = ''
    accepts_incomplete: bool = False


@dataclass(frozen=True, slots=True)
class UpdateRequest:
    instance_id: str
    plan_id: str | None = None
    service_id: str = ''
    parameters: dict[str, Any] = field(default_factory=dict)
    accepts_incomplete: bool = False


@dataclass(frozen=True, slots=True)
class OperationResponse:
    """Result of Provision, Deprovision, Unbind and Update.

    ``is_async`` is True only when the caller accepts incomplete results and
    the broker runs in asynchronous mode. The work is complete either way.
    """

    is_async: bool = False


@dataclass(frozen=True, slots=True)
class BindResponse:
    is_async: bool = False
    exists: bool = False
    secret_name: str | None = None
