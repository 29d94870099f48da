"""Validated provisioning parameters and request context.

OSB hands the broker two untyped maps: ``parameters`` (user input) and
``context`` (platform input). Both are validated here, at the boundary, into
typed models with explicit defaults. Unknown parameter keys and mistyped
values are rejected instead of being probed for later.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from .errors import InvalidParameter


class Topology(str, Enum):
    STANDALONE = 'standalone'
    LEADER = 'leader'


class ProvisionParameters(BaseModel):
    """User-supplied provisioning parameters."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    topology: Topology = Field(
        default=Topology.STANDALONE,
        description='Deployment shape: a single instance or a leader/follower group.',
    )
    group: StrictStr = Field(
        default='default',
        min_length=1,
        description='Habitat service group the instances join.',
    )


class RequestContext(BaseModel):
    """Platform-supplied context. Only ``namespace`` is interpreted."""

    model_config = ConfigDict(extra='allow', frozen=True)

    namespace: StrictStr = Field(min_length=1)


def parse_parameters(raw: Mapping[str, Any] | None) -> ProvisionParameters:
    """Validate provisioning parameters, applying defaults.

    Raises:
        InvalidParameter: On unknown keys or invalid values.
    """
    try:
        return ProvisionParameters.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise InvalidParameter(_describe('parameters', exc)) from exc


def parse_context(raw: Mapping[str, Any] | None) -> RequestContext:
    """Validate the request context; ``namespace`` must be a non-empty string."""
    try:
        return RequestContext.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise InvalidParameter(_describe('context', exc)) from exc


def parameters_schema() -> dict[str, Any]:
    """JSON schema advertised in the catalog for instance creation."""
    schema = ProvisionParameters.model_json_schema()
    schema['$schema'] = 'http://json-schema.org/draft-04/schema'
    return schema


def _describe(section: str, exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error['loc']) or section
        problems.append(f'{location}: {error["msg"]}')
    return f'invalid {section}: ' + '; '.join(problems)
