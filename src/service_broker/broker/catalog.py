"""Service catalog advertised through ``GET /v2/catalog``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .parameters import parameters_schema
from .plans import NGINX_PLAN_ID, REDIS_PLAN_ID

_HABITAT_LOGO = 'https://avatars2.githubusercontent.com/u/19862012?s=200&v=4'


@dataclass(frozen=True, slots=True)
class CatalogPlan:
    id: str
    name: str
    description: str
    free: bool = True


@dataclass(frozen=True, slots=True)
class CatalogService:
    id: str
    name: str
    description: str
    display_name: str
    bindable: bool
    plans: tuple[CatalogPlan, ...]
    plan_updateable: bool = False
    tags: tuple[str, ...] = field(default_factory=tuple)

    def to_osb(self) -> dict[str, Any]:
        schema = parameters_schema()
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'bindable': self.bindable,
            'plan_updateable': self.plan_updateable,
            'tags': list(self.tags),
            'metadata': {
                'displayName': self.display_name,
                'imageUrl': _HABITAT_LOGO,
            },
            'plans': [
                {
                    'id': plan.id,
                    'name': plan.name,
                    'description': plan.description,
                    'free': plan.free,
                    'schemas': {
                        'service_instance': {
                            'create': {'parameters': schema},
                        },
                    },
                }
                for plan in self.plans
            ],
        }


NGINX_SERVICE = CatalogService(
    id='1ac7de1d-d89a-41c7-b9a8-744f9256e375',
    name='nginx-habitat',
    description='Nginx packaged with Habitat',
    display_name='Habitat Nginx service',
    bindable=False,
    tags=('nginx', 'habitat'),
    plans=(
        CatalogPlan(
            id=NGINX_PLAN_ID,
            name='default',
            description='The default plan for the Nginx Habitat service',
        ),
    ),
)

REDIS_SERVICE = CatalogService(
    id='50e86479-4c66-4236-88fb-a1e61b4c9448',
    name='redis-habitat',
    description='Redis packaged with Habitat',
    display_name='Habitat Redis service',
    bindable=True,
    tags=('redis', 'habitat'),
    plans=(
        CatalogPlan(
            id=REDIS_PLAN_ID,
            name='default',
            description='The default plan for the Redis Habitat service',
        ),
    ),
)

SERVICES: tuple[CatalogService, ...] = (NGINX_SERVICE, REDIS_SERVICE)


def catalog_response() -> dict[str, Any]:
    return {'services': [service.to_osb() for service in SERVICES]}
