"""Shared fixtures for broker unit tests."""

from __future__ import annotations

import asyncio

import pytest

from service_broker.broker import CredentialIssuer, InstanceRegistry, WorkloadLifecycleManager
from service_broker.inmemory import InMemoryObjectStore


class FakeClock:
    """Monotonic clock whose sleep advances time instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Yield so cancellation and other tasks get a chance to run.
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def make_manager(store, clock):
    """Factory building a manager on a loaded registry."""

    async def _make(*, object_store=None, async_enabled=False):
        object_store = object_store or store
        registry = InstanceRegistry(object_store)
        await registry.load()
        issuer = CredentialIssuer(object_store, clock=clock, sleep=clock.sleep)
        return WorkloadLifecycleManager(
            object_store, registry, issuer, async_enabled=async_enabled,
        )

    return _make
