"""Open Service Broker for Habitat workloads on Kubernetes."""

from .main import create_app
from .settings import BrokerSettings

__all__ = ["BrokerSettings", "create_app"]
