"""Command-line entry point for the broker.

    habitat-service-broker --port 8005 [--tls-cert C --tls-key K] [--async]
    habitat-service-broker version
"""
from __future__ import annotations

import argparse
import dataclasses
import os
import sys
from typing import Sequence

import uvicorn
from kubernetes.config.config_exception import ConfigException

from .kube import KubernetesClient
from .main import APP_VERSION, create_app
from .observability import configure_logging, get_logger
from .settings import BrokerSettings

logger = get_logger(__name__)

DEFAULT_PORT = 8005


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="habitat-service-broker",
        description="Open Service Broker for Habitat workloads on Kubernetes.",
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument(
        "--tls-cert",
        default="",
        help="PEM certificate file. Requires --tls-key. Without it TLS is off.",
    )
    parser.add_argument(
        "--tls-key",
        default="",
        help="PEM private key file matching --tls-cert.",
    )
    parser.add_argument(
        "--async",
        dest="async_enabled",
        action="store_true",
        default=None,
        help="Answer 202 to requests that accept incomplete results.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument("command", nargs="?", choices=["version"])
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if bool(args.tls_cert) != bool(args.tls_key):
        parser.error("To use TLS, both --tls-cert and --tls-key must be used")
    return args


def resolve_settings(args: argparse.Namespace, env: dict[str, str]) -> BrokerSettings:
    """Environment settings with command-line overrides applied."""
    settings = BrokerSettings.from_env(env)
    overrides = {}
    if args.async_enabled is not None:
        overrides["async_enabled"] = args.async_enabled
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return dataclasses.replace(settings, **overrides) if overrides else settings


def build_object_store(settings: BrokerSettings, env: dict[str, str]) -> KubernetesClient | None:
    if settings.is_local:
        return None
    return KubernetesClient.from_config(kubeconfig=env.get("KUBECONFIG") or None)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command == "version":
        print(APP_VERSION)
        return 0

    env = dict(os.environ)
    settings = resolve_settings(args, env)
    configure_logging(level=settings.log_level, json_output=settings.log_json)

    try:
        object_store = build_object_store(settings, env)
        app = create_app(settings, object_store=object_store)
    except (ConfigException, ValueError) as exc:
        logger.error("broker_start_failed", error=str(exc))
        return 1

    logger.info(
        "broker_starting",
        host=args.host,
        port=args.port,
        tls=bool(args.tls_cert),
        async_enabled=settings.async_enabled,
    )
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        ssl_certfile=args.tls_cert or None,
        ssl_keyfile=args.tls_key or None,
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
