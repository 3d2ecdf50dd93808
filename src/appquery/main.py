"""CLI entrypoint for appquery."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from appquery import __version__
from appquery.cluster import ClusterRouter
from appquery.config import Settings, get_settings
from appquery.models import ServiceEndpoint
from appquery.provider import PROVIDER_NAME, install
from appquery.registry import Registry
from appquery.store import KubernetesObjectStore, ObjectStore


def _add_app_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("app", help="Application name")
    parser.add_argument("--namespace", "-n", default=None, help="Application namespace (default: from env or 'default')")
    parser.add_argument("--cluster", default="", help="Only resources on this cluster")
    parser.add_argument("--cluster-namespace", default="", help="Only resources in this namespace")
    parser.add_argument(
        "--component",
        action="append",
        default=[],
        dest="components",
        help="Only resources of this component (repeatable)",
    )


def _add_object_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("kind", help="Object kind, e.g. Deployment")
    parser.add_argument("name", help="Object name")
    parser.add_argument("--api-version", default="apps/v1", help="Object apiVersion")
    parser.add_argument("--namespace", "-n", default=None, help="Object namespace")
    parser.add_argument("--cluster", default="", help="Cluster the object lives on (default: hub)")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Query the resources, pods, endpoints, logs and events of deployed applications.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--kubeconfig",
        type=Path,
        default=None,
        help="Path to kubeconfig (default: KUBECONFIG env or ~/.kube/config)",
    )
    parser.add_argument("--context", default=None, help="Kubernetes context of the hub cluster")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    _add_app_arguments(sub.add_parser("resources", help="List resources applied by an application"))
    endpoints = sub.add_parser("endpoints", help="List externally reachable endpoints of an application")
    _add_app_arguments(endpoints)
    endpoints.add_argument("--urls", action="store_true", help="Print one URL per line instead of JSON")

    _add_object_arguments(sub.add_parser("pods", help="List pods backing an object"))
    _add_object_arguments(sub.add_parser("events", help="List events of an object"))

    logs = sub.add_parser("logs", help="Print the logs of a pod")
    logs.add_argument("pod", help="Pod name")
    logs.add_argument("--namespace", "-n", default=None, help="Pod namespace")
    logs.add_argument("--cluster", default="", help="Cluster the pod runs on (default: hub)")
    logs.add_argument("--container", "-c", default=None, help="Container name")
    logs.add_argument("--previous", action="store_true", help="Logs of the previous container instance")
    logs.add_argument("--since-seconds", type=int, default=None, help="Only logs newer than this many seconds")
    logs.add_argument("--tail", type=int, default=None, help="Number of lines from the end")
    return parser.parse_args(argv)


def _app_inputs(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    return {
        "app": {
            "name": args.app,
            "namespace": args.namespace or settings.namespace,
            "filter": {
                "cluster": args.cluster,
                "clusterNamespace": args.cluster_namespace,
                "components": args.components,
            },
        }
    }


def _object_inputs(args: argparse.Namespace, settings: Settings, store: ObjectStore) -> dict[str, Any]:
    obj = store.get(args.cluster, args.api_version, args.kind, args.name, args.namespace or settings.namespace)
    return {"value": obj, "cluster": args.cluster}


def _log_inputs(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    options: dict[str, Any] = {"previous": args.previous}
    if args.container:
        options["container"] = args.container
    if args.since_seconds:
        options["sinceSeconds"] = args.since_seconds
    if args.tail is not None:
        options["tailLines"] = args.tail
    return {
        "cluster": args.cluster,
        "namespace": args.namespace or settings.namespace,
        "pod": args.pod,
        "options": options,
    }


OPERATIONS = {
    "resources": "listResourcesInApp",
    "endpoints": "collectServiceEndpoints",
    "pods": "collectPods",
    "events": "searchEvents",
    "logs": "collectLogsInPod",
}


def run(args: argparse.Namespace, settings: Settings, store: ObjectStore, console: Console) -> int:
    """Invoke the operation selected by args and print its output."""
    registry = Registry()
    install(registry, store)

    if args.command in ("resources", "endpoints"):
        inputs = _app_inputs(args, settings)
    elif args.command == "logs":
        inputs = _log_inputs(args, settings)
    else:
        inputs = _object_inputs(args, settings, store)

    output = registry.invoke(PROVIDER_NAME, OPERATIONS[args.command], inputs)
    if "err" in output:
        console.print(f"[red]Error:[/red] {output['err']}")
        return 1
    if args.command == "logs":
        outputs = output["outputs"]
        console.out(outputs["logs"], end="", highlight=False)
        if outputs.get("err"):
            console.print(f"[yellow]Log stream interrupted:[/yellow] {outputs['err']}")
        return 0
    if args.command == "endpoints" and args.urls:
        for item in output["list"]:
            console.print(ServiceEndpoint.model_validate(item).url(), highlight=False)
        return 0
    console.print_json(data=output["list"], default=str)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for appquery CLI."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )
    logger = logging.getLogger("appquery")
    if not args.verbose:
        logger.setLevel(logging.WARNING)

    try:
        settings = get_settings()
        if args.kubeconfig:
            settings.kubeconfig = args.kubeconfig
        if args.context:
            settings.context = args.context
        store = KubernetesObjectStore(
            ClusterRouter.from_settings(settings),
            request_timeout=settings.request_timeout_seconds,
        )
        return run(args, settings, store, Console())
    except Exception as e:
        logging.exception("Query failed")
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
