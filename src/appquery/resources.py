"""Collect the resources an application has applied across clusters."""

from __future__ import annotations

import logging
from typing import Any

from kubernetes.client.rest import ApiException

from appquery.cluster import HUB_CLUSTER
from appquery.errors import ApplicationNotFoundError, FetchError
from appquery.models import FilterOption, Option, Resource
from appquery.store import ObjectStore

logger = logging.getLogger(__name__)

APPLICATION_API_VERSION = "core.oam.dev/v1beta1"
APPLICATION_KIND = "Application"

LABEL_COMPONENT = "app.oam.dev/component"
LABEL_APP_REVISION = "app.oam.dev/appRevision"


def find_application(store: ObjectStore, name: str, namespace: str) -> dict[str, Any]:
    """Get an application from the hub cluster."""
    try:
        return store.get(HUB_CLUSTER, APPLICATION_API_VERSION, APPLICATION_KIND, name, namespace or None)
    except ApiException as e:
        if e.status == 404:
            raise ApplicationNotFoundError(name, namespace) from e
        raise FetchError(f"failed to get application {namespace}/{name}: {e.reason}") from e


def applied_resources(app: dict[str, Any]) -> list[dict[str, Any]]:
    return list((app.get("status") or {}).get("appliedResources") or [])


def matches_location(filter_opt: FilterOption, entry: dict[str, Any]) -> bool:
    """Check the cluster and namespace constraints of a filter against an applied resource."""
    if filter_opt.cluster and (entry.get("cluster") or "") != filter_opt.cluster:
        return False
    if filter_opt.cluster_namespace and (entry.get("namespace") or "") != filter_opt.cluster_namespace:
        return False
    return True


def matches_component(filter_opt: FilterOption, component: str) -> bool:
    return not filter_opt.components or component in filter_opt.components


def owner_of(entry: dict[str, Any], obj: dict[str, Any] | None = None) -> tuple[str, str]:
    """Return (component, revision) recorded for an applied resource.

    Falls back to the labels of the fetched object when the application
    status does not record them.
    """
    labels = ((obj or {}).get("metadata") or {}).get("labels") or {}
    component = entry.get("component") or labels.get(LABEL_COMPONENT) or ""
    revision = entry.get("revision") or labels.get(LABEL_APP_REVISION) or ""
    return component, revision


def describe(entry: dict[str, Any]) -> str:
    """Short human-readable identity of an applied resource for log messages."""
    return (
        f"{entry.get('kind', '')} {entry.get('namespace', '')}/{entry.get('name', '')}"
        f" (cluster {entry.get('cluster') or 'local'!r})"
    )


def fetch_applied(store: ObjectStore, entry: dict[str, Any]) -> dict[str, Any] | None:
    """Get the object behind an applied resource from its cluster, None if that fails."""
    try:
        return store.get(
            entry.get("cluster") or "",
            entry.get("apiVersion") or "",
            entry.get("kind") or "",
            entry.get("name") or "",
            entry.get("namespace") or None,
        )
    except ApiException as e:
        logger.error("Failed to get %s: %s", describe(entry), e.reason)
        return None


class AppCollector:
    """Collects the resources an application applied, restricted by a filter."""

    def __init__(self, store: ObjectStore, option: Option) -> None:
        self.store = store
        self.option = option

    def collect(self) -> list[Resource]:
        """Return matching resources in the order the application recorded them."""
        opt = self.option
        app = find_application(self.store, opt.name, opt.namespace)
        resources: list[Resource] = []
        for entry in applied_resources(app):
            if not matches_location(opt.filter, entry):
                continue
            recorded_component, _ = owner_of(entry)
            if recorded_component and not matches_component(opt.filter, recorded_component):
                continue
            obj = fetch_applied(self.store, entry)
            if obj is None:
                continue
            component, revision = owner_of(entry, obj)
            if not matches_component(opt.filter, component):
                continue
            resources.append(
                Resource(
                    cluster=entry.get("cluster") or "",
                    component=component,
                    revision=revision,
                    object=obj,
                )
            )
        logger.debug(
            "Collected %d resources of application %s/%s", len(resources), opt.namespace, opt.name
        )
        return resources
