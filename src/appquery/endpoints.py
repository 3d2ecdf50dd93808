"""Derive externally reachable endpoints from Services, Ingresses and releases.

Only objects whose type exposes them outside the cluster produce endpoints:
LoadBalancer and NodePort Services, and Ingress rules with a host. Ingress
ports come from the ``ingress.controller/http-port`` and
``ingress.controller/https-port`` annotations, defaulting to 80 and 443; the
real listening port of the ingress controller is not observable here.

Endpoint order always follows the order of ports, load-balancer entries,
rules and paths in the source objects.
"""

from __future__ import annotations

import logging
from typing import Any

from kubernetes.client.rest import ApiException

from appquery.kinds import INGRESS_GROUP, KindVariant, classify, classify_object
from appquery.models import Endpoint, ObjectReference, Option, ServiceEndpoint
from appquery.pods import release_labels
from appquery.resources import (
    applied_resources,
    describe,
    fetch_applied,
    find_application,
    matches_component,
    matches_location,
    owner_of,
)
from appquery.store import ObjectStore, label_selector

logger = logging.getLogger(__name__)

ANNO_INGRESS_CONTROLLER_HTTPS_PORT = "ingress.controller/https-port"
ANNO_INGRESS_CONTROLLER_HTTP_PORT = "ingress.controller/http-port"

DEFAULT_HTTPS_PORT = 443
DEFAULT_HTTP_PORT = 80

SERVICE_TYPE_LOAD_BALANCER = "LoadBalancer"
SERVICE_TYPE_NODE_PORT = "NodePort"

RELEASE_INGRESS_API_VERSION = f"{INGRESS_GROUP}/v1"


def _endpoint(ref: ObjectReference, **fields: Any) -> ServiceEndpoint:
    return ServiceEndpoint(endpoint=Endpoint(**fields), ref=ref)


def from_service(service: dict[str, Any]) -> list[ServiceEndpoint]:
    """Endpoints of a LoadBalancer or NodePort Service; none for other types."""
    spec = service.get("spec") or {}
    ports = spec.get("ports") or []
    ref = ObjectReference.from_object(service)
    endpoints: list[ServiceEndpoint] = []
    svc_type = spec.get("type")
    if svc_type == SERVICE_TYPE_LOAD_BALANCER:
        lb_ingress = ((service.get("status") or {}).get("loadBalancer") or {}).get("ingress") or []
        for port in ports:
            for entry in lb_ingress:
                host = entry.get("hostname") or entry.get("ip")
                if not host:
                    continue
                endpoints.append(
                    _endpoint(ref, protocol=port.get("protocol") or "TCP", host=host, port=port["port"])
                )
    elif svc_type == SERVICE_TYPE_NODE_PORT:
        for port in ports:
            if not port.get("nodePort"):
                continue
            endpoints.append(_endpoint(ref, protocol=port.get("protocol") or "TCP", host="", port=port["nodePort"]))
    return endpoints


def ingress_app_protocol(ingress: dict[str, Any], host: str) -> str:
    """https when a TLS entry lists the host or covers every host, else http."""
    for tls in (ingress.get("spec") or {}).get("tls") or []:
        hosts = tls.get("hosts") or []
        if not hosts or host in hosts:
            return "https"
    return "http"


def _annotation_port(annotations: dict[str, str], key: str) -> int | None:
    try:
        port = int(annotations.get(key, ""))
    except (TypeError, ValueError):
        return None
    return port if port > 0 else None


def ingress_port(ingress: dict[str, Any], app_protocol: str) -> int:
    annotations = (ingress.get("metadata") or {}).get("annotations") or {}
    if app_protocol == "https":
        return _annotation_port(annotations, ANNO_INGRESS_CONTROLLER_HTTPS_PORT) or DEFAULT_HTTPS_PORT
    return _annotation_port(annotations, ANNO_INGRESS_CONTROLLER_HTTP_PORT) or DEFAULT_HTTP_PORT


def from_ingress(ingress: dict[str, Any]) -> list[ServiceEndpoint]:
    """One endpoint per path of every rule that has a host.

    Ingresses outside networking.k8s.io v1beta1/v1 are not supported and
    produce no endpoints.
    """
    if classify_object(ingress) is not KindVariant.INGRESS:
        logger.warning("Ingress version %s is not supported", ingress.get("apiVersion"))
        return []
    ref = ObjectReference.from_object(ingress)
    endpoints: list[ServiceEndpoint] = []
    for rule in (ingress.get("spec") or {}).get("rules") or []:
        host = rule.get("host") or ""
        http = rule.get("http")
        if not host or not http:
            continue
        app_protocol = ingress_app_protocol(ingress, host)
        port = ingress_port(ingress, app_protocol)
        for path in http.get("paths") or []:
            endpoints.append(
                _endpoint(
                    ref,
                    protocol="TCP",
                    app_protocol=app_protocol,
                    host=host,
                    port=port,
                    path=path.get("path") or "",
                )
            )
    return endpoints


class EndpointDeriver:
    """Derives endpoints for objects that have to be looked up first."""

    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def from_bundle(self, release: dict[str, Any], cluster: str) -> list[ServiceEndpoint]:
        """Endpoints of the Services and Ingresses a release manages on its cluster."""
        selector = label_selector(release_labels(release))
        endpoints: list[ServiceEndpoint] = []
        for service in self._list_managed(cluster, "v1", "Service", selector):
            endpoints.extend(from_service(service))
        for ingress in self._list_managed(cluster, RELEASE_INGRESS_API_VERSION, "Ingress", selector):
            endpoints.extend(from_ingress(ingress))
        return endpoints

    def collect(self, option: Option) -> list[ServiceEndpoint]:
        """Endpoints of every Service, Ingress and release applied by an application.

        Raises ApplicationNotFoundError or FetchError if the application
        cannot be read; other lookup failures only drop the affected object.
        """
        app = find_application(self.store, option.name, option.namespace)
        endpoints: list[ServiceEndpoint] = []
        for entry in applied_resources(app):
            if not matches_location(option.filter, entry):
                continue
            recorded_component, _ = owner_of(entry)
            if recorded_component and not matches_component(option.filter, recorded_component):
                continue
            variant = classify(entry.get("apiVersion") or "", entry.get("kind") or "")
            if variant not in (KindVariant.SERVICE, KindVariant.INGRESS, KindVariant.RELEASE_BUNDLE):
                if entry.get("kind") == "Ingress":
                    logger.warning("Ingress version %s of %s is not supported", entry.get("apiVersion"), describe(entry))
                continue
            obj = fetch_applied(self.store, entry)
            if obj is None:
                continue
            component, _ = owner_of(entry, obj)
            if not matches_component(option.filter, component):
                continue
            if variant is KindVariant.SERVICE:
                endpoints.extend(from_service(obj))
            elif variant is KindVariant.INGRESS:
                endpoints.extend(from_ingress(obj))
            else:
                endpoints.extend(self.from_bundle(obj, entry.get("cluster") or ""))
        return endpoints

    def _list_managed(self, cluster: str, api_version: str, kind: str, selector: str) -> list[dict[str, Any]]:
        try:
            return self.store.list(cluster, api_version, kind, label_selector=selector)
        except ApiException as e:
            logger.error("Failed to list %s managed by release (%s) on cluster %r: %s", kind, selector, cluster, e.reason)
            return []
