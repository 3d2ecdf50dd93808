"""Classification of objects into the kinds the engine knows how to handle."""

from __future__ import annotations

from enum import Enum
from typing import Any

INGRESS_GROUP = "networking.k8s.io"
INGRESS_VERSIONS = ("v1beta1", "v1")

HELM_RELEASE_GROUP = "helm.toolkit.fluxcd.io"
HELM_RELEASE_VERSION = "v2beta1"
HELM_RELEASE_KIND = "HelmRelease"

# Workload kinds whose pods are selected through spec.selector
WORKLOAD_KINDS = {
    ("apps", "Deployment"),
    ("apps", "StatefulSet"),
    ("apps", "DaemonSet"),
    ("apps", "ReplicaSet"),
    ("batch", "Job"),
}


class KindVariant(str, Enum):
    """Object kinds with their own discovery or derivation strategy."""

    SERVICE = "service"
    INGRESS = "ingress"
    RELEASE_BUNDLE = "release_bundle"
    WORKLOAD = "workload"
    UNSUPPORTED = "unsupported"


def split_api_version(api_version: str) -> tuple[str, str]:
    """Split 'group/version' into (group, version); the core group is ''."""
    if "/" in api_version:
        group, version = api_version.split("/", 1)
        return group, version
    return "", api_version


def classify(api_version: str, kind: str) -> KindVariant:
    group, version = split_api_version(api_version or "")
    if kind == "Service" and group == "":
        return KindVariant.SERVICE
    if kind == "Ingress" and group == INGRESS_GROUP and version in INGRESS_VERSIONS:
        return KindVariant.INGRESS
    if kind == HELM_RELEASE_KIND and group == HELM_RELEASE_GROUP and version == HELM_RELEASE_VERSION:
        return KindVariant.RELEASE_BUNDLE
    if (group, kind) in WORKLOAD_KINDS:
        return KindVariant.WORKLOAD
    return KindVariant.UNSUPPORTED


def classify_object(obj: dict[str, Any]) -> KindVariant:
    """Classify an unstructured object by its apiVersion and kind."""
    return classify(obj.get("apiVersion") or "", obj.get("kind") or "")
