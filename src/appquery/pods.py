"""Resolve the pods backing an object."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from kubernetes.client.rest import ApiException

from appquery.kinds import KindVariant, classify_object
from appquery.store import ObjectStore, label_selector

logger = logging.getLogger(__name__)

# Labels the helm-controller puts on every object rendered for a release
HELM_RELEASE_NAME_LABEL = "helm.toolkit.fluxcd.io/name"
HELM_RELEASE_NAMESPACE_LABEL = "helm.toolkit.fluxcd.io/namespace"

RELEASE_MANAGED_KINDS = (
    ("apps/v1", "Deployment"),
    ("apps/v1", "StatefulSet"),
    ("v1", "Service"),
)

PodStrategy = Callable[[dict[str, Any], str], list[dict[str, Any]]]


def pod_selector(obj: dict[str, Any]) -> dict[str, str]:
    """Labels selecting the pods of an object.

    Tries spec.selector.matchLabels (workloads), a plain spec.selector map
    (Services), then the pod template labels.
    """
    spec = obj.get("spec") or {}
    selector = spec.get("selector")
    if isinstance(selector, dict):
        match_labels = selector.get("matchLabels")
        if match_labels:
            return dict(match_labels)
        if "matchLabels" not in selector and "matchExpressions" not in selector and selector:
            return {k: str(v) for k, v in selector.items()}
    template_labels = ((spec.get("template") or {}).get("metadata") or {}).get("labels")
    if template_labels:
        return dict(template_labels)
    return {}


def release_labels(release: dict[str, Any]) -> dict[str, str]:
    meta = release.get("metadata") or {}
    return {
        HELM_RELEASE_NAME_LABEL: meta.get("name") or "",
        HELM_RELEASE_NAMESPACE_LABEL: meta.get("namespace") or "",
    }


def _object_name(obj: dict[str, Any]) -> str:
    meta = obj.get("metadata") or {}
    return f"{obj.get('kind', '')} {meta.get('namespace', '')}/{meta.get('name', '')}"


class PodResolver:
    """Dispatches pod resolution on the kind of the target object."""

    def __init__(self, store: ObjectStore) -> None:
        self.store = store
        self._strategies: dict[KindVariant, PodStrategy] = {
            KindVariant.SERVICE: self.selector_pods,
            KindVariant.WORKLOAD: self.selector_pods,
            KindVariant.RELEASE_BUNDLE: self.release_pods,
        }

    def strategy_for(self, obj: dict[str, Any]) -> PodStrategy:
        """Kinds without a registered strategy fall back to the object's label selector."""
        return self._strategies.get(classify_object(obj), self.selector_pods)

    def resolve(self, obj: dict[str, Any], cluster: str) -> list[dict[str, Any]]:
        """Return the pods backing obj on the given cluster.

        Raises ApiException if listing pods fails.
        """
        return self.strategy_for(obj)(obj, cluster)

    def selector_pods(self, obj: dict[str, Any], cluster: str) -> list[dict[str, Any]]:
        labels = pod_selector(obj)
        if not labels:
            logger.debug("No pod selector on %s", _object_name(obj))
            return []
        namespace = (obj.get("metadata") or {}).get("namespace") or None
        return self.store.list(cluster, "v1", "Pod", namespace=namespace, label_selector=label_selector(labels))

    def release_pods(self, release: dict[str, Any], cluster: str) -> list[dict[str, Any]]:
        """Union of the pods of every object a release manages, de-duplicated by UID."""
        selector = label_selector(release_labels(release))
        pods: list[dict[str, Any]] = []
        seen: set[str] = set()
        for api_version, kind in RELEASE_MANAGED_KINDS:
            try:
                managed = self.store.list(cluster, api_version, kind, label_selector=selector)
            except ApiException as e:
                logger.error("Failed to list %s of release %s: %s", kind, _object_name(release), e.reason)
                continue
            for obj in managed:
                try:
                    found = self.selector_pods(obj, cluster)
                except ApiException as e:
                    logger.error("Failed to collect pods of %s: %s", _object_name(obj), e.reason)
                    continue
                for pod in found:
                    meta = pod.get("metadata") or {}
                    key = meta.get("uid") or f"{meta.get('namespace')}/{meta.get('name')}"
                    if key in seen:
                        continue
                    seen.add(key)
                    pods.append(pod)
        return pods
