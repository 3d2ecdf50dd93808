"""Shared test fixtures for all test modules."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any

import pytest
from kubernetes.client.rest import ApiException

from appquery.models import LogOptions

Key = tuple[str, str, str, str, str]


def _key(cluster: str, api_version: str, kind: str, namespace: str | None, name: str) -> Key:
    return (cluster or "", api_version, kind, namespace or "", name)


def _matches_selector(obj: dict[str, Any], selector: str | None, source: str) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if source == "labels":
            actual = ((obj.get("metadata") or {}).get("labels") or {}).get(key)
        else:
            actual = obj
            for part in key.split("."):
                actual = (actual or {}).get(part)
        if actual != value:
            return False
    return True


class FakeObjectStore:
    """In-memory ObjectStore keeping insertion order."""

    def __init__(self) -> None:
        self.objects: dict[Key, dict[str, Any]] = {}
        self.get_failures: dict[Key, ApiException] = {}
        self.list_failures: dict[tuple[str, str, str], ApiException] = {}
        self.logs: dict[tuple[str, str, str], Any] = {}
        self.list_calls: list[dict[str, Any]] = []
        self.log_calls: list[LogOptions] = []

    def add(self, obj: dict[str, Any], cluster: str = "") -> dict[str, Any]:
        m = obj["metadata"]
        self.objects[_key(cluster, obj["apiVersion"], obj["kind"], m.get("namespace"), m["name"])] = obj
        return obj

    def fail_get(self, obj: dict[str, Any], cluster: str = "", status: int = 500, reason: str = "Internal Server Error") -> None:
        m = obj["metadata"]
        key = _key(cluster, obj["apiVersion"], obj["kind"], m.get("namespace"), m["name"])
        self.get_failures[key] = ApiException(status=status, reason=reason)

    def fail_list(self, api_version: str, kind: str, cluster: str = "", reason: str = "Forbidden") -> None:
        self.list_failures[(cluster, api_version, kind)] = ApiException(status=403, reason=reason)

    def get(self, cluster, api_version, kind, name, namespace=None):
        key = _key(cluster, api_version, kind, namespace, name)
        if key in self.get_failures:
            raise self.get_failures[key]
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        return self.objects[key]

    def list(self, cluster, api_version, kind, namespace=None, label_selector=None, field_selector=None):
        self.list_calls.append(
            {
                "cluster": cluster,
                "apiVersion": api_version,
                "kind": kind,
                "namespace": namespace,
                "label_selector": label_selector,
                "field_selector": field_selector,
            }
        )
        if (cluster or "", api_version, kind) in self.list_failures:
            raise self.list_failures[(cluster or "", api_version, kind)]
        items = []
        for (c, av, k, ns, _), obj in self.objects.items():
            if (c, av, k) != (cluster or "", api_version, kind):
                continue
            if namespace and ns != namespace:
                continue
            if not _matches_selector(obj, label_selector, "labels"):
                continue
            if not _matches_selector(obj, field_selector, "fields"):
                continue
            items.append(obj)
        return items

    def set_logs(self, cluster: str, namespace: str, pod: str, chunks: list[str], error: Exception | None = None) -> None:
        self.logs[(cluster, namespace, pod)] = (chunks, error)

    def fail_logs(self, cluster: str, namespace: str, pod: str, error: Exception) -> None:
        self.logs[(cluster, namespace, pod)] = error

    def read_log(self, cluster, namespace, name, options) -> Iterator[str]:
        self.log_calls.append(options)
        entry = self.logs.get((cluster, namespace, name), ([], None))
        if isinstance(entry, Exception):
            raise entry
        chunks, error = entry

        def _stream() -> Iterator[str]:
            yield from chunks
            if error is not None:
                raise error

        return _stream()


@pytest.fixture
def store() -> FakeObjectStore:
    """Provide an empty in-memory object store."""
    return FakeObjectStore()


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)
