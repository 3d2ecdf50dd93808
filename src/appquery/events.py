"""Search the events recorded for an object."""

from __future__ import annotations

from typing import Any

from kubernetes.client.rest import ApiException

from appquery.errors import FetchError
from appquery.store import ObjectStore


def event_field_selector(obj: dict[str, Any]) -> str:
    """Field selector matching events whose involvedObject is obj.

    Only identity fields present on obj are used; keys are sorted.
    """
    meta = obj.get("metadata") or {}
    fields = {
        "involvedObject.kind": obj.get("kind") or "",
        "involvedObject.name": meta.get("name") or "",
        "involvedObject.namespace": meta.get("namespace") or "",
        "involvedObject.uid": meta.get("uid") or "",
    }
    return ",".join(f"{k}={v}" for k, v in sorted(fields.items()) if v)


class EventSearcher:
    def __init__(self, store: ObjectStore) -> None:
        self.store = store

    def search(self, cluster: str, obj: dict[str, Any]) -> list[dict[str, Any]]:
        """List events of obj in its namespace; raises FetchError if listing fails."""
        namespace = (obj.get("metadata") or {}).get("namespace") or None
        try:
            return self.store.list(
                cluster,
                "v1",
                "Event",
                namespace=namespace,
                field_selector=event_field_selector(obj),
            )
        except ApiException as e:
            raise FetchError(f"failed to list events: {e.reason}") from e
