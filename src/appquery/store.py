"""Access to cluster objects, routed per cluster."""

from __future__ import annotations

import codecs
import logging
import math
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError
from urllib3.exceptions import HTTPError

from appquery.cluster import DEFAULT_REQUEST_TIMEOUT_SECONDS, LOCAL_CLUSTER_NAME, ClusterRouter, is_hub
from appquery.errors import LogReadError
from appquery.models import LogOptions

logger = logging.getLogger(__name__)

LOG_CHUNK_SIZE = 64 * 1024
UNAVAILABLE_STATUS = 503


class ObjectStore(Protocol):
    """Read access to objects on the hub and member clusters.

    Objects are plain dicts in their API (camelCase) form. Failures are
    raised as ApiException; a missing object has status 404.
    """

    def get(
        self,
        cluster: str,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
    ) -> dict[str, Any]: ...

    def list(
        self,
        cluster: str,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[dict[str, Any]]: ...

    def read_log(
        self,
        cluster: str,
        namespace: str,
        name: str,
        options: LogOptions,
    ) -> Iterator[str]:
        """Open a pod log stream and yield its text.

        Raises ApiException if the stream cannot be opened and LogReadError
        if reading fails after it was opened.
        """
        ...


def label_selector(labels: dict[str, str]) -> str:
    """Render an equality-based label selector, keys sorted."""
    return ",".join(f"{k}={labels[k]}" for k in sorted(labels))


def since_seconds(options: LogOptions, now: datetime | None = None) -> int | None:
    """Seconds to request from the API; sinceTime is converted since the client only takes seconds."""
    if options.since_time is not None:
        since = options.since_time
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return max(1, math.ceil((now - since).total_seconds()))
    return options.since_seconds


@contextmanager
def _cluster_errors(cluster: str) -> Iterator[None]:
    """Raise transport and client configuration failures as ApiException."""
    try:
        yield
    except (HTTPError, config.ConfigException) as e:
        name = LOCAL_CLUSTER_NAME if is_hub(cluster) else cluster
        logger.debug("Cluster %r unavailable", name, exc_info=True)
        raise ApiException(status=UNAVAILABLE_STATUS, reason=f"cluster {name!r} is unavailable: {e}") from e


def _iter_text(resp: Any) -> Iterator[str]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    try:
        for chunk in resp.stream(LOG_CHUNK_SIZE, decode_content=True):
            text = decoder.decode(chunk)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail
    except (HTTPError, OSError) as e:
        raise LogReadError(str(e)) from e
    finally:
        resp.release_conn()


class KubernetesObjectStore:
    """ObjectStore backed by the Kubernetes dynamic client."""

    def __init__(
        self,
        router: ClusterRouter,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.router = router
        self.request_timeout = request_timeout
        self._dynamic_clients: dict[str, DynamicClient] = {}
        self._lock = threading.Lock()

    def _dynamic(self, cluster: str) -> DynamicClient:
        key = LOCAL_CLUSTER_NAME if is_hub(cluster) else cluster
        with self._lock:
            dyn = self._dynamic_clients.get(key)
        if dyn is not None:
            return dyn
        # Discovery talks to the cluster, so it runs outside the lock
        dyn = DynamicClient(self.router.client_for(cluster))
        with self._lock:
            return self._dynamic_clients.setdefault(key, dyn)

    def _resource(self, cluster: str, api_version: str, kind: str) -> Any:
        try:
            with _cluster_errors(cluster):
                return self._dynamic(cluster).resources.get(api_version=api_version, kind=kind)
        except ResourceNotFoundError as e:
            raise ApiException(status=404, reason=f"{api_version} {kind} is not served: {e}") from e

    def get(
        self,
        cluster: str,
        api_version: str,
        kind: str,
        name: str,
        namespace: str | None = None,
    ) -> dict[str, Any]:
        resource = self._resource(cluster, api_version, kind)
        with _cluster_errors(cluster):
            obj = resource.get(name=name, namespace=namespace, _request_timeout=self.request_timeout)
        return obj.to_dict()

    def list(
        self,
        cluster: str,
        api_version: str,
        kind: str,
        namespace: str | None = None,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        resource = self._resource(cluster, api_version, kind)
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if field_selector:
            kwargs["field_selector"] = field_selector
        with _cluster_errors(cluster):
            result = resource.get(namespace=namespace, _request_timeout=self.request_timeout, **kwargs)
        items = []
        for item in result.to_dict().get("items") or []:
            # List items come back without their type
            item.setdefault("apiVersion", api_version)
            item.setdefault("kind", kind)
            items.append(item)
        return items

    def read_log(
        self,
        cluster: str,
        namespace: str,
        name: str,
        options: LogOptions,
    ) -> Iterator[str]:
        kwargs: dict[str, Any] = {
            "_preload_content": False,
            "_request_timeout": self.request_timeout,
            "previous": options.previous,
            "timestamps": options.timestamps,
        }
        if options.container:
            kwargs["container"] = options.container
        seconds = since_seconds(options)
        if seconds is not None:
            kwargs["since_seconds"] = seconds
        if options.tail_lines is not None:
            kwargs["tail_lines"] = options.tail_lines
        if options.limit_bytes is not None:
            kwargs["limit_bytes"] = options.limit_bytes
        with _cluster_errors(cluster):
            core = client.CoreV1Api(self.router.client_for(cluster))
            resp = core.read_namespaced_pod_log(name=name, namespace=namespace, **kwargs)
        return _iter_text(resp)
