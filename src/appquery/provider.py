"""The "query" provider: read-side operations over deployed applications.

Each handler reads named fields from the input document and returns either
an Ok result with the fields to write ("list" or "outputs") or a SoftError
carrying the "err" message. Malformed input and failures to read the primary
target of collectLogsInPod and collectServiceEndpoints raise QueryError.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, TypeVar

from kubernetes.client.rest import ApiException
from pydantic import BaseModel, ValidationError

from appquery.endpoints import EndpointDeriver
from appquery.errors import FetchError, InvalidInputError
from appquery.events import EventSearcher
from appquery.logs import LogStreamer, utcnow
from appquery.models import LogOptions, Option
from appquery.pods import PodResolver
from appquery.registry import Handler, Ok, OperationResult, Registry, SoftError
from appquery.resources import AppCollector
from appquery.store import ObjectStore

PROVIDER_NAME = "query"

M = TypeVar("M", bound=BaseModel)


def _lookup(inputs: Mapping[str, Any], key: str) -> Any:
    value = inputs.get(key)
    if value is None:
        raise InvalidInputError(f"missing field {key!r}")
    return value


def _get_string(inputs: Mapping[str, Any], key: str) -> str:
    value = _lookup(inputs, key)
    if not isinstance(value, str):
        raise InvalidInputError(f"field {key!r} must be a string, got {type(value).__name__}")
    return value


def _get_model(inputs: Mapping[str, Any], key: str, model: type[M]) -> M:
    try:
        return model.model_validate(_lookup(inputs, key))
    except ValidationError as e:
        raise InvalidInputError(f"invalid {key}: {e}") from e


def _get_object(inputs: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = _lookup(inputs, key)
    if not isinstance(value, Mapping):
        raise InvalidInputError(f"field {key!r} must be an object")
    return dict(value)


class QueryProvider:
    def __init__(self, store: ObjectStore, now: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.now = now

    def handlers(self) -> dict[str, Handler]:
        return {
            "listResourcesInApp": self.list_resources_in_app,
            "collectPods": self.collect_pods,
            "searchEvents": self.search_events,
            "collectLogsInPod": self.collect_logs_in_pod,
            "collectServiceEndpoints": self.collect_service_endpoints,
        }

    def list_resources_in_app(self, inputs: Mapping[str, Any]) -> OperationResult:
        opt = _get_model(inputs, "app", Option)
        try:
            resources = AppCollector(self.store, opt).collect()
        except FetchError as e:
            return SoftError(str(e))
        return Ok({"list": [r.to_document() for r in resources]})

    def collect_pods(self, inputs: Mapping[str, Any]) -> OperationResult:
        obj = _get_object(inputs, "value")
        cluster = _get_string(inputs, "cluster")
        try:
            pods = PodResolver(self.store).resolve(obj, cluster)
        except ApiException as e:
            return SoftError(f"failed to collect pods: {e.reason}")
        return Ok({"list": pods})

    def search_events(self, inputs: Mapping[str, Any]) -> OperationResult:
        obj = _get_object(inputs, "value")
        cluster = _get_string(inputs, "cluster")
        try:
            events = EventSearcher(self.store).search(cluster, obj)
        except FetchError as e:
            return SoftError(str(e))
        return Ok({"list": events})

    def collect_logs_in_pod(self, inputs: Mapping[str, Any]) -> OperationResult:
        cluster = _get_string(inputs, "cluster")
        namespace = _get_string(inputs, "namespace")
        pod = _get_string(inputs, "pod")
        options = _get_model(inputs, "options", LogOptions)
        result = LogStreamer(self.store, self.now).stream(cluster, namespace, pod, options)
        return Ok({"outputs": result.to_document()})

    def collect_service_endpoints(self, inputs: Mapping[str, Any]) -> OperationResult:
        opt = _get_model(inputs, "app", Option)
        endpoints = EndpointDeriver(self.store).collect(opt)
        return Ok({"list": [e.to_document() for e in endpoints]})


def install(registry: Registry, store: ObjectStore, now: Callable[[], datetime] = utcnow) -> QueryProvider:
    """Register the query operations on registry."""
    provider = QueryProvider(store, now)
    registry.register(PROVIDER_NAME, provider.handlers())
    return provider
