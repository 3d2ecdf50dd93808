"""Fetch the logs of a pod together with the time window they cover."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from kubernetes.client.rest import ApiException
from pydantic import TypeAdapter, ValidationError

from appquery.errors import FetchError, LogReadError
from appquery.models import LogOptions, LogResult, LogWindow
from appquery.store import ObjectStore

logger = logging.getLogger(__name__)

TERMINATED_CONTAINER_NOT_FOUND = re.compile(r"previous terminated container .+ in pod .+ not found")

_timestamp = TypeAdapter(datetime)


def is_terminated_container_not_found(err: Exception) -> bool:
    """True when the API refused the stream because the previous container is gone."""
    # str(ApiException) includes the response body carrying the API message
    return TERMINATED_CONTAINER_NOT_FOUND.search(str(err)) is not None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _creation_timestamp(pod: dict[str, Any]) -> datetime | None:
    value = (pod.get("metadata") or {}).get("creationTimestamp")
    if not value:
        return None
    try:
        return _timestamp.validate_python(value)
    except ValidationError:
        logger.warning("Invalid creationTimestamp %r", value)
        return None


def log_window(options: LogOptions, pod: dict[str, Any], now: datetime) -> LogWindow:
    """fromDate is sinceTime, else now - sinceSeconds, else the pod creation time."""
    if options.since_time is not None:
        from_date = options.since_time
        if from_date.tzinfo is None:
            from_date = from_date.replace(tzinfo=timezone.utc)
    elif options.since_seconds is not None:
        from_date = now - timedelta(seconds=options.since_seconds)
    else:
        from_date = _creation_timestamp(pod) or now
    return LogWindow(from_date=from_date, to_date=now)


class LogStreamer:
    """Reads the complete log of a pod container."""

    def __init__(self, store: ObjectStore, now: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.now = now

    def stream(self, cluster: str, namespace: str, pod_name: str, options: LogOptions | None = None) -> LogResult:
        """Return the pod log text and its window.

        Raises FetchError if the pod cannot be read or the stream cannot be
        opened. A failure while reading is reported in LogResult.err.
        """
        options = options or LogOptions()
        try:
            pod = self.store.get(cluster, "v1", "Pod", pod_name, namespace)
        except ApiException as e:
            raise FetchError(f"failed to get pod {namespace}/{pod_name}: {e.reason}") from e

        chunks: list[str] = []
        read_err: str | None = None
        try:
            for chunk in self.store.read_log(cluster, namespace, pod_name, options):
                chunks.append(chunk)
        except ApiException as e:
            if not is_terminated_container_not_found(e):
                raise FetchError(f"failed to get stream logs of pod {namespace}/{pod_name}: {e.reason}") from e
            logger.debug("Previous container of pod %s/%s is gone, no logs", namespace, pod_name)
        except LogReadError as e:
            logger.warning("Reading logs of pod %s/%s failed: %s", namespace, pod_name, e)
            read_err = str(e)

        return LogResult(logs="".join(chunks), info=log_window(options, pod, self.now()), err=read_err)
