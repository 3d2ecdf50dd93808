"""Exceptions raised by the query engine."""

from __future__ import annotations

from kubernetes.client.rest import ApiException


class UnknownClusterError(ApiException):
    """No route is configured for the requested cluster."""

    def __init__(self, cluster: str) -> None:
        super().__init__(status=404, reason=f"cluster {cluster!r} is not routable")
        self.cluster = cluster


class QueryError(Exception):
    """Base class for query failures that abort an operation."""


class InvalidInputError(QueryError):
    """A required input field is missing or malformed."""


class FetchError(QueryError):
    """The primary target of an operation could not be retrieved."""


class ApplicationNotFoundError(FetchError):
    """The application named by the query option does not exist."""

    def __init__(self, name: str, namespace: str) -> None:
        super().__init__(f"application {namespace}/{name} not found")
        self.name = name
        self.namespace = namespace


class LogReadError(Exception):
    """Reading an already opened log stream failed."""
