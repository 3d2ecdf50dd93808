"""Value objects exchanged with the workflow engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _Document(BaseModel):
    """Model accepting both field names and their camelCase aliases."""

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Render as a JSON-compatible document using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class FilterOption(_Document):
    """Restricts resources by cluster, namespace and owning component.

    An empty field matches everything; set fields must all match.
    """

    cluster: str = ""
    cluster_namespace: str = Field(default="", alias="clusterNamespace")
    components: list[str] = Field(default_factory=list)


class Option(_Document):
    """Identifies an application and the subset of its resources to query."""

    name: str
    namespace: str = ""
    filter: FilterOption = Field(default_factory=FilterOption)


class Resource(_Document):
    """An object created by a component revision on a cluster."""

    cluster: str = ""
    component: str = ""
    revision: str = ""
    object: dict[str, Any]


class ObjectReference(_Document):
    """Minimal reference back to the object an endpoint came from."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""
    api_version: str = Field(default="", alias="apiVersion")
    resource_version: str = Field(default="", alias="resourceVersion")

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> ObjectReference:
        meta = obj.get("metadata") or {}
        return cls(
            kind=obj.get("kind") or "",
            namespace=meta.get("namespace") or "",
            name=meta.get("name") or "",
            uid=meta.get("uid") or "",
            api_version=obj.get("apiVersion") or "",
            resource_version=meta.get("resourceVersion") or "",
        )


class Endpoint(_Document):
    """A network address derived from a Service or an Ingress."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    protocol: Literal["TCP", "UDP", "SCTP"] = "TCP"
    app_protocol: str | None = Field(default=None, alias="appProtocol")
    host: str = ""
    port: int = Field(..., gt=0)
    path: str = ""


class ServiceEndpoint(_Document):
    """An endpoint together with the object it was derived from."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    endpoint: Endpoint
    ref: ObjectReference

    def url(self) -> str:
        """Render the endpoint as a URL, omitting default http/https ports."""
        ep = self.endpoint
        scheme = ep.app_protocol or ep.protocol.lower()
        path = "" if ep.path == "/" else ep.path
        if (scheme == "https" and ep.port == 443) or (scheme == "http" and ep.port == 80):
            return f"{scheme}://{ep.host}{path}"
        return f"{scheme}://{ep.host}:{ep.port}{path}"

    def __str__(self) -> str:
        return self.url()


class LogOptions(_Document):
    """Pod log options, mirroring the Kubernetes PodLogOptions fields."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    container: str | None = None
    previous: bool = False
    since_seconds: int | None = Field(default=None, gt=0, alias="sinceSeconds")
    since_time: datetime | None = Field(default=None, alias="sinceTime")
    tail_lines: int | None = Field(default=None, ge=0, alias="tailLines")
    limit_bytes: int | None = Field(default=None, gt=0, alias="limitBytes")
    timestamps: bool = False


class LogWindow(_Document):
    """Time range covered by a log fetch."""

    from_date: datetime = Field(..., alias="fromDate")
    to_date: datetime = Field(..., alias="toDate")


class LogResult(_Document):
    """Logs of one pod plus the window they cover."""

    logs: str = ""
    info: LogWindow
    err: str | None = None
