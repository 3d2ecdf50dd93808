"""Route API calls to the hub cluster or to a member cluster."""

from __future__ import annotations

import copy
import logging
import threading
from pathlib import Path
from typing import Any
from urllib.parse import quote

from kubernetes import client, config

from appquery.config import Settings
from appquery.errors import UnknownClusterError

logger = logging.getLogger(__name__)

# Cluster identifiers addressing the hub itself
HUB_CLUSTER = ""
LOCAL_CLUSTER_NAME = "local"

CLUSTER_GATEWAY_PROXY_PATH = "/apis/cluster.core.oam.dev/v1alpha1/clustergateways/{cluster}/proxy"

DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0


def is_hub(cluster: str | None) -> bool:
    return not cluster or cluster == LOCAL_CLUSTER_NAME


def _load_kube_config(
    kubeconfig_path: str | Path | None,
    context: str | None,
    in_cluster: bool = True,
) -> client.Configuration:
    """Load in-cluster or kubeconfig-based configuration."""
    cfg = client.Configuration()
    if in_cluster:
        try:
            config.load_incluster_config(client_configuration=cfg)
            return cfg
        except config.ConfigException:
            pass
    kwargs: dict[str, Any] = {"client_configuration": cfg}
    if kubeconfig_path:
        kwargs["config_file"] = str(kubeconfig_path)
    if context:
        kwargs["context"] = context
    config.load_kube_config(**kwargs)
    return cfg


def gateway_configuration(hub: client.Configuration, cluster: str) -> client.Configuration:
    """Copy the hub configuration, pointing it at the cluster-gateway proxy of a member cluster."""
    cfg = copy.deepcopy(hub)
    proxy_path = CLUSTER_GATEWAY_PROXY_PATH.format(cluster=quote(cluster, safe=""))
    cfg.host = hub.host.rstrip("/") + proxy_path
    return cfg


class TimeoutApiClient(client.ApiClient):
    """ApiClient that applies a default timeout to calls made without one.

    DynamicClient discovery (/version, /api, /apis) never passes a timeout,
    so a cluster that accepts connections but does not answer would block
    forever without it.
    """

    def __init__(
        self,
        configuration: client.Configuration | None = None,
        request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(configuration)
        self.request_timeout = request_timeout

    def call_api(self, *args: Any, **kwargs: Any) -> Any:
        if kwargs.get("_request_timeout") is None and self.request_timeout is not None:
            kwargs["_request_timeout"] = self.request_timeout
        return super().call_api(*args, **kwargs)


class ClusterRouter:
    """Resolves a cluster identifier to an API client.

    The empty identifier (or "local") addresses the hub cluster. Members are
    reached through an explicit kubeconfig context when one is configured,
    otherwise through the hub's cluster-gateway proxy.
    """

    def __init__(
        self,
        kubeconfig: str | Path | None = None,
        context: str | None = None,
        cluster_contexts: dict[str, str] | None = None,
        cluster_gateway: bool = True,
        hub_configuration: client.Configuration | None = None,
        request_timeout: float | None = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.kubeconfig = kubeconfig
        self.request_timeout = request_timeout
        self.context = context
        self.cluster_contexts = dict(cluster_contexts or {})
        self.cluster_gateway = cluster_gateway
        self._hub_configuration = hub_configuration
        self._clients: dict[str, client.ApiClient] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> ClusterRouter:
        return cls(
            kubeconfig=settings.kubeconfig,
            context=settings.context,
            cluster_contexts=settings.cluster_contexts,
            cluster_gateway=settings.cluster_gateway,
            request_timeout=settings.request_timeout_seconds,
        )

    def hub_configuration(self) -> client.Configuration:
        if self._hub_configuration is None:
            self._hub_configuration = _load_kube_config(self.kubeconfig, self.context)
        return self._hub_configuration

    def configuration_for(self, cluster: str) -> client.Configuration:
        """Return the client configuration reaching the given cluster."""
        if is_hub(cluster):
            return self.hub_configuration()
        if cluster in self.cluster_contexts:
            return _load_kube_config(self.kubeconfig, self.cluster_contexts[cluster], in_cluster=False)
        if self.cluster_gateway:
            return gateway_configuration(self.hub_configuration(), cluster)
        raise UnknownClusterError(cluster)

    def client_for(self, cluster: str) -> client.ApiClient:
        """Return the API client for a cluster, creating it on first use."""
        key = LOCAL_CLUSTER_NAME if is_hub(cluster) else cluster
        with self._lock:
            api_client = self._clients.get(key)
            if api_client is None:
                logger.debug("Creating API client for cluster %r", key)
                api_client = TimeoutApiClient(self.configuration_for(cluster), self.request_timeout)
                self._clients[key] = api_client
            return api_client
