"""Kubeconfig loader.

Answers the questions the exchanger asks of its local configuration: which
contexts exist, which cluster entry a context points at, that cluster's API
server URL, and an authenticated CoreV1 client per context.

Reading and merging is left to the ``kubernetes`` library
(``KubeConfigMerger``), so contexts, clusters and users may live in
different ``$KUBECONFIG`` files.  The location is chosen the kubectl way:

1. An explicit path, if the file exists and is non-empty.
2. ``$KUBECONFIG`` (path-separated list, first definition of a name wins).
3. ``~/.kube/config``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from kubernetes import client, config
from kubernetes.config.kube_config import ConfigNode, KubeConfigMerger

from mesh_join.errors import ClusterNotFoundError, ConnectivityError, KubeConfigError
from mesh_join.models import ClusterContext

logger = logging.getLogger(__name__)

DEFAULT_KUBECONFIG = "~/.kube/config"


def resolve_kubeconfig(explicit: str | None = None) -> str:
    """Return the kubeconfig location to hand to the kubernetes library."""
    if explicit:
        path = Path(explicit).expanduser()
        if path.is_file() and path.stat().st_size > 0:
            return str(path)
        logger.debug("kubeconfig %s missing or empty, using defaults", path)
    return os.environ.get("KUBECONFIG") or DEFAULT_KUBECONFIG


def _unwrap(node: Any) -> Any:
    return node.value if isinstance(node, ConfigNode) else node


def _named_entries(data: dict[str, Any], key: str) -> Iterator[dict[str, Any]]:
    entries = data.get(key) or []
    if not isinstance(entries, list):
        raise KubeConfigError(f"'{key}' must be a list in kubeconfig")
    for node in entries:
        entry = _unwrap(node)
        if isinstance(entry, dict) and entry.get("name"):
            yield entry


class KubeConfigStore:
    """Read-only view over a merged kubeconfig.

    *location* is the string the document was merged from; clients are
    built from the same location so they see the same merge.
    """

    def __init__(
        self,
        kubeconfig: dict[str, Any],
        location: str | None = None,
        context: str | None = None,
    ) -> None:
        if not isinstance(kubeconfig, dict):
            raise KubeConfigError(
                f"Expected a YAML mapping in kubeconfig, got {type(kubeconfig).__name__}"
            )
        self._location = location
        self._contexts: dict[str, dict[str, Any]] = {}
        self._clusters: dict[str, dict[str, Any]] = {}
        self._current: str | None = context or kubeconfig.get("current-context") or None

        for entry in _named_entries(kubeconfig, "contexts"):
            self._contexts.setdefault(entry["name"], entry.get("context") or {})
        for entry in _named_entries(kubeconfig, "clusters"):
            self._clusters.setdefault(entry["name"], entry.get("cluster") or {})

    @classmethod
    def load(
        cls,
        kubeconfig: str | None = None,
        context: str | None = None,
    ) -> KubeConfigStore:
        """Resolve the kubeconfig location and merge its files."""
        location = resolve_kubeconfig(kubeconfig)
        logger.debug("loading kubeconfig from %s", location)
        try:
            merged = KubeConfigMerger(location).config
        except Exception as exc:
            raise KubeConfigError(f"Invalid kubeconfig {location}: {exc}") from exc
        data = {} if merged is None else _unwrap(merged)
        return cls(data, location=location, context=context)

    @property
    def location(self) -> str | None:
        return self._location

    @property
    def current_context(self) -> str | None:
        return self._current

    def __contains__(self, name: object) -> bool:
        return name in self._contexts

    def contexts(self) -> list[ClusterContext]:
        """Return all contexts sorted by name."""
        return [self.get_context(name) for name in sorted(self._contexts)]

    def missing(self, names: list[str] | tuple[str, ...]) -> list[str]:
        """Return the entries of *names* that are not configured contexts."""
        missing: list[str] = []
        for name in names:
            if name not in self._contexts and name not in missing:
                missing.append(name)
        return missing

    def get_context(self, name: str) -> ClusterContext:
        """Look up a context by name. Raises ClusterNotFoundError if absent."""
        ctx = self._contexts.get(name)
        if ctx is None:
            raise ClusterNotFoundError([name])
        return ClusterContext(
            name=name,
            cluster=ctx.get("cluster") or "",
            auth_info=ctx.get("user") or "",
            namespace=ctx.get("namespace") or "",
            current=name == self._current,
        )

    def cluster_name(self, context: str) -> str:
        """Name of the cluster entry referenced by *context*."""
        cluster = self.get_context(context).cluster
        if not cluster:
            raise KubeConfigError(f"context {context!r} does not reference a cluster")
        return cluster

    def server(self, context: str) -> str:
        """API server URL of the cluster referenced by *context*."""
        cluster_name = self.cluster_name(context)
        cluster = self._clusters.get(cluster_name)
        if cluster is None:
            raise KubeConfigError(f"cluster {cluster_name!r} not found in kubeconfig")
        server = cluster.get("server")
        if not server:
            raise KubeConfigError(f"cluster {cluster_name!r} has no server")
        return server

    def client_for(self, context: str) -> Any:
        """Build an authenticated CoreV1Api for *context*."""
        if context not in self._contexts:
            raise ClusterNotFoundError([context])
        try:
            api_client = config.new_client_from_config(
                config_file=self._location, context=context, persist_config=False,
            )
        except Exception as exc:
            raise ConnectivityError(
                f"could not build client for cluster {context!r}: {exc}"
            ) from exc
        return client.CoreV1Api(api_client)
