"""Exception hierarchy for mesh-join.

Every failure surfaces as a ``MeshJoinError`` subclass.  The library raises,
the CLI reports and exits non-zero.  The only recoverable condition (a
destination secret that already exists) never leaves the exchanger.
"""

from __future__ import annotations


class MeshJoinError(Exception):
    """Base class for all mesh-join failures."""


class ConfigError(MeshJoinError):
    """Raised when the ``mesh-join.yaml`` project file is invalid."""


class KubeConfigError(MeshJoinError):
    """Raised when a kubeconfig file cannot be read or parsed."""


class ClusterNotFoundError(MeshJoinError):
    """Raised when cluster identifiers are missing from the kubeconfig."""

    def __init__(self, clusters: list[str]) -> None:
        self.clusters = clusters
        names = ", ".join(f"{c!r}" for c in clusters)
        super().__init__(f"cluster {names} configuration not found")


class ConnectivityError(MeshJoinError):
    """Raised when an API client cannot be built for a cluster."""


class PreconditionError(MeshJoinError):
    """Raised when the source service account or its secret is unusable."""


class KubeApiError(MeshJoinError):
    """Raised for any unclassified Kubernetes API failure."""

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)
