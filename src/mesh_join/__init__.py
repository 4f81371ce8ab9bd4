"""mesh-join: join Kubernetes clusters into a multi-cluster Istio mesh."""

__version__ = "0.1.0"

from mesh_join.config import JoinSettings, MeshJoinConfig, build_settings, find_config, load_config
from mesh_join.errors import (
    ClusterNotFoundError,
    ConfigError,
    ConnectivityError,
    KubeApiError,
    KubeConfigError,
    MeshJoinError,
    PreconditionError,
)
from mesh_join.exchange.exchanger import CredentialExchanger
from mesh_join.kubeconfig.loader import KubeConfigStore
from mesh_join.models import (
    ClusterContext,
    ExchangeOutcome,
    ExchangeResult,
    RemoteAccessDescriptor,
    ServiceAccountCredential,
)

__all__ = [
    "build_settings",
    "ClusterContext",
    "ClusterNotFoundError",
    "ConfigError",
    "ConnectivityError",
    "CredentialExchanger",
    "ExchangeOutcome",
    "ExchangeResult",
    "find_config",
    "JoinSettings",
    "KubeApiError",
    "KubeConfigError",
    "KubeConfigStore",
    "load_config",
    "MeshJoinConfig",
    "MeshJoinError",
    "PreconditionError",
    "RemoteAccessDescriptor",
    "ServiceAccountCredential",
    "__version__",
]
