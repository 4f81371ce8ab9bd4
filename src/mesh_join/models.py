"""Core data models for mesh-join.

Defines the schemas for:
- Kubeconfig context rows (what the operator can target)
- Service-account credentials (what is copied out of a source cluster)
- Remote access descriptors (the kubeconfig handed to the destination)
- Exchange results (what happened per directed cluster pair)
"""

from __future__ import annotations

import base64
import enum
from typing import Any

import yaml
from pydantic import BaseModel

# --- Enums ---


class ExchangeOutcome(enum.StrEnum):
    CREATED = "created"
    PATCHED = "patched"


# --- Kubeconfig ---


class ClusterContext(BaseModel):
    """A single context entry from the local kubeconfig."""

    name: str
    cluster: str = ""
    auth_info: str = ""
    namespace: str = ""
    current: bool = False


# --- Credentials ---


class ServiceAccountCredential(BaseModel):
    """CA certificate and bearer token read from a service account's secret.

    Both values are the raw (base64-decoded) secret contents.
    """

    secret_name: str
    ca_data: bytes
    token: bytes


class RemoteAccessDescriptor(BaseModel):
    """Minimal kubeconfig granting token access to one API server.

    Cluster, context and user entries all share ``cluster_name``.
    """

    cluster_name: str
    server: str
    ca_data: bytes
    token: bytes

    def to_kubeconfig(self) -> dict[str, Any]:
        name = self.cluster_name
        return {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{
                "name": name,
                "cluster": {
                    "certificate-authority-data": base64.b64encode(self.ca_data).decode("ascii"),
                    "server": self.server,
                },
            }],
            "contexts": [{
                "name": name,
                "context": {
                    "cluster": name,
                    "user": name,
                },
            }],
            "current-context": name,
            "preferences": {},
            "users": [{
                "name": name,
                "user": {
                    "token": self.token.decode("utf-8"),
                },
            }],
        }

    def render(self) -> bytes:
        """Serialize the kubeconfig document as YAML bytes."""
        return yaml.safe_dump(self.to_kubeconfig(), sort_keys=False).encode("utf-8")


# --- Results ---


class ExchangeResult(BaseModel):
    """Outcome of one directed credential exchange (source -> destination)."""

    source: str
    destination: str
    secret_name: str
    namespace: str
    outcome: ExchangeOutcome
