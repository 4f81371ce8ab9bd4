"""Cross-cluster credential exchange."""

from mesh_join.exchange.exchanger import CredentialExchanger

__all__ = [
    "CredentialExchanger",
]
