"""CredentialExchanger: copies service-account credentials between clusters.

For every ordered pair (source, destination) of configured clusters the
exchanger reads the control-plane service account's token secret from the
source, wraps it in a kubeconfig addressed to the destination's cluster
entry, and upserts it as a labeled secret in the destination's
control-plane namespace.

Work is sequential and fail-fast: the first error propagates and earlier
pairs are left in place.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from typing import Any

from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from mesh_join.config import JoinSettings
from mesh_join.errors import (
    ClusterNotFoundError,
    ConnectivityError,
    KubeApiError,
    PreconditionError,
)
from mesh_join.kubeconfig.loader import KubeConfigStore
from mesh_join.models import (
    ExchangeOutcome,
    ExchangeResult,
    RemoteAccessDescriptor,
    ServiceAccountCredential,
)

logger = logging.getLogger(__name__)

CA_CERT_KEY = "ca.crt"
TOKEN_KEY = "token"

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


class CredentialExchanger:
    """Pairwise credential copy across a set of clusters.

    ``client_for`` maps a cluster identifier to a CoreV1Api-like handle and
    defaults to the kubeconfig store's own factory.
    """

    def __init__(
        self,
        settings: JoinSettings,
        kubeconfig: KubeConfigStore,
        client_for: Callable[[str], Any] | None = None,
    ) -> None:
        self._settings = settings
        self._kubeconfig = kubeconfig
        self._client_for = client_for or kubeconfig.client_for

    def pairs(self) -> list[tuple[str, str]]:
        """Directed (source, destination) pairs, destination-major."""
        clusters = self._settings.clusters
        return [(src, dst) for dst in clusters for src in clusters if src != dst]

    def validate(self) -> None:
        """Fail before any API call if a cluster is not a configured context."""
        missing = self._kubeconfig.missing(self._settings.clusters)
        if missing:
            raise ClusterNotFoundError(missing)

    def run(
        self,
        on_pair: Callable[[str, str], None] | None = None,
    ) -> list[ExchangeResult]:
        """Exchange credentials for every directed pair.

        *on_pair* is called with (source, destination) before each exchange.
        """
        self.validate()

        results: list[ExchangeResult] = []
        for dst in self._settings.clusters:
            dst_api = None
            for src in self._settings.clusters:
                if src == dst:
                    continue
                if on_pair is not None:
                    on_pair(src, dst)
                if dst_api is None:
                    dst_api = self._client_for(dst)
                results.append(self.exchange(src, dst, dst_api=dst_api))
        return results

    def exchange(
        self,
        src: str,
        dst: str,
        dst_api: Any | None = None,
    ) -> ExchangeResult:
        """Copy *src* credentials into *dst* as a cross-cluster secret."""
        logger.info("joining %s to %s", src, dst)
        if dst_api is None:
            dst_api = self._client_for(dst)
        src_api = self._client_for(src)

        credential = self.read_credential(src_api, src)
        descriptor = self.build_descriptor(dst, credential)
        body = self.build_secret(src, descriptor)
        outcome = self.upsert_secret(dst_api, dst, body)

        return ExchangeResult(
            source=src,
            destination=dst,
            secret_name=body["metadata"]["name"],
            namespace=self._settings.namespace,
            outcome=outcome,
        )

    # --- Steps ---

    def read_credential(self, api: Any, cluster: str) -> ServiceAccountCredential:
        """Read the service account's single bound secret from *cluster*."""
        namespace = self._settings.namespace
        sa_name = self._settings.service_account

        try:
            sa = api.read_namespaced_service_account(name=sa_name, namespace=namespace)
        except ApiException as exc:
            if exc.status == HTTP_NOT_FOUND:
                raise PreconditionError(
                    f"service account {namespace}/{sa_name} not found in cluster {cluster!r}"
                ) from exc
            raise _api_error(f"reading service account {namespace}/{sa_name}", cluster, exc) from exc
        except HTTPError as exc:
            raise _unreachable(f"reading service account {namespace}/{sa_name}", cluster, exc) from exc

        refs = sa.secrets or []
        if len(refs) != 1:
            raise PreconditionError(
                f"service account {namespace}/{sa_name} in cluster {cluster!r} "
                f"must reference exactly one secret, found {len(refs)}"
            )
        secret_name = refs[0].name

        try:
            secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
        except ApiException as exc:
            if exc.status == HTTP_NOT_FOUND:
                raise PreconditionError(
                    f"secret {namespace}/{secret_name} not found in cluster {cluster!r}"
                ) from exc
            raise _api_error(f"reading secret {namespace}/{secret_name}", cluster, exc) from exc
        except HTTPError as exc:
            raise _unreachable(f"reading secret {namespace}/{secret_name}", cluster, exc) from exc

        data = secret.data or {}
        for key in (CA_CERT_KEY, TOKEN_KEY):
            if key not in data:
                raise PreconditionError(f"{secret_name} is missing {key}")

        token = base64.b64decode(data[TOKEN_KEY])
        try:
            token.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise PreconditionError(f"{secret_name} token is not valid UTF-8") from exc

        return ServiceAccountCredential(
            secret_name=secret_name,
            ca_data=base64.b64decode(data[CA_CERT_KEY]),
            token=token,
        )

    def build_descriptor(
        self, dst: str, credential: ServiceAccountCredential,
    ) -> RemoteAccessDescriptor:
        """Kubeconfig for *credential*, addressed by the cluster entry of *dst*."""
        cluster_name = self._kubeconfig.cluster_name(dst)
        return RemoteAccessDescriptor(
            cluster_name=cluster_name,
            server=self._kubeconfig.server(dst),
            ca_data=credential.ca_data,
            token=credential.token,
        )

    def build_secret(
        self, src: str, descriptor: RemoteAccessDescriptor,
    ) -> dict[str, Any]:
        """Secret body carrying *descriptor* under its cluster name."""
        return {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {
                "name": self._settings.secret_name(src),
                "namespace": self._settings.namespace,
                "labels": dict(self._settings.labels),
            },
            "type": "Opaque",
            "data": {
                descriptor.cluster_name: base64.b64encode(descriptor.render()).decode("ascii"),
            },
        }

    def upsert_secret(
        self, api: Any, cluster: str, body: dict[str, Any],
    ) -> ExchangeOutcome:
        """Create *body* on *cluster*, patching it if it already exists."""
        namespace = self._settings.namespace
        name = body["metadata"]["name"]

        try:
            api.create_namespaced_secret(namespace=namespace, body=body)
            logger.info("created secret %s/%s in %s", namespace, name, cluster)
            return ExchangeOutcome.CREATED
        except ApiException as exc:
            if exc.status != HTTP_CONFLICT:
                raise _api_error(f"creating secret {namespace}/{name}", cluster, exc) from exc
        except HTTPError as exc:
            raise _unreachable(f"creating secret {namespace}/{name}", cluster, exc) from exc

        logger.info("secret %s/%s exists in %s, patching", namespace, name, cluster)
        try:
            # Dict bodies are sent as strategic merge patches.
            api.patch_namespaced_secret(name=name, namespace=namespace, body=body)
        except ApiException as exc:
            raise _api_error(f"patching secret {namespace}/{name}", cluster, exc) from exc
        except HTTPError as exc:
            raise _unreachable(f"patching secret {namespace}/{name}", cluster, exc) from exc
        return ExchangeOutcome.PATCHED


def _api_error(what: str, cluster: str, exc: ApiException) -> KubeApiError:
    return KubeApiError(
        f"{what} in cluster {cluster!r} failed ({exc.status}): {exc.reason}",
        status=exc.status,
    )


def _unreachable(what: str, cluster: str, exc: HTTPError) -> ConnectivityError:
    return ConnectivityError(f"{what} in cluster {cluster!r} failed: cluster unreachable ({exc})")
