"""Tests for the kubeconfig loader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import yaml

from mesh_join.errors import ClusterNotFoundError, ConnectivityError, KubeConfigError
from mesh_join.kubeconfig.loader import KubeConfigStore, resolve_kubeconfig


def _kubeconfig(
    contexts: dict[str, str],
    servers: dict[str, str] | None = None,
    current: str | None = None,
) -> dict[str, Any]:
    """Build a kubeconfig document; *contexts* maps context -> cluster."""
    servers = servers if servers is not None else {
        cluster: f"https://{cluster}.example:6443" for cluster in contexts.values()
    }
    doc: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Config",
        "contexts": [
            {"name": name, "context": {"cluster": cluster, "user": f"{name}-admin"}}
            for name, cluster in contexts.items()
        ],
        "clusters": [
            {"name": cluster, "cluster": {"server": server}}
            for cluster, server in servers.items()
        ],
        "users": [{"name": f"{name}-admin", "user": {"token": "x"}} for name in contexts],
    }
    if current:
        doc["current-context"] = current
    return doc


def _write(path: Path, doc: Any) -> Path:
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("KUBECONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


# --- Location resolution ---


class TestResolveKubeconfig:
    def test_explicit_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config", _kubeconfig({"a": "ca"}))
        assert resolve_kubeconfig(str(path)) == str(path)

    def test_empty_explicit_path_falls_back_to_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        empty = tmp_path / "empty"
        empty.write_text("", encoding="utf-8")
        monkeypatch.setenv("KUBECONFIG", "/etc/kube/one:/etc/kube/two")
        assert resolve_kubeconfig(str(empty)) == "/etc/kube/one:/etc/kube/two"

    def test_missing_explicit_path_falls_back_to_home(self, tmp_path: Path) -> None:
        assert resolve_kubeconfig(str(tmp_path / "nope")) == "~/.kube/config"

    def test_home_default_is_loaded(self, tmp_path: Path) -> None:
        kube_dir = tmp_path / "home" / ".kube"
        kube_dir.mkdir(parents=True)
        _write(kube_dir / "config", _kubeconfig({"a": "ca"}))
        store = KubeConfigStore.load()
        assert [c.name for c in store.contexts()] == ["a"]


# --- Loading ---


class TestLoad:
    def test_contexts_sorted_with_current(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config", _kubeconfig({"b": "cb", "a": "ca"}, current="b"))
        store = KubeConfigStore.load(str(path))

        contexts = store.contexts()
        assert [c.name for c in contexts] == ["a", "b"]
        assert contexts[0].cluster == "ca"
        assert contexts[0].auth_info == "a-admin"
        assert contexts[1].current is True
        assert store.current_context == "b"
        assert store.location == str(path)

    def test_context_override(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config", _kubeconfig({"b": "cb", "a": "ca"}, current="b"))
        store = KubeConfigStore.load(str(path), context="a")
        assert store.current_context == "a"
        assert store.get_context("a").current is True

    def test_merge_first_definition_wins(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        one = _write(
            tmp_path / "one",
            _kubeconfig({"a": "ca"}, servers={"ca": "https://first:6443"}, current="a"),
        )
        two = _write(
            tmp_path / "two",
            _kubeconfig(
                {"a": "ca", "b": "cb"},
                servers={"ca": "https://second:6443", "cb": "https://b:6443"},
            ),
        )
        monkeypatch.setenv("KUBECONFIG", os.pathsep.join([str(one), str(two)]))
        store = KubeConfigStore.load()

        assert store.server("a") == "https://first:6443"
        assert store.server("b") == "https://b:6443"
        assert store.current_context == "a"

    def test_env_list_skips_missing_files(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        one = _write(tmp_path / "one", _kubeconfig({"a": "ca"}))
        monkeypatch.setenv("KUBECONFIG", os.pathsep.join([str(tmp_path / "missing"), str(one)]))
        assert [c.name for c in KubeConfigStore.load().contexts()] == ["a"]

    def test_no_files_gives_empty_store(self) -> None:
        store = KubeConfigStore.load()
        assert store.contexts() == []
        assert store.missing(["a"]) == ["a"]

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config"
        path.write_text("contexts: [unclosed", encoding="utf-8")
        with pytest.raises(KubeConfigError, match="Invalid kubeconfig"):
            KubeConfigStore.load(str(path))

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "config", ["not", "a", "mapping"])
        with pytest.raises(KubeConfigError):
            KubeConfigStore.load(str(path))

    def test_contexts_must_be_list(self) -> None:
        with pytest.raises(KubeConfigError, match="'contexts' must be a list"):
            KubeConfigStore({"contexts": {"a": {}}})


# --- Lookups ---


class TestLookups:
    def test_server_via_cluster_name(self) -> None:
        store = KubeConfigStore(_kubeconfig({"a": "ca"}, servers={"ca": "https://api.a:6443"}))
        assert store.cluster_name("a") == "ca"
        assert store.server("a") == "https://api.a:6443"

    def test_unknown_context(self) -> None:
        store = KubeConfigStore(_kubeconfig({"a": "ca"}))
        with pytest.raises(ClusterNotFoundError, match="'c'"):
            store.server("c")

    def test_missing_cluster_entry(self) -> None:
        store = KubeConfigStore(_kubeconfig({"a": "ca"}, servers={}))
        with pytest.raises(KubeConfigError, match="cluster 'ca' not found"):
            store.server("a")

    def test_cluster_without_server(self) -> None:
        store = KubeConfigStore(_kubeconfig({"a": "ca"}, servers={"ca": ""}))
        with pytest.raises(KubeConfigError, match="has no server"):
            store.server("a")

    def test_missing_deduplicates(self) -> None:
        store = KubeConfigStore(_kubeconfig({"a": "ca"}))
        assert store.missing(["a", "c", "c", "d"]) == ["c", "d"]
        assert "a" in store
        assert "c" not in store


# --- Client construction ---


class TestClientFor:
    @patch("mesh_join.kubeconfig.loader.client")
    @patch("mesh_join.kubeconfig.loader.config")
    def test_builds_core_api_from_merged_location(
        self, mock_config: MagicMock, mock_client: MagicMock,
    ) -> None:
        store = KubeConfigStore(_kubeconfig({"a": "ca"}), location="/tmp/one:/tmp/two")
        api = store.client_for("a")

        mock_config.new_client_from_config.assert_called_once_with(
            config_file="/tmp/one:/tmp/two", context="a", persist_config=False,
        )
        mock_client.CoreV1Api.assert_called_once_with(
            mock_config.new_client_from_config.return_value,
        )
        assert api is mock_client.CoreV1Api.return_value

    @patch("mesh_join.kubeconfig.loader.config")
    def test_build_failure_is_connectivity_error(self, mock_config: MagicMock) -> None:
        mock_config.new_client_from_config.side_effect = Exception("Invalid kube-config file")
        store = KubeConfigStore(_kubeconfig({"a": "ca"}))
        with pytest.raises(ConnectivityError, match="could not build client for cluster 'a'"):
            store.client_for("a")

    def test_unknown_context(self) -> None:
        store = KubeConfigStore(_kubeconfig({"a": "ca"}))
        with pytest.raises(ClusterNotFoundError):
            store.client_for("zzz")

    def test_user_from_another_kubeconfig_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        contexts = _write(tmp_path / "contexts.yaml", {
            "apiVersion": "v1",
            "kind": "Config",
            "current-context": "a",
            "contexts": [{"name": "a", "context": {"cluster": "ca", "user": "ua"}}],
            "clusters": [{"name": "ca", "cluster": {"server": "https://a.example:6443"}}],
        })
        users = _write(tmp_path / "users.yaml", {
            "apiVersion": "v1",
            "kind": "Config",
            "users": [{"name": "ua", "user": {"token": "t"}}],
        })
        monkeypatch.setenv("KUBECONFIG", os.pathsep.join([str(contexts), str(users)]))

        api = KubeConfigStore.load().client_for("a")

        configuration = api.api_client.configuration
        assert configuration.api_key["authorization"] == "Bearer t"
        assert configuration.host == "https://a.example:6443"
