"""Config file loading and run settings for mesh-join.

Searches for ``mesh-join.yaml`` in the current directory and parent
directories, parses it, and resolves the kubeconfig path against the
config file's location.  Command-line flags override file values, which
override the built-in Istio defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from mesh_join.errors import ConfigError

CONFIG_FILENAME = "mesh-join.yaml"

DEFAULT_NAMESPACE = "istio-system"
DEFAULT_SERVICE_ACCOUNT = "istio-pilot-service-account"
DEFAULT_SECRET_PREFIX = "istio-mc"
DEFAULT_LABEL_KEY = "istio/multiCluster"
DEFAULT_LABEL_VALUE = "true"


@dataclass(frozen=True)
class MeshJoinConfig:
    """Parsed mesh-join project configuration."""

    config_path: Path | None = None
    kubeconfig: str | None = None
    namespace: str | None = None
    service_account: str | None = None
    secret_prefix: str | None = None
    label_key: str | None = None
    label_value: str | None = None


@dataclass(frozen=True)
class JoinSettings:
    """Immutable settings for one command run.

    Built once from flags, project file and defaults, then passed to the
    kubeconfig store and the exchanger.
    """

    kubeconfig: str | None = None
    context: str | None = None
    clusters: tuple[str, ...] = ()
    namespace: str = DEFAULT_NAMESPACE
    service_account: str = DEFAULT_SERVICE_ACCOUNT
    secret_prefix: str = DEFAULT_SECRET_PREFIX
    # (key, value) pairs; dict(settings.labels) gives the label mapping.
    labels: tuple[tuple[str, str], ...] = ((DEFAULT_LABEL_KEY, DEFAULT_LABEL_VALUE),)

    def secret_name(self, source: str) -> str:
        """Name of the cross-cluster secret carrying *source* credentials."""
        return f"{self.secret_prefix}-{source}"


def find_config(start: Path | None = None) -> Path | None:
    """Locate the nearest ``mesh-join.yaml`` at or above *start*.

    *start* defaults to the working directory.  ``None`` means no project
    file exists between it and the filesystem root.
    """
    directory = (start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> MeshJoinConfig:
    """Read the project file that applies to this run.

    An explicit *path* must exist.  Without one the nearest project file is
    used when *auto_discover* is set; with no file at all every field stays
    unset and the built-in defaults apply later in ``build_settings``.
    """
    if path is not None:
        config_path: Path | None = Path(path).resolve()
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
    else:
        config_path = find_config() if auto_discover else None

    if config_path is None:
        return MeshJoinConfig()
    return _parse_config(config_path)


def _parse_config(config_path: Path) -> MeshJoinConfig:
    """Read and parse a YAML config file."""
    text = config_path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        )

    kubeconfig = data.get("kubeconfig")
    if kubeconfig is not None:
        kubeconfig = str((config_path.parent / Path(kubeconfig).expanduser()).resolve())

    def _str(key: str) -> str | None:
        val = data.get(key)
        return None if val is None else str(val)

    return MeshJoinConfig(
        config_path=config_path,
        kubeconfig=kubeconfig,
        namespace=_str("namespace"),
        service_account=_str("service_account"),
        secret_prefix=_str("secret_prefix"),
        label_key=_str("label_key"),
        label_value=_str("label_value"),
    )


def build_settings(
    cfg: MeshJoinConfig,
    *,
    kubeconfig: str | None = None,
    context: str | None = None,
    clusters: tuple[str, ...] | list[str] = (),
    namespace: str | None = None,
) -> JoinSettings:
    """Merge explicit flags over *cfg* over the built-in defaults."""
    label_key = cfg.label_key or DEFAULT_LABEL_KEY
    label_value = cfg.label_value or DEFAULT_LABEL_VALUE
    return JoinSettings(
        kubeconfig=kubeconfig or cfg.kubeconfig,
        context=context,
        clusters=tuple(clusters),
        namespace=namespace or cfg.namespace or DEFAULT_NAMESPACE,
        service_account=cfg.service_account or DEFAULT_SERVICE_ACCOUNT,
        secret_prefix=cfg.secret_prefix or DEFAULT_SECRET_PREFIX,
        labels=((label_key, label_value),),
    )
