"""mesh-join CLI: join Kubernetes clusters into a multi-cluster mesh.

Commands:
    list    Show the cluster contexts available in the kubeconfig
    join    Exchange control-plane credentials between two clusters
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from typing import NoReturn

import click

from mesh_join import __version__
from mesh_join.config import MeshJoinConfig, build_settings, load_config
from mesh_join.errors import MeshJoinError
from mesh_join.exchange.exchanger import CredentialExchanger
from mesh_join.kubeconfig.loader import KubeConfigStore
from mesh_join.models import ExchangeOutcome

REQUIRED_CLUSTERS = 2


@dataclass(frozen=True)
class GlobalOptions:
    """Flags shared by every subcommand."""

    cfg: MeshJoinConfig
    kubeconfig: str | None
    context: str | None
    namespace: str | None


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _load_store(opts: GlobalOptions) -> KubeConfigStore:
    return KubeConfigStore.load(
        kubeconfig=opts.kubeconfig or opts.cfg.kubeconfig,
        context=opts.context,
    )


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--kubeconfig", default=None, help="kubeconfig file")
@click.option("--context", default=None, help="current context")
@click.option("--namespace", "-n", default=None, help="control-plane namespace")
@click.option(
    "--config", "config_path", default=None,
    help="Path to mesh-join.yaml (auto-discovered by default)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    kubeconfig: str | None,
    context: str | None,
    namespace: str | None,
    config_path: str | None,
    verbose: bool,
) -> None:
    """mesh-join: set up a multi-cluster mesh."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        cfg = load_config(config_path)
    except MeshJoinError as e:
        _fail(str(e))
    ctx.obj = GlobalOptions(
        cfg=cfg, kubeconfig=kubeconfig, context=context, namespace=namespace,
    )


# --- list command ---


@cli.command("list")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_obj
def list_clusters(opts: GlobalOptions, json_output: bool) -> None:
    """List available clusters."""
    try:
        contexts = _load_store(opts).contexts()
    except MeshJoinError as e:
        _fail(str(e))

    if json_output:
        click.echo(json.dumps([c.model_dump(mode="json") for c in contexts], indent=2))
        return

    rows = [("NAME", "CLUSTER", "AUTHINFO", "NAMESPACE")]
    for c in contexts:
        name = f"*{c.name}" if c.current else c.name
        rows.append((name, c.cluster, c.auth_info, c.namespace))
    widths = [max(len(row[i]) for row in rows) for i in range(3)]
    for row in rows:
        line = "  ".join(cell.ljust(w) for cell, w in zip(row[:3], widths, strict=True))
        click.echo(f"{line}  {row[3]}".rstrip())


# --- join command ---


@cli.command()
@click.option(
    "--cluster", "clusters", multiple=True,
    help="Cluster context to join (repeat for each cluster)",
)
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_obj
def join(opts: GlobalOptions, clusters: tuple[str, ...], json_output: bool) -> None:
    """Join clusters together in a mesh."""
    if len(clusters) != REQUIRED_CLUSTERS:
        _fail(
            f"only {REQUIRED_CLUSTERS} clusters supported - "
            f"{len(clusters)} clusters specified"
        )

    settings = build_settings(
        opts.cfg,
        kubeconfig=opts.kubeconfig,
        context=opts.context,
        clusters=clusters,
        namespace=opts.namespace,
    )

    def _progress(src: str, dst: str) -> None:
        if not json_output:
            click.echo(f"joining {src} to {dst}")

    try:
        store = KubeConfigStore.load(kubeconfig=settings.kubeconfig, context=settings.context)
        results = CredentialExchanger(settings, store).run(on_pair=_progress)
    except MeshJoinError as e:
        _fail(str(e))

    if json_output:
        click.echo(json.dumps([r.model_dump(mode="json") for r in results], indent=2))
        return

    for r in results:
        verb = "created" if r.outcome == ExchangeOutcome.CREATED else "updated"
        click.echo(f"  secret {r.namespace}/{r.secret_name} {verb} in {r.destination}")
    click.echo(click.style("Joined", fg="green") + f" {', '.join(clusters)}")
