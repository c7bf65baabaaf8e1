"""CLI entrypoint for SnapBack."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Optional

import requests
import typer

from snapback.api.dependencies import build_container
from snapback.core.config import get_settings
from snapback.domain.notifications import UserNotification
from snapback.ops.filesystem import LocalFilesystem
from snapback.ops.walker import IgnoreMatcher, load_ignore_patterns
from snapback.watch.watcher import Watcher, expand_patterns

app = typer.Typer(name="snapback", help="SnapBack command-line interface")
snapshots_app = typer.Typer(name="snapshots", help="Inspect, create and restore snapshots")
app.add_typer(snapshots_app, name="snapshots")

DEFAULT_HOST = "http://127.0.0.1:5175"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("SNAPBACK_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def decide(
    context_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON SaveContext"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask the engine what it would do for a save context."""
    payload = json.loads(context_file.read_text(encoding="utf-8"))
    resp = _request("POST", "/decide", host=host, json=payload)
    _echo(resp.json())


@app.command()
def status(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Show service status, rate-limit window and storage usage."""
    _echo(
        {
            "service": _request("GET", "/status", host=host).json(),
            "rate_limit": _request("GET", "/rate-limit", host=host).json(),
            "storage": _request("GET", "/storage", host=host).json(),
        }
    )


@snapshots_app.command("list")
def list_snapshots(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """List catalogued snapshots, newest first."""
    _echo(_request("GET", "/snapshots", host=host).json())


@snapshots_app.command("create")
def create_snapshot(
    files: Optional[list[str]] = typer.Argument(None, help="Workspace-relative files; omit for the whole workspace"),
    name: Optional[str] = typer.Option(None, "--name", help="Snapshot name"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Capture a manual snapshot."""
    resp = _request("POST", "/snapshots", host=host, json={"files": files or None, "name": name})
    _echo(resp.json())


@snapshots_app.command("restore")
def restore_snapshot(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    files: Optional[list[str]] = typer.Option(None, "--file", help="Restore only these files"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report conflicts instead of writing"),
    resolution: Optional[str] = typer.Option(
        None, "--resolution", help="use_snapshot, use_current or skip; applied to every conflict of a dry run"
    ),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Restore files from a snapshot."""
    body = {"files": files or None, "dry_run": dry_run, "resolution": resolution}
    resp = _request("POST", f"/snapshots/{snapshot_id}/restore", host=host, json=body)
    result = resp.json()
    _echo(result)
    if not result["ok"]:
        raise typer.Exit(code=1)


@snapshots_app.command("conflicts")
def conflicts(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Preview the files a restore would touch."""
    _echo(_request("GET", f"/snapshots/{snapshot_id}/conflicts", host=host).json())


@snapshots_app.command("delete")
def delete_snapshot(
    snapshot_id: str = typer.Argument(..., help="Snapshot identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a snapshot and its stored contents."""
    _echo(_request("DELETE", f"/snapshots/{snapshot_id}", host=host).json())


class EchoNotificationSink:
    async def show(self, notification: UserNotification, context: dict[str, Any]) -> None:
        typer.echo(f"[{notification.severity}] {notification.title}: {notification.message}")


@app.command()
def watch(
    path: Path = typer.Argument(..., exists=True, file_okay=False, help="Workspace to protect"),
) -> None:
    """Protect a workspace locally until interrupted."""
    root = path.expanduser().resolve()
    settings = get_settings().model_copy(update={"workspace_root": root})
    try:
        asyncio.run(_watch(settings))
    except KeyboardInterrupt:
        typer.echo("Stopped.")


async def _watch(settings) -> None:
    root = settings.workspace_root
    container = build_container(settings)
    container.service.sink = EchoNotificationSink()
    await container.start()
    patterns = await load_ignore_patterns(root, LocalFilesystem())
    watcher = Watcher()
    watcher.add_workspace(
        "workspace",
        root,
        container.service.on_file_change_threadsafe,
        exclude=expand_patterns(settings.watch_exclude),
        ignore=IgnoreMatcher(patterns),
    )
    watcher.start()
    typer.echo(f"Watching {root} (Ctrl+C to stop)")
    try:
        await asyncio.Event().wait()
    finally:
        watcher.close()
        await container.close()


if __name__ == "__main__":
    app()
