import asyncio
import json

import click


@click.group()
def main() -> None:
    """requestbench - HTTP request workbench with pluggable storage."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: from BENCH_HOST or 127.0.0.1).")
@click.option("--port", default=None, type=int, help="Bind port (default: from BENCH_PORT or 3102).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the storage HTTP service."""
    import uvicorn

    from requestbench.settings import BenchSettings

    settings = BenchSettings()

    uvicorn.run(
        "requestbench.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


# ---------------------------------------------------------------------------
# Workbench commands
# ---------------------------------------------------------------------------


def _parse_vars(pairs: tuple[str, ...]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            msg = f"Expected key=value, got {pair!r}"
            raise click.BadParameter(msg, param_hint="--var")
        variables[key.strip()] = value
    return variables


def _run(coro_factory):
    """Build a workbench from settings, run *coro_factory(workbench)*, and close it."""
    from requestbench.context import create_workbench
    from requestbench.log import setup_logging
    from requestbench.settings import BenchSettings

    settings = BenchSettings()
    setup_logging(settings.log_level, compact=True)

    async def runner():
        workbench = await create_workbench(settings)
        try:
            return await coro_factory(workbench)
        finally:
            await workbench.aclose()

    return asyncio.run(runner())


async def _activate(workbench, workspace_id: str | None) -> None:
    if workspace_id is None:
        return
    if workspace_id not in workbench.store.workspaces:
        msg = f"Unknown workspace '{workspace_id}'"
        raise click.ClickException(msg)
    error = await workbench.switch_workspace(workspace_id)
    if error is not None:
        click.echo(f"Warning: could not load collections: {error}", err=True)


@main.command()
def workspaces() -> None:
    """List workspaces (the active one is marked with *)."""

    async def list_workspaces(workbench):
        store = workbench.store
        for workspace in sorted(store.workspaces.values(), key=lambda ws: ws.created_at):
            marker = "*" if workspace.id == store.active_workspace_id else " "
            click.echo(f"{marker} {workspace.id}\t{workspace.name}\t{len(workspace.variables)} vars")

    _run(list_workspaces)


@main.command()
@click.option("--workspace", "workspace_id", default=None, help="Workspace id (default: default).")
def tree(workspace_id: str | None) -> None:
    """Print the collection tree of a workspace."""
    from requestbench.models.collection import iter_tree

    async def print_tree(workbench):
        await _activate(workbench, workspace_id)
        nodes = workbench.store.get_collection_tree()
        if not nodes:
            click.echo("(empty)")
            return
        for depth, item in iter_tree(nodes):
            indent = "  " * depth
            if item.type == "folder":
                click.echo(f"{indent}{item.name}/")
            else:
                click.echo(f"{indent}{item.method:<7} {item.name}  [{item.id}]")

    _run(print_tree)


@main.command()
@click.argument("request_id")
@click.option("--workspace", "workspace_id", default=None, help="Workspace id (default: default).")
@click.option("--var", "var_pairs", multiple=True, help="Override a variable, as key=value. Repeatable.")
def send(request_id: str, workspace_id: str | None, var_pairs: tuple[str, ...]) -> None:
    """Send a stored request and print the normalized response as JSON."""
    from requestbench.execution.pipeline import prepare_request
    from requestbench.execution.resolver import find_placeholders

    extra = _parse_vars(var_pairs)

    async def send_one(workbench):
        await _activate(workbench, workspace_id)
        request = workbench.store.get_item(request_id)
        if request is None or request.type != "request":
            msg = f"Request '{request_id}' not found in workspace '{workbench.store.active_workspace_id}'"
            raise click.ClickException(msg)

        prepared = prepare_request(request, {**workbench.store.variables(), **extra})
        leftover = find_placeholders(prepared.url)
        for value in prepared.headers.values():
            leftover.extend(find_placeholders(value))
        if prepared.content:
            leftover.extend(find_placeholders(prepared.content))
        if leftover:
            click.echo(f"Warning: unresolved variables: {', '.join(sorted(set(leftover)))}", err=True)

        return await workbench.send(request_id, extra)

    response = _run(send_one)
    if response is None:
        raise click.ClickException("Send was cancelled")
    click.echo(json.dumps(response.model_dump(mode="json"), indent=2))
    if response.is_network_error:
        raise SystemExit(1)
