"""CLI commands for inbox-agent."""

import asyncio
import json
import signal
import sys
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from inbox_agent import __brand__, __logo__, __version__

app = typer.Typer(
    name="inbox-agent",
    help=f"{__logo__} {__brand__} - Debounced messaging inbox driven by an AI step planner",
    no_args_is_help=True,
)

console = Console()


def _cli_fail(cause: str, fix: str | None = None, *, exit_code: int = 1) -> None:
    """Print a consistent CLI error block and exit."""
    console.print(f"[red]{cause}[/red]")
    if fix:
        console.print(f"[dim]Fix: {fix}[/dim]")
    raise typer.Exit(exit_code)


def _open_store():
    from inbox_agent.store.kv import KeyValueStore
    from inbox_agent.utils.helpers import get_data_path

    return KeyValueStore(get_data_path() / "store")


def _collect_modules(config: Any) -> list[Any]:
    """Built-in channel modules plus installed entry-point modules, filtered by policy."""
    from inbox_agent.channels import BUILTIN_MODULES
    from inbox_agent.modules.loader import filter_modules, load_installed_modules

    modules: list[Any] = [cls() for cls in BUILTIN_MODULES]
    if config.modules.enabled:
        modules.extend(load_installed_modules())
    return filter_modules(modules, allow=config.modules.allow, deny=config.modules.deny)


def _find_module(modules: list[Any], name: str) -> Any:
    from inbox_agent.modules.loader import module_label

    for module in modules:
        if module_label(module) == name:
            return module
    known = ", ".join(module_label(m) for m in modules) or "none"
    _cli_fail(f"Unknown module '{name}'.", f"Use one of: {known}")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} {__brand__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
):
    """inbox-agent - Debounced messaging inbox driven by an AI step planner."""
    pass


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind host (default: server.host)"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port (default: server.port)"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Run the webhook and admin HTTP server."""
    from inbox_agent.agent.loop import AgentLoop
    from inbox_agent.channels.graph import GraphMessagingGateway
    from inbox_agent.config.loader import get_config_path, load_config
    from inbox_agent.errors import ConfigurationError
    from inbox_agent.identity.resolver import IdentityResolver
    from inbox_agent.modules.base import ModuleContext
    from inbox_agent.modules.registry import ModuleRegistry
    from inbox_agent.observability.metrics import MetricsStore
    from inbox_agent.providers.factory import build_reasoning_client
    from inbox_agent.runtime.supervisor import CLEAN_EXIT_CODE, FATAL_EXIT_CODE, ProcessControl
    from inbox_agent.security.auth import AdminAuth
    from inbox_agent.server.http import HttpServer
    from inbox_agent.server.routes import build_router
    from inbox_agent.utils.helpers import get_data_path
    from inbox_agent.utils.logging import configure_logging

    config = load_config()
    configure_logging("DEBUG" if verbose else config.logging.level, config.logging.file or None)
    if config.admin.uses_default_secret:
        console.print("[yellow]Warning: default admin.jwtSecret in use[/yellow]")
        console.print(f"  Set admin.jwtSecret in {get_config_path()} before exposing the admin API.")

    store = _open_store()
    metrics = MetricsStore(get_data_path() / "metrics" / "events.jsonl")
    try:
        reasoning = build_reasoning_client(config, metrics=metrics)
    except ConfigurationError as e:
        _cli_fail(str(e), f"Set reasoning.apiKey in {get_config_path()}")

    registry = ModuleRegistry(store)
    identity = IdentityResolver(store)
    agent_loop = AgentLoop(
        registry,
        reasoning,
        system_prompt=config.reasoning.system_prompt,
        metrics=metrics,
    )
    modules = _collect_modules(config)
    bind_host = host or config.server.host
    bind_port = config.server.port if port is None else port

    async def run() -> int:
        control = ProcessControl()
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(control.handle_loop_exception)
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, control.stop, CLEAN_EXIT_CODE)
            except NotImplementedError:
                break

        context = ModuleContext(
            store=store,
            registry=registry,
            identity=identity,
            gateway=GraphMessagingGateway(),
            on_batch=agent_loop.handle_batch,
        )
        registry.load(modules, context)
        enabled = [d.name for d in registry.descriptors if d.enabled]
        disabled = [d.name for d in registry.descriptors if not d.enabled]
        if enabled:
            console.print(f"[green]✓[/green] Modules enabled: {', '.join(enabled)}")
        else:
            console.print("[yellow]Warning: No modules enabled[/yellow]")
        if disabled:
            console.print(f"[dim]Modules disabled: {', '.join(disabled)}[/dim]")

        router = build_router(
            registry,
            auth=AdminAuth(config.admin.jwt_secret),
            control=control,
            restart_grace_seconds=config.admin.restart_grace_seconds,
            metrics=metrics,
        )
        server = HttpServer(router, host=bind_host, port=bind_port)
        try:
            await server.start()
        except OSError as e:
            console.print(f"[red]Server startup failed:[/red] {e}")
            return FATAL_EXIT_CODE

        console.print(f"{__logo__} {__brand__} listening on http://{bind_host}:{server.bound_port}")
        try:
            return await control.wait()
        finally:
            await server.stop()
            for descriptor in registry.descriptors:
                if descriptor.enabled:
                    await descriptor.instance.close()

    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
        code = CLEAN_EXIT_CODE
    raise typer.Exit(code)


@app.command()
def supervise(
    host: str = typer.Option(None, "--host", help="Bind host passed to serve"),
    port: int = typer.Option(None, "--port", "-p", help="Bind port passed to serve"),
):
    """Run `serve` as a child process and restart it when it asks to."""
    from inbox_agent.runtime.supervisor import supervise as run_supervisor
    from inbox_agent.utils.logging import configure_logging

    configure_logging()
    command = [sys.executable, "-m", "inbox_agent", "serve"]
    if host:
        command += ["--host", host]
    if port is not None:
        command += ["--port", str(port)]
    console.print(f"{__logo__} Supervising: {' '.join(command)}")
    raise typer.Exit(run_supervisor(command))


@app.command()
def token(
    ttl: int = typer.Option(None, "--ttl", help="Lifetime in seconds (default: admin.tokenTtlSeconds, 0 = no expiry)"),
    ip: str = typer.Option(None, "--ip", help="Bind the token to this client IP"),
):
    """Issue an admin bearer token."""
    from inbox_agent.config.loader import load_config
    from inbox_agent.security.auth import issue_admin_token

    config = load_config()
    lifetime = config.admin.token_ttl_seconds if ttl is None else ttl
    console.print(issue_admin_token(config.admin.jwt_secret, ttl_seconds=lifetime, ip=ip), soft_wrap=True)


# ============================================================================
# Modules
# ============================================================================


modules_app = typer.Typer(help="Inspect and toggle capability modules")
app.add_typer(modules_app, name="modules")


@modules_app.command("list")
def modules_list():
    """List modules with their enabled flag and actions."""
    from inbox_agent.config.loader import load_config
    from inbox_agent.modules.loader import module_label
    from inbox_agent.modules.registry import ModuleRegistry

    registry = ModuleRegistry(_open_store())
    modules = _collect_modules(load_config())
    if not modules:
        console.print("[yellow]No modules available.[/yellow]")
        return

    table = Table(title="Modules")
    table.add_column("Module", style="cyan")
    table.add_column("Mount")
    table.add_column("Enabled")
    table.add_column("Actions")
    for module in modules:
        name = module_label(module)
        enabled = registry.is_enabled(name)
        actions = ", ".join(a.name for a in module.action_descriptors()) or "-"
        table.add_row(
            name,
            module.mount_path,
            "[green]yes[/green]" if enabled else "[yellow]no[/yellow]",
            actions,
        )
    console.print(table)


def _set_module_enabled(name: str, enabled: bool) -> None:
    from inbox_agent.config.loader import load_config
    from inbox_agent.modules.registry import ModuleRegistry

    module = _find_module(_collect_modules(load_config()), name)
    registry = ModuleRegistry(_open_store())
    registry.seed(module)
    changed = registry.set_enabled(name, enabled)
    state = "enabled" if enabled else "disabled"
    if changed:
        console.print(f"[green]✓[/green] Module '{name}' {state}. Restart the server to apply.")
    else:
        console.print(f"Module '{name}' already {state}.")


@modules_app.command("enable")
def modules_enable(name: str = typer.Argument(..., help="Module name")):
    """Enable a module (takes effect on restart)."""
    _set_module_enabled(name, True)


@modules_app.command("disable")
def modules_disable(name: str = typer.Argument(..., help="Module name")):
    """Disable a module (takes effect on restart)."""
    _set_module_enabled(name, False)


# ============================================================================
# Module settings
# ============================================================================


config_app = typer.Typer(help="Read and write module settings")
app.add_typer(config_app, name="config")


def _mask(value: Any, setting_type: str) -> str:
    text = value if isinstance(value, str) else json.dumps(value)
    if setting_type == "secret" and text:
        return "***" + text[-4:] if len(text) > 8 else "***"
    return text


@config_app.command("show")
def config_show(
    name: str = typer.Argument(..., help="Module name"),
    reveal: bool = typer.Option(False, "--reveal", help="Print secret values in full"),
):
    """Show a module's settings."""
    from inbox_agent.config.loader import load_config
    from inbox_agent.modules.registry import ModuleRegistry

    module = _find_module(_collect_modules(load_config()), name)
    registry = ModuleRegistry(_open_store())
    registry.seed(module)

    table = Table(title=f"{name} settings")
    table.add_column("Key", style="cyan")
    table.add_column("Type")
    table.add_column("Required")
    table.add_column("Value")
    table.add_column("Description", style="dim")
    for key, entry in registry.get_settings(name).items():
        setting_type = entry["type"]
        value = entry["value"]
        shown = json.dumps(value) if not isinstance(value, str) else value
        if not reveal:
            shown = _mask(value, setting_type)
        table.add_row(key, setting_type, "yes" if entry["required"] else "no", shown, entry["description"])
    console.print(table)


@config_app.command("set")
def config_set(
    name: str = typer.Argument(..., help="Module name"),
    pairs: list[str] = typer.Argument(..., help="key=value pairs"),
):
    """Update module settings (values are parsed as JSON when possible)."""
    from inbox_agent.config.loader import load_config
    from inbox_agent.modules.registry import ModuleRegistry

    updates: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            _cli_fail(f"Invalid setting '{pair}'.", "Use key=value")
        updates[key.strip()] = value

    module = _find_module(_collect_modules(load_config()), name)
    registry = ModuleRegistry(_open_store())
    registry.seed(module)
    applied = registry.update_settings(name, updates)
    console.print(f"[green]✓[/green] Updated {', '.join(sorted(applied))} for '{name}'")


# ============================================================================
# Users
# ============================================================================


users_app = typer.Typer(help="Inspect and merge user identities")
app.add_typer(users_app, name="users")


@users_app.command("list")
def users_list():
    """List internal users and their external ids."""
    from inbox_agent.identity.resolver import IdentityResolver

    mappings = IdentityResolver(_open_store()).mappings()
    if not mappings:
        console.print("No users yet.")
        return
    table = Table(title="Users")
    table.add_column("Internal ID", style="cyan")
    table.add_column("External IDs")
    for mapping in mappings:
        table.add_row(mapping.internal_id, ", ".join(mapping.external_ids))
    console.print(table)


@users_app.command("resolve")
def users_resolve(external_id: str = typer.Argument(..., help="External id, e.g. whatsapp:15551234567")):
    """Resolve (or assign) the internal id for an external id."""
    from inbox_agent.identity.resolver import IdentityResolver

    try:
        internal_id = IdentityResolver(_open_store()).resolve(external_id)
    except ValueError as e:
        _cli_fail(str(e))
    console.print(internal_id)


@users_app.command("merge")
def users_merge(external_ids: list[str] = typer.Argument(..., help="External ids of the same person")):
    """Merge every identity touching the given external ids into one user."""
    from inbox_agent.identity.resolver import IdentityResolver

    try:
        internal_id = IdentityResolver(_open_store()).merge(external_ids)
    except ValueError as e:
        _cli_fail(str(e))
    console.print(f"[green]✓[/green] {internal_id}")


if __name__ == "__main__":
    app()
