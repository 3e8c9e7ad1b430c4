"""CLI entry points for Script Runner.

``run`` executes a script file (or stdin) in a pooled local shell session,
``call`` invokes one of the tools with JSON arguments, and ``shells``,
``tools``, ``config`` and ``version`` report what is available.
"""

import asyncio
import json
import sys
import uuid
from pathlib import Path
from typing import Any, TextIO

import click
import pyfiglet
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from scriptrunner.core.config import RunnerConfig, load_config
from scriptrunner.core.dialect import ShellKind, detect_shell_kind, extension_for
from scriptrunner.core.events import EventBus, StreamEvent
from scriptrunner.core.exceptions import ConfigurationError, ScriptRunnerException
from scriptrunner.core.hosts import SubprocessShellHost
from scriptrunner.core.logger import ScriptRunnerLogger
from scriptrunner.core.results import ExecutionResult, OutputSnapshot, format_output
from scriptrunner.core.runner import ScriptRunner
from scriptrunner.core.tool_protocol import ToolCall, ToolResult
from scriptrunner.tools import ToolContext, create_default_registry
from scriptrunner.version import DISPLAY_NAME, PACKAGE_NAME, VERSION

# Load .env file from current directory or parent directories
load_dotenv()

console = Console()
err_console = Console(stderr=True)

SHELL_CHOICES = [kind.value for kind in ShellKind]


def print_logo() -> None:
    """Print Script Runner logo."""
    logo_text = pyfiglet.figlet_format("SCRIPT RUNNER", font="small")
    console.print(logo_text, style="bold cyan")


def display_event(event: StreamEvent) -> None:
    """Display a lifecycle event on stderr (verbose mode)."""
    data = event.data

    if event.type == "session_created":
        err_console.print(
            f"[dim cyan]  ○ Session {event.source} created: {data.get('display_name')}[/dim cyan]"
        )
    elif event.type == "session_ready":
        err_console.print(f"[dim cyan]  ○ Session {event.source} ready[/dim cyan]")
    elif event.type == "session_closed":
        err_console.print(f"[dim]  ○ Session {event.source} closed[/dim]")
    elif event.type == "command_started":
        err_console.print(f"[cyan]  ▸ {event.source}[/cyan] [dim]({data.get('shell')})[/dim]")
        err_console.print(f"      {data.get('invocation', '')}", style="dim", markup=False)
    elif event.type == "command_completed":
        if data.get("error"):
            err_console.print(f"[red]  ✗ {event.source}[/red] [dim]{data['error']}[/dim]")
        else:
            err_console.print(f"[green]  ✓ {event.source}[/green]")
    elif event.type == "command_timeout":
        err_console.print(
            f"[yellow]  ◆ {event.source} still running after {data.get('timeout_ms')}ms[/yellow]"
        )
    elif event.type == "command_interrupted":
        err_console.print(f"[yellow]  ◆ Interrupt sent to session {data.get('session_id')}[/yellow]")
    elif event.type == "error":
        err_console.print(f"[bold red]  ✗ {data.get('error', 'Unknown error')}[/bold red]")


def build_runner(config: RunnerConfig, verbose: bool = False) -> ScriptRunner:
    """Create a runner over the local subprocess host."""
    logger = ScriptRunnerLogger(level="DEBUG" if verbose else None, console=verbose)
    event_bus = None
    if verbose:
        event_bus = EventBus(logger=logger)
        event_bus.subscribe(display_event)
    return ScriptRunner(SubprocessShellHost(), config=config, logger=logger, event_bus=event_bus)


def _load_config_or_exit(profile: str) -> RunnerConfig:
    try:
        return load_config(profile)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        sys.exit(1)


@click.group(invoke_without_command=True)
@click.version_option(version=VERSION, prog_name=PACKAGE_NAME)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Script Runner.

    Run multi-line scripts in reusable shell sessions, with timeouts and
    background execution.
    """
    if ctx.invoked_subcommand is None:
        print_logo()
        console.print("[bold]Available Commands:[/bold]\n")
        console.print("  [cyan]scriptrunner run[/cyan]     - Run a script file (or '-' for stdin)")
        console.print("  [cyan]scriptrunner shells[/cyan]  - List supported shells")
        console.print("  [cyan]scriptrunner tools[/cyan]   - List tool definitions")
        console.print("  [cyan]scriptrunner call[/cyan]    - Invoke a tool with JSON arguments")
        console.print("  [cyan]scriptrunner config[/cyan]  - Show configuration profiles\n")
        console.print("[dim]Run 'scriptrunner --help' for more information[/dim]\n")


@cli.command()
@click.argument("script", type=click.File("r", encoding="utf-8"))
@click.option("--shell", "-s", type=click.Choice(SHELL_CHOICES), help="Shell to run the script with")
@click.option("--cwd", "-C", "working_directory", help="Working directory for the session")
@click.option("--timeout-ms", "-t", type=click.IntRange(min=1), help="Foreground timeout in ms")
@click.option("--keep-script", is_flag=True, help="Keep the staged script file")
@click.option("--background", "-b", is_flag=True, help="Return immediately with a command id")
@click.option(
    "--close-on-timeout", is_flag=True, help="Interrupt the script when the timeout is reached"
)
@click.option(
    "--follow", "-f", is_flag=True, help="After a timeout or background start, wait for the rest"
)
@click.option("--profile", "-p", default="default", help="Configuration profile")
@click.option("--verbose", "-v", is_flag=True, help="Show session and command events")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
def run(
    script: TextIO,
    shell: str | None,
    working_directory: str | None,
    timeout_ms: int | None,
    keep_script: bool,
    background: bool,
    close_on_timeout: bool,
    follow: bool,
    profile: str,
    verbose: bool,
    as_json: bool,
) -> None:
    """Run SCRIPT in a pooled shell session.

    Examples:
        scriptrunner run build.sh --shell bash --timeout-ms 30000
        echo 'Get-Date' | scriptrunner run - --shell powershell
    """
    content = script.read()
    config = _load_config_or_exit(profile)
    runner = build_runner(config, verbose)

    async def _run() -> tuple[ExecutionResult, OutputSnapshot | None]:
        try:
            result = await runner.run_script(
                content,
                shell=shell,
                working_directory=working_directory,
                timeout_ms=timeout_ms,
                keep_script=keep_script,
                is_background=background,
                close_on_timeout=close_on_timeout,
            )
            snapshot = None
            if follow and result.command_id and (result.is_background or result.timed_out):
                snapshot = await runner.get_output(result.command_id, wait_for_completion=True)
            return result, snapshot
        finally:
            await runner.shutdown()

    try:
        result, snapshot = asyncio.run(_run())
    except ScriptRunnerException as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if as_json:
        payload: dict[str, Any] = {"result": result.to_dict()}
        if snapshot is not None:
            payload["followed"] = snapshot.to_dict()
        click.echo(json.dumps(payload, indent=2))
    else:
        console.print(format_output(result, keep_script), markup=False, highlight=False)
        if snapshot is not None:
            console.print(Panel(f"Command {snapshot.command_id}: {snapshot.status}", expand=False))
            console.print(snapshot.output or "(no output)", markup=False, highlight=False)
        elif background and not follow:
            err_console.print(
                "[dim]Background commands stop when the CLI exits; use --follow to wait.[/dim]"
            )

    sys.exit(result.exit_code)


@cli.command()
def shells() -> None:
    """List supported shells and the local default."""
    local_default = detect_shell_kind(SubprocessShellHost().default_shell_path())

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Shell", style="green")
    table.add_column("Name")
    table.add_column("Extension")
    table.add_column("POSIX", justify="center")
    table.add_column("Default", justify="center")

    for kind in ShellKind:
        table.add_row(
            kind.value,
            kind.label,
            extension_for(kind),
            "✓" if kind.is_posix else "",
            "✓" if kind is local_default else "",
        )

    console.print(table)


@cli.command()
@click.option("--profile", "-p", default="default", help="Configuration profile")
def tools(profile: str) -> None:
    """List tool definitions."""
    config = _load_config_or_exit(profile)
    runner = build_runner(config)
    registry = create_default_registry(ToolContext(runner=runner, logger=runner.logger))

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Tool", style="green")
    table.add_column("Parameters")
    table.add_column("Description")

    for definition in registry.get_definitions():
        params = definition.parameters.get("properties", {})
        required = set(definition.parameters.get("required", []))
        names = [f"{name}*" if name in required else name for name in params]
        table.add_row(definition.name, ", ".join(names) or "-", definition.description)

    console.print(table)


@cli.command()
@click.argument("tool_name")
@click.option("--args", "-a", "arguments", default="{}", help="Tool arguments as a JSON object")
@click.option("--profile", "-p", default="default", help="Configuration profile")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--verbose", "-v", is_flag=True, help="Show session and command events")
def call(tool_name: str, arguments: str, profile: str, yes: bool, verbose: bool) -> None:
    """Invoke TOOL_NAME with JSON arguments.

    Examples:
        scriptrunner call run_bash_script --args '{"script": "ls", "shell": "bash"}'
        scriptrunner call get_version
    """
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as e:
        console.print(f"[bold red]Invalid --args JSON:[/bold red] {e}")
        sys.exit(1)
    if not isinstance(parsed, dict):
        console.print("[bold red]--args must be a JSON object[/bold red]")
        sys.exit(1)

    config = _load_config_or_exit(profile)
    runner = build_runner(config, verbose)
    registry = create_default_registry(
        ToolContext(runner=runner, logger=runner.logger, config=config.to_dict())
    )

    tool = registry.get(tool_name)
    if tool is not None and tool.get_definition().safety.get("requires_confirmation") and not yes:
        prepared = tool.prepare_invocation(parsed)
        console.print(Panel(prepared.message or prepared.invocation_message, title=prepared.title))
        if not click.confirm("Run it?", default=True):
            console.print("[dim]Cancelled[/dim]")
            return

    async def _call() -> ToolResult:
        try:
            return await registry.execute(ToolCall(id=uuid.uuid4().hex, name=tool_name, arguments=parsed))
        finally:
            await runner.shutdown()

    try:
        result = asyncio.run(_call())
    except ScriptRunnerException as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    if result.output:
        console.print(result.output, markup=False, highlight=False)
    if not result.success:
        console.print(f"[bold red]{result.error_code or 'Error'}:[/bold red] {result.error}")
        sys.exit(1)


@cli.group()
def config() -> None:
    """Manage configuration profiles."""
    pass


@config.command("list")
def config_list() -> None:
    """List available configuration profiles."""
    profiles_dir = Path.home() / ".scriptrunner" / "profiles"

    if not profiles_dir.exists():
        console.print("[yellow]No profiles directory found[/yellow]")
        console.print(f"[dim]Create profiles in: {profiles_dir}[/dim]")
        return

    profiles = list(profiles_dir.glob("*.json"))

    if not profiles:
        console.print("[yellow]No profiles found[/yellow]")
        return

    console.print("[bold]Available Profiles:[/bold]\n")
    for profile_file in sorted(profiles):
        console.print(f"  • {profile_file.stem}")


@config.command("show")
@click.argument("profile_name", default="default")
def config_show(profile_name: str) -> None:
    """Show the effective configuration for a profile.

    Args:
        profile_name: Profile name to display
    """
    try:
        config_data = load_config(profile_name)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)

    timeout = config_data.default_timeout_ms
    console.print(f"[bold]Profile: {profile_name}[/bold]\n")
    console.print(f"Default Timeout: {f'{timeout}ms' if timeout else 'none'}")
    console.print(f"Readiness Timeout: {config_data.readiness_timeout_s}s")
    console.print(f"Retained Commands: {config_data.max_retained_commands}")
    console.print(f"Default Shell: {config_data.default_shell or 'auto'}")
    console.print(f"Session Name: {config_data.session_base_name}")
    console.print(f"Temp Directory: {config_data.temp_dir_name}")


@cli.command()
def version() -> None:
    """Show version information."""
    console.print(f"{DISPLAY_NAME} ({PACKAGE_NAME}) {VERSION}")


if __name__ == "__main__":
    cli()
