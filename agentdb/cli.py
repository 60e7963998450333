"""
AgentDB CLI

Command-line interface for talking to a PostgreSQL database.

Usage:
    agentdb chat [URL]                     # Interactive REPL mode
    agentdb connect NAME URL               # Save a named connection
    agentdb config                         # Show stored configuration
    agentdb config default NAME            # Choose the default connection
    agentdb serve                          # Run the HTTP/WebSocket API
"""

import asyncio
import csv
import json
import logging
import subprocess
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from agentdb import __version__, settings_store
from agentdb.agents.executor import ExecutionResult
from agentdb.auth.base import AuthError
from agentdb.auth.tokens import load_auth
from agentdb.config import get_settings
from agentdb.connectors.base import ConnectorError
from agentdb.connectors.factory import mask_url
from agentdb.pipeline.events import ChatEvent, MessageSink
from agentdb.pipeline.orchestrator import ChatOrchestrator
from agentdb.pipeline.session import AgentSession
from agentdb.schema.models import TableNode

console = Console()

MAX_DISPLAY_ROWS = 50

HELP_TEXT = """\
[bold]Commands[/bold]
  /help                 Show this help
  /tables               List tables and views
  /describe <table>     Show the columns of a table (schema.table or table)
  /relations <table>    Tables linked to a table through foreign keys
  /search <text>        Search tables by table, schema or column name
  /sql <statement>      Run a statement directly
  /write                Toggle read-only mode
  /clear                Forget the conversation history
  /reconnect            Reconnect and re-map the schema
  /export json|csv      Save the last result to a file
  /stats                Show session statistics
  /quit                 Leave
"""


def configure_cli_logging() -> None:
    logging.disable(logging.CRITICAL)
    logging.basicConfig(level=logging.CRITICAL)
    for logger_name in ("agentdb", "httpx", "asyncpg", "asyncio"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


# ============================================================================
# Rendering
# ============================================================================


def render_rows(rows: list[dict[str, Any]], columns: list[str]) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    for column in columns:
        table.add_column(column)
    for row in rows[:MAX_DISPLAY_ROWS]:
        table.add_row(*["NULL" if row.get(col) is None else str(row.get(col)) for col in columns])
    return table


def render_result(data: dict[str, Any]) -> None:
    rows = data.get("rows") or []
    columns = data.get("columns") or []
    footer = f"{data.get('rowCount', len(rows))} row(s) in {data.get('duration', 0)}ms"
    if rows and columns:
        console.print(render_rows(rows, columns))
        if len(rows) > MAX_DISPLAY_ROWS:
            console.print(f"[dim]Showing first {MAX_DISPLAY_ROWS} rows.[/dim]")
    console.print(f"[dim]{footer}[/dim]")


class ConsoleSink(MessageSink):
    """Prints turn events to the terminal as they arrive."""

    async def send(self, event: ChatEvent) -> None:
        if event.type == "thinking":
            console.print("[dim]Thinking...[/dim]")
        elif event.type == "text":
            console.print(Markdown(event.content or ""))
        elif event.type == "sql":
            console.print(
                Panel(
                    Syntax(event.content or "", "sql", theme="monokai", word_wrap=True),
                    title="[bold cyan]SQL[/bold cyan]",
                )
            )
        elif event.type == "executing":
            console.print("[dim]Executing...[/dim]")
        elif event.type == "result":
            render_result(event.data or {})
        elif event.type == "summary":
            console.print(Panel(Markdown(event.content or ""), title="[bold green]Answer[/bold green]"))
        elif event.type == "error":
            style = "yellow" if (event.data or {}).get("blocked") else "red"
            console.print(f"[{style}]{event.content}[/{style}]")


async def confirm_destructive(sql: str) -> bool:
    console.print("[yellow]This statement modifies the database.[/yellow]")
    return click.confirm("Execute it?", default=False)


def print_tables(tables: list[TableNode]) -> None:
    if not tables:
        console.print("[dim]No tables found.[/dim]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Table")
    table.add_column("Kind")
    table.add_column("Columns", justify="right")
    table.add_column("Rows (est.)", justify="right")
    for node in tables:
        table.add_row(node.key, node.kind, str(len(node.columns)), str(node.estimated_row_count))
    console.print(table)


def print_table_detail(node: TableNode) -> None:
    table = Table(title=f"{node.key} ({node.kind})", show_header=True, header_style="bold cyan")
    table.add_column("Column")
    table.add_column("Type")
    table.add_column("Null")
    table.add_column("Key")
    table.add_column("Default")
    for column in node.columns:
        keys = []
        if column.is_primary_key:
            keys.append("PK")
        for edge in node.outgoing_refs:
            if edge.column == column.name:
                keys.append(f"FK→{edge.referenced_table}.{edge.referenced_column}")
        table.add_row(
            column.name,
            column.declared_type,
            "yes" if column.nullable else "no",
            " ".join(keys),
            column.default_value or "",
        )
    console.print(table)
    if node.indexes:
        console.print(
            "[dim]Indexes: "
            + ", ".join(f"{index.name} ({', '.join(index.columns)})" for index in node.indexes)
            + "[/dim]"
        )


def resolve_table(session: AgentSession, ref: str) -> TableNode | None:
    """Accept ``schema.table`` or a bare table name."""
    if "." in ref:
        schema, name = ref.split(".", 1)
        return session.schema_engine.get_table(schema, name)
    graph = session.graph
    if graph is None:
        return None
    matches = [table for table in graph.tables if table.name == ref]
    return matches[0] if matches else None


def export_result(result: ExecutionResult, fmt: str, directory: Path | None = None) -> Path:
    """Write result rows to ``agentdb-export-<timestamp>.<fmt>``."""
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    path = (directory or Path.cwd()) / f"agentdb-export-{stamp}.{fmt}"
    columns = result.column_names
    if fmt == "json":
        path.write_text(json.dumps(result.rows, indent=2, default=str))
    else:
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=columns)
            writer.writeheader()
            for row in result.rows:
                writer.writerow({column: row.get(column) for column in columns})
    return path


def resolve_database_url(url: str | None) -> str | None:
    if url:
        return url
    settings = get_settings()
    if settings.database.url:
        return settings.database.url
    default = settings_store.get_default_connection()
    return default["url"] if default else None


# ============================================================================
# REPL
# ============================================================================


class ChatREPL:
    """Slash-command dispatcher around one session."""

    def __init__(self, session: AgentSession):
        self.session = session
        self.sink = ConsoleSink()

    async def handle(self, line: str) -> bool:
        """Process one input line. Returns False when the user wants to leave."""
        if not line.startswith("/"):
            await self.session.orchestrator.handle_message(line, self.sink)
            return True

        command, _, arg = line[1:].partition(" ")
        arg = arg.strip()
        command = command.lower()

        if command in ("quit", "exit", "q"):
            return False
        if command == "help":
            console.print(HELP_TEXT)
        elif command == "tables":
            graph = self.session.graph
            print_tables(graph.tables if graph else [])
        elif command == "describe":
            self._describe(arg)
        elif command == "relations":
            self._relations(arg)
        elif command == "search":
            if not arg:
                console.print("[yellow]Usage: /search <text>[/yellow]")
            else:
                print_tables(self.session.schema_engine.search_tables(arg))
        elif command == "sql":
            await self._run_sql(arg)
        elif command == "write":
            enabled = not self.session.executor.is_read_only()
            self.session.set_read_only_mode(enabled)
            label = "[green]on[/green]" if enabled else "[red]off[/red]"
            console.print(f"Read-only mode {label}")
        elif command == "clear":
            self.session.client.clear_history()
            console.print("[dim]Conversation cleared.[/dim]")
        elif command == "reconnect":
            await self._reconnect()
        elif command == "export":
            self._export(arg.lower() or "json")
        elif command == "stats":
            self._stats()
        else:
            console.print(f"[yellow]Unknown command: /{command}. Type /help.[/yellow]")
        return True

    def _describe(self, ref: str) -> None:
        if not ref:
            console.print("[yellow]Usage: /describe <table>[/yellow]")
            return
        node = resolve_table(self.session, ref)
        if node is None:
            console.print(f"[red]Table not found: {ref}[/red]")
            return
        print_table_detail(node)

    def _relations(self, ref: str) -> None:
        if not ref:
            console.print("[yellow]Usage: /relations <table>[/yellow]")
            return
        node = resolve_table(self.session, ref)
        if node is None:
            console.print(f"[red]Table not found: {ref}[/red]")
            return
        print_tables(self.session.schema_engine.find_related_tables(node.schema_name, node.name))

    async def _run_sql(self, sql: str) -> None:
        if not sql:
            console.print("[yellow]Usage: /sql <statement>[/yellow]")
            return
        executor = self.session.executor
        if executor.is_destructive_query(sql) and not executor.is_read_only():
            if not await confirm_destructive(sql):
                console.print("[dim]Execution cancelled.[/dim]")
                return
        result = await executor.execute(sql)
        self.session.orchestrator.last_result = result
        if result.error:
            style = "yellow" if result.blocked else "red"
            console.print(f"[{style}]{result.error}[/{style}]")
            return
        render_result(ChatOrchestrator.result_payload(result))

    async def _reconnect(self) -> None:
        """Open a fresh session first; the current one stays in use if that fails."""
        previous = self.session
        url = previous.database_url
        try:
            with console.status("[cyan]Reconnecting...[/cyan]", spinner="dots"):
                session = await AgentSession.open(
                    url,
                    previous.client.auth,
                    get_settings(),
                    confirm_destructive=confirm_destructive,
                )
        except (ConnectorError, AuthError, ValueError) as e:
            console.print(f"[red]Reconnect failed: {e}[/red]")
            console.print(f"[yellow]Still using the previous connection to {mask_url(url)}.[/yellow]")
            return

        # Model override and write mode carry over; conversation history does not
        session.client.set_model(previous.client.model_override)
        if not previous.executor.is_read_only():
            session.set_read_only_mode(False)

        self.session = session
        await previous.close()
        console.print(f"[green]✓ Reconnected to {mask_url(url)}[/green]")

    def _export(self, fmt: str) -> None:
        if fmt not in ("json", "csv"):
            console.print("[yellow]Usage: /export json|csv[/yellow]")
            return
        result = self.session.orchestrator.last_result
        if result is None or not result.rows:
            console.print("[yellow]No result to export.[/yellow]")
            return
        path = export_result(result, fmt)
        console.print(f"[green]✓ Exported {len(result.rows)} rows to {path}[/green]")

    def _stats(self) -> None:
        graph = self.session.graph
        client = self.session.client
        history = self.session.executor.get_query_history()
        table = Table(show_header=False)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        table.add_row("Database", graph.database_name if graph else "-")
        table.add_row("Version", graph.engine_version if graph else "-")
        table.add_row("Tables / Views", f"{graph.table_count} / {graph.view_count}" if graph else "-")
        table.add_row("Provider", client.provider_name)
        table.add_row("Model", client.get_model())
        table.add_row("Tokens used", str(client.total_tokens))
        table.add_row("Queries run", str(len(history)))
        table.add_row("Failed queries", str(sum(1 for entry in history if entry.error)))
        table.add_row("Read-only", "yes" if self.session.executor.is_read_only() else "no")
        console.print(table)


# ============================================================================
# Commands
# ============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="AgentDB")
def cli():
    """AgentDB - Talk to your PostgreSQL database."""
    configure_cli_logging()


@cli.command()
@click.argument("url", required=False)
@click.option("--model", default=None, help="Override the model for this session.")
@click.option("--write", is_flag=True, help="Start with read-only mode disabled.")
def chat(url: str | None, model: str | None, write: bool):
    """Interactive REPL mode for conversations."""
    database_url = resolve_database_url(url)
    if not database_url:
        console.print("[red]No database configured.[/red]")
        console.print("[yellow]Hint: Use 'agentdb connect NAME URL' or pass a URL.[/yellow]")
        sys.exit(1)

    try:
        auth = load_auth()
    except AuthError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    async def run_chat():
        try:
            with console.status("[cyan]Connecting and mapping schema...[/cyan]", spinner="dots"):
                session = await AgentSession.open(
                    database_url, auth, get_settings(), confirm_destructive=confirm_destructive
                )
        except (ConnectorError, ValueError) as e:
            console.print(f"[red]Failed to connect to database: {e}[/red]")
            sys.exit(1)

        if model:
            session.client.set_model(model)
        if write:
            session.set_read_only_mode(False)

        repl = ChatREPL(session)
        graph = session.graph
        console.print(
            Panel.fit(
                f"[bold green]AgentDB[/bold green] connected to {mask_url(database_url)}\n"
                f"{graph.table_count if graph else 0} tables, "
                f"{graph.view_count if graph else 0} views | "
                f"model {session.client.get_model()} | "
                f"read-only {'on' if session.executor.is_read_only() else 'off'}\n"
                "Ask a question, or type /help.",
                border_style="green",
            )
        )

        try:
            while True:
                try:
                    line = console.input("[bold cyan]You:[/bold cyan] ").strip()
                    if not line:
                        continue
                    if not await repl.handle(line):
                        console.print("\n[yellow]Goodbye![/yellow]")
                        break
                except KeyboardInterrupt:
                    console.print("\n[yellow]Interrupted. Type /quit to leave.[/yellow]")
                    continue
                except EOFError:
                    break
                except Exception as e:
                    console.print(f"\n[red]Error: {e}[/red]")
                    continue
        finally:
            await repl.session.close()

    asyncio.run(run_chat())


@cli.command()
@click.argument("name")
@click.argument("url")
@click.option("--default", "make_default", is_flag=True, help="Make this the default connection.")
def connect(name: str, url: str, make_default: bool):
    """Save a named database connection."""
    if not url.startswith(("postgres://", "postgresql://", "postgresql+asyncpg://")):
        console.print("[red]Error: URL must start with postgresql://[/red]")
        sys.exit(1)
    settings_store.add_connection(name, url)
    if make_default:
        settings_store.set_default_connection(name)
    console.print(f"[green]✓ Connection '{name}' saved[/green]")
    console.print(f"URL: {mask_url(url)}")


@cli.group(invoke_without_command=True)
@click.pass_context
def config(ctx: click.Context):
    """Show or change stored configuration."""
    if ctx.invoked_subcommand is not None:
        return

    connections = settings_store.get_connections()
    table = Table(title="Connections", show_header=True, header_style="bold cyan")
    table.add_column("Name")
    table.add_column("URL")
    table.add_column("Default")
    for connection in connections:
        table.add_row(
            connection["name"],
            mask_url(connection["url"]),
            "✓" if connection.get("is_default") else "",
        )
    console.print(table)

    auth = settings_store.get_auth()
    if auth:
        console.print(f"Provider: {auth.get('provider')}")
        console.print(f"Token expires: {auth.get('token_expires') or 'unknown'}")
        if auth.get("model"):
            console.print(f"Model: {auth['model']}")
    else:
        console.print("[yellow]Not authenticated.[/yellow]")
    console.print(f"[dim]{settings_store.CONFIG_PATH}[/dim]")


@config.command("default")
@click.argument("name")
def config_default(name: str):
    """Choose the default connection."""
    try:
        settings_store.set_default_connection(name)
    except KeyError:
        console.print(f"[red]Unknown connection: {name}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Default connection: {name}[/green]")


@config.command("remove")
@click.argument("name")
def config_remove(name: str):
    """Remove a saved connection."""
    if not settings_store.remove_connection(name):
        console.print(f"[red]Unknown connection: {name}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Removed {name}[/green]")


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Set a stored value (for example: model gpt-5-codex)."""
    if key == "model":
        auth = settings_store.get_auth() or {}
        auth["model"] = value
        settings_store.save_auth(auth)
    else:
        settings_store.set_value(key, value)
    console.print(f"[green]✓ {key} = {value}[/green]")


@config.command("clear")
@click.confirmation_option(prompt="Remove all stored connections and credentials?")
def config_clear():
    """Delete the stored configuration."""
    settings_store.clear_config()
    console.print("[green]✓ Configuration cleared[/green]")


@cli.command()
@click.option("--host", default=None, help="Bind host (default: API_HOST).")
@click.option("--port", default=None, type=int, help="Bind port (default: API_PORT).")
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the HTTP/WebSocket API server."""
    settings = get_settings()
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "agentdb.api.main:app",
        "--host",
        host or settings.api_host,
        "--port",
        str(port or settings.api_port),
    ]
    if reload:
        cmd.append("--reload")

    console.print(f"[cyan]Starting API server:[/cyan] {' '.join(cmd)}")
    process = subprocess.Popen(cmd)
    try:
        process.wait()
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping API server...[/yellow]")
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()


if __name__ == "__main__":
    cli()
