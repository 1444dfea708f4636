"""
sqli CLI - run SQL against saved connections or URLs

Usage:
    sqli                       # Launch the interactive workspace
    sqli query --conn NAME --sql "SELECT 1"
    sqli config set --name NAME --url URL
"""

import functools
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import click
import yaml
from rich.table import Table
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from sqli import __version__
from sqli.cli.formatters import FORMATTERS, get_formatter
from sqli.core.config import Settings
from sqli.core.errors import SqliError
from sqli.core.executor import QueryEngine
from sqli.core.logging import Logger, get_logger
from sqli.core.profiles import DEFAULT_DRIVER, SUPPORTED_DRIVERS, ConnectionProfile, ProfileStore
from sqli.core.types import QueryRequest

F = TypeVar("F", bound=Callable[..., Any])


@dataclass
class CLIContext:
    """Runtime context shared by every sqli command."""

    settings: Settings
    logger: Logger
    verbose: bool = False
    debug: bool = False

    def profiles(self) -> ProfileStore:
        return ProfileStore(self.settings.config_path)


pass_cli_context = click.make_pass_decorator(CLIContext, ensure=False)


def handle_cli_errors(func: F) -> F:
    """Report sqli errors on stderr and exit with the error's code."""

    @functools.wraps(func)
    def wrapper(cli_ctx: CLIContext, *args: Any, **kwargs: Any) -> Any:
        try:
            return func(cli_ctx, *args, **kwargs)
        except SqliError as exc:
            cli_ctx.logger.error(f"Error: {exc}")
            sys.exit(exc.exit_code)
        except (click.ClickException, click.Abort):
            raise
        except Exception as exc:
            cli_ctx.logger.error(f"Error: {exc}")
            if cli_ctx.debug:
                raise
            sys.exit(1)

    return wrapper  # type: ignore[return-value]


class AliasedGroup(click.Group):
    """Click group that also resolves short command aliases."""

    ALIASES = {"q": "query", "ui": "tui"}

    def get_command(self, ctx: click.Context, cmd_name: str):
        return super().get_command(ctx, self.ALIASES.get(cmd_name, cmd_name))

    def resolve_command(self, ctx: click.Context, args):
        _, cmd, args = super().resolve_command(ctx, args)
        return cmd.name if cmd else None, cmd, args


@click.group(cls=AliasedGroup, invoke_without_command=True)
@click.version_option(version=__version__, prog_name="sqli")
@click.option("--verbose", is_flag=True, help="Enable verbose logging output.")
@click.option("--debug", is_flag=True, help="Re-raise unexpected errors with a traceback.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool):
    """
    sqli - a terminal workspace for SQL

    Runs the interactive workspace when no command is given.
    """
    settings = Settings.from_env()
    logger = get_logger(verbose=verbose)
    logger.debug(f"config dir: {settings.config_dir}")
    logger.debug(f"workspace dir: {settings.workspace_dir}")
    ctx.obj = CLIContext(settings=settings, logger=logger, verbose=verbose, debug=debug)

    if ctx.invoked_subcommand is None:
        ctx.invoke(tui)


@cli.command()
@click.option("--url", "-u", default=None, help="Connection URL, e.g. postgresql://user@host/db")
@click.option("--conn", "-c", default=None, help="Name of a saved connection")
@click.option(
    "--sql",
    "-s",
    default=None,
    help="SQL to run, or the path of an existing .sql file",
)
@click.option(
    "--sql-file",
    "-f",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Read SQL from file",
)
@click.option(
    "--format",
    type=click.Choice(list(FORMATTERS), case_sensitive=False),
    default="table",
    help="Output format (default: table)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write output to file instead of stdout",
)
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--time", "-t", "show_time", is_flag=True, help="Show execution time")
@pass_cli_context
@handle_cli_errors
def query(
    cli_ctx: CLIContext,
    url: Optional[str],
    conn: Optional[str],
    sql: Optional[str],
    sql_file: Optional[Path],
    format: str,
    output: Optional[Path],
    no_color: bool,
    show_time: bool,
):
    """
    Execute a SQL query and print the result

    Examples:

        \b
        # Run inline SQL on a saved connection
        $ sqli query --conn local --sql "SELECT * FROM users LIMIT 10"

        \b
        # Run a saved file against a URL
        $ sqli q -u duckdb:///tmp/app.duckdb -f reports/daily.sql

        \b
        # Export as CSV
        $ sqli query -c local -s "SELECT * FROM users" --format csv -o users.csv
    """
    fmt = format.lower()
    del format
    logger = cli_ctx.logger

    if url and conn:
        raise click.UsageError("--url and --conn cannot be used together")
    if not url and not conn:
        raise click.UsageError("Either --url or --conn must be provided")
    if sql is not None and sql_file is not None:
        raise click.UsageError("--sql and --sql-file cannot be used together")
    if sql is None and sql_file is None:
        raise click.UsageError("Either --sql or --sql-file must be provided")

    store = cli_ctx.profiles()
    passwords = {}
    if conn:
        profile = store.get(conn)
        conn = profile.name
        if profile.requires_password and profile.user:
            passwords[profile.name] = click.prompt(
                f"Password for {profile.user}@{profile.name}",
                hide_input=True,
                default="",
                show_default=False,
            )

    if sql is not None:
        sql_file = _existing_file(sql)
    if sql_file is not None:
        request = QueryRequest.from_file(sql_file, profile=conn, url=url)
        logger.debug(f"reading SQL from {sql_file}")
    else:
        request = QueryRequest.inline(sql, profile=conn, url=url)

    logger.debug(f"running on {request.target}")
    engine = QueryEngine(store, passwords=passwords)
    result = engine.run(request)
    if result.error is not None:
        raise result.error.to_exception()

    formatter = get_formatter(fmt)
    output_text = formatter.format(
        result,
        no_color=no_color or output is not None or not sys.stdout.isatty(),
        show_footer=output is None,
    )

    if output is not None:
        output.write_text(output_text, encoding="utf-8")
        logger.success(f"Results written to {output} ({fmt} format)")
    elif output_text:
        click.echo(output_text.rstrip("\n"))

    if show_time:
        logger.info(f"Processed {result.row_count} rows in {result.elapsed:.3f}s")


def _existing_file(value: str) -> Optional[Path]:
    """A --sql value naming an existing file is read from that file."""
    if "\n" in value or len(value) > 4096:
        return None
    try:
        path = Path(value).expanduser()
        return path if path.is_file() else None
    except (OSError, ValueError):
        return None


@cli.command()
@pass_cli_context
@handle_cli_errors
def tui(cli_ctx: CLIContext):
    """
    Launch the interactive workspace

    Connections, saved query collections, an editor and a results view in
    one terminal screen. Press Ctrl+C to quit.
    """
    from sqli.tui.app import launch_tui

    launch_tui(cli_ctx.settings)


@cli.group()
def config():
    """Manage saved connections"""


@config.command("set")
@click.option("--name", required=True, help="Connection name")
@click.option("--url", default=None, help="Full connection URL (instead of discrete fields)")
@click.option(
    "--driver",
    type=click.Choice(SUPPORTED_DRIVERS, case_sensitive=False),
    default=None,
    help=f"Server driver (default: {DEFAULT_DRIVER})",
)
@click.option("--host", default=None)
@click.option("--port", type=int, default=None)
@click.option("--database", default=None)
@click.option("--user", default=None)
@click.option("--password", default=None, help="Stored in the config file; omit to be prompted")
@click.option("--server-ca", type=click.Path(dir_okay=False), default=None, help="Server CA certificate")
@click.option("--client-cert", type=click.Path(dir_okay=False), default=None, help="Client certificate")
@click.option("--client-key", type=click.Path(dir_okay=False), default=None, help="Client private key")
@pass_cli_context
@handle_cli_errors
def config_set(
    cli_ctx: CLIContext,
    name: str,
    url: Optional[str],
    driver: Optional[str],
    host: Optional[str],
    port: Optional[int],
    database: Optional[str],
    user: Optional[str],
    password: Optional[str],
    server_ca: Optional[str],
    client_cert: Optional[str],
    client_key: Optional[str],
):
    """
    Add or replace a saved connection

    Examples:

        \b
        $ sqli config set --name local --host localhost --database app --user postgres
        $ sqli config set --name scratch --url duckdb:///tmp/scratch.duckdb
    """
    discrete = [driver, host, port, database, user, password, server_ca, client_cert, client_key]
    if url and any(value is not None for value in discrete):
        raise click.UsageError("--url cannot be combined with discrete connection fields")
    if not url and not host and not database:
        raise click.UsageError("Provide --url, or --host/--database")

    if url:
        profile = ConnectionProfile(name=name, url=url)
    else:
        profile = ConnectionProfile(
            name=name,
            driver=driver or DEFAULT_DRIVER,
            host=host,
            port=port,
            database=database,
            user=user,
            password=password,
            server_ca=_absolute(server_ca),
            client_cert=_absolute(client_cert),
            client_key=_absolute(client_key),
        )

    store = cli_ctx.profiles()
    existed = store.find(name) is not None
    store.put(profile)
    cli_ctx.logger.success(f"{'Updated' if existed else 'Added'} connection '{name}'")


def _absolute(path: Optional[str]) -> Optional[str]:
    return str(Path(path).expanduser().absolute()) if path else None


@config.command("list")
@pass_cli_context
@handle_cli_errors
def config_list(cli_ctx: CLIContext):
    """List saved connections"""
    profiles = cli_ctx.profiles().list()
    if not profiles:
        cli_ctx.logger.info(f"No connections in {cli_ctx.settings.config_path}")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Target")
    for profile in profiles:
        table.add_row(profile.name, _mask_url(profile))
    cli_ctx.logger.console.print(table)


def _mask_url(profile: ConnectionProfile) -> str:
    """Connection URL with any password replaced by asterisks."""
    url = profile.to_url()
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return url


@config.command("get")
@click.argument("name")
@click.option("--show-password", is_flag=True, help="Print the stored password")
@pass_cli_context
@handle_cli_errors
def config_get(cli_ctx: CLIContext, name: str, show_password: bool):
    """Show one saved connection"""
    profile = cli_ctx.profiles().get(name)
    data = profile.to_dict()
    if "password" in data and not show_password:
        data["password"] = "****"
    if "url" in data and not show_password:
        data["url"] = _mask_url(profile)
    click.echo(yaml.safe_dump(data, sort_keys=False, default_flow_style=False).rstrip("\n"))


@config.command("delete")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_cli_context
@handle_cli_errors
def config_delete(cli_ctx: CLIContext, name: str, yes: bool):
    """Delete a saved connection"""
    store = cli_ctx.profiles()
    profile = store.get(name)
    if not yes:
        click.confirm(f"Delete connection '{profile.name}'?", abort=True)
    store.delete(profile.name)
    cli_ctx.logger.success(f"Deleted connection '{profile.name}'")


if __name__ == "__main__":
    cli()
