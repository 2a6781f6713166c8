"""provkit CLI - probe platforms and check project preconditions.

Runs the call layer from a terminal: establish a session against a
platform, or check whether a project key is already taken.
"""

import os
from typing import Annotated

import click
import typer
from rich.table import Table

import provkit
from provkit import console as pk_console
from provkit.config import get_settings
from provkit.exceptions import (
    HttpStatusError,
    MissingCredentialsError,
    PreconditionEvaluationError,
    TransportError,
)
from provkit.logging import configure_logging, get_logger
from provkit.platforms import namespace_checker, scm_checker
from provkit.session import ProvisioningSession

# Configure logging early using env vars directly; -v/-vv and --log-format
# in main_callback() may reconfigure later.
configure_logging(
    level=os.environ.get("PROVKIT_LOG_LEVEL", "WARNING"),
    json_output=os.environ.get("PROVKIT_LOG_FORMAT", "console") == "json",
)

LOG = get_logger(__name__)

app = typer.Typer(
    name="provkit",
    help="provkit - resilient calls against provisioning platforms.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

UserOption = Annotated[
    str | None,
    typer.Option("--user", "-u", envvar="PROVKIT_USER", help="User for direct authentication"),
]
PasswordOption = Annotated[
    str | None,
    typer.Option(
        "--password",
        "-p",
        envvar="PROVKIT_PASSWORD",
        help="Password for direct authentication",
    ),
]
TokenOption = Annotated[
    str | None,
    typer.Option("--token", envvar="PROVKIT_SSO_TOKEN", help="SSO token to send as cookie"),
]


def _open_session(
    user: str | None, password: str | None, token: str | None
) -> ProvisioningSession:
    if get_settings().trust_all_certificates:
        pk_console.warn("TLS certificate verification is disabled (development only)")
    return ProvisioningSession.open(user, password, token)


@app.callback(invoke_without_command=True)
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v for info, -vv for debug)",
        ),
    ] = 0,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            click_type=click.Choice(["console", "json"]),
            help="Log output format: console (human-readable) or json (structured)",
        ),
    ] = None,
) -> None:
    """provkit - resilient calls against provisioning platforms."""
    settings = get_settings()
    json_output = (log_format or settings.log_format) == "json"

    if verbose >= 2:
        configure_logging(level="DEBUG", json_output=json_output)
    elif verbose >= 1:
        configure_logging(level="INFO", json_output=json_output)
    elif log_format is not None:
        configure_logging(level=settings.log_level, json_output=json_output)


@app.command("version")
def version() -> None:
    """Show provkit version."""
    pk_console.out_console.print(f"provkit v{provkit.__version__}")


@app.command("config")
def show_config() -> None:
    """Show the effective configuration (secrets masked)."""
    table = Table(title="provkit configuration", header_style="bold cyan", border_style="dim")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in get_settings().display_items():
        table.add_row(name, value)
    pk_console.out_console.print(table)


@app.command("check")
def check(
    key: Annotated[str, typer.Argument(help="Project key to check")],
    url: Annotated[str, typer.Option("--url", help="Platform API base URL")],
    platform: Annotated[
        str,
        typer.Option(
            "--platform",
            click_type=click.Choice(["namespaces", "scm"]),
            help="Which platform listing to check against",
        ),
    ] = "namespaces",
    user: UserOption = None,
    password: PasswordOption = None,
    token: TokenOption = None,
) -> None:
    """Check that no existing resource already uses KEY as its prefix."""
    with _open_session(user, password, token) as session:
        factory = namespace_checker if platform == "namespaces" else scm_checker
        checker = factory(session.http, url)
        try:
            failures = checker.check_no_conflict(key)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        except PreconditionEvaluationError as exc:
            pk_console.error(str(exc))
            raise typer.Exit(2) from exc

    if not failures:
        pk_console.success(f"'{key}' is free on {checker.adapter_name}")
        return

    table = Table(header_style="bold red", border_style="dim")
    table.add_column("Code", style="red")
    table.add_column("Detail")
    for failure in failures:
        table.add_row(failure.code.value, failure.detail)
    pk_console.out_console.print(table)
    raise typer.Exit(1)


@app.command("probe")
def probe(
    url: Annotated[str, typer.Argument(help="URL to send the HEAD probe to")],
    user: UserOption = None,
    password: PasswordOption = None,
    token: TokenOption = None,
) -> None:
    """Establish a session with a HEAD probe and list the cookies received."""
    with _open_session(user, password, token) as session:
        try:
            session.http.establish_session(url)
        except (HttpStatusError, TransportError, MissingCredentialsError, ValueError) as exc:
            pk_console.error(str(exc))
            raise typer.Exit(1) from exc
        names = sorted({cookie.name for cookie in session.cookie_jar.load(url)})

    pk_console.success(f"Session established at {url}")
    for name in names:
        pk_console.out_console.print(name)
