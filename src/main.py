"""
Panel provisioner — CLI entrypoint.

Usage:
    provisioner                      # interactive menu
    provisioner install --domain panel.example.com --tls
    provisioner upgrade
    python -m src.main --help
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from src import __version__
from src.core.errors import SettingsError
from src.core.observability.logging_config import register_secret, setup_logging


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="provisioner")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Settings file (default: $PROV_CONFIG, then /etc/panel-provisioner.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Install and upgrade a Paymenter panel on an Ubuntu or Debian host."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PROV_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("PROV_LOG_FILE"),
        log_file_level=os.environ.get("PROV_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )

    from src.core.config.loader import load_settings

    try:
        ctx.obj["settings"] = load_settings(Path(config_path) if config_path else None)
    except SettingsError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(2)

    if ctx.invoked_subcommand is None:
        _menu(ctx)


def _menu(ctx: click.Context) -> None:
    name = ctx.obj["settings"].display_name
    click.secho("=" * 60, fg="blue")
    click.secho(f"{name} Installer".center(60), fg="blue", bold=True)
    click.secho("=" * 60, fg="blue")
    click.echo("Choose an action:")
    click.echo(f"  1) Install {name}")
    click.echo(f"  2) Upgrade existing {name} (artisan app:upgrade)")
    click.echo("  3) Exit")
    choice = click.prompt("Select an option", type=click.IntRange(1, 3))
    if choice == 1:
        ctx.invoke(install)
    elif choice == 2:
        ctx.invoke(upgrade)
    else:
        click.echo("Exiting.")
        sys.exit(0)


def build_orchestrator(settings, quiet: bool = False):
    """Orchestrator wired to the real host, with terminal progress output."""
    from src.adapters.registry import default_registry
    from src.core.engine.orchestrator import WorkflowOrchestrator
    from src.ui.cli.summary import show_result, show_state

    return WorkflowOrchestrator(
        settings,
        default_registry(),
        on_result=None if quiet else show_result,
        on_state=None if quiet else show_state,
    )


@cli.command()
@click.option("--domain", default=None, help="Public domain name (e.g. panel.example.com).")
@click.option(
    "--db-password",
    envvar="PROV_DB_PASSWORD",
    default=None,
    help="Database password for the application user (blank: generate).",
)
@click.option("--tls/--no-tls", "use_tls", default=None, help="Request a Let's Encrypt certificate.")
@click.option("--auto-update/--no-auto-update", default=None, help="Schedule a daily app:upgrade.")
@click.option("--email", default=None, help="Contact address for the certificate account.")
@click.option("--non-interactive", is_flag=True, help="Never prompt; fail on missing answers.")
@click.pass_context
def install(
    ctx: click.Context,
    domain: str | None,
    db_password: str | None,
    use_tls: bool | None,
    auto_update: bool | None,
    email: str | None,
    non_interactive: bool,
) -> None:
    """Install the application and everything it needs."""
    from src.core.context import DatabaseCredentials, WorkflowContext
    from src.ui.cli.prompt import collect
    from src.ui.cli.summary import show_outcome

    settings = ctx.obj["settings"]
    if email:
        settings = settings.model_copy(update={"certbot_email": email})
    if db_password:
        register_secret(db_password)

    answers = collect(
        domain=domain,
        db_password=db_password,
        use_tls=use_tls,
        auto_update=auto_update,
        interactive=not non_interactive,
        db_user=settings.db_user,
    )

    wctx = WorkflowContext(
        target_directory=settings.install_dir,
        domain_name=answers.domain,
        use_tls=answers.use_tls,
        auto_update=answers.auto_update,
        interactive=not non_interactive,
    )
    if answers.db_password is not None:
        register_secret(answers.db_password.get_secret_value())
        wctx.database_credentials = DatabaseCredentials(
            database=settings.db_name,
            username=settings.db_user,
            password=answers.db_password,
        )

    outcome = build_orchestrator(settings, quiet=ctx.obj.get("quiet", False)).install(wctx)
    show_outcome(outcome, settings.display_name)
    sys.exit(0 if outcome.ok else 1)


@cli.command()
@click.option("--non-interactive", is_flag=True, help="Capture the upgrade output instead of attaching it to the terminal.")
@click.pass_context
def upgrade(ctx: click.Context, non_interactive: bool) -> None:
    """Run the application's own upgrade command on an existing install."""
    from src.core.context import WorkflowContext
    from src.ui.cli.summary import show_outcome

    settings = ctx.obj["settings"]
    wctx = WorkflowContext(
        target_directory=settings.install_dir,
        interactive=not non_interactive,
    )
    outcome = build_orchestrator(settings, quiet=ctx.obj.get("quiet", False)).upgrade(wctx)
    show_outcome(outcome, settings.display_name)
    sys.exit(0 if outcome.ok else 1)


if __name__ == "__main__":
    cli()
