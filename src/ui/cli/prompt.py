"""
Install prompts — collect the operator's answers before anything runs.

Values already given on the command line are not asked again. In
non-interactive mode nothing is prompted: a missing domain is a usage
error and the yes/no answers default to "no".
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import click
from pydantic import SecretStr

_LABEL = r"(?!-)[A-Za-z0-9-]{1,63}(?<!-)"
_DOMAIN_RE = re.compile(rf"^(?=.{{1,253}}$){_LABEL}(\.{_LABEL})+$")


@dataclass
class InstallAnswers:
    domain: str
    db_password: SecretStr | None
    use_tls: bool
    auto_update: bool


def is_valid_domain(value: str) -> bool:
    """Hostname-shaped: dot-separated labels, no scheme, no path."""
    return bool(_DOMAIN_RE.match(value))


def _domain(value: str) -> str:
    value = value.strip().lower()
    if not is_valid_domain(value):
        raise click.BadParameter(
            f"'{value}' is not a domain name (example: panel.example.com)"
        )
    return value


def collect(
    *,
    domain: str | None = None,
    db_password: str | None = None,
    use_tls: bool | None = None,
    auto_update: bool | None = None,
    interactive: bool = True,
    db_user: str = "paymenter",
) -> InstallAnswers:
    """Ask for whatever the command line left open.

    Raises:
        click.UsageError: Non-interactive without a usable domain.
    """
    if domain:
        domain = _domain(domain)
    elif interactive:
        domain = click.prompt(
            "Enter your domain (example: panel.example.com)",
            value_proc=_domain,
        )
    else:
        raise click.UsageError("--domain is required with --non-interactive")

    if db_password is None and interactive:
        db_password = click.prompt(
            f"Database password for user '{db_user}' (leave blank to auto-generate)",
            default="",
            show_default=False,
            hide_input=True,
        )

    if use_tls is None:
        use_tls = interactive and click.confirm("Use HTTPS with a Let's Encrypt certificate?", default=False)

    if auto_update is None:
        auto_update = interactive and click.confirm(
            "Enable automatic daily updates (artisan app:upgrade)?", default=False
        )

    return InstallAnswers(
        domain=domain,
        db_password=SecretStr(db_password) if db_password else None,
        use_tls=use_tls,
        auto_update=auto_update,
    )
