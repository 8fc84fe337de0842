"""
Secret provisioning — the database password and SQL literal escaping.
"""

from __future__ import annotations

import logging
import secrets

from pydantic import SecretStr

from src.core.observability.logging_config import register_secret

logger = logging.getLogger(__name__)

# 16 random bytes, hex encoded: 32 characters from [0-9a-f]
_TOKEN_BYTES = 16


def provide_database_password(
    user_supplied: str | SecretStr | None = "",
    existing: str | None = None,
) -> SecretStr:
    """Pick the application database password.

    Precedence: the value the operator typed, then the password already
    stored in the env file (re-runs keep it), then a fresh random one.
    Whichever is chosen is registered with the log redactor.
    """
    if isinstance(user_supplied, SecretStr):
        user_supplied = user_supplied.get_secret_value()

    if user_supplied:
        value, source = user_supplied, "operator"
    elif existing:
        value, source = existing, "existing env file"
    else:
        value, source = secrets.token_hex(_TOKEN_BYTES), "generated"

    register_secret(value)
    logger.info("Database password source: %s", source)
    return SecretStr(value)


def escape_sql_literal(value: str) -> str:
    """Escape ``value`` for a single-quoted SQL string literal.

    MariaDB treats backslash as an escape character by default, so it is
    doubled along with the quote.
    """
    return value.replace("\\", "\\\\").replace("'", "''")
