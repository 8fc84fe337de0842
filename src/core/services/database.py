"""
Database provisioning SQL.
"""

from __future__ import annotations

from pydantic import SecretStr

from src.core.context import DatabaseCredentials
from src.core.services.secret_provisioner import escape_sql_literal


def _ident(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def provisioning_sql(credentials: DatabaseCredentials, client_host: str = "127.0.0.1") -> SecretStr:
    """Statements creating the application account and database.

    Safe to replay: the account and database are created only if absent,
    and ``ALTER USER`` brings an existing account's password in line.
    The result holds the password, so it stays a ``SecretStr`` until it
    is piped to the client.
    """
    user = f"'{escape_sql_literal(credentials.username)}'@'{escape_sql_literal(client_host)}'"
    password = escape_sql_literal(credentials.password.get_secret_value())
    db = _ident(credentials.database)
    statements = [
        f"CREATE USER IF NOT EXISTS {user} IDENTIFIED BY '{password}';",
        f"ALTER USER {user} IDENTIFIED BY '{password}';",
        f"CREATE DATABASE IF NOT EXISTS {db};",
        f"GRANT ALL PRIVILEGES ON {db}.* TO {user};",
        "FLUSH PRIVILEGES;",
    ]
    return SecretStr("\n".join(statements) + "\n")
