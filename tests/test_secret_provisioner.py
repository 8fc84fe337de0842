"""
Tests for the database password and the provisioning SQL.
"""

import logging
import re

from pydantic import SecretStr

from src.core.context import DatabaseCredentials
from src.core.observability.logging_config import MASK, redact
from src.core.services.database import provisioning_sql
from src.core.services.secret_provisioner import escape_sql_literal, provide_database_password


# ── Password ────────────────────────────────────────────────────────


class TestProvidePassword:
    def test_generated_is_32_hex(self):
        value = provide_database_password().get_secret_value()
        assert re.fullmatch(r"[0-9a-f]{32}", value)

    def test_generated_values_differ(self):
        values = {provide_database_password().get_secret_value() for _ in range(20)}
        assert len(values) == 20

    def test_operator_value_wins(self):
        value = provide_database_password("typed-pass", existing="old")
        assert value.get_secret_value() == "typed-pass"

    def test_secretstr_accepted(self):
        assert provide_database_password(SecretStr("s3cret")).get_secret_value() == "s3cret"

    def test_existing_reused(self):
        assert provide_database_password("", existing="from-env").get_secret_value() == "from-env"
        assert provide_database_password(None, existing="from-env").get_secret_value() == "from-env"

    def test_returned_as_secret(self):
        value = provide_database_password("visible?")
        assert "visible?" not in repr(value)
        assert "visible?" not in str(value)

    def test_registered_for_redaction(self):
        value = provide_database_password().get_secret_value()
        assert redact(f"password={value}") == f"password={MASK}"

    def test_logs_source_not_value(self, caplog):
        with caplog.at_level(logging.INFO, logger="src.core.services.secret_provisioner"):
            provide_database_password("hunter2hunter2")
        assert "operator" in caplog.text
        assert "hunter2hunter2" not in caplog.text


# ── SQL ─────────────────────────────────────────────────────────────


class TestEscaping:
    def test_quote_doubled(self):
        assert escape_sql_literal("it's") == "it''s"

    def test_backslash_doubled(self):
        assert escape_sql_literal("a\\b") == "a\\\\b"

    def test_plain_unchanged(self):
        assert escape_sql_literal("0123abcdef") == "0123abcdef"


class TestProvisioningSql:
    def _creds(self, password="pw"):
        return DatabaseCredentials(database="paymenter", username="paymenter", password=SecretStr(password))

    def test_statements(self):
        sql = provisioning_sql(self._creds()).get_secret_value()
        assert sql.splitlines() == [
            "CREATE USER IF NOT EXISTS 'paymenter'@'127.0.0.1' IDENTIFIED BY 'pw';",
            "ALTER USER 'paymenter'@'127.0.0.1' IDENTIFIED BY 'pw';",
            "CREATE DATABASE IF NOT EXISTS `paymenter`;",
            "GRANT ALL PRIVILEGES ON `paymenter`.* TO 'paymenter'@'127.0.0.1';",
            "FLUSH PRIVILEGES;",
        ]

    def test_no_grant_option(self):
        assert "GRANT OPTION" not in provisioning_sql(self._creds()).get_secret_value()

    def test_password_escaped(self):
        sql = provisioning_sql(self._creds("a'b\\c")).get_secret_value()
        assert "IDENTIFIED BY 'a''b\\\\c'" in sql

    def test_client_host(self):
        sql = provisioning_sql(self._creds(), client_host="localhost").get_secret_value()
        assert "'paymenter'@'localhost'" in sql

    def test_result_is_secret(self):
        assert "pw" not in repr(provisioning_sql(self._creds("pw-value")))
