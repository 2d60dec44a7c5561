"""Tests for the bulksql CLI."""

import sys
from unittest.mock import patch

import pytest

from bulksql.cli import main
from bulksql.connections.azure_sql import AzureSQL

CONFIG = """
connection:
  host: sql.example.net
  database: sales
  auth:
    mode: sql_login
    username: loader
    password: ${BULKSQL_TEST_PASSWORD}
logging:
  structured: true
  level: WARNING
"""


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.setenv("BULKSQL_TEST_PASSWORD", "hunter2")
    path = tmp_path / "bulksql.yaml"
    path.write_text(CONFIG)
    return str(path)


class TestCLIMain:
    def test_no_args_shows_help(self, capsys):
        with patch.object(sys, "argv", ["bulksql"]):
            assert main() == 1
        assert "drop-staging" in capsys.readouterr().out

    def test_help_flag(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--help"])
        assert exc_info.value.code == 0
        assert "drop-staging" in capsys.readouterr().out

    def test_invalid_command(self):
        with pytest.raises(SystemExit):
            main(["explode"])


class TestDropStaging:
    def test_drops_existing_table(self, config_file, fake_server):
        fake_server.create_table("#TmpTableUsers")
        with patch.object(AzureSQL, "from_config", return_value=fake_server):
            assert main(["drop-staging", config_file, "Users"]) == 0
        assert "#TmpTableUsers" not in fake_server.tables

    def test_absent_table_succeeds(self, config_file, fake_server):
        with patch.object(AzureSQL, "from_config", return_value=fake_server):
            assert main(["drop-staging", config_file, "Orders"]) == 0
        assert fake_server.statements == ["SELECT OBJECT_ID('#TmpTableOrders')"]

    def test_connection_built_from_config(self, config_file, fake_server):
        with patch.object(AzureSQL, "from_config", return_value=fake_server) as from_config:
            main(["drop-staging", config_file, "Users"])
        cfg = from_config.call_args[0][0]
        assert cfg.host == "sql.example.net"
        assert cfg.auth.password == "hunter2"

    def test_store_failure_returns_1(self, config_file, fake_server):
        fake_server.fail_on["OBJECT_ID"] = RuntimeError("login timeout")
        with patch.object(AzureSQL, "from_config", return_value=fake_server):
            assert main(["drop-staging", config_file, "Users"]) == 1

    def test_missing_config_returns_1(self, tmp_path, capsys):
        assert main(["drop-staging", str(tmp_path / "nope.yaml"), "Users"]) == 1
        assert "Error" in capsys.readouterr().err

    def test_help_explains_session_scope(self, capsys):
        with pytest.raises(SystemExit):
            main(["drop-staging", "--help"])
        assert "'##'" in capsys.readouterr().out

    def test_global_staging_prefix(self, tmp_path, monkeypatch, fake_server):
        monkeypatch.setenv("BULKSQL_TEST_PASSWORD", "hunter2")
        path = tmp_path / "global.yaml"
        path.write_text(CONFIG + "writer:\n  staging_prefix: '##TmpTable'\n")
        fake_server.create_table("##TmpTableUsers")
        with patch.object(AzureSQL, "from_config", return_value=fake_server):
            assert main(["drop-staging", str(path), "Users"]) == 0
        assert "##TmpTableUsers" not in fake_server.tables
