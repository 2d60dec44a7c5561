"""Unit tests for the SQL Server connection and session."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from bulksql.config import BulkSqlConfig
from bulksql.connections.azure_sql import AzureSQL, SqlServerSession
from bulksql.exceptions import ConnectionError


def make_session(cursor=None):
    """SqlServerSession over a mocked SQLAlchemy connection and pyodbc cursor."""
    cursor = cursor or MagicMock()
    cursor.nextset.return_value = False
    raw = MagicMock()
    raw.cursor.return_value = cursor
    raw.dbapi_connection = SimpleNamespace(timeout=0)
    sa_conn = MagicMock()
    sa_conn.connection = raw
    return SqlServerSession(sa_conn), sa_conn, raw, cursor


class TestAzureSQLInit:
    def test_init_with_defaults(self):
        conn = AzureSQL(server="test.database.windows.net", database="testdb")
        assert conn.driver == "ODBC Driver 18 for SQL Server"
        assert conn.auth_mode == "aad_msi"
        assert conn.port == 1433
        assert conn._engine is None

    def test_from_config_sql_login(self):
        cfg = BulkSqlConfig.model_validate(
            {
                "connection": {
                    "host": "h",
                    "database": "d",
                    "port": 1500,
                    "auth": {"mode": "sql_login", "username": "u", "password": "p"},
                }
            }
        )
        conn = AzureSQL.from_config(cfg.connection)
        assert conn.auth_mode == "sql"
        assert conn.username == "u"
        assert conn.port == 1500

    def test_from_config_connection_string(self):
        cfg = BulkSqlConfig.model_validate(
            {
                "connection": {
                    "host": "h",
                    "database": "d",
                    "auth": {"mode": "connection_string", "connection_string": "Driver={x};"},
                }
            }
        )
        conn = AzureSQL.from_config(cfg.connection)
        assert conn.odbc_dsn() == "Driver={x};"


class TestOdbcDsn:
    def test_aad_msi(self):
        dsn = AzureSQL(server="srv", database="db").odbc_dsn()
        assert "Driver={ODBC Driver 18 for SQL Server}" in dsn
        assert "Server=tcp:srv,1433" in dsn
        assert "Authentication=ActiveDirectoryMsi" in dsn

    def test_sql_auth_and_port(self):
        dsn = AzureSQL(
            server="srv", database="db", username="u", password="p", auth_mode="sql", port=2000
        ).odbc_dsn()
        assert "Server=tcp:srv,2000" in dsn
        assert "UID=u;PWD=p;" in dsn
        assert "ActiveDirectoryMsi" not in dsn


class TestValidate:
    def test_valid(self):
        AzureSQL(server="srv", database="db").validate()

    def test_missing_server(self):
        with pytest.raises(ValueError, match="requires 'server'"):
            AzureSQL(server="", database="db").validate()

    def test_sql_auth_requires_username(self):
        with pytest.raises(ValueError, match="requires username"):
            AzureSQL(server="srv", database="db", auth_mode="sql").validate()

    def test_connection_string_required(self):
        with pytest.raises(ValueError, match="requires connection_string"):
            AzureSQL(server="", database="", auth_mode="connection_string").validate()


class TestEngineAndSessions:
    @patch("sqlalchemy.create_engine")
    def test_get_engine_caches(self, mock_create_engine):
        conn = AzureSQL(server="srv", database="db")
        assert conn.get_engine() is conn.get_engine()
        mock_create_engine.assert_called_once()
        assert mock_create_engine.call_args[0][0].startswith("mssql+pyodbc:///?odbc_connect=")

    @patch("sqlalchemy.create_engine")
    def test_get_engine_failure(self, mock_create_engine):
        mock_create_engine.side_effect = Exception("Login failed for user")
        conn = AzureSQL(server="srv", database="db")
        with pytest.raises(ConnectionError) as exc_info:
            conn.get_engine()
        assert "Check username and password" in exc_info.value.suggestions

    @patch("sqlalchemy.create_engine")
    def test_session_closed_on_error(self, mock_create_engine):
        sa_conn = MagicMock()
        mock_create_engine.return_value.connect.return_value = sa_conn
        conn = AzureSQL(server="srv", database="db")

        with pytest.raises(RuntimeError):
            with conn.session():
                raise RuntimeError("boom")
        sa_conn.close.assert_called_once()

    @patch("sqlalchemy.create_engine")
    def test_open_session_failure(self, mock_create_engine):
        mock_create_engine.return_value.connect.side_effect = Exception("TCP Provider: timeout")
        conn = AzureSQL(server="srv", database="db")
        with pytest.raises(ConnectionError, match="Failed to open session"):
            conn.open_session()

    def test_close_disposes_engine(self):
        conn = AzureSQL(server="srv", database="db")
        engine = MagicMock()
        conn._engine = engine
        conn.close()
        engine.dispose.assert_called_once()
        assert conn._engine is None


class TestSqlServerSession:
    def test_scalar_returns_first_value(self):
        session, _, _, cursor = make_session()
        cursor.fetchone.return_value = (1234,)
        assert session.scalar("SELECT OBJECT_ID('#TmpTableUsers')") == 1234
        cursor.close.assert_called_once()

    def test_scalar_null(self):
        session, _, _, cursor = make_session()
        cursor.fetchone.return_value = (None,)
        assert session.scalar("SELECT OBJECT_ID('#TmpTableUsers')") is None

    def test_execute_sets_timeout_and_commits(self):
        session, _, raw, cursor = make_session()
        cursor.rowcount = 3
        assert session.execute("UPDATE Users SET x = 1; DROP TABLE #TmpTableUsers", timeout=300) == 3
        assert raw.dbapi_connection.timeout == 300
        raw.commit.assert_called_once()
        cursor.nextset.assert_called()

    def test_execute_unknown_rowcount(self):
        session, _, _, cursor = make_session()
        cursor.rowcount = -1
        assert session.execute("CREATE TABLE #t ( id int )") == 0

    def test_execute_rolls_back_on_error(self):
        session, _, raw, cursor = make_session()
        cursor.execute.side_effect = RuntimeError("syntax")
        with pytest.raises(RuntimeError):
            session.execute("BROKEN")
        raw.rollback.assert_called_once()
        cursor.close.assert_called_once()

    def test_query_returns_first_result_set(self):
        session, _, _, cursor = make_session()
        cursor.description = [("id",), ("name",)]
        cursor.fetchall.return_value = [(1, "Ann"), (2, "Bo")]
        df = session.query("SELECT u.id, u.name FROM Users u; DROP TABLE #TmpTableUsers")
        assert isinstance(df, pd.DataFrame)
        assert list(df.columns) == ["id", "name"]
        assert len(df) == 2

    def test_query_without_result_set(self):
        session, _, _, cursor = make_session()
        cursor.description = None
        assert session.query("DROP TABLE #x").empty

    def test_bulk_insert_batches(self):
        session, _, raw, cursor = make_session()
        rows = [(i, f"u{i}") for i in range(5)]
        assert session.bulk_insert("Users", ["id", "name"], rows, batch_size=2, timeout=200) == 5
        assert cursor.fast_executemany is True
        assert cursor.executemany.call_count == 3
        sql = cursor.executemany.call_args_list[0][0][0]
        assert sql == "INSERT INTO Users ([id], [name]) VALUES (?, ?)"
        raw.commit.assert_called_once()

    def test_bulk_insert_empty(self):
        session, _, raw, cursor = make_session()
        assert session.bulk_insert("Users", ["id"], [], batch_size=1) == 0
        cursor.executemany.assert_not_called()

    def test_close_once(self):
        session, sa_conn, _, _ = make_session()
        session.close()
        session.close()
        sa_conn.close.assert_called_once()
