"""
SQL Server / Azure SQL Database Connection
==========================================

Provides connectivity to SQL Server with authentication support, and
sessions that pin one pooled DBAPI connection for the lifetime of a
staging sequence (``#`` temp tables only live on the connection that
created them).
"""

from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from bulksql.connections.base import BaseConnection
from bulksql.exceptions import ConnectionError
from bulksql.utils.logging_context import get_logging_context


class SqlServerSession:
    """
    One checked-out connection to SQL Server.

    Statements run on a raw pyodbc cursor so multi-statement batches can be
    drained with ``nextset()`` and bulk inserts can use ``fast_executemany``.
    """

    def __init__(self, sa_connection: Any, name: str = "sql_server"):
        self._conn = sa_connection
        self._raw = sa_connection.connection
        self.name = name
        self.closed = False

    def _cursor(self, timeout: Optional[int] = None):
        # pyodbc applies the query timeout per connection; 0 disables it
        dbapi = getattr(self._raw, "dbapi_connection", self._raw)
        dbapi.timeout = timeout or 0
        return self._raw.cursor()

    @staticmethod
    def _drain(cursor) -> None:
        while cursor.nextset():
            pass

    def scalar(self, sql: str, timeout: Optional[int] = None) -> Any:
        """Execute a statement and return the first column of the first row."""
        cursor = self._cursor(timeout)
        try:
            cursor.execute(sql)
            row = cursor.fetchone()
            self._drain(cursor)
            return row[0] if row else None
        finally:
            cursor.close()

    def execute(self, sql: str, timeout: Optional[int] = None) -> int:
        """
        Execute a statement batch and commit.

        Returns:
            Rows affected by the first statement of the batch (0 if unknown)
        """
        cursor = self._cursor(timeout)
        try:
            cursor.execute(sql)
            rowcount = cursor.rowcount
            self._drain(cursor)
            self._raw.commit()
            return rowcount if rowcount and rowcount > 0 else 0
        except Exception:
            self._raw.rollback()
            raise
        finally:
            cursor.close()

    def query(self, sql: str, timeout: Optional[int] = None) -> pd.DataFrame:
        """
        Execute a statement batch and return its first result set.

        Later statements in the batch still run: remaining result sets are
        drained before the commit.
        """
        cursor = self._cursor(timeout)
        try:
            cursor.execute(sql)
            while cursor.description is None and cursor.nextset():
                pass

            if cursor.description is None:
                result = pd.DataFrame()
            else:
                columns = [col[0] for col in cursor.description]
                rows = [tuple(r) for r in cursor.fetchall()]
                result = pd.DataFrame.from_records(rows, columns=columns)

            self._drain(cursor)
            self._raw.commit()
            return result
        except Exception:
            self._raw.rollback()
            raise
        finally:
            cursor.close()

    def bulk_insert(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[tuple],
        batch_size: int,
        timeout: Optional[int] = None,
    ) -> int:
        """
        Insert rows with pyodbc parameter arrays (``fast_executemany``).

        Returns:
            Number of rows submitted
        """
        if not rows:
            return 0

        column_list = ", ".join(f"[{c}]" for c in columns)
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {table} ({column_list}) VALUES ({placeholders})"

        cursor = self._cursor(timeout)
        cursor.fast_executemany = True
        try:
            for start in range(0, len(rows), batch_size):
                cursor.executemany(sql, list(rows[start : start + batch_size]))
            self._raw.commit()
            return len(rows)
        except Exception:
            self._raw.rollback()
            raise
        finally:
            cursor.close()

    def close(self) -> None:
        if not self.closed:
            self._conn.close()
            self.closed = True


class AzureSQL(BaseConnection):
    """
    SQL Server / Azure SQL Database connection.

    Supports:
    - SQL authentication (username/password)
    - Azure Active Directory Managed Identity
    - A raw ODBC connection string
    - Connection pooling via SQLAlchemy
    """

    def __init__(
        self,
        server: str,
        database: str,
        driver: str = "ODBC Driver 18 for SQL Server",
        username: Optional[str] = None,
        password: Optional[str] = None,
        auth_mode: str = "aad_msi",  # "aad_msi", "sql", "connection_string"
        connection_string: Optional[str] = None,
        port: int = 1433,
        timeout: int = 30,
        **kwargs,
    ):
        """
        Initialize SQL Server connection.

        Args:
            server: SQL server hostname (e.g., 'myserver.database.windows.net')
            database: Database name
            driver: ODBC driver name (default: ODBC Driver 18 for SQL Server)
            username: SQL auth username (required if auth_mode='sql')
            password: SQL auth password (required if auth_mode='sql')
            auth_mode: Authentication mode ('aad_msi', 'sql', 'connection_string')
            connection_string: Full ODBC connection string (auth_mode='connection_string')
            port: SQL Server port (default: 1433)
            timeout: Connection timeout in seconds (default: 30)
        """
        self.server = server
        self.database = database
        self.driver = driver
        self.username = username
        self.password = password
        self.auth_mode = auth_mode
        self.connection_string = connection_string
        self.port = port
        self.timeout = timeout
        self._engine = None
        self.ctx = get_logging_context().with_context(connection=f"AzureSQL({server})")

        if password:
            self.ctx.logger.register_secret(password)
        if connection_string:
            self.ctx.logger.register_secret(connection_string)

    @classmethod
    def from_config(cls, config: Any) -> "AzureSQL":
        """Build a connection from a SQLServerConnectionConfig."""
        from bulksql.config import SQLServerAuthMode

        auth = config.auth
        kwargs: Dict[str, Any] = dict(
            server=config.host,
            database=config.database,
            driver=config.driver,
            port=config.port,
            timeout=config.timeout,
        )
        if auth.mode == SQLServerAuthMode.SQL_LOGIN:
            kwargs.update(auth_mode="sql", username=auth.username, password=auth.password)
        elif auth.mode == SQLServerAuthMode.CONNECTION_STRING:
            kwargs.update(auth_mode="connection_string", connection_string=auth.connection_string)
        else:
            kwargs.update(auth_mode="aad_msi")
        return cls(**kwargs)

    def odbc_dsn(self) -> str:
        """Build ODBC connection string.

        Returns:
            ODBC DSN string

        Example:
            >>> conn = AzureSQL(server="myserver.database.windows.net", database="mydb")
            >>> conn.odbc_dsn()
            'Driver={ODBC Driver 18 for SQL Server};Server=tcp:myserver...'
        """
        if self.auth_mode == "connection_string" and self.connection_string:
            return self.connection_string

        dsn = (
            f"Driver={{{self.driver}}};"
            f"Server=tcp:{self.server},{self.port};"
            f"Database={self.database};"
            f"Encrypt=yes;"
            f"TrustServerCertificate=yes;"
            f"Connection Timeout={self.timeout};"
        )

        if self.username and self.password:
            dsn += f"UID={self.username};PWD={self.password};"
        elif self.auth_mode == "aad_msi":
            dsn += "Authentication=ActiveDirectoryMsi;"

        return dsn

    def validate(self) -> None:
        """Validate connection configuration."""
        if self.auth_mode == "connection_string":
            if not self.connection_string:
                raise ValueError(
                    "SQL Server with auth_mode='connection_string' requires connection_string"
                )
            return

        if not self.server:
            raise ValueError("SQL Server connection requires 'server'")
        if not self.database:
            raise ValueError("SQL Server connection requires 'database'")

        if self.auth_mode == "sql":
            if not self.username:
                raise ValueError("SQL Server with auth_mode='sql' requires username")
            if not self.password:
                raise ValueError("SQL Server with auth_mode='sql' requires password")

    def get_engine(self):
        """
        Get or create SQLAlchemy engine.

        Returns:
            SQLAlchemy engine instance

        Raises:
            ConnectionError: If engine creation fails or drivers missing
        """
        if self._engine is not None:
            return self._engine

        try:
            from urllib.parse import quote_plus

            from sqlalchemy import create_engine
        except ImportError:
            raise ConnectionError(
                connection_name=f"AzureSQL({self.server})",
                reason="Required packages 'sqlalchemy' or 'pyodbc' not found.",
                suggestions=["Install required packages: pip install sqlalchemy pyodbc"],
            )

        try:
            connection_url = f"mssql+pyodbc:///?odbc_connect={quote_plus(self.odbc_dsn())}"
            self._engine = create_engine(
                connection_url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=False,
            )
            self.ctx.log_connection("sql_server", self.server, action="engine_created")
            return self._engine

        except Exception as e:
            raise ConnectionError(
                connection_name=f"AzureSQL({self.server})",
                reason=f"Failed to create engine: {str(e)}",
                suggestions=self._get_error_suggestions(str(e)),
            )

    def open_session(self) -> SqlServerSession:
        """
        Check out a connection from the pool.

        Raises:
            ConnectionError: If the connection cannot be opened
        """
        engine = self.get_engine()
        try:
            sa_conn = engine.connect()
        except Exception as e:
            raise ConnectionError(
                connection_name=f"AzureSQL({self.server})",
                reason=f"Failed to open session: {str(e)}",
                suggestions=self._get_error_suggestions(str(e)),
            ) from e
        self.ctx.log_connection("sql_server", self.server, action="session_opened")
        return SqlServerSession(sa_conn, name=self.server)

    def read_sql(self, query: str) -> pd.DataFrame:
        """
        Execute SQL query and return results as DataFrame.

        Raises:
            ConnectionError: If execution fails
        """
        try:
            with self.session() as session:
                return session.query(query)
        except ConnectionError:
            raise
        except Exception as e:
            raise ConnectionError(
                connection_name=f"AzureSQL({self.server})",
                reason=f"Query execution failed: {str(e)}",
                suggestions=self._get_error_suggestions(str(e)),
            ) from e

    def close(self):
        """Dispose of the engine and its pooled connections."""
        if self._engine:
            self._engine.dispose()
            self._engine = None

    def _get_error_suggestions(self, error_msg: str) -> List[str]:
        """Generate suggestions based on error message."""
        suggestions = []
        error_lower = error_msg.lower()

        if "login failed" in error_lower:
            suggestions.append("Check username and password")
            suggestions.append(f"Verify auth_mode is correct (current: {self.auth_mode})")

        if "firewall" in error_lower or "tcp provider" in error_lower:
            suggestions.append("Check SQL Server firewall rules")
            suggestions.append("Ensure client IP is allowed")

        if "driver" in error_lower:
            suggestions.append(f"Verify ODBC driver '{self.driver}' is installed")
            suggestions.append("On Linux: sudo apt-get install msodbcsql18")

        return suggestions
