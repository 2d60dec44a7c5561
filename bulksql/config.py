"""Configuration models for bulksql."""

from enum import Enum
from typing import Annotated, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from bulksql.exceptions import ConfigValidationError
from bulksql.type_mapping import DEFAULT_STRING_LENGTH, ColumnType


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


# --- SQL Server Auth ---


class SQLServerAuthMode(str, Enum):
    AAD_MSI = "aad_msi"
    SQL_LOGIN = "sql_login"
    CONNECTION_STRING = "connection_string"


class SQLLoginAuth(BaseModel):
    mode: Literal[SQLServerAuthMode.SQL_LOGIN] = SQLServerAuthMode.SQL_LOGIN
    username: str
    password: str


class SQLMsiAuth(BaseModel):
    mode: Literal[SQLServerAuthMode.AAD_MSI] = SQLServerAuthMode.AAD_MSI
    client_id: Optional[str] = None


class SQLConnectionStringAuth(BaseModel):
    mode: Literal[SQLServerAuthMode.CONNECTION_STRING] = SQLServerAuthMode.CONNECTION_STRING
    connection_string: str


SQLServerAuthConfig = Annotated[
    Union[SQLLoginAuth, SQLMsiAuth, SQLConnectionStringAuth],
    Field(discriminator="mode"),
]


class SQLServerConnectionConfig(BaseModel):
    """
    SQL Server connection.

    Scenario 1: SQL login
    ```yaml
    connection:
      host: "server.database.windows.net"
      database: "dw"
      auth:
        mode: "sql_login"
        username: "dw_writer"
        password: "${DW_PASSWORD}"
    ```

    Scenario 2: raw ODBC connection string
    ```yaml
    connection:
      host: "localhost"
      database: "dw"
      auth:
        mode: "connection_string"
        connection_string: "${DW_ODBC}"
    ```
    """

    host: str
    database: str
    port: int = 1433
    driver: str = "ODBC Driver 18 for SQL Server"
    timeout: int = 30
    auth: SQLServerAuthConfig = Field(
        default_factory=lambda: SQLMsiAuth(mode=SQLServerAuthMode.AAD_MSI)
    )


class BulkWriterOptions(BaseModel):
    """
    Options for bulk inserts and staging table operations.

    Timeouts are in seconds and are applied to the store session; the
    client call itself has no deadline.
    """

    direct_timeout: int = Field(default=200, gt=0, description="Bulk insert into a real table")
    staging_timeout: int = Field(default=660, gt=0, description="Bulk load into a staging table")
    statement_timeout: int = Field(
        default=300, gt=0, description="Caller statement plus staging cleanup"
    )
    batch_size: Optional[int] = Field(
        default=None, gt=0, description="Rows per batch; None sends all rows in one batch"
    )
    staging_prefix: str = "#TmpTable"
    string_length: int = Field(default=DEFAULT_STRING_LENGTH, gt=0)
    type_overrides: Dict[str, str] = Field(default_factory=dict)

    @field_validator("staging_prefix")
    @classmethod
    def staging_prefix_is_temp(cls, v: str) -> str:
        if not v.startswith("#"):
            raise ValueError("staging_prefix must start with '#' (session temp table)")
        return v

    @field_validator("type_overrides")
    @classmethod
    def type_overrides_parse(cls, v: Dict[str, str]) -> Dict[str, str]:
        for primitive, sql_type in v.items():
            try:
                ColumnType.parse(sql_type)
            except ValueError as e:
                raise ValueError(f"type_overrides['{primitive}']: {e}") from e
        return v


class LoggingConfig(BaseModel):
    level: LogLevel = LogLevel.INFO
    structured: bool = False


class BulkSqlConfig(BaseModel):
    """Top-level configuration file."""

    connection: SQLServerConnectionConfig
    writer: BulkWriterOptions = Field(default_factory=BulkWriterOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str, env: Optional[str] = None) -> BulkSqlConfig:
    """
    Load and validate a YAML configuration file.

    Raises:
        ConfigValidationError: If the file does not match the config model
    """
    from bulksql.utils.config_loader import load_yaml_with_env

    data = load_yaml_with_env(path, env=env)
    try:
        return BulkSqlConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(str(e), file=path) from e
