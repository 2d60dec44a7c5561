"""Connection implementations for bulksql."""

from bulksql.connections.azure_sql import AzureSQL, SqlServerSession
from bulksql.connections.base import BaseConnection

__all__ = ["AzureSQL", "BaseConnection", "SqlServerSession"]
