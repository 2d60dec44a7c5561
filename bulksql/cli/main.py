"""Main CLI entry point."""

import argparse
import sys

from bulksql.config import load_config
from bulksql.connections.azure_sql import AzureSQL
from bulksql.exceptions import BulkSqlException
from bulksql.utils.logging import configure_logging
from bulksql.writers.staging import StagingMergeCoordinator


def drop_staging_command(args) -> int:
    """Drop the staging table for a destination table."""
    try:
        config = load_config(args.config, env=args.env)
    except (BulkSqlException, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log = configure_logging(
        structured=config.logging.structured,
        level=args.log_level or config.logging.level.value,
    )

    connection = AzureSQL.from_config(config.connection)
    try:
        connection.validate()
        coordinator = StagingMergeCoordinator(connection, options=config.writer)
        coordinator.drop_staging(args.table)
    except (BulkSqlException, ValueError) as e:
        log.error(str(e))
        return 1
    finally:
        connection.close()

    log.info(f"Staging table for {args.table} is gone")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="bulksql - SQL Server bulk loading",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bulksql drop-staging config.yaml Users            Drop the staging table for Users
  bulksql drop-staging config.yaml Users --env prod

Local '#' temp tables belong to the session that created them, so a new
session only sees staging tables created with a global '##' staging_prefix
(writer.staging_prefix: "##TmpTable"). Local staging tables left by a dead
process are removed by SQL Server when that session ends.
        """,
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging verbosity (default: from config)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    drop_parser = subparsers.add_parser(
        "drop-staging",
        help="Drop a global (##) staging table left by an aborted merge or join",
        description=(
            "Drop the staging table for TABLE as seen from a new session. "
            "Only global '##' staging tables are visible across sessions."
        ),
    )
    drop_parser.add_argument("config", help="Path to YAML config file")
    drop_parser.add_argument("table", help="Destination table name")
    drop_parser.add_argument("--env", default=None, help="Environment override to apply")

    args = parser.parse_args(argv)

    if args.command == "drop-staging":
        return drop_staging_command(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
