"""Structured logging for bulksql.

Console output goes through Rich; ``structured=True`` prints one JSON object
per line instead. Values registered with ``register_secret`` (passwords,
substituted env vars) are replaced with ``[REDACTED]`` in messages and fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Set

from rich.logging import RichHandler

REDACTED = "[REDACTED]"

_LEVEL_PREFIXES = {
    logging.DEBUG: "[DEBUG] ",
    logging.INFO: "",
    logging.WARNING: "[WARN] ",
    logging.ERROR: "[ERROR] ",
}

# The ODBC/SQLAlchemy stack is noisy below WARNING
NOISY_LOGGERS = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool", "urllib3")


class StructuredLogger:
    """Logger that supports both human-readable and JSON output with secret redaction."""

    def __init__(self, structured: bool = False, level: str = "INFO", secrets: Iterable[str] = ()):
        self.structured = structured
        self.level = logging.getLevelName(level.upper())
        if not isinstance(self.level, int):
            self.level = logging.INFO
        self._secrets: Set[str] = set()
        for secret in secrets:
            self.register_secret(secret)

        if structured:
            logging.basicConfig(level=self.level, format="%(message)s", stream=sys.stdout)
        else:
            logging.basicConfig(
                level=self.level,
                format="%(message)s",
                datefmt="[%X]",
                handlers=[RichHandler(rich_tracebacks=True, markup=False, show_path=False)],
            )

        self.logger = logging.getLogger("bulksql")
        self.logger.setLevel(self.level)
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(self.level, logging.WARNING))

    @property
    def secrets(self) -> Set[str]:
        return set(self._secrets)

    def register_secret(self, secret: str) -> None:
        """Register a secret string to be redacted from logs."""
        if isinstance(secret, str) and secret.strip():
            self._secrets.add(secret)

    def _redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def _redact_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return {k: self._redact(v) if isinstance(v, str) else v for k, v in fields.items()}

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def _log(self, level: int, message: str, **kwargs) -> None:
        if level < self.level:
            return

        message = self._redact(str(message))
        fields = self._redact_fields(kwargs)

        if self.structured:
            entry = {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "level": logging.getLevelName(level),
                "message": message,
                **fields,
            }
            print(json.dumps(entry, default=str))
            return

        if fields:
            message = f"{message} ({', '.join(f'{k}={v}' for k, v in fields.items())})"
        self.logger.log(level, f"{_LEVEL_PREFIXES[level]}{message}")


logger = StructuredLogger()


def configure_logging(structured: bool, level: str) -> StructuredLogger:
    """Replace the global logger, keeping secrets already registered."""
    global logger
    logger = StructuredLogger(structured=structured, level=level, secrets=logger.secrets)
    return logger
