"""Base connection interface."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator


class BaseConnection(ABC):
    """Base class for store connections."""

    @abstractmethod
    def validate(self) -> None:
        """Validate connection configuration.

        Raises:
            ValueError: If validation fails
        """
        pass

    @abstractmethod
    def open_session(self):
        """Open a new session on the store."""
        pass

    @contextmanager
    def session(self) -> Iterator:
        """Open a session and close it on every exit path."""
        sess = self.open_session()
        try:
            yield sess
        finally:
            sess.close()

    def close(self) -> None:
        """Release pooled resources."""
        pass
