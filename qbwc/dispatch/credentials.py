"""
Credential Validation

Checks Web Connector credentials against the active connection
configuration. The agent authenticates with the username/password the
operator put in the .qwc file and the connection settings.
"""

import hmac
import logging
from abc import ABC, abstractmethod

from qbwc.storage.ports import ConnectionStore

logger = logging.getLogger(__name__)


class CredentialValidator(ABC):
    """Decides whether a username/password pair may open a session."""

    @abstractmethod
    async def validate(self, username: str | None, password: str | None) -> bool:
        ...


def _matches(expected: str, given: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), given.encode("utf-8"))


class ConnectionCredentialValidator(CredentialValidator):
    """
    Validates against the active ConnectionRecord.

    Fails closed: no active connection, or an empty username or password,
    is a rejection.
    """

    def __init__(self, connections: ConnectionStore):
        self._connections = connections

    async def validate(self, username: str | None, password: str | None) -> bool:
        if not username or not password:
            return False

        connection = await self._connections.get()
        if connection is None:
            logger.warning("Authentication attempted with no active QuickBooks connection")
            return False

        # Both comparisons always run
        user_ok = _matches(connection.wc_username, username)
        password_ok = _matches(connection.wc_password, password)
        return user_ok and password_ok
