"""Support to evaluate R expressions on an Rserve instance."""

import asyncio
import logging

from .config import (
    CONF_ADDRESS,
    CONF_FETCH_ERROR_MESSAGES,
    CONF_READ_BUFFER_SIZE,
    CONF_RETRIES,
    CONF_RETRY_INTERVAL,
    CONF_TIMEOUT,
    validate_config,
)
from .qap1 import (
    Connection,
    EvaluationError,
    QapConnectionError,
    QapError,
    QapTimeout,
    State,
    connect,
)

_LOGGER = logging.getLogger(__name__)

__version__ = "0.1.0"


class RsrvClient:
    """Manage a connection to an Rserve instance."""

    def __init__(self, config: dict = None):
        """Initialize the client from a config dict (see rsrv.config)."""
        self.config = validate_config(config)
        self.address = self.config[CONF_ADDRESS]
        self._conn: Connection = None

    def __repr__(self):
        return f"<RsrvClient {self.address}>"

    async def __aenter__(self):
        if not await self.connect():
            raise QapConnectionError(f"cannot connect to {self.address}")
        return self

    async def __aexit__(self, *exc_info):
        self.close()

    @property
    def connection(self) -> Connection:
        return self._conn

    def _usable(self) -> bool:
        return self._conn is not None and self._conn.state is State.IDLE

    async def is_connected(self) -> bool:
        """Check if connection is active."""
        if not self._usable():
            return False
        try:
            await self._conn.evaluate("1+1")
            return True
        except QapError as err:
            _LOGGER.debug("Connection check failed: %s", err)
            return False

    async def connect(self) -> bool:
        """Establish connection to Rserve, retrying as configured."""
        attempts = self.config[CONF_RETRIES] + 1
        for attempt in range(1, attempts + 1):
            self.close()
            try:
                self._conn = await connect(
                    self.address,
                    timeout=self.config[CONF_TIMEOUT],
                    read_buffer_size=self.config[CONF_READ_BUFFER_SIZE],
                )
                return True
            except (QapConnectionError, QapTimeout) as err:
                _LOGGER.error("Failed to connect to Rserve at %s: %s", self.address, err)
            if attempt < attempts:
                _LOGGER.warning(
                    "Retrying in %s seconds (attempt %d of %d)",
                    self.config[CONF_RETRY_INTERVAL], attempt + 1, attempts,
                )
                await asyncio.sleep(self.config[CONF_RETRY_INTERVAL])
        return False

    def close(self):
        """Close the connection."""
        if self._conn is not None:
            self._conn.shutdown()
            self._conn = None
            _LOGGER.info("Closed connection to %s", self.address)

    async def evaluate(self, command: str, void: bool = False):
        """Evaluate command, reconnecting first if the connection is unusable."""
        if not self._usable():
            if not await self.connect():
                raise QapConnectionError(f"cannot connect to {self.address}")

        try:
            return await self._conn.evaluate(command, void)
        except EvaluationError as err:
            if self.config[CONF_FETCH_ERROR_MESSAGES]:
                err.message = await self._error_message()
            raise

    async def _error_message(self):
        """Fetch diagnostics for a failed evaluation; never recurses."""
        try:
            return await self._conn.fetch_error_message()
        except QapError as err:
            _LOGGER.warning("Could not retrieve error message: %s", err)
            return None
