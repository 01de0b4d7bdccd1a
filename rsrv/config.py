"""Configuration schema for the Rserve client."""

import logging

import voluptuous as vol

from .qap1.connection import READ_BUFFER_SIZE, parse_address
from .qap1.errors import InvalidAddress

_LOGGER = logging.getLogger(__name__)

CONF_ADDRESS = "address"
CONF_HOST = "host"
CONF_PORT = "port"
CONF_TIMEOUT = "timeout"
CONF_READ_BUFFER_SIZE = "read_buffer_size"
CONF_RETRIES = "retries"
CONF_RETRY_INTERVAL = "retry_interval"
CONF_FETCH_ERROR_MESSAGES = "fetch_error_messages"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 6311
DEFAULT_TIMEOUT = None
DEFAULT_RETRIES = 0
DEFAULT_RETRY_INTERVAL = 5  # seconds


def address(value):
    """Validate a tcp:// or unix:// connection string."""
    try:
        parse_address(value)
    except InvalidAddress as err:
        raise vol.Invalid(str(err)) from err
    return value


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_ADDRESS): address,
        vol.Optional(CONF_HOST, default=DEFAULT_HOST): str,
        vol.Optional(CONF_PORT, default=DEFAULT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_TIMEOUT, default=DEFAULT_TIMEOUT): vol.Any(
            None, vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))
        ),
        vol.Optional(CONF_READ_BUFFER_SIZE, default=READ_BUFFER_SIZE): vol.All(
            int, vol.Range(min=16)
        ),
        vol.Optional(CONF_RETRIES, default=DEFAULT_RETRIES): vol.All(
            int, vol.Range(min=0)
        ),
        vol.Optional(CONF_RETRY_INTERVAL, default=DEFAULT_RETRY_INTERVAL): vol.All(
            vol.Coerce(float), vol.Range(min=0)
        ),
        vol.Optional(CONF_FETCH_ERROR_MESSAGES, default=False): bool,
    }
)


def validate_config(conf=None):
    """Apply defaults and fill in the address from host/port when absent."""
    conf = CONFIG_SCHEMA(dict(conf or {}))
    if CONF_ADDRESS not in conf:
        host = conf[CONF_HOST]
        if ":" in host:
            host = f"[{host}]"
        conf[CONF_ADDRESS] = f"tcp://{host}:{conf[CONF_PORT]}"
    _LOGGER.debug("Using Rserve address %s", conf[CONF_ADDRESS])
    return conf
