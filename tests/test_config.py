"""Tests for the configuration schema."""

import pytest
import voluptuous as vol

from rsrv.config import (
    CONF_ADDRESS,
    CONF_FETCH_ERROR_MESSAGES,
    CONF_HOST,
    CONF_PORT,
    CONF_READ_BUFFER_SIZE,
    CONF_RETRIES,
    CONF_TIMEOUT,
    DEFAULT_PORT,
    validate_config,
)


class TestValidateConfig:
    """Test defaults and validation."""

    def test_defaults(self):
        conf = validate_config()
        assert conf[CONF_ADDRESS] == f"tcp://localhost:{DEFAULT_PORT}"
        assert conf[CONF_TIMEOUT] is None
        assert conf[CONF_READ_BUFFER_SIZE] == 1024
        assert conf[CONF_RETRIES] == 0
        assert conf[CONF_FETCH_ERROR_MESSAGES] is False

    def test_address_from_host_and_port(self):
        conf = validate_config({CONF_HOST: "r.example.com", CONF_PORT: "6312"})
        assert conf[CONF_ADDRESS] == "tcp://r.example.com:6312"

    def test_ipv6_host(self):
        conf = validate_config({CONF_HOST: "::1"})
        assert conf[CONF_ADDRESS] == f"tcp://[::1]:{DEFAULT_PORT}"

    def test_explicit_address_wins(self):
        conf = validate_config({CONF_ADDRESS: "unix:///var/run/rserve.sock"})
        assert conf[CONF_ADDRESS] == "unix:///var/run/rserve.sock"

    def test_input_not_mutated(self):
        raw = {CONF_HOST: "h"}
        validate_config(raw)
        assert raw == {CONF_HOST: "h"}

    @pytest.mark.parametrize(
        "conf",
        [
            {CONF_ADDRESS: "http://localhost:6311"},
            {CONF_PORT: 0},
            {CONF_PORT: 70000},
            {CONF_TIMEOUT: 0},
            {CONF_TIMEOUT: -1},
            {CONF_READ_BUFFER_SIZE: 8},
            {CONF_RETRIES: -1},
            {"unknown": 1},
        ],
    )
    def test_invalid(self, conf):
        with pytest.raises(vol.Invalid):
            validate_config(conf)

    def test_timeout_coerced(self):
        assert validate_config({CONF_TIMEOUT: "2.5"})[CONF_TIMEOUT] == 2.5
