"""Exceptions raised by the QAP1 client."""

# Rserve ERR_* codes, as carried in the top byte of a failed response status.
ERROR_CODES = {
    0x41: "auth failed",
    0x42: "connection broken",
    0x43: "invalid command",
    0x44: "invalid parameter",
    0x45: "R error",
    0x46: "I/O error",
    0x47: "file not open",
    0x48: "access denied",
    0x49: "unsupported command",
    0x4A: "unknown command",
    0x4B: "data overflow",
    0x4C: "object too big",
    0x4D: "out of memory",
    0x4E: "control pipe closed",
    0x50: "session busy",
    0x51: "detach failed",
    0x61: "feature disabled",
    0x62: "feature unavailable",
    0x63: "crypt error",
    0x64: "security close",
}


class QapError(Exception):
    """Base class for every QAP1 client error."""


class QapConnectionError(QapError):
    """I/O failure on the underlying stream, or the stream is unusable."""


class QapTimeout(QapError):
    """A readiness wait exceeded the configured timeout."""


class HandshakeError(QapError):
    """The server did not identify itself as an Rserve QAP1 server."""


class InvalidAddress(QapError, ValueError):
    """Connection string is neither tcp://host:port nor unix://path."""


class ConnectionBusy(QapError):
    """A request is already in flight on this connection."""


class EvaluationError(QapError):
    """The server answered with an error status."""

    def __init__(self, code, message=None):
        self.code = code
        self.description = ERROR_CODES.get(code, "unknown error")
        self.message = message
        super().__init__(str(self))

    def __str__(self):
        text = f"error code: {self.code} ({self.description})"
        if self.message:
            text += f": {self.message}"
        return text


class UnsupportedType(QapError):
    """A data type or expression type tag outside the supported set."""

    def __init__(self, tag, expression=False):
        self.tag = tag
        self.expression = expression
        kind = "expression type" if expression else "data type"
        super().__init__(f"unsupported {kind}: {tag}")


class TruncatedResponse(QapError):
    """Fewer bytes were available than a field or header declared."""


class DecodeError(QapError):
    """A payload could not be decoded into a value."""
