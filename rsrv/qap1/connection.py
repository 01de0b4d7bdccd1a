"""QAP1 connection: address parsing, handshake and the evaluation exchange."""

import asyncio
import enum
import logging

from .codec import HEADER_SIZE, decode_response, encode_request, parse_header
from .errors import (
    ConnectionBusy,
    HandshakeError,
    InvalidAddress,
    QapConnectionError,
    QapTimeout,
)
from .transport import TcpTransport, UnixTransport
from .values import Str, StrVec

_LOGGER = logging.getLogger(__name__)

HANDSHAKE_MARKER = "Rsrv01"
HANDSHAKE_SIZE = 32
READ_BUFFER_SIZE = 1024
HANDSHAKE_GRACE = 0.25

AUTH_ATTRIBUTES = ("ARpt", "ARuc")


class State(enum.Enum):
    """Exchange state of a connection."""

    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    BROKEN = "broken"
    CLOSED = "closed"


class ServerInfo:
    """Fields of the 32-byte identification block sent by the server."""

    def __init__(self, version, protocol, attributes):
        self.version = version
        self.protocol = protocol
        self.attributes = attributes

    def __repr__(self):
        return (
            f"ServerInfo(version={self.version!r}, protocol={self.protocol!r}, "
            f"attributes={self.attributes!r})"
        )

    @property
    def requires_auth(self):
        return any(a in AUTH_ATTRIBUTES for a in self.attributes)

    @classmethod
    def parse(cls, text):
        """Split an identification block into its 4-character fields."""
        fields = [text[i:i + 4] for i in range(0, len(text), 4)]
        version = fields[1] if len(fields) > 1 else ""
        protocol = fields[2] if len(fields) > 2 else ""
        attributes = [
            f for f in fields[3:]
            if len(f) == 4 and f.strip("\r\n-") and f.isprintable()
        ]
        return cls(version, protocol, attributes)


def parse_address(address):
    """Split a connection string into (kind, target).

    ``tcp://host:port`` gives ``("tcp", (host, port))`` and ``unix://path``
    gives ``("unix", path)``. Anything else raises InvalidAddress.
    """
    if not isinstance(address, str):
        raise InvalidAddress(f"Invalid address format: {address!r}")
    if address.startswith("tcp://"):
        host, sep, port = address[len("tcp://"):].rpartition(":")
        if not sep or not host or not port.isdigit():
            raise InvalidAddress(f"Invalid address format: {address!r}")
        port = int(port)
        if not 0 < port < 65536:
            raise InvalidAddress(f"Port out of range: {address!r}")
        if host.startswith("[") and host.endswith("]"):
            host = host[1:-1]
        return "tcp", (host, port)
    if address.startswith("unix://"):
        path = address[len("unix://"):]
        if not path:
            raise InvalidAddress(f"Invalid address format: {address!r}")
        return "unix", path
    raise InvalidAddress(f"Invalid address format: {address!r}")


class Connection:
    """One handshaken stream to an Rserve instance.

    Only one request may be in flight. A failure or cancellation in the middle
    of an exchange leaves the stream at an unknown protocol position, so the
    connection is marked broken and must be replaced.
    """

    def __init__(self, transport, server_info=None, timeout=None,
                 read_buffer_size=READ_BUFFER_SIZE):
        self._transport = transport
        self.server_info = server_info
        self.timeout = timeout
        self.read_buffer_size = read_buffer_size
        self.state = State.IDLE

    def __repr__(self):
        return f"<Connection {self._transport!r} state={self.state.value}>"

    @property
    def kind(self):
        return self._transport.kind

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.shutdown()

    # ------------------------------------------------------------------
    # Readiness-gated I/O
    # ------------------------------------------------------------------

    async def _ready(self, wait):
        try:
            await asyncio.wait_for(wait(), self.timeout)
        except asyncio.TimeoutError as err:
            raise QapTimeout(f"no readiness after {self.timeout}s") from err
        except OSError as err:
            raise QapConnectionError(str(err)) from err

    async def _read_some(self, limit):
        """Read at most limit bytes, waiting through WouldBlock."""
        buf = bytearray(min(limit, self.read_buffer_size))
        while True:
            await self._ready(self._transport.wait_readable)
            try:
                n = self._transport.try_read(buf)
            except BlockingIOError:
                continue
            except OSError as err:
                raise QapConnectionError(str(err)) from err
            if n == 0:
                raise QapConnectionError("connection closed by server")
            return bytes(buf[:n])

    def _grace(self):
        if self.timeout is None:
            return HANDSHAKE_GRACE
        return min(HANDSHAKE_GRACE, self.timeout)

    async def _write(self, data):
        while True:
            await self._ready(self._transport.wait_writable)
            try:
                n = self._transport.try_write(data)
            except BlockingIOError:
                continue
            except OSError as err:
                raise QapConnectionError(str(err)) from err
            if n != len(data):
                raise QapConnectionError(
                    f"short write: {n} of {len(data)} bytes accepted"
                )
            return

    async def _read_message(self):
        """Accumulate one response: the header plus its declared payload."""
        data = bytearray()
        need = HEADER_SIZE
        while len(data) < need:
            data += await self._read_some(need - len(data))
            if need == HEADER_SIZE and len(data) >= HEADER_SIZE:
                _status, length = parse_header(data)
                need = HEADER_SIZE + length
        return bytes(data)

    # ------------------------------------------------------------------
    # Handshake
    # ------------------------------------------------------------------

    async def handshake(self):
        """Read and validate the server identification block.

        The block is normally 32 bytes. Once the marker has matched, a server
        that goes quiet for HANDSHAKE_GRACE seconds is taken to have sent a
        shorter block.
        """
        marker = HANDSHAKE_MARKER.encode("ascii")
        data = bytearray()
        while len(data) < HANDSHAKE_SIZE:
            want = HANDSHAKE_SIZE - len(data)
            if len(data) < len(marker):
                data += await self._read_some(want)
            else:
                try:
                    data += await asyncio.wait_for(
                        self._read_some(want), self._grace()
                    )
                except (asyncio.TimeoutError, QapTimeout):
                    _LOGGER.debug("Short identification block: %r", bytes(data))
                    break
            # Fail as soon as the bytes seen so far diverge from the marker.
            head = bytes(data[:len(marker)])
            if not marker.startswith(head):
                raise HandshakeError(f"unexpected server identification: {head!r}")

        text = data.decode("utf-8", errors="replace")
        self.server_info = ServerInfo.parse(text)
        _LOGGER.debug("Server identification: %r", self.server_info)
        if self.server_info.requires_auth:
            _LOGGER.warning(
                "Server requires authentication, which this client does not "
                "perform; evaluations will likely fail"
            )
        return self.server_info

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate(self, command, void=False):
        """Evaluate command on the server and return the decoded Value.

        Args:
            command: A complete R expression.
            void: Ask the server to discard the result. The response then
                carries only a status and decodes to Null.

        Raises:
            ConnectionBusy: Another evaluation is in flight.
            QapConnectionError: The connection is closed, broken or failed.
            EvaluationError: The server reported an error.
        """
        if self.state is State.AWAITING_RESPONSE:
            raise ConnectionBusy("a request is already in flight")
        if self.state is not State.IDLE:
            raise QapConnectionError(f"connection is {self.state.value}")

        request = encode_request(command, void)
        self.state = State.AWAITING_RESPONSE
        try:
            _LOGGER.debug("Sending %d byte request: %.80s", len(request), command)
            await self._write(request)
            message = await self._read_message()
        except BaseException:
            self.state = State.BROKEN
            raise
        self.state = State.IDLE
        _LOGGER.debug("Received %d byte response", len(message))
        return decode_response(message)

    async def fetch_error_message(self):
        """Return the server's last error message via geterrmessage()."""
        value = await self.evaluate("geterrmessage()")
        if isinstance(value, StrVec):
            return value[0].strip() if len(value) else ""
        if isinstance(value, Str):
            return value.value.strip()
        return str(value.value)

    def shutdown(self):
        """Close the stream. The connection cannot be used afterwards."""
        if self.state is State.CLOSED:
            return
        self.state = State.CLOSED
        self._transport.shutdown()
        _LOGGER.debug("Connection closed")


async def connect(address, timeout=None, read_buffer_size=READ_BUFFER_SIZE):
    """Open a stream to address and validate the server handshake.

    Args:
        address: ``tcp://host:port`` or ``unix://path``.
        timeout: Seconds to wait at each readiness point (None = no limit).
        read_buffer_size: Size of the scratch buffer used for each read.

    Returns:
        A ready Connection.
    """
    kind, target = parse_address(address)
    try:
        if kind == "tcp":
            opening = TcpTransport.open(*target)
        else:
            opening = UnixTransport.open(target)
        transport = await asyncio.wait_for(opening, timeout)
    except asyncio.TimeoutError as err:
        raise QapTimeout(f"connect to {address} timed out") from err
    except OSError as err:
        raise QapConnectionError(f"cannot connect to {address}: {err}") from err

    conn = Connection(transport, timeout=timeout, read_buffer_size=read_buffer_size)
    try:
        await conn.handshake()
    except BaseException:
        conn.shutdown()
        raise
    _LOGGER.info("Connected to Rserve at %s", address)
    return conn


async def evaluate(connection, command, void=False):
    """Evaluate command on connection. See Connection.evaluate."""
    return await connection.evaluate(command, void)
