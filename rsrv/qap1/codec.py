"""QAP1 message encoding and decoding.

Requests are evaluation commands framed as a 16-byte message header, a 4-byte
parameter header and the command text. Responses carry a 16-byte header whose
status classifies success or failure, followed for successful value-returning
calls by a 4-byte data header and a payload whose shape is selected by the
data type tag. The composite tag (DT_SEXP) nests a second tag grammar.

All integers on the wire are little-endian. Nothing here touches a socket;
the functions work on complete byte buffers.
"""

import logging
import struct

from .errors import DecodeError, EvaluationError, TruncatedResponse, UnsupportedType
from .values import (
    Bool,
    BoolVec,
    Char,
    Double,
    DoubleVec,
    Int,
    IntVec,
    Null,
    Str,
    StrVec,
)

_LOGGER = logging.getLogger(__name__)

ENCODING = "utf-8"

# --- Commands ---
CMD_VOID_EVAL = 0x002
CMD_EVAL = 0x003

# --- Response status ---
RESP_OK = 0x10000 | 0x0001
RESP_ERR = 0x10000 | 0x0002

HEADER_SIZE = 16
DATA_HEADER_SIZE = 4
MAX_PARAM_LENGTH = 0xFFFFFF

# --- Data types (top level) ---
DT_INT = 1
DT_CHAR = 2
DT_DOUBLE = 3
DT_STRING = 4
DT_BYTESTREAM = 5
DT_SEXP = 10
DT_ARRAY = 11
DT_CUSTOM = 32
DT_LARGE = 64

# --- Expression types (inside DT_SEXP) ---
XT_NULL = 0
XT_INT = 1
XT_DOUBLE = 2
XT_STR = 3
XT_BOOL = 6
XT_ARRAY_INT = 32
XT_ARRAY_DOUBLE = 33
XT_ARRAY_STR = 34
XT_ARRAY_BOOL = 36


# ------------------------------------------------------------------
# Request encoding
# ------------------------------------------------------------------

def encode_request(command, void=False):
    """Frame an evaluation command.

    Args:
        command: R expression to evaluate. Sent as UTF-8, no terminator; the
            length field delimits it.
        void: Use CMD_voidEval, asking the server to discard the result.

    Returns:
        The message header, parameter header and command bytes.
    """
    data = command.encode(ENCODING)
    n = len(data)
    if n > MAX_PARAM_LENGTH:
        raise ValueError(f"command too long for a QAP1 parameter: {n} bytes")
    cmd = CMD_VOID_EVAL if void else CMD_EVAL
    header = struct.pack("<iiii", cmd, n + DATA_HEADER_SIZE, 0, 0)
    return header + _data_header(DT_STRING, n) + data


def _data_header(tag, length):
    """Pack a 1-byte tag and a 24-bit little-endian length."""
    return struct.pack("<I", (tag & 0xFF) | (length << 8))


def parse_header(buf):
    """Unpack a 16-byte response header.

    Returns:
        (status, payload_length). The length combines the low 32 bits with
        the high 32 bits kept in the reserved field.
    """
    if len(buf) < HEADER_SIZE:
        raise TruncatedResponse(
            f"response header needs {HEADER_SIZE} bytes, got {len(buf)}"
        )
    status, length, _offset, length_hi = struct.unpack_from("<IIII", buf, 0)
    return status, length | (length_hi << 32)


# ------------------------------------------------------------------
# Response decoding
# ------------------------------------------------------------------

class Decoder:
    """Cursor over one response payload.

    ``_end`` bounds every read; anything past it belongs to no field.
    """

    def __init__(self, buf, pos=0, end=None):
        self._r_buf = buf
        self._r_pos = pos
        self._end = len(buf) if end is None else end

    @property
    def pos(self):
        return self._r_pos

    def remaining(self):
        return self._end - self._r_pos

    def _need(self, n, what):
        """Fail unless n more bytes are available."""
        if n > self.remaining():
            raise TruncatedResponse(
                f"{what} needs {n} bytes, {self.remaining()} available"
            )

    def _unpack(self, fmt, what):
        size = struct.calcsize(fmt)
        self._need(size, what)
        val = struct.unpack_from(fmt, self._r_buf, self._r_pos)[0]
        self._r_pos += size
        return val

    def _rb(self):
        """Read byte."""
        return self._unpack("<B", "byte")

    def _rc(self):
        """Read char."""
        return chr(self._rb())

    def _ri(self):
        """Read int (4 bytes, signed)."""
        return self._unpack("<i", "int")

    def _rf(self):
        """Read double (8 bytes)."""
        return self._unpack("<d", "double")

    def _r24(self):
        """Read a 24-bit unsigned length."""
        self._need(3, "length")
        lo, hi = struct.unpack_from("<HB", self._r_buf, self._r_pos)
        self._r_pos += 3
        return lo | (hi << 16)

    def _rest(self):
        """Read every byte up to the end of the payload."""
        data = bytes(self._r_buf[self._r_pos:self._end])
        self._r_pos = self._end
        return data

    def _take(self, n, what):
        self._need(n, what)
        data = bytes(self._r_buf[self._r_pos:self._r_pos + n])
        self._r_pos += n
        return data

    def _rs(self):
        """Read the remaining payload as text, dropping NUL padding."""
        return self._text(self._rest().rstrip(b"\x00"))

    def _text(self, raw):
        """Decode UTF-8 text."""
        try:
            return raw.decode(ENCODING)
        except UnicodeDecodeError as err:
            raise DecodeError(f"invalid UTF-8 in response: {err}") from err

    def r(self):
        """Decode the data header and the value it describes."""
        t = self._rb()
        self._r24()
        if t == DT_INT:
            return Int(self._ri())
        if t == DT_CHAR:
            return Char(self._rc())
        if t == DT_DOUBLE:
            return Double(self._rf())
        if t == DT_STRING:
            return Str(self._rs())
        if t == DT_SEXP:
            xt = self._rb()
            n = self._r24()
            return self.rx(xt, n)
        raise UnsupportedType(t)

    def rx(self, xt, n):
        """Decode an expression of type xt whose body is n bytes long."""
        if xt == XT_NULL:
            return Null()
        if xt == XT_INT:
            return Int(self._ri())
        if xt == XT_DOUBLE:
            return Double(self._rf())
        if xt == XT_STR:
            return Str(self._rs())
        if xt == XT_BOOL:
            return Bool(self._rb() == 1)
        if xt == XT_ARRAY_INT:
            return IntVec(self._ri() for _ in range(n // 4))
        if xt == XT_ARRAY_DOUBLE:
            return DoubleVec(self._rf() for _ in range(n // 8))
        if xt == XT_ARRAY_STR:
            raw = self._take(n, "string array")
            items = self._text(raw).split("\0") if raw else []
            if raw.endswith(b"\0"):
                items.pop()
            return StrVec(items)
        if xt == XT_ARRAY_BOOL:
            return BoolVec(b == 1 for b in self._take(n, "bool array"))
        raise UnsupportedType(xt, expression=True)


def decode_expression(xt, length, buf, pos=0):
    """Decode one expression body without a transport.

    Args:
        xt: Expression type tag.
        length: Declared body length from the expression header.
        buf: Buffer holding the body.
        pos: Offset of the body in buf.

    Returns:
        (value, next_pos)
    """
    d = Decoder(buf, pos)
    value = d.rx(xt, length)
    return value, d.pos


def decode_response(buf):
    """Decode a complete response message.

    Raises EvaluationError for a failed status before looking at the payload.
    A successful response with no payload (void evaluation) yields Null.
    """
    status, length = parse_header(buf)
    err_code = (status >> 24) & 0x7F
    response_code = status & 0xFFFFF
    if response_code != RESP_OK:
        _LOGGER.debug("Error response, status 0x%08x", status)
        raise EvaluationError(err_code)

    end = HEADER_SIZE + length
    if len(buf) < end:
        raise TruncatedResponse(
            f"response declares {length} payload bytes, "
            f"{len(buf) - HEADER_SIZE} available"
        )
    if length == 0:
        return Null()
    return Decoder(buf, HEADER_SIZE, end).r()


# ------------------------------------------------------------------
# Response encoding (server side of the exchange, used by test servers)
# ------------------------------------------------------------------

def encode_response(payload=b"", status=RESP_OK):
    """Frame a response message around an already encoded payload."""
    n = len(payload)
    header = struct.pack("<IIII", status, n & 0xFFFFFFFF, 0, n >> 32)
    return header + payload


def encode_error(code):
    """Frame an error response carrying code."""
    return encode_response(status=RESP_ERR | ((code & 0x7F) << 24))


def encode_value(value):
    """Encode a Value as a DT_SEXP payload.

    Char is sent as a top-level DT_CHAR since the expression grammar has no
    character type.
    """
    if isinstance(value, Char):
        return _data_header(DT_CHAR, 1) + value.value.encode("latin-1")
    xt, body = _expression_body(value)
    expr = _data_header(xt, len(body)) + body
    return _data_header(DT_SEXP, len(expr)) + expr


def _expression_body(value):
    if isinstance(value, Null):
        return XT_NULL, b""
    if isinstance(value, Bool):
        return XT_BOOL, bytes([1 if value.value else 0])
    if isinstance(value, Int):
        return XT_INT, struct.pack("<i", value.value)
    if isinstance(value, Double):
        return XT_DOUBLE, struct.pack("<d", value.value)
    if isinstance(value, Str):
        return XT_STR, value.value.encode(ENCODING) + b"\0"
    if isinstance(value, IntVec):
        return XT_ARRAY_INT, struct.pack(f"<{len(value)}i", *value)
    if isinstance(value, DoubleVec):
        return XT_ARRAY_DOUBLE, struct.pack(f"<{len(value)}d", *value)
    if isinstance(value, BoolVec):
        return XT_ARRAY_BOOL, bytes(1 if b else 0 for b in value)
    if isinstance(value, StrVec):
        return XT_ARRAY_STR, "\0".join(value).encode(ENCODING)
    raise TypeError(f"cannot encode {type(value).__name__}")
