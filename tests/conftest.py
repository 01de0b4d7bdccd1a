"""Pytest configuration and shared fixtures.

FakeRserve speaks enough of the server side of QAP1 to drive the client over
real sockets: it sends the identification block, then answers each request
from a table of canned responses.
"""

import asyncio
import struct

import pytest
import pytest_asyncio

from rsrv.qap1.codec import CMD_VOID_EVAL, encode_error, encode_response, encode_value
from rsrv.qap1.values import Double, Int, IntVec, Str, StrVec

IDENT = b"Rsrv0103QAP1\r\n\r\n--------------\r\n"


class FakeRserve:
    """Canned-response Rserve stand-in."""

    def __init__(self, responses=None, ident=IDENT, chunk_size=None, hang=()):
        self.responses = dict(responses or {})
        self.ident = ident
        self.chunk_size = chunk_size
        self.hang = set(hang)
        self.requests = []
        self.server = None
        self.address = None
        self._writers = []
        self._release = asyncio.Event()

    async def _send(self, writer, data):
        if not self.chunk_size:
            writer.write(data)
            await writer.drain()
            return
        for i in range(0, len(data), self.chunk_size):
            writer.write(data[i:i + self.chunk_size])
            await writer.drain()
            await asyncio.sleep(0.001)

    async def handle(self, reader, writer):
        self._writers.append(writer)
        try:
            await self._send(writer, self.ident)
            while True:
                header = await reader.readexactly(16)
                cmd, length, _offset, _reserved = struct.unpack("<iiii", header)
                body = await reader.readexactly(length)
                command = body[4:].decode("utf-8")
                self.requests.append((cmd, command))
                if command in self.hang:
                    await self._release.wait()
                if cmd == CMD_VOID_EVAL:
                    reply = encode_response()
                else:
                    reply = self.responses.get(command, encode_error(127))
                await self._send(writer, reply)
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    async def start_tcp(self):
        self.server = await asyncio.start_server(self.handle, "127.0.0.1", 0)
        port = self.server.sockets[0].getsockname()[1]
        self.address = f"tcp://127.0.0.1:{port}"
        return self

    async def start_unix(self, path):
        self.server = await asyncio.start_unix_server(self.handle, path=str(path))
        self.address = f"unix://{path}"
        return self

    async def stop(self):
        self._release.set()
        for writer in self._writers:
            writer.close()
        self.server.close()
        await self.server.wait_closed()


def canned():
    """Responses for a handful of R expressions."""
    return {
        "1+1": encode_response(encode_value(Double(2.0))),
        "1L": encode_response(encode_value(Int(1))),
        "1:3": encode_response(encode_value(IntVec([1, 2, 3]))),
        "'hi'": encode_response(encode_value(Str("hi"))),
        "letters[1:3]": encode_response(encode_value(StrVec(["a", "b", "c"]))),
        "geterrmessage()": encode_response(
            encode_value(StrVec(["Error: object 'x' not found\n"]))
        ),
        "big": encode_response(encode_value(IntVec(range(2000)))),
    }


@pytest.fixture
def responses():
    return canned()


@pytest_asyncio.fixture
async def rserve(responses):
    """A FakeRserve listening on TCP localhost."""
    server = await FakeRserve(responses).start_tcp()
    yield server
    await server.stop()


class FakeTransport:
    """Scripted transport for driving Connection without sockets.

    ``reads`` items are bytes to hand out or exceptions to raise; ``writes``
    items are byte counts to accept (None = all) or exceptions to raise.
    """

    kind = "fake"

    def __init__(self, reads=(), writes=()):
        self.reads = list(reads)
        self.writes = list(writes)
        self.written = bytearray()
        self.closed = False

    async def wait_readable(self):
        await asyncio.sleep(0)

    async def wait_writable(self):
        await asyncio.sleep(0)

    def try_read(self, buf):
        if not self.reads:
            return 0
        item = self.reads.pop(0)
        if isinstance(item, BaseException):
            raise item
        n = min(len(buf), len(item))
        buf[:n] = item[:n]
        if n < len(item):
            self.reads.insert(0, item[n:])
        return n

    def try_write(self, data):
        item = self.writes.pop(0) if self.writes else None
        if isinstance(item, BaseException):
            raise item
        n = len(data) if item is None else item
        self.written += data[:n]
        return n

    def shutdown(self):
        self.closed = True


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def make_rserve():
    return FakeRserve
