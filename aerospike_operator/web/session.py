"""Framing of the aerospike info protocol over asyncio streams.

Every message starts with an 8 byte header: the protocol version (2), the
message type (1 for info) and the body length as a 48-bit big-endian integer.
A request body lists commands separated by newlines. A response body holds one
``name<TAB>value`` line per command.
"""

import asyncio
import logging
from typing import Dict, Iterable, Optional, Tuple

from .error import ProtocolError

logger = logging.getLogger(__name__)

PROTO_VERSION = 2
PROTO_TYPE_INFO = 1
HEADER_SIZE = 8
MAX_BODY_SIZE = 128 * 1024 * 1024

"""Default timeout in seconds"""
TIMEOUT: float = 10


def encode_header(length: int) -> bytes:
    return bytes([PROTO_VERSION, PROTO_TYPE_INFO]) + length.to_bytes(6, "big")


def decode_header(header: bytes) -> int:
    """Validate a message header and return the body length."""
    if len(header) != HEADER_SIZE:
        raise ProtocolError(f"short header: {len(header)} bytes")
    version, type_ = header[0], header[1]
    if version != PROTO_VERSION:
        raise ProtocolError(f"unexpected protocol version {version}")
    if type_ != PROTO_TYPE_INFO:
        raise ProtocolError(f"unexpected message type {type_}")
    length = int.from_bytes(header[2:], "big")
    if length > MAX_BODY_SIZE:
        raise ProtocolError(f"message too large: {length} bytes")
    return length


def encode_request(commands: Iterable[str]) -> bytes:
    body = "".join(f"{command}\n" for command in commands).encode("utf-8")
    return encode_header(len(body)) + body


def decode_response(body: bytes) -> Dict[str, str]:
    result = {}
    for line in body.decode("utf-8", errors="replace").split("\n"):
        if not line:
            continue
        name, _, value = line.partition("\t")
        result[name] = value
    return result


class InfoSession:
    """A single connection to the info endpoint of an aerospike node."""

    reader: Optional[asyncio.StreamReader] = None
    writer: Optional[asyncio.StreamWriter] = None

    def __init__(self, host: str, port: int, timeout: float = TIMEOUT) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    @property
    def address(self) -> Tuple[str, int]:
        return self.host, self.port

    async def connect(self) -> None:
        if self.writer is None:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self.timeout
            )

    async def request(self, *commands: str) -> Dict[str, str]:
        """Send info commands and return the values keyed by command."""
        await self.connect()

        async def do_request():
            self.writer.write(encode_request(commands))
            await self.writer.drain()
            length = decode_header(await self.reader.readexactly(HEADER_SIZE))
            body = await self.reader.readexactly(length)
            return decode_response(body)

        try:
            return await asyncio.wait_for(do_request(), self.timeout)
        except asyncio.IncompleteReadError as ex:
            raise ProtocolError(
                f"connection to {self.host}:{self.port} closed mid-message"
            ) from ex

    async def close(self) -> None:
        if self.writer is not None:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except OSError:
                logger.debug(f"Error closing connection to {self.host}:{self.port}")
            self.reader = self.writer = None

    def __repr__(self) -> str:
        return f"InfoSession<{self.host}:{self.port}>"

    async def __aenter__(self) -> "InfoSession":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
