"""
The byte stream to the IMAP server. This is a thin wrapper around an asyncio
StreamReader/StreamWriter pair that gives the engine exactly two primitives:
write some bytes, and read one complete response line.

A "complete" line is a line of protocol text plus any literals it
announces. When a server line ends with `{<n>}` the next `n` octets are the
literal's contents and the line continues after them. We read all of that as
one line so the layers above never see a literal split across reads.
"""
# system imports
#
import asyncio
import logging
import re
import socket
import ssl
import time
from typing import List, Optional, Union

# Project imports
#
from . import trace as tracing
from .constants import DEFAULT_PORT, LINE_TERMINATOR, STREAM_LIMIT
from .exceptions import TransportError

logger = logging.getLogger("imapengine.transport")

# Literal string announcements look like:
#
#    `{` <decimal ascii digits> +? `}<crlf>`
#
# and appear at the end of a line. Servers never send the non-synchronizing
# '+' form but we accept it anyway.
#
RE_LITERAL_STRING_START = re.compile(rb"\{(\d+)(\+)?\}$")


##################################################################
##################################################################
#
class Transport:
    """
    Owns the stream to the server. Not safe for concurrent use: the engine
    above it guarantees there is only ever one reader and one writer.
    """

    ##################################################################
    #
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        name: str = "imap server",
    ):
        """
        Arguments:
        - `reader`: the stream we read server responses from
        - `writer`: the stream we write commands to
        - `name`: used when logging and tracing. Usually "host:port"
        """
        self.reader = reader
        self.writer = writer
        self.name = name

    ##################################################################
    #
    def __str__(self):
        return f"Transport({self.name})"

    ##################################################################
    #
    async def write(self, data: Union[bytes, str]) -> int:
        """
        Write data to the server and wait for it to be flushed. Strings are
        encoded as latin-1. Returns the number of bytes written.
        """
        if isinstance(data, str):
            data = bytes(data, "latin-1")
        try:
            self.writer.write(data)
            await self.writer.drain()
        except (ConnectionError, OSError) as exc:
            raise TransportError(f"{self.name}: write failed: {exc}") from exc

        if tracing.TRACE_ENABLED:
            tracing.trace(
                {
                    "time": time.time(),
                    "peer": self.name,
                    "msg_type": "SEND",
                    "data": str(data, "latin-1"),
                }
            )
        return len(data)

    ##################################################################
    #
    async def readline(self) -> bytes:
        """
        Read one complete line from the server, CRLF included. If the line
        announces literals their contents are included in what we return.

        Raises TransportError if the server closes the connection (or the
        connection fails) before a complete line has been read.
        """
        parts: List[bytes] = []
        try:
            while True:
                line = await self.reader.readuntil(LINE_TERMINATOR)
                parts.append(line)
                m = RE_LITERAL_STRING_START.search(line[:-2])
                if not m:
                    break

                # Read the literal and then loop back to read the rest of the
                # line (which may well announce another literal.)
                #
                parts.append(await self.reader.readexactly(int(m.group(1))))
        except asyncio.IncompleteReadError as exc:
            raise TransportError(
                f"{self.name}: connection closed by server, "
                f"partial data: {exc.partial!r}"
            ) from exc
        except asyncio.LimitOverrunError as exc:
            raise TransportError(
                f"{self.name}: line longer than {STREAM_LIMIT} bytes"
            ) from exc
        except (ConnectionError, OSError) as exc:
            raise TransportError(f"{self.name}: read failed: {exc}") from exc

        data = b"".join(parts)
        if tracing.TRACE_ENABLED:
            tracing.trace(
                {
                    "time": time.time(),
                    "peer": self.name,
                    "msg_type": "RECEIVED",
                    "data": str(data, "latin-1"),
                }
            )
        return data

    ####################################################################
    #
    async def close(self):
        """
        Close our stream to the server. This may happen after something
        else has failed so swallow any exceptions we get while closing it (but
        do log them as errors)
        """
        try:
            if not self.writer.is_closing():
                self.writer.close()
            await self.writer.wait_closed()
        except socket.error:
            pass
        except Exception as exc:
            logger.error("Exception when closing %s: %s", self, exc)


####################################################################
#
async def open_transport(
    host: str,
    port: int = DEFAULT_PORT,
    ssl_context: Optional[ssl.SSLContext] = None,
    server_hostname: Optional[str] = None,
) -> Transport:
    """
    Open a TLS connection to an IMAP server.

    Arguments:
    - `host`: the address to connect to
    - `port`: the port to connect to (993, imaps, by default)
    - `ssl_context`: if not given a default, verifying, client context is
                     used.
    - `server_hostname`: the name to verify the server certificate
                         against. Defaults to `host`.
    """
    if ssl_context is None:
        ssl_context = ssl.create_default_context()
    name = f"{host}:{port}"
    logger.debug("Connecting to %s", name)
    try:
        reader, writer = await asyncio.open_connection(
            host,
            port,
            ssl=ssl_context,
            server_hostname=server_hostname or host,
            limit=STREAM_LIMIT,
        )
    except (ConnectionError, OSError) as exc:
        raise TransportError(f"{name}: unable to connect: {exc}") from exc
    return Transport(reader, writer, name=name)
