"""
pytest fixtures for testing `imapengine`
"""
# System imports
#
import asyncio
import re
import ssl
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import format_datetime
from typing import Dict, List, Optional

# 3rd party imports
#
import pytest
import pytest_asyncio
import trustme

# project imports
#
from .. import trace
from ..transport import Transport

RE_LITERAL = re.compile(rb"\{(\d+)\}\r\n$")


####################################################################
#
def written(transport: Transport) -> bytes:
    """
    Everything that has been written to a transport made by the
    `transport_factory` fixture.
    """
    return b"".join(
        call.args[0]
        for call in transport.writer.write.call_args_list  # type: ignore
    )


####################################################################
#
@pytest.fixture(autouse=True)
def no_tracing():
    """
    Make sure a test that turns on tracing does not leave it on.
    """
    yield
    trace.TRACE_ENABLED = False


####################################################################
#
@pytest.fixture
def transport_factory(mocker):
    """
    Returns a function that makes a Transport whose reader will return the
    given bytes (and then EOF) and whose writer is a mock.

    NOTE: The factory must be called from inside a running event loop.
    """

    def make_transport(data: bytes = b"", name: str = "test server"):
        reader = asyncio.StreamReader()
        reader.feed_data(data)
        reader.feed_eof()

        writer = mocker.Mock()
        writer.write = mocker.Mock()
        writer.drain = mocker.AsyncMock()
        writer.is_closing = mocker.Mock(return_value=False)
        writer.close = mocker.Mock()
        writer.wait_closed = mocker.AsyncMock()
        return Transport(reader, writer, name=name)

    return make_transport


####################################################################
#
@pytest.fixture(scope="session")
def ssl_certs():
    """
    Creates certificates using `trustme`. What is returned is a tuple of a
    `trustme.CA()` instance, and the `trustme` issued server cert.
    """
    ca = trustme.CA()
    server_cert = ca.issue_cert("127.0.0.1", "localhost", "::1")
    return (ca, server_cert)


##################################################################
##################################################################
#
class FakeIMAPServer:
    """
    A very small scripted IMAP server. It sends its greeting, and then for
    every command it receives it sends back the canned response for that
    command's verb followed by a tagged OK.

    If the canned response contains '{tag}' it is the entire response
    (formatted with the command's tag) and no OK is added. This is how a test
    makes the server fail a command.

    A command ending with a literal announcement gets a continuation request
    and then the literal is read before the response is sent.
    """

    ##################################################################
    #
    def __init__(
        self,
        greeting: str = "* OK [CAPABILITY IMAP4rev1] fake server ready",
        responses: Optional[Dict[str, str]] = None,
    ):
        self.greeting = greeting
        self.responses = responses if responses else {}
        self.received: List[bytes] = []
        self.server: Optional[asyncio.Server] = None
        self.port = 0
        self.client_ssl_context: Optional[ssl.SSLContext] = None

    ##################################################################
    #
    async def handle(self, reader, writer):
        try:
            writer.write(f"{self.greeting}\r\n".encode("latin-1"))
            await writer.drain()
            while True:
                line = await reader.readline()
                if not line:
                    break
                self.received.append(line)
                m = RE_LITERAL.search(line)
                if m:
                    writer.write(b"+ Ready for literal data\r\n")
                    await writer.drain()
                    literal = await reader.readexactly(int(m.group(1)) + 2)
                    self.received.append(literal)

                tag, verb = line.decode("latin-1").split()[:2]
                verb = verb.upper()
                response = self.responses.get(verb, "")
                if "{tag}" in response:
                    response = response.replace("{tag}", tag)
                else:
                    response += f"{tag} OK {verb} completed\r\n"
                writer.write(response.encode("latin-1"))
                await writer.drain()
                if verb == "LOGOUT":
                    break
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        finally:
            writer.close()


####################################################################
#
@pytest_asyncio.fixture
async def fake_imap_server(ssl_certs):
    """
    Returns an async factory that starts a FakeIMAPServer listening with
    TLS on a random port of 127.0.0.1. The server's `client_ssl_context`
    trusts the server's certificate.
    """
    ca, server_cert = ssl_certs
    servers: List[FakeIMAPServer] = []

    async def make_server(**kwargs) -> FakeIMAPServer:
        fake = FakeIMAPServer(**kwargs)
        ssl_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        server_cert.configure_cert(ssl_context)
        fake.server = await asyncio.start_server(
            fake.handle, "127.0.0.1", 0, ssl=ssl_context
        )
        fake.port = fake.server.sockets[0].getsockname()[1]

        client_ssl_context = ssl.create_default_context()
        ca.configure_trust(client_ssl_context)
        fake.client_ssl_context = client_ssl_context
        servers.append(fake)
        return fake

    yield make_server

    for fake in servers:
        if fake.server:
            fake.server.close()


####################################################################
#
@pytest.fixture
def email_factory(faker):
    """
    Returns a factory that creates simple text/plain
    email.message.EmailMessages.
    """

    def make_email(**kwargs) -> EmailMessage:
        """
        If kwargs for 'subject', 'msg_from' or 'to' are provided use those
        in the message instead of faker generated ones.
        """
        msg = EmailMessage()
        msg["Date"] = format_datetime(
            faker.date_time_between(start_date="-1y")
        )
        msg["Message-ID"] = f"<{faker.uuid4()}@{faker.domain_name()}>"
        msg["Subject"] = kwargs.get("subject", faker.sentence())
        if "msg_from" not in kwargs:
            username, domain_name = faker.email().split("@")
            msg["From"] = Address(faker.name(), username, domain_name)
        else:
            msg["From"] = kwargs["msg_from"]
        if "to" not in kwargs:
            username, domain_name = faker.email().split("@")
            msg["To"] = Address(faker.name(), username, domain_name)
        else:
            msg["To"] = kwargs["to"]
        msg.set_content("\n".join(faker.paragraphs(nb=3)))
        return msg

    return make_email
