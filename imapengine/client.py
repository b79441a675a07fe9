"""
An IMAP4rev1 client session: connect to a server, read its greeting, and
issue commands through a CommandEngine, turning the responses in to python
data.

    async with await IMAPClient.connect("imap.example.com") as client:
        await client.login("user", "password")
        await client.select("INBOX")
        for msg_num, raw in (await client.fetch("1:*")).items():
            ...

Mailbox names are python strings. They are encoded to modified UTF-7 (and
quoted) on the way out and decoded on the way back in.
"""

# system imports
#
import logging
import re
import ssl
from enum import StrEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

# Project imports
#
from .constants import DEFAULT_PORT, STATUS_ITEMS, TAG_PREFIX
from .engine import CommandEngine
from .exceptions import Bye, ProtocolError
from .message import Headers, encode_message
from .modutf7 import encode_mailbox_name
from .parse import (
    ListItem,
    parse_capability_response,
    parse_expunge_response,
    parse_fetch_response,
    parse_list_response,
    parse_search_response,
    parse_select_response,
    parse_status_response,
    quote,
)
from .response import Response, strip_terminator
from .transport import Transport, open_transport
from .utils import compact_sequence

logger = logging.getLogger("imapengine.client")

# The greeting a server sends when we connect.
#
RE_GREETING = re.compile(r"^\* (?P<status>OK|PREAUTH|BYE)\b", re.IGNORECASE)

MsgSet = Union[str, Iterable[int]]
Message = Union[bytes, Tuple[Headers, Union[str, bytes]]]


########################################################################
########################################################################
#
class ClientState(StrEnum):
    NOT_AUTHENTICATED = "not_authenticated"
    AUTHENTICATED = "authenticated"
    SELECTED = "selected"
    LOGGED_OUT = "logged_out"


##################################################################
##################################################################
#
class IMAPClient:
    """
    One session with an IMAP server.

    The session tracks the rfc3501 connection state and refuses, without
    bothering the server, to send commands that are not valid in the state
    it is in. Those refusals, like any response we can not make sense of,
    raise ProtocolError. A command the server fails raises No, Bad, or Bye.
    """

    ##################################################################
    #
    def __init__(
        self,
        transport: Transport,
        tag_prefix: str = TAG_PREFIX,
        strict: bool = False,
    ):
        """
        Arguments:
        - `transport`: a Transport connected to the server. The greeting has
                       not been read yet.
        - `tag_prefix`: the letter every command tag starts with
        - `strict`: raise ProtocolError on tagged lines with a status word we
                    do not recognize.
        """
        self.transport = transport
        self.engine = CommandEngine(transport, tag_prefix, strict=strict)
        self.state = ClientState.NOT_AUTHENTICATED
        self.greeting: Optional[str] = None
        self.mailbox: Optional[str] = None

    ##################################################################
    #
    def __str__(self):
        return f"IMAPClient({self.transport.name}, {self.state.value})"

    ##################################################################
    #
    @classmethod
    async def connect(
        cls,
        host: str,
        port: int = DEFAULT_PORT,
        ssl_context: Optional[ssl.SSLContext] = None,
        server_hostname: Optional[str] = None,
        tag_prefix: str = TAG_PREFIX,
        strict: bool = False,
    ) -> "IMAPClient":
        """
        Open a TLS connection to the server and read its greeting.
        """
        transport = await open_transport(
            host,
            port,
            ssl_context=ssl_context,
            server_hostname=server_hostname,
        )
        client = cls(transport, tag_prefix=tag_prefix, strict=strict)
        try:
            await client.read_greeting()
        except Exception:
            await transport.close()
            raise
        return client

    ##################################################################
    #
    async def __aenter__(self) -> "IMAPClient":
        return self

    ##################################################################
    #
    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    ##################################################################
    #
    async def close(self):
        """
        Close the connection to the server. Does not log out first.
        """
        await self.transport.close()
        self.state = ClientState.LOGGED_OUT

    ##################################################################
    #
    async def read_greeting(self) -> str:
        """
        Read the one line the server sends when we connect and set our state
        from it.
        """
        line = strip_terminator(
            str(await self.transport.readline(), "latin-1")
        )
        self.greeting = line
        m = RE_GREETING.match(line)
        if m is None:
            raise ProtocolError(f"Unexpected greeting from server: {line!r}")
        match m.group("status").upper():
            case "OK":
                self.state = ClientState.NOT_AUTHENTICATED
            case "PREAUTH":
                self.state = ClientState.AUTHENTICATED
            case _:
                self.state = ClientState.LOGGED_OUT
                raise Bye(line)
        logger.debug("%s: greeting: %s", self.transport.name, line)
        return line

    ##################################################################
    #
    def _require(self, *states: ClientState):
        if self.state not in states:
            raise ProtocolError(
                f"{self}: command requires state "
                f"{' or '.join(s.value for s in states)}"
            )

    ##################################################################
    #
    async def command(
        self, command: str, literal: Optional[bytes] = None
    ) -> Response:
        """
        Send a command and return the server's response.

        If `literal` is given the command is sent with a literal size
        announcement, `{<n>}`, appended. We wait for the server's
        continuation request and then send the literal. The Response
        returned is the one for the whole command.

        Arguments:
        - `command`: the command text, without tag or CRLF
        - `literal`: the contents of a literal that ends the command
        """
        if self.state == ClientState.LOGGED_OUT:
            raise ProtocolError(f"{self}: session is logged out")
        try:
            if literal is None:
                return await self.engine.execute(command)

            response = await self.engine.execute(
                f"{command} {{{len(literal)}}}"
            )
            if response.continuation is None:
                raise ProtocolError(
                    f"{self}: expected a continuation request, got: "
                    f"{response.completion}"
                )
            return await self.engine.raw(literal + b"\r\n")
        except Bye:
            self.state = ClientState.LOGGED_OUT
            raise

    ##################################################################
    #
    async def noop(self) -> Response:
        return await self.command("NOOP")

    ##################################################################
    #
    async def capability(self) -> List[str]:
        response = await self.command("CAPABILITY")
        return parse_capability_response(response.lines)

    ##################################################################
    #
    async def login(self, username: str, password: str) -> Response:
        """
        A password that is not plain ASCII is sent as a UTF-8 literal.
        """
        self._require(ClientState.NOT_AUTHENTICATED)
        if password.isascii():
            response = await self.command(
                f"LOGIN {quote(username)} {quote(password)}"
            )
        else:
            response = await self.command(
                f"LOGIN {quote(username)}", literal=password.encode("utf-8")
            )
        self.state = ClientState.AUTHENTICATED
        return response

    ##################################################################
    #
    async def logout(self) -> Response:
        """
        Log out. The server says BYE and then completes the LOGOUT.
        """
        response = await self.command("LOGOUT")
        self.state = ClientState.LOGGED_OUT
        self.mailbox = None
        return response

    ##################################################################
    #
    async def select(
        self, mailbox: str, examine: bool = False
    ) -> Dict[str, Any]:
        """
        Select (or examine) a mailbox. Returns what the server told us about
        it: EXISTS, RECENT, FLAGS, UIDVALIDITY, ... plus "READ-ONLY", True if
        the mailbox was opened read only.

        Selecting a mailbox, even if the attempt fails, deselects any
        mailbox that was already selected.
        """
        self._require(ClientState.AUTHENTICATED, ClientState.SELECTED)
        self.state = ClientState.AUTHENTICATED
        self.mailbox = None

        cmd = "EXAMINE" if examine else "SELECT"
        response = await self.command(
            f"{cmd} {quote(encode_mailbox_name(mailbox))}"
        )
        result = parse_select_response(response.lines)
        completion = response.completion
        result["READ-ONLY"] = bool(
            completion and "[READ-ONLY]" in completion.text.upper()
        )
        self.state = ClientState.SELECTED
        self.mailbox = mailbox
        return result

    ##################################################################
    #
    async def examine(self, mailbox: str) -> Dict[str, Any]:
        return await self.select(mailbox, examine=True)

    ##################################################################
    #
    async def close_mailbox(self) -> Response:
        """
        CLOSE the selected mailbox (expunging it) and go back to the
        authenticated state.
        """
        self._require(ClientState.SELECTED)
        response = await self.command("CLOSE")
        self.state = ClientState.AUTHENTICATED
        self.mailbox = None
        return response

    ##################################################################
    #
    async def _mailbox_command(self, cmd: str, *mailboxes: str) -> Response:
        """
        The commands whose only arguments are mailbox names.
        """
        self._require(ClientState.AUTHENTICATED, ClientState.SELECTED)
        names = " ".join(quote(encode_mailbox_name(m)) for m in mailboxes)
        return await self.command(f"{cmd} {names}")

    ##################################################################
    #
    async def create(self, mailbox: str) -> Response:
        return await self._mailbox_command("CREATE", mailbox)

    ##################################################################
    #
    async def delete(self, mailbox: str) -> Response:
        return await self._mailbox_command("DELETE", mailbox)

    ##################################################################
    #
    async def rename(self, mailbox: str, new_name: str) -> Response:
        return await self._mailbox_command("RENAME", mailbox, new_name)

    ##################################################################
    #
    async def subscribe(self, mailbox: str) -> Response:
        return await self._mailbox_command("SUBSCRIBE", mailbox)

    ##################################################################
    #
    async def unsubscribe(self, mailbox: str) -> Response:
        return await self._mailbox_command("UNSUBSCRIBE", mailbox)

    ##################################################################
    #
    async def list(
        self, reference: str = "", pattern: str = "*", kind: str = "LIST"
    ) -> List[ListItem]:
        """
        List the mailboxes matching `pattern` (which may use the '*' and
        '%' wildcards) relative to `reference`.

        Arguments:
        - `reference`: the reference name, usually ""
        - `pattern`: the mailbox name with possible wildcards
        - `kind`: "LIST", or "LSUB" to list only subscribed mailboxes
        """
        self._require(ClientState.AUTHENTICATED, ClientState.SELECTED)
        response = await self.command(
            f"{kind} {quote(encode_mailbox_name(reference))} "
            f"{quote(encode_mailbox_name(pattern))}"
        )
        return parse_list_response(response.lines, kind)

    ##################################################################
    #
    async def lsub(
        self, reference: str = "", pattern: str = "*"
    ) -> List[ListItem]:
        return await self.list(reference, pattern, kind="LSUB")

    ##################################################################
    #
    async def status(
        self, mailbox: str, items: Iterable[str] = STATUS_ITEMS
    ) -> Dict[str, int]:
        """
        Ask for the status of a mailbox without selecting it. Returns a dict
        of the status item names to their values.
        """
        self._require(ClientState.AUTHENTICATED, ClientState.SELECTED)
        response = await self.command(
            f"STATUS {quote(encode_mailbox_name(mailbox))} "
            f"({' '.join(items)})"
        )
        return parse_status_response(response.lines)

    ##################################################################
    #
    async def append(
        self,
        mailbox: str,
        message: Message,
        flags: Optional[Iterable[str]] = None,
    ) -> Response:
        """
        Append a message to a mailbox.

        Arguments:
        - `mailbox`: the mailbox to append the message to
        - `message`: the message as bytes, or a tuple of headers and a body
                     which is turned in to a message by `encode_message()`
        - `flags`: flags to set on the appended message
        """
        self._require(ClientState.AUTHENTICATED, ClientState.SELECTED)
        if isinstance(message, tuple):
            message = encode_message(*message)
        cmd = f"APPEND {quote(encode_mailbox_name(mailbox))}"
        if flags:
            cmd += f" ({' '.join(flags)})"
        return await self.command(cmd, literal=message)

    ##################################################################
    #
    async def search(
        self, criteria: str = "ALL", literal: Optional[str] = None
    ) -> List[int]:
        """
        Search the selected mailbox. Returns the matching message sequence
        numbers.

        Arguments:
        - `criteria`: the search criteria, ie: 'UNSEEN' or 'SUBJECT'
        - `literal`: if given the search is done with CHARSET UTF-8 and this
                     is sent, as a literal, after the criteria. This is how
                     you search for non-ASCII text.
        """
        self._require(ClientState.SELECTED)
        criteria = criteria or "ALL"
        if literal is None:
            response = await self.command(f"SEARCH {criteria}")
        else:
            response = await self.command(
                f"SEARCH CHARSET UTF-8 {criteria}",
                literal=literal.encode("utf-8"),
            )
        return parse_search_response(response.lines)

    ##################################################################
    #
    async def fetch(self, msg_set: MsgSet) -> Dict[int, bytes]:
        """
        Fetch whole messages from the selected mailbox without setting their
        \\Seen flag. Returns a dict of message sequence number to the raw
        message.

        Arguments:
        - `msg_set`: an IMAP sequence set ("1:4,7") or a collection of
                     message numbers.
        """
        self._require(ClientState.SELECTED)
        if not isinstance(msg_set, str):
            msg_set = compact_sequence(msg_set)
        response = await self.command(f"FETCH {msg_set} (BODY.PEEK[])")
        messages = {}
        for msg_num, items in parse_fetch_response(response.lines).items():
            body = items.get("BODY[]")
            if body is None:
                continue
            messages[msg_num] = bytes(str(body), "latin-1")
        return messages

    ##################################################################
    #
    async def store(
        self, msg_set: MsgSet, data_item: str, flags: Iterable[str]
    ) -> Dict[int, Dict[str, Any]]:
        """
        Change the flags of messages. Returns the FETCH data the server sent
        back (nothing if `data_item` has .SILENT)

        Arguments:
        - `msg_set`: an IMAP sequence set or a collection of message numbers
        - `data_item`: FLAGS, +FLAGS, -FLAGS, possibly with .SILENT
        - `flags`: the flags to set, add, or remove
        """
        self._require(ClientState.SELECTED)
        if not isinstance(msg_set, str):
            msg_set = compact_sequence(msg_set)
        response = await self.command(
            f"STORE {msg_set} {data_item} ({' '.join(flags)})"
        )
        return parse_fetch_response(response.lines)

    ##################################################################
    #
    async def expunge(self) -> List[int]:
        """
        Permanently remove the messages marked \\Deleted. Returns the
        message sequence numbers the server reported as expunged, in order.
        """
        self._require(ClientState.SELECTED)
        response = await self.command("EXPUNGE")
        return parse_expunge_response(response.lines)
