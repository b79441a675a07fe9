"""
The command engine. One round trip with the IMAP server: send a tagged
command line, read and classify the server's lines until the command
completes (or the server asks for the contents of a literal), and report how
it went.

Only one command may be in flight at a time. There is no pipelining: the
response parser matches the completion against the tag of the one command we
sent, not against a table of outstanding tags.

Commands that send literals (APPEND, SEARCH with a literal) are two round
trips through the same `collect()` loop:

    response = await engine.execute('APPEND "INBOX" {310}')
    # response.continuation is set, the server is waiting for the literal
    response = await engine.raw(message_bytes + b"\\r\\n")
    # response.completion is the tagged completion of the APPEND

There are no timeouts in here. If the server stops talking to us we wait
forever. Callers that want a bound wrap their calls in `asyncio.timeout()`.
"""
# system imports
#
import logging
from typing import Dict, Optional, Type, Union

# Project imports
#
from .constants import TAG_PREFIX
from .exceptions import Bad, Bye, No, ProtocolError, StatusError
from .response import LineType, Response, ResponseParser, Status
from .tag import TagSequencer
from .transport import Transport

logger = logging.getLogger("imapengine.engine")

STATUS_EXCEPTIONS: Dict[Status, Type[StatusError]] = {
    Status.NO: No,
    Status.BAD: Bad,
    Status.BYE: Bye,
}


####################################################################
#
def _encode(data: Union[bytes, str]) -> bytes:
    """
    Command text goes on the wire as latin-1. Anything else has to be sent
    as a literal.
    """
    if isinstance(data, bytes):
        return data
    try:
        return data.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise ProtocolError(
            f"Can not send {data[exc.start:exc.end]!r} in command text, "
            "send it as a literal"
        ) from exc


##################################################################
##################################################################
#
class CommandEngine:
    """
    Composes a Transport, a TagSequencer, and a ResponseParser in to the one
    primitive everything else is built on: `execute()`.

    NOTE: The engine (and its tag counter) belong to a single session. Using
          it from more than one asyncio task at a time raises ProtocolError.
          Using it from more than one thread is not supported at all.
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
        - `transport`: the stream to the server
        - `tag_prefix`: the letter every tag starts with
        - `strict`: if True a tagged line with a status word we do not know
                    raises ProtocolError instead of being treated as an
                    informational line.
        """
        self.transport = transport
        self.tags = TagSequencer(tag_prefix)
        self.strict = strict

        # The tag of the command most recently sent. A raw write with no tag
        # specified continues this command.
        #
        self.tag: Optional[str] = None
        self.in_flight = False

    ##################################################################
    #
    def __str__(self):
        return f"CommandEngine({self.transport.name}, tag: {self.tag})"

    ##################################################################
    #
    async def execute(self, command: str) -> Response:
        """
        Send `command` with a new tag and collect the server's response.

        Returns the Response when the command completes with OK or PREAUTH,
        or when the server sends a continuation request.

        Raises No, Bad, or Bye (all StatusError's) if the command completes
        with that status. The exception's `response` has whatever
        informational lines the server sent before the completion.

        Raises TransportError if the stream fails or the server hangs up
        before the command completes.

        Arguments:
        - `command`: the command text, without tag and without CRLF. eg:
                     'SELECT "INBOX"'
        """
        # Check everything that can be refused before a tag is used up.
        #
        self._check_idle()
        _encode(command)
        tag = self.tags.next_tag()
        return await self.raw(f"{tag} {command}\r\n", tag=tag)

    ##################################################################
    #
    def _check_idle(self):
        if self.in_flight:
            raise ProtocolError(
                f"{self}: a command is already in flight, pipelining is "
                "not supported"
            )

    ##################################################################
    #
    async def raw(
        self, data: Union[bytes, str], tag: Optional[str] = None
    ) -> Response:
        """
        Write `data` to the server as is and collect the response the same
        way `execute()` does. This is how the contents of a literal are sent
        after a continuation request.

        Arguments:
        - `data`: what to write. It needs its own CRLF if it should end a
                  line.
        - `tag`: the tag whose completion ends the response. If None the tag
                 of the command most recently sent is used. An empty string
                 accepts a completion with any tag.
        """
        self._check_idle()
        data = _encode(data)
        if tag is None:
            tag = self.tag or ""
        self.tag = tag

        self.in_flight = True
        try:
            await self.transport.write(data)
            response = await self.collect(tag)
        finally:
            self.in_flight = False

        completion = response.completion
        if completion and completion.status in STATUS_EXCEPTIONS:
            logger.debug("%s: %s", self.transport.name, completion.line)
            raise STATUS_EXCEPTIONS[completion.status](
                completion.line, completion=completion, response=response
            )
        return response

    ##################################################################
    #
    async def collect(self, tag: str) -> Response:
        """
        Read lines from the server until the response for `tag` is complete
        or the server sends a continuation request. Does not raise on a
        failure status, that is up to our caller.
        """
        parser = ResponseParser(tag, strict=self.strict)
        while True:
            line = await self.transport.readline()
            if parser.feed(str(line, "latin-1")) != LineType.INFORMATIONAL:
                break
        return parser.response()
