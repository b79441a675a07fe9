"""
Classifying the lines an IMAP server sends back in response to a command.

Every line the server sends while a command is in flight is exactly one of:

  - a continuation request: it starts with '+'. The server wants more data
    from us (the contents of a literal.)
  - a tagged completion: it starts with the tag of the command in flight
    followed by one of the status words OK, NO, BAD, PREAUTH, or BYE.
  - informational: anything else. Untagged data ('* ...') mostly.

The ResponseParser is fed one line at a time and keeps the informational lines
until it sees either a continuation request or the tagged completion.
"""
# system imports
#
import logging
from enum import StrEnum
from typing import List, Optional, Tuple, Union

# Project imports
#
from .exceptions import ProtocolError

logger = logging.getLogger("imapengine.response")

CRLF = "\r\n"


########################################################################
########################################################################
#
class LineType(StrEnum):
    INFORMATIONAL = "informational"
    CONTINUATION = "continuation"
    COMPLETION = "completion"


########################################################################
########################################################################
#
class Status(StrEnum):
    """
    The status words that may end a command.
    """

    OK = "OK"
    NO = "NO"
    BAD = "BAD"
    PREAUTH = "PREAUTH"
    BYE = "BYE"


STATUS_WORDS = {status.value: status for status in Status}
SUCCESS_STATUSES = (Status.OK, Status.PREAUTH)
FAILURE_STATUSES = (Status.NO, Status.BAD, Status.BYE)


####################################################################
#
def strip_terminator(line: str) -> str:
    """
    Remove the trailing CRLF (or bare LF) from a line, if it has one.
    """
    if line.endswith(CRLF):
        return line[:-2]
    if line.endswith("\n"):
        return line[:-1]
    return line


##################################################################
##################################################################
#
class Completion:
    """
    The tagged line that finished a command.
    """

    ##################################################################
    #
    def __init__(self, tag: str, status: Status, text: str, line: str):
        """
        Arguments:
        - `tag`: the tag the completion was for
        - `status`: one of the Status words
        - `text`: everything after the status word
        - `line`: the entire line as received, without its CRLF
        """
        self.tag = tag
        self.status = status
        self.text = text
        self.line = line

    ##################################################################
    #
    def __str__(self):
        return self.line

    ##################################################################
    #
    def __repr__(self):
        return f"Completion({self.tag!r}, {self.status}, {self.text!r})"

    ##################################################################
    #
    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES


##################################################################
##################################################################
#
class Continuation:
    """
    The server sent us a '+' line. It wants the rest of what we are sending
    (the contents of a literal, usually.)
    """

    ##################################################################
    #
    def __init__(self, line: str):
        self.line = line
        self.text = line[1:].strip()

    ##################################################################
    #
    def __str__(self):
        return self.line

    ##################################################################
    #
    def __repr__(self):
        return f"Continuation({self.text!r})"


##################################################################
##################################################################
#
class Response:
    """
    What came back from the server for one round trip: the informational
    lines, in order, and how the round trip ended (a Completion or a
    Continuation.)
    """

    ##################################################################
    #
    def __init__(
        self,
        lines: List[str],
        result: Union[Completion, Continuation],
    ):
        """
        Arguments:
        - `lines`: the informational lines, each with its line terminator
        - `result`: the Completion or Continuation that ended the parse
        """
        self._lines = lines
        self.result = result

    ##################################################################
    #
    def __repr__(self):
        return f"Response({self.result!r}, lines: {len(self._lines)})"

    ##################################################################
    #
    @property
    def text(self) -> str:
        """
        All of the informational lines, concatenated, terminators included.

        NOTE: Server lines are decoded as latin-1 so every octet, literal
              contents included, maps to one character. Text the server
              sent as UTF-8 shows up here as its latin-1 rendering. Use
              `str(text.encode("latin-1"), "utf-8")` to get it back.
        """
        return "".join(self._lines)

    ##################################################################
    #
    @property
    def lines(self) -> List[str]:
        """
        The informational lines without their terminators. A line that
        carried a literal still has the literal's contents embedded in it.
        """
        return [strip_terminator(x) for x in self._lines]

    ##################################################################
    #
    @property
    def completion(self) -> Optional[Completion]:
        return self.result if isinstance(self.result, Completion) else None

    ##################################################################
    #
    @property
    def continuation(self) -> Optional[Continuation]:
        return self.result if isinstance(self.result, Continuation) else None

    ##################################################################
    #
    @property
    def status(self) -> Optional[Status]:
        """
        The completion status, or None if the round trip ended with a
        continuation request.
        """
        if isinstance(self.result, Completion):
            return self.result.status
        return None


##################################################################
##################################################################
#
class ResponseParser:
    """
    Line by line classifier for the response to a single command.

    Feed it lines with `feed()` until `done` is True, then get the result
    with `response()`.

    If a line starts with our tag but the word after the tag is not a status
    word the server has sent something we do not understand. By default we
    log it and treat it as an informational line (and keep waiting for a
    proper completion.) If `strict` is True we raise ProtocolError instead.
    """

    ##################################################################
    #
    def __init__(self, tag: str, strict: bool = False):
        """
        Arguments:
        - `tag`: The tag of the command in flight. An empty tag matches any
                 tagged line.
        - `strict`: raise ProtocolError on a tagged line whose status word
                    we do not recognize.
        """
        self.tag = tag
        self.strict = strict
        self.buffer: List[str] = []
        self.result: Optional[Union[Completion, Continuation]] = None

    ##################################################################
    #
    def __str__(self):
        return f"ResponseParser(tag: {self.tag!r}, lines: {len(self.buffer)})"

    ##################################################################
    #
    @property
    def done(self) -> bool:
        return self.result is not None

    ##################################################################
    #
    @property
    def text(self) -> str:
        return "".join(self.buffer)

    ##################################################################
    #
    def feed(self, line: str) -> LineType:
        """
        Classify one line from the server and record it.

        Arguments:
        - `line`: a complete line from the server, normally including its
                  CRLF.
        """
        if self.done:
            raise ProtocolError(
                f"Response for tag '{self.tag}' already complete, "
                f"unexpected line: {line!r}"
            )

        body = strip_terminator(line)

        if body.startswith("+"):
            self.result = Continuation(body)
            return LineType.CONTINUATION

        completion = self.completion(body)
        if completion:
            self.result = completion
            return LineType.COMPLETION

        if not line.endswith("\n"):
            line += CRLF
        self.buffer.append(line)
        return LineType.INFORMATIONAL

    ##################################################################
    #
    def split_tag(self, body: str) -> Optional[Tuple[str, str]]:
        """
        If `body` is a line tagged with our tag return a tuple of the tag and
        the rest of the line. Otherwise return None.
        """
        if self.tag:
            if not body.startswith(self.tag + " "):
                return None
            return (self.tag, body[len(self.tag) + 1 :])

        # No tag to match against.. any line that is not untagged and not a
        # continuation is a tagged line.
        #
        if body.startswith("*"):
            return None
        tag, sep, rest = body.partition(" ")
        if not tag or not sep:
            return None
        return (tag, rest)

    ##################################################################
    #
    def completion(self, body: str) -> Optional[Completion]:
        """
        Return a Completion if `body` is the tagged completion for our
        command, otherwise None.
        """
        tagged = self.split_tag(body)
        if tagged is None:
            return None
        tag, rest = tagged
        word, _, text = rest.lstrip(" ").partition(" ")
        status = STATUS_WORDS.get(word.upper())
        if status is None:
            if self.strict:
                raise ProtocolError(
                    f"Unrecognized status '{word}' in tagged response: {body}"
                )
            logger.warning(
                "Tagged line with unrecognized status '%s' treated as "
                "informational: %s",
                word,
                body,
            )
            return None
        return Completion(tag, status, text, body)

    ##################################################################
    #
    def response(self) -> Response:
        """
        The Response for the lines we have been fed. Only valid once `done`
        is True.
        """
        if self.result is None:
            raise ProtocolError(
                f"Response for tag '{self.tag}' is not complete yet"
            )
        return Response(self.buffer, self.result)
