"""
Converting between the raw RFC 5322 messages that IMAP moves around and
something a program can use.

`decode_message()` turns what FETCH returned in to a list of the message's
leaf parts with decoded headers and decoded bodies. `encode_message()` builds
a message from a set of headers and a body that is ready to be sent with
APPEND.

Both lean on the standard library `email` package. What it does not do for
us is guess at the charset of a text part whose declared charset python does
not know. For that we use `charset_normalizer`.
"""

# system imports
#
import email
import email.policy
import logging
from email.message import EmailMessage
from email.policy import SMTP
from email.utils import format_datetime, localtime
from typing import Iterable, List, Mapping, Optional, Tuple, Union

# 3rd party imports
#
from charset_normalizer import from_bytes

logger = logging.getLogger("imapengine.message")

DEFAULT_CONTENT_TYPE = 'text/plain; charset="utf-8"'
DEFAULT_CTE = "base64"

Headers = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


##################################################################
##################################################################
#
class DecodedPart:
    """
    One leaf part of a decoded message.

    `headers` is a list of (name, value) tuples with the values RFC 2047
    decoded. For a part of a multipart message these are the top level
    headers with the part's own headers laid over them (a header the part
    sets replaces every top level header of the same name.)

    `body` is a str for text parts, bytes for everything else, and None if
    the message was decoded with `headers_only`.
    """

    ##################################################################
    #
    def __init__(
        self,
        headers: List[Tuple[str, str]],
        content_type: str,
        body: Optional[Union[str, bytes]],
    ):
        self.headers = headers
        self.content_type = content_type
        self.body = body

    ##################################################################
    #
    def __repr__(self):
        return f"DecodedPart({self.content_type}, {len(self.headers)} headers)"

    ##################################################################
    #
    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        The value of the first header named `name` (case insensitive)
        """
        name = name.lower()
        for hdr, value in self.headers:
            if hdr.lower() == name:
                return value
        return default


####################################################################
#
def _overlay_headers(
    top: List[Tuple[str, str]], part: List[Tuple[str, str]]
) -> List[Tuple[str, str]]:
    """
    The top level headers, minus any the part also has, followed by the
    part's headers.
    """
    part_names = {name.lower() for name, _ in part}
    return [(n, v) for n, v in top if n.lower() not in part_names] + part


####################################################################
#
def _decode_body(part: EmailMessage) -> Union[str, bytes]:
    """
    Undo the transfer encoding of a part's body and, if it is text, decode
    it from its charset.
    """
    if part.get_content_maintype() != "text":
        return part.get_payload(decode=True) or b""

    try:
        return part.get_content()
    except LookupError:
        # The declared charset is not one python knows. Make our best guess
        # from the bytes themselves.
        #
        payload = part.get_payload(decode=True) or b""
        logger.debug(
            "Unknown charset '%s', guessing", part.get_content_charset()
        )
        best = from_bytes(payload).best()
        if best is None:
            return payload.decode("utf-8", errors="replace")
        return str(best)


####################################################################
#
def decode_message(
    raw: bytes, headers_only: bool = False
) -> List[DecodedPart]:
    """
    Parse an RFC 5322 message in to its leaf parts. A message that is not
    multipart has exactly one part.

    Arguments:
    - `raw`: the message, as returned by FETCH BODY[]
    - `headers_only`: do not decode any bodies
    """
    msg = email.message_from_bytes(raw, policy=email.policy.default)
    top_headers = [(name, str(value)) for name, value in msg.items()]

    parts = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        if part is msg:
            headers = top_headers
        else:
            headers = _overlay_headers(
                top_headers, [(n, str(v)) for n, v in part.items()]
            )
        body = None if headers_only else _decode_body(part)
        parts.append(DecodedPart(headers, part.get_content_type(), body))
    return parts


####################################################################
#
def encode_message(headers: Headers, body: Union[str, bytes]) -> bytes:
    """
    Build a message ready to be sent with APPEND.

    If there is no Content-Type header the body is 'text/plain' in utf-8. If
    there is no Content-Transfer-Encoding the body is base64 encoded. A Date
    header (now) and a MIME-Version header are added if they are missing.
    Non-ASCII header values are RFC 2047 encoded and every line ends with
    CRLF.

    Arguments:
    - `headers`: a mapping, or a list of (name, value) tuples
    - `body`: the body. If it is bytes and the content type is text it is
              decoded using the charset from the Content-Type.
    """
    if isinstance(headers, Mapping):
        headers = list(headers.items())
    else:
        headers = list(headers)

    content_type = DEFAULT_CONTENT_TYPE
    cte = DEFAULT_CTE
    msg = EmailMessage(policy=SMTP)
    for name, value in headers:
        match name.lower():
            case "content-type":
                content_type = value
            case "content-transfer-encoding":
                cte = value.strip().lower()
            case _:
                msg[name] = value

    if "Date" not in msg:
        msg["Date"] = format_datetime(localtime())

    ctype = email.policy.default.header_factory("content-type", content_type)
    params = dict(ctype.params)
    if ctype.maintype == "text":
        charset = params.pop("charset", "utf-8")
        if isinstance(body, bytes):
            body = body.decode(charset)
        msg.set_content(
            body,
            subtype=ctype.subtype,
            charset=charset,
            cte=cte,
            params=params,
        )
    else:
        if isinstance(body, str):
            body = body.encode("utf-8")
        msg.set_content(
            body, ctype.maintype, ctype.subtype, cte=cte, params=params
        )
    return msg.as_bytes(policy=SMTP)
