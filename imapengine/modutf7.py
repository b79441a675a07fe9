#!/usr/bin/env python
#
# File: $Id$
#
"""
The modified UTF-7 encoding IMAP uses for mailbox names (rfc3501 section
5.1.3.)

Printable US-ASCII characters (0x20 - 0x7e) represent themselves, except for
"&" which is written as "&-". Every other run of characters is written as
UTF-16 big endian, encoded with a modified BASE64 (',' instead of '/', no
'=' padding) and wrapped in "&" ... "-".

So 'André' goes over the wire as 'Andr&AOk-'.

NOTE: The encoder is not canonical with respect to how it splits runs of
      characters. The only promise is that
      `decode_mailbox_name(encode_mailbox_name(x)) == x`.
"""
# system imports
#
import base64
import binascii
from itertools import groupby

# Project imports
#
from .exceptions import CodecError

SHIFT = "&"
UNSHIFT = "-"


####################################################################
#
def _is_printable(char: str) -> bool:
    """
    True if the character is one of the printable US-ASCII characters that
    may represent itself in a modified UTF-7 string.
    """
    return 0x20 <= ord(char) <= 0x7E


####################################################################
#
def modified_b64encode(data: bytes) -> str:
    """
    BASE64 encode `data` using the modified alphabet: '/' is replaced with
    ',' and the trailing '=' padding is stripped.
    """
    encoded = base64.b64encode(data).decode("ascii")
    return encoded.rstrip("=").replace("/", ",")


####################################################################
#
def modified_b64decode(payload: str) -> bytes:
    """
    The reverse of `modified_b64encode`. We restore the standard alphabet,
    put back the padding that was stripped, and decode.

    Raises CodecError if the payload is not valid modified BASE64. A payload
    whose length leaves a remainder of 1 when divided by 4 would need three
    padding characters and can never be valid.

    Arguments:
    - `payload`: the text between the "&" and "-" of a shift sequence
    """
    padding = -len(payload) % 4
    if padding == 3:
        raise CodecError(f"Invalid modified BASE64 length: '{payload}'")
    data = payload.replace(",", "/") + "=" * padding
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CodecError(
            f"Invalid modified BASE64 '{payload}': {exc}"
        ) from exc


####################################################################
#
def encode_mailbox_name(name: str) -> str:
    """
    Convert a mailbox name in to its modified UTF-7 wire form.

    Arguments:
    - `name`: The mailbox name as a python string

    Raises CodecError if `name` contains characters that can not be
    represented in UTF-16 (ie: unpaired surrogates.)
    """
    result = []
    for printable, chars in groupby(name, key=_is_printable):
        run = "".join(chars)
        if printable:
            result.append(run.replace(SHIFT, SHIFT + UNSHIFT))
            continue

        try:
            utf16 = run.encode("utf-16-be")
        except UnicodeEncodeError as exc:
            raise CodecError(
                f"Unable to encode mailbox name {name!r}: {exc}"
            ) from exc
        result.append(SHIFT + modified_b64encode(utf16) + UNSHIFT)
    return "".join(result)


####################################################################
#
def decode_mailbox_name(wire: str) -> str:
    """
    Convert a modified UTF-7 mailbox name from the wire back in to a python
    string.

    Arguments:
    - `wire`: The mailbox name as it was sent by (or will be sent to) the
              IMAP server.

    Raises CodecError if a shift sequence is not terminated or its contents
    are not valid modified BASE64 encoded UTF-16.
    """
    result = []
    pos = 0
    while True:
        shift = wire.find(SHIFT, pos)
        if shift == -1:
            result.append(wire[pos:])
            break
        result.append(wire[pos:shift])

        unshift = wire.find(UNSHIFT, shift + 1)
        if unshift == -1:
            raise CodecError(
                f"'-' matching the '&' at offset {shift} is missing in "
                f"'{wire}'"
            )

        # "&-" is the escape for a literal "&"
        #
        payload = wire[shift + 1 : unshift]
        if not payload:
            result.append(SHIFT)
        else:
            try:
                result.append(modified_b64decode(payload).decode("utf-16-be"))
            except UnicodeDecodeError as exc:
                raise CodecError(
                    f"Shift sequence '&{payload}-' is not valid UTF-16: {exc}"
                ) from exc
        pos = unshift + 1
    return "".join(result)
