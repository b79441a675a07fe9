#!/usr/bin/env python
#
# File: $Id$
#
"""
This module contains the tokenizer for the data IMAP servers send back in
untagged responses and the functions that turn the untagged responses of
specific commands (LIST, STATUS, SEARCH, FETCH, ...) in to python
structures.

Everything here works on the `lines` of a Response: complete lines without
their CRLF, with the contents of any literals embedded in them.
"""

# system imports
#
import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

# Project imports
#
from .exceptions import CodecError, ProtocolError
from .modutf7 import decode_mailbox_name

logger = logging.getLogger("imapengine.parse")

#######################################################################
#######################################################################
#
# Lots of regular expressions.

# The pieces response data is made of. Order matters: a literal prefix has to
# be tried before an atom since '{' is not an atom character but the digits
# inside it are.
#
# An atom may hold a bracketed section spec (which may contain spaces and
# parentheses) followed by an optional partial specifier. eg:
# `BODY[HEADER.FIELDS (TO FROM)]<0>`. Response codes like `[UIDNEXT 4]` are
# matched the same way. Outside of a section '[' and ']' are plain atom
# characters, so unquoted mailbox names like `[Gmail]/Drafts` or `Foo]` are
# a single atom.
#
_token = r"""
      (?P<space>\s+)
    | (?P<open>\()
    | (?P<close>\))
    | (?P<quoted>"(?:[^\r\n"\\]|\\["\\])*")
    | (?P<literal>\{(?P<size>\d+)\+?\}\r\n)
    | (?P<atom>(?:[^\s()"{\[]+|\[[^\]]*\]|\[)+)
"""
_token_re = re.compile(_token, re.VERBOSE)

# An untagged response: `* <name> ...` or `* <number> <name> ...`
#
_untagged = r"^\* (?:(?P<number>\d+) )?(?P<name>[A-Za-z]+)(?: |$)"
_untagged_re = re.compile(_untagged)

# A response code in an untagged OK response: `* OK [<code> <args>] text`
#
_resp_code = r"^\* OK \[(?P<code>[A-Za-z0-9.-]+)(?: (?P<args>[^\]]*))?\]"
_resp_code_re = re.compile(_resp_code)

# Escaped characters inside of a quoted string
#
_quoted_specials_re = re.compile(r'\\(["\\])')

#
# Done constants
#
#######################################################################
#######################################################################


##################################################################
##################################################################
#
class ListItem:
    """
    One mailbox from the response to a LIST (or LSUB) command.
    """

    ##################################################################
    #
    def __init__(
        self,
        attrs: List[str],
        delim: Optional[str],
        name: str,
        raw_name: Optional[str] = None,
    ):
        """
        Arguments:
        - `attrs`: the name attributes, ie: `\\Noselect`, `\\HasChildren`
        - `delim`: the hierarchy delimiter. None if the server has no
                   hierarchy.
        - `name`: the decoded mailbox name
        - `raw_name`: the name as the server sent it (modified UTF-7)
        """
        self.attrs = attrs
        self.delim = delim
        self.name = name
        self.raw_name = name if raw_name is None else raw_name

    ##################################################################
    #
    def __repr__(self):
        return f"ListItem({self.attrs!r}, {self.delim!r}, {self.name!r})"

    ##################################################################
    #
    def __eq__(self, other):
        if not isinstance(other, ListItem):
            return NotImplemented
        return (self.attrs, self.delim, self.name) == (
            other.attrs,
            other.delim,
            other.name,
        )


####################################################################
#
def _unquote(quoted: str) -> str:
    """
    Strip the surrounding double quotes and undo the escaping of '"' and
    '\\' inside a quoted string.
    """
    return _quoted_specials_re.sub(r"\1", quoted[1:-1])


####################################################################
#
def quote(s: str) -> str:
    """
    Turn `s` in to an IMAP quoted string. A quoted string can not contain a
    CR or LF.
    """
    if "\r" in s or "\n" in s:
        raise ProtocolError(f"Can not send {s!r} as a quoted string")
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


####################################################################
#
def tokenize(data: str) -> List[Any]:
    """
    Turn IMAP response data in to a list of python values:

      - a parenthesized list becomes a list
      - an atom becomes a string, or an int if it is all digits
      - NIL becomes None
      - quoted strings and literals become strings

    Raises ProtocolError if the data is malformed (unbalanced parentheses,
    a literal shorter than its announced size, characters we can not
    tokenize.)

    Arguments:
    - `data`: the response data. A line without its terminating CRLF.
    """
    stack: List[List[Any]] = [[]]
    pos = 0
    while pos < len(data):
        m = _token_re.match(data, pos)
        if m is None:
            raise ProtocolError(
                f"Unable to parse response data at offset {pos}: "
                f"{data[pos:pos + 20]!r}"
            )
        pos = m.end()
        match m.lastgroup:
            case "space":
                continue
            case "open":
                stack.append([])
            case "close":
                if len(stack) == 1:
                    raise ProtocolError(f"Unbalanced ')' in: {data!r}")
                inner = stack.pop()
                stack[-1].append(inner)
            case "quoted":
                stack[-1].append(_unquote(m.group("quoted")))
            case "literal":
                size = int(m.group("size"))
                if pos + size > len(data):
                    raise ProtocolError(
                        f"Literal of {size} octets is unterminated, only "
                        f"{len(data) - pos} available"
                    )
                stack[-1].append(data[pos : pos + size])
                pos += size
            case _:
                atom = m.group("atom")
                if atom.upper() == "NIL":
                    stack[-1].append(None)
                elif atom.isascii() and atom.isdigit():
                    stack[-1].append(int(atom))
                else:
                    stack[-1].append(atom)

    if len(stack) != 1:
        raise ProtocolError(f"Unbalanced '(' in: {data!r}")
    return stack[0]


####################################################################
#
def untagged_responses(
    lines: Iterable[str], name: str
) -> Iterator[Tuple[Optional[int], str]]:
    """
    Yield the untagged responses named `name` (case insensitive) from
    `lines`. For each one we yield a tuple of the number that came before the
    name (`* 12 FETCH ...`, `* 3 EXISTS`) or None, and the rest of the line
    after the name.

    Only the responses that match are tokenized by our callers, so free form
    text in other untagged responses can not trip them up.
    """
    name = name.upper()
    for line in lines:
        m = _untagged_re.match(line)
        if m is None or m.group("name").upper() != name:
            continue
        number = m.group("number")
        yield (
            int(number) if number is not None else None,
            line[m.end() :],
        )


####################################################################
#
def parse_list_response(
    lines: Iterable[str], kind: str = "LIST"
) -> List[ListItem]:
    """
    Parse the `* LIST (<attrs>) <delim> <name>` responses. Mailbox names are
    decoded from modified UTF-7. If a name can not be decoded we keep the
    name as the server sent it.

    Arguments:
    - `lines`: the lines of the LIST (or LSUB) response
    - `kind`: "LIST" or "LSUB"
    """
    items = []
    for _, data in untagged_responses(lines, kind):
        tokens = tokenize(data)
        if len(tokens) != 3 or not isinstance(tokens[0], list):
            raise ProtocolError(f"Malformed {kind} response: '{data}'")
        attrs, delim, raw_name = tokens
        raw_name = str(raw_name)
        try:
            name = decode_mailbox_name(raw_name)
        except CodecError as exc:
            logger.debug("Keeping undecodable name '%s': %s", raw_name, exc)
            name = raw_name
        items.append(
            ListItem(
                [str(x) for x in attrs],
                None if delim is None else str(delim),
                name,
                raw_name=raw_name,
            )
        )
    return items


####################################################################
#
def parse_status_response(lines: Iterable[str]) -> Dict[str, int]:
    """
    Parse `* STATUS <mailbox> (<item> <number> ...)` in to a dict of item
    name to value. Only the first STATUS response is used.
    """
    for _, data in untagged_responses(lines, "STATUS"):
        tokens = tokenize(data)
        if len(tokens) != 2 or not isinstance(tokens[1], list):
            raise ProtocolError(f"Malformed STATUS response: '{data}'")
        items = tokens[1]
        if len(items) % 2 == 1:
            raise ProtocolError(
                f"STATUS items not paired (last: {items[-1]}): '{data}'"
            )
        result = {}
        for item, value in zip(items[::2], items[1::2]):
            if not isinstance(value, int):
                raise ProtocolError(
                    f"Unexpected value for STATUS item {item}: {value!r}"
                )
            result[str(item).upper()] = value
        return result
    return {}


####################################################################
#
def parse_search_response(lines: Iterable[str]) -> List[int]:
    """
    Collect the message numbers (or uids) from all `* SEARCH` responses.
    """
    results = []
    for _, data in untagged_responses(lines, "SEARCH"):
        for token in tokenize(data):
            if not isinstance(token, int):
                raise ProtocolError(f"Unexpected id in SEARCH: {token!r}")
            results.append(token)
    return results


####################################################################
#
def parse_fetch_response(lines: Iterable[str]) -> Dict[int, Dict[str, Any]]:
    """
    Parse `* <n> FETCH (<item> <value> ...)` responses in to a dict keyed by
    message sequence number. Each value is a dict of the data item name
    (upper cased, ie: 'UID', 'FLAGS', 'BODY[]') to its value.

    If the server sends more than one FETCH response for a message (an
    unsolicited flag update, for instance) the items are merged.
    """
    results: Dict[int, Dict[str, Any]] = {}
    for msg_num, data in untagged_responses(lines, "FETCH"):
        tokens = tokenize(data)
        if msg_num is None or len(tokens) != 1 or not isinstance(
            tokens[0], list
        ):
            raise ProtocolError(f"Malformed FETCH response: '{data[:80]}'")
        items = tokens[0]
        if len(items) % 2 == 1:
            raise ProtocolError(
                f"FETCH items not paired for message {msg_num}"
            )
        msg_items = results.setdefault(msg_num, {})
        for item, value in zip(items[::2], items[1::2]):
            msg_items[str(item).upper()] = value
    return results


####################################################################
#
def parse_capability_response(lines: Iterable[str]) -> List[str]:
    """
    The capabilities listed in a `* CAPABILITY` response.
    """
    capabilities: List[str] = []
    for _, data in untagged_responses(lines, "CAPABILITY"):
        capabilities.extend(str(x) for x in tokenize(data))
    return capabilities


####################################################################
#
def parse_expunge_response(lines: Iterable[str]) -> List[int]:
    """
    The message sequence numbers from `* <n> EXPUNGE` responses, in the
    order the server sent them.
    """
    return [
        msg_num
        for msg_num, _ in untagged_responses(lines, "EXPUNGE")
        if msg_num is not None
    ]


####################################################################
#
def parse_select_response(lines: Iterable[str]) -> Dict[str, Any]:
    """
    Collect the mailbox information a server sends in response to SELECT
    or EXAMINE:

      * 172 EXISTS
      * 1 RECENT
      * OK [UNSEEN 12] Message 12 is first unseen
      * OK [UIDVALIDITY 3857529045] UIDs valid
      * OK [UIDNEXT 4392] Predicted next UID
      * FLAGS (\\Answered \\Flagged \\Deleted \\Seen \\Draft)
      * OK [PERMANENTFLAGS (\\Deleted \\Seen \\*)] Limited

    in to a dict: {"EXISTS": 172, "RECENT": 1, "UNSEEN": 12, ...}
    """
    lines = list(lines)
    result: Dict[str, Any] = {}
    for name in ("EXISTS", "RECENT"):
        for msg_num, _ in untagged_responses(lines, name):
            result[name] = msg_num
    for _, data in untagged_responses(lines, "FLAGS"):
        tokens = tokenize(data)
        if len(tokens) != 1 or not isinstance(tokens[0], list):
            raise ProtocolError(f"Malformed FLAGS response: '{data}'")
        result["FLAGS"] = [str(x) for x in tokens[0]]

    for line in lines:
        m = _resp_code_re.match(line)
        if m is None or m.group("args") is None:
            continue
        args = tokenize(m.group("args"))
        result[m.group("code").upper()] = args[0] if len(args) == 1 else args
    return result
