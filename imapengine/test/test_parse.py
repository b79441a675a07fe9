"""
Test tokenizing response data and parsing the untagged responses of LIST,
STATUS, SEARCH, FETCH and friends.
"""
# 3rd party imports
#
import pytest

# Project imports
#
from ..exceptions import ProtocolError
from ..parse import (
    ListItem,
    parse_capability_response,
    parse_expunge_response,
    parse_fetch_response,
    parse_list_response,
    parse_search_response,
    parse_select_response,
    parse_status_response,
    quote,
    tokenize,
)


####################################################################
#
@pytest.mark.parametrize(
    "data,expected",
    [
        ("", []),
        ("FOO bar", ["FOO", "bar"]),
        ("NIL nil 42", [None, None, 42]),
        (r'"a \"b\" \\ c"', ['a "b" \\ c']),
        ('""', [""]),
        ("(a (b c) ())", [["a", ["b", "c"], []]]),
        (r"(\Seen \Deleted)", [["\\Seen", "\\Deleted"]]),
        (
            "BODY[HEADER.FIELDS (TO FROM)]<0> x",
            ["BODY[HEADER.FIELDS (TO FROM)]<0>", "x"],
        ),
        ("UID 12 BODY[] {5}\r\nhello", ["UID", 12, "BODY[]", "hello"]),
        ("{0}\r\n", [""]),
        ("١٢", ["١٢"]),
        ("[Gmail]/Drafts Foo] a[b", ["[Gmail]/Drafts", "Foo]", "a[b"]),
    ],
)
def test_tokenize(data, expected):
    assert tokenize(data) == expected


####################################################################
#
def test_tokenize_literal_keeps_line_breaks():
    assert tokenize("(X {8}\r\nhi\r\nyo\r\n)") == [["X", "hi\r\nyo\r\n"]]


####################################################################
#
@pytest.mark.parametrize(
    "data",
    [
        "(a b",
        "a b)",
        "{10}\r\nshort",
        '"unterminated',
    ],
)
def test_tokenize_malformed(data):
    with pytest.raises(ProtocolError):
        tokenize(data)


####################################################################
#
def test_quote():
    assert quote("INBOX") == '"INBOX"'
    assert quote('a"b\\c') == '"a\\"b\\\\c"'
    with pytest.raises(ProtocolError):
        quote("two\r\nlines")


####################################################################
#
def test_parse_list_response():
    lines = [
        '* LIST (\\HasNoChildren) "/" "INBOX"',
        '* LIST (\\Noselect \\HasChildren) "/" "&U,BTFw-"',
        "* LIST () NIL Flat",
        "* OK [ALERT] not a list response (at all",
    ]
    items = parse_list_response(lines)
    assert items == [
        ListItem(["\\HasNoChildren"], "/", "INBOX"),
        ListItem(["\\Noselect", "\\HasChildren"], "/", "台北"),
        ListItem([], None, "Flat"),
    ]
    assert items[1].raw_name == "&U,BTFw-"


####################################################################
#
def test_parse_list_response_undecodable_name():
    """
    A name that is not valid modified UTF-7 is kept as the server sent it
    """
    items = parse_list_response(['* LIST () "." "Bad&AOk"'])
    assert items[0].name == "Bad&AOk"
    assert items[0].raw_name == "Bad&AOk"


####################################################################
#
@pytest.mark.parametrize(
    "line,name",
    [
        ('* LIST (\\HasNoChildren) "/" [Gmail]/Drafts', "[Gmail]/Drafts"),
        ('* LIST () "/" Foo]', "Foo]"),
    ],
)
def test_parse_list_response_unquoted_brackets(line, name):
    """
    Unquoted names may contain '[' and ']' (gmail's `[Gmail]` folders)
    """
    items = parse_list_response([line])
    assert len(items) == 1
    assert items[0].name == name
    assert items[0].delim == "/"


####################################################################
#
def test_parse_lsub_response():
    lines = ['* LSUB () "/" "Sent"', '* LIST () "/" "Drafts"']
    assert parse_list_response(lines, "LSUB") == [ListItem([], "/", "Sent")]


####################################################################
#
def test_parse_list_response_malformed():
    with pytest.raises(ProtocolError):
        parse_list_response(['* LIST "/" "INBOX"'])


####################################################################
#
def test_parse_status_response():
    lines = [
        '* STATUS "INBOX" (MESSAGES 231 UIDNEXT 44292 unseen 3)',
        '* STATUS "Other" (MESSAGES 1)',
    ]
    assert parse_status_response(lines) == {
        "MESSAGES": 231,
        "UIDNEXT": 44292,
        "UNSEEN": 3,
    }
    assert parse_status_response([]) == {}
    assert parse_status_response(
        ["* STATUS [Gmail]/Sent (MESSAGES 4)"]
    ) == {"MESSAGES": 4}


####################################################################
#
@pytest.mark.parametrize(
    "line",
    [
        '* STATUS "INBOX" (MESSAGES 231 UIDNEXT)',
        '* STATUS "INBOX" (MESSAGES lots)',
        '* STATUS "INBOX" MESSAGES 231',
    ],
)
def test_parse_status_response_malformed(line):
    with pytest.raises(ProtocolError):
        parse_status_response([line])


####################################################################
#
def test_parse_search_response():
    assert parse_search_response(["* SEARCH"]) == []
    lines = ["* SEARCH 2 84 882", "* 3 EXISTS", "* SEARCH 900"]
    assert parse_search_response(lines) == [2, 84, 882, 900]
    with pytest.raises(ProtocolError):
        parse_search_response(["* SEARCH 2 three"])


####################################################################
#
def test_parse_fetch_response():
    lines = [
        "* 1 FETCH (UID 12 FLAGS (\\Seen) BODY[] {5}\r\nhello)",
        "* 3 fetch (FLAGS ())",
        "* 1 FETCH (FLAGS (\\Seen \\Answered))",
        "* 2 EXPUNGE",
    ]
    assert parse_fetch_response(lines) == {
        1: {
            "UID": 12,
            "FLAGS": ["\\Seen", "\\Answered"],
            "BODY[]": "hello",
        },
        3: {"FLAGS": []},
    }


####################################################################
#
@pytest.mark.parametrize(
    "line",
    [
        "* 1 FETCH (UID)",
        "* 1 FETCH UID 12",
        "* FETCH (UID 12)",
    ],
)
def test_parse_fetch_response_malformed(line):
    with pytest.raises(ProtocolError):
        parse_fetch_response([line])


####################################################################
#
def test_parse_capability_response():
    lines = ["* CAPABILITY IMAP4rev1 IDLE AUTH=PLAIN", "* OK hi"]
    assert parse_capability_response(lines) == [
        "IMAP4rev1",
        "IDLE",
        "AUTH=PLAIN",
    ]


####################################################################
#
def test_parse_expunge_response():
    lines = ["* 3 EXPUNGE", "* 3 EXPUNGE", "* 4 EXISTS", "* 5 EXPUNGE"]
    assert parse_expunge_response(lines) == [3, 3, 5]


####################################################################
#
def test_parse_select_response():
    lines = [
        "* 172 EXISTS",
        "* 1 RECENT",
        "* OK [UNSEEN 12] Message 12 is first unseen",
        "* OK [UIDVALIDITY 3857529045] UIDs valid",
        "* OK [UIDNEXT 4392] Predicted next UID",
        "* FLAGS (\\Answered \\Flagged \\Deleted \\Seen \\Draft)",
        "* OK [PERMANENTFLAGS (\\Deleted \\Seen \\*)] Limited",
        "* OK [READ-WRITE] no arguments, ignored",
    ]
    result = parse_select_response(lines)
    assert result == {
        "EXISTS": 172,
        "RECENT": 1,
        "UNSEEN": 12,
        "UIDVALIDITY": 3857529045,
        "UIDNEXT": 4392,
        "FLAGS": [
            "\\Answered",
            "\\Flagged",
            "\\Deleted",
            "\\Seen",
            "\\Draft",
        ],
        "PERMANENTFLAGS": ["\\Deleted", "\\Seen", "\\*"],
    }
