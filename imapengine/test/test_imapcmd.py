"""
Test the `imapcmd` command line program
"""
# system imports
#
import socket
import sys

# 3rd party imports
#
import pytest
from async_timeout import timeout
from docopt import docopt

# Project imports
#
from .. import imapcmd
from ..imapcmd import get_config, main, run


####################################################################
#
def test_get_config_precedence():
    """
    The command line beats the environment which beats the defaults.
    """
    args = docopt(
        imapcmd.__doc__, argv=["--host=imap.example.com", "capability"]
    )
    env = {
        "IMAP_HOST": "ignored.example.com",
        "IMAP_PORT": "143",
        "IMAP_USER": "fred",
        "DEBUG": "Yes",
        "TRACE_DIR": "/tmp/traces",
    }
    config = get_config(args, env)
    assert config["host"] == "imap.example.com"
    assert config["port"] == 143
    assert config["user"] == "fred"
    assert config["password"] is None
    assert config["timeout"] is None
    assert config["debug"] is True
    assert config["trace_dir"] == "/tmp/traces"
    assert config["insecure"] is False


####################################################################
#
def test_get_config_defaults():
    args = docopt(imapcmd.__doc__, argv=["--timeout=2.5", "capability"])
    config = get_config(args, {})
    assert config["host"] is None
    assert config["port"] == 993
    assert config["timeout"] == 2.5
    assert config["debug"] is False


####################################################################
#
@pytest.mark.parametrize(
    "argv,env",
    [
        (["--port=imap", "capability"], {}),
        (["capability"], {"IMAP_TIMEOUT": "soon"}),
    ],
)
def test_get_config_bad_number(argv, env):
    args = docopt(imapcmd.__doc__, argv=argv)
    with pytest.raises(ValueError):
        get_config(args, env)


####################################################################
#
async def run_imapcmd(fake, *argv, user: bool = True):
    """
    Run `imapcmd` with `argv` against the fake server.
    """
    options = ["--host=127.0.0.1", f"--port={fake.port}"]
    if user:
        options += ["--user=fred", "--password=secret"]
    args = docopt(imapcmd.__doc__, argv=options + list(argv))
    config = get_config(args, {})
    async with timeout(5):
        await run(args, config, ssl_context=fake.client_ssl_context)


####################################################################
#
@pytest.mark.asyncio
async def test_run_capability(fake_imap_server, capsys):
    fake = await fake_imap_server(
        responses={"CAPABILITY": "* CAPABILITY IMAP4rev1 IDLE\r\n"}
    )
    await run_imapcmd(fake, "capability")
    assert capsys.readouterr().out.split() == ["IMAP4rev1", "IDLE"]
    assert fake.received == [
        b'A1 LOGIN "fred" "secret"\r\n',
        b"A2 CAPABILITY\r\n",
        b"A3 LOGOUT\r\n",
    ]


####################################################################
#
@pytest.mark.asyncio
async def test_run_preauth_does_not_login(fake_imap_server):
    fake = await fake_imap_server(greeting="* PREAUTH come in")
    await run_imapcmd(fake, "list")
    assert fake.received == [b'A1 LIST "" "*"\r\n', b"A2 LOGOUT\r\n"]


####################################################################
#
@pytest.mark.asyncio
async def test_run_list(fake_imap_server, capsys):
    fake = await fake_imap_server(
        responses={"LIST": '* LIST (\\HasNoChildren) "/" "Andr&AOk-"\r\n'}
    )
    await run_imapcmd(fake, "list")
    out = capsys.readouterr().out
    assert "Mailboxes" in out
    assert "André" in out


####################################################################
#
@pytest.mark.asyncio
async def test_run_status(fake_imap_server, capsys):
    fake = await fake_imap_server(
        responses={"STATUS": '* STATUS "INBOX" (MESSAGES 17 UNSEEN 3)\r\n'}
    )
    await run_imapcmd(fake, "status", "INBOX")
    out = capsys.readouterr().out
    assert "MESSAGES" in out
    assert "17" in out
    assert fake.received[1] == (
        b'A2 STATUS "INBOX" (MESSAGES RECENT UIDNEXT UIDVALIDITY UNSEEN)\r\n'
    )


####################################################################
#
@pytest.mark.asyncio
async def test_run_search(fake_imap_server, capsys):
    fake = await fake_imap_server(responses={"SEARCH": "* SEARCH 1 4\r\n"})
    await run_imapcmd(fake, "search", "INBOX", "UNSEEN")
    assert capsys.readouterr().out.strip() == "1 4"
    assert fake.received[1] == b'A2 EXAMINE "INBOX"\r\n'
    assert fake.received[2] == b"A3 SEARCH UNSEEN\r\n"


####################################################################
#
MESSAGE = "Subject: Hello there\r\nFrom: someone@example.com\r\n\r\nHi!\r\n"
FETCH_RESPONSE = f"* 1 FETCH (BODY[] {{{len(MESSAGE)}}}\r\n{MESSAGE})\r\n"


####################################################################
#
@pytest.mark.asyncio
async def test_run_fetch_to_dir(fake_imap_server, tmp_path):
    fake = await fake_imap_server(responses={"FETCH": FETCH_RESPONSE})
    output_dir = tmp_path / "out"
    await run_imapcmd(
        fake, "fetch", "INBOX", "1", f"--output-dir={output_dir}"
    )
    assert (output_dir / "1.eml").read_bytes() == MESSAGE.encode("latin-1")


####################################################################
#
@pytest.mark.asyncio
async def test_run_fetch_summary(fake_imap_server, capsys):
    fake = await fake_imap_server(responses={"FETCH": FETCH_RESPONSE})
    await run_imapcmd(fake, "fetch", "INBOX", "1:*")
    out = capsys.readouterr().out
    assert "Hello there" in out
    assert "someone@example.com" in out


####################################################################
#
@pytest.mark.asyncio
async def test_run_append(fake_imap_server, tmp_path, capsys, email_factory):
    message = email_factory().as_bytes()
    message_file = tmp_path / "message.eml"
    message_file.write_bytes(message)

    fake = await fake_imap_server()
    await run_imapcmd(
        fake, "append", "Sent", str(message_file), "--flag=\\Seen"
    )
    assert fake.received[1] == (
        f'A2 APPEND "Sent" (\\Seen) {{{len(message)}}}\r\n'.encode()
    )
    assert fake.received[2] == message + b"\r\n"
    assert "A2 OK APPEND completed" in capsys.readouterr().out


####################################################################
#
@pytest.mark.asyncio
async def test_run_raw(fake_imap_server, capsys):
    fake = await fake_imap_server(responses={"NOOP": "* 3 EXISTS\r\n"})
    await run_imapcmd(fake, "raw", "NOOP")
    assert capsys.readouterr().out.splitlines() == [
        "* 3 EXISTS",
        "A2 OK NOOP completed",
    ]


####################################################################
#
def test_main_no_host(mocker, monkeypatch):
    monkeypatch.delenv("IMAP_HOST", raising=False)
    mocker.patch.object(imapcmd, "load_dotenv")
    mocker.patch.object(sys, "argv", ["imapcmd", "capability"])
    with pytest.raises(SystemExit) as exc_info:
        main()
    assert exc_info.value.code == 1


####################################################################
#
def test_main_connection_refused(mocker, monkeypatch):
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]

    monkeypatch.delenv("DEBUG", raising=False)
    mocker.patch.object(imapcmd, "load_dotenv")
    mocker.patch.object(imapcmd, "setup_logging")
    mocker.patch.object(imapcmd, "setup_asyncio_logging")
    mocker.patch.object(imapcmd, "init_sentry")
    mocker.patch.object(imapcmd.logging, "shutdown")
    mocker.patch.object(
        sys,
        "argv",
        ["imapcmd", "--host=127.0.0.1", f"--port={port}", "capability"],
    )
    with pytest.raises(SystemExit) as exc_info:
        main()
    assert exc_info.value.code == 1
