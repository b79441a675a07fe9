#!/usr/bin/env python
#
# File: $Id$
#
"""
Run IMAP commands against a server from the command line.

NOTE: Every connection option can also be set via an env. var (or a `.env`
      file in the current directory.) The command line option will override
      the env. var if set.

Usage:
  imapcmd [options] capability
  imapcmd [options] list [<reference>] [<pattern>]
  imapcmd [options] status <mailbox>
  imapcmd [options] search <mailbox> [<criteria>...] [--literal=<text>]
  imapcmd [options] fetch <mailbox> <msg_set> [--output-dir=<dir>]
  imapcmd [options] append <mailbox> <message_file> [--flag=<flag>...]
  imapcmd [options] raw <command>...
  imapcmd -h | --help
  imapcmd --version

Options:
  --version
  -h, --help           Show this text and exit
  --host=<host>        The IMAP server to connect to. The env. var is
                       `IMAP_HOST`
  --port=<port>        The port to connect to. Defaults to 993. The env. var
                       is `IMAP_PORT`
  --user=<user>        The user to log in as. If no user is given we do not
                       log in (useful against servers that greet us with
                       PREAUTH.) The env. var is `IMAP_USER`
  --password=<pw>      The password to log in with. The env. var is
                       `IMAP_PASSWORD`
  --timeout=<secs>     Give up if the whole run takes longer than this many
                       seconds. Defaults to no timeout. The env. var is
                       `IMAP_TIMEOUT`
  --insecure           Do not verify the server's certificate.
  --literal=<text>     Search for this (UTF-8) text. It is sent as a literal
                       after the criteria with `CHARSET UTF-8`.
  --output-dir=<dir>   Write each fetched message to `<dir>/<msg num>.eml`
                       instead of printing a summary of them.
  --flag=<flag>        A flag to set on the appended message. May be given
                       more than once.
  --debug              Will set the default logging level to `DEBUG` and
                       install rich tracebacks. The env var is `DEBUG`
  --log-config=<lc>    The log config file. A JSON file that follows the
                       python logging configuration dictionary schema. The
                       env. var is `LOG_CONFIG`
  --trace              Trace every line sent to and received from the server.
  --trace-dir=<dir>    Write the trace to `<dir>/<user>-imap.trace` instead of
                       the log. The env. var is `TRACE_DIR`
"""
# system imports
#
import asyncio
import logging
import os
import ssl
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

# 3rd party imports
#
import aiofiles
import sentry_sdk
from docopt import docopt
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.traceback import install as rich_install
from sentry_sdk.integrations.asyncio import AsyncioIntegration

# Application imports
#
from imapengine import __version__ as VERSION
from imapengine.client import ClientState, IMAPClient
from imapengine.constants import DEFAULT_PORT, STATUS_ITEMS
from imapengine.exceptions import IMAPEngineException, StatusError
from imapengine.message import decode_message
from imapengine.trace import toggle_trace
from imapengine.utils import setup_asyncio_logging, setup_logging

logger = logging.getLogger("imapengine.imapcmd")

console = Console()
err_console = Console(stderr=True)

TRUE_VALUES = ("1", "true", "yes", "on")


####################################################################
#
def get_config(
    args: Dict[str, Any], env: Mapping[str, str]
) -> Dict[str, Any]:
    """
    Merge the command line options with the environment. The command line
    wins, then the env. var, then our default.

    Raises ValueError if a numeric option is not a number.
    """
    port = args["--port"] or env.get("IMAP_PORT") or DEFAULT_PORT
    timeout = args["--timeout"] or env.get("IMAP_TIMEOUT")
    debug = args["--debug"] or (
        env.get("DEBUG", "").strip().lower() in TRUE_VALUES
    )
    return {
        "host": args["--host"] or env.get("IMAP_HOST"),
        "port": int(port),
        "user": args["--user"] or env.get("IMAP_USER"),
        "password": args["--password"] or env.get("IMAP_PASSWORD"),
        "timeout": float(timeout) if timeout else None,
        "insecure": args["--insecure"],
        "debug": debug,
        "log_config": args["--log-config"] or env.get("LOG_CONFIG"),
        "trace": args["--trace"],
        "trace_dir": args["--trace-dir"] or env.get("TRACE_DIR"),
    }


####################################################################
#
def init_sentry(debug: bool):
    """
    Report errors to sentry if SENTRY_DSN is set in the environment.
    """
    if "SENTRY_DSN" not in os.environ:
        logger.debug("Not initializing sentry_sdk: SENTRY_DSN not set")
        return
    logger.debug("Initializing sentry_sdk")
    sentry_sdk.init(
        dsn=os.environ["SENTRY_DSN"],
        traces_sample_rate=float(
            os.environ.get("SENTRY_TRACES_SAMPLE_RATE", 0.1)
        ),
        integrations=[
            AsyncioIntegration(),
        ],
        environment="devel" if debug else "production",
    )


####################################################################
#
def make_ssl_context(insecure: bool) -> ssl.SSLContext:
    ssl_context = ssl.create_default_context()
    if insecure:
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
    return ssl_context


####################################################################
#
async def do_capability(client: IMAPClient, args: Dict[str, Any]):
    for capability in await client.capability():
        console.print(capability, highlight=False, markup=False)


####################################################################
#
async def do_list(client: IMAPClient, args: Dict[str, Any]):
    items = await client.list(
        args["<reference>"] or "", args["<pattern>"] or "*"
    )
    table = Table(title="Mailboxes")
    table.add_column("Name")
    table.add_column("Delimiter")
    table.add_column("Attributes")
    for item in items:
        table.add_row(
            escape(item.name),
            escape(item.delim or ""),
            escape(" ".join(item.attrs)),
        )
    console.print(table)


####################################################################
#
async def do_status(client: IMAPClient, args: Dict[str, Any]):
    status = await client.status(args["<mailbox>"], STATUS_ITEMS)
    table = Table(title=escape(args["<mailbox>"]))
    table.add_column("Item")
    table.add_column("Value", justify="right")
    for item, value in status.items():
        table.add_row(escape(item), str(value))
    console.print(table)


####################################################################
#
async def do_search(client: IMAPClient, args: Dict[str, Any]):
    await client.examine(args["<mailbox>"])
    criteria = " ".join(args["<criteria>"]) or "ALL"
    msg_nums = await client.search(criteria, literal=args["--literal"])
    console.print(" ".join(str(x) for x in msg_nums), highlight=False)


####################################################################
#
async def do_fetch(client: IMAPClient, args: Dict[str, Any]):
    """
    Fetch messages. Either write them to the output directory or print
    who they are from and what they are about.
    """
    await client.examine(args["<mailbox>"])
    messages = await client.fetch(args["<msg_set>"])

    if args["--output-dir"]:
        output_dir = Path(args["--output-dir"])
        output_dir.mkdir(parents=True, exist_ok=True)
        for msg_num, raw in messages.items():
            path = output_dir / f"{msg_num}.eml"
            async with aiofiles.open(path, "wb") as f:
                await f.write(raw)
            logger.info("Wrote message %d to '%s'", msg_num, path)
        return

    table = Table(title=escape(args["<mailbox>"]))
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("From")
    table.add_column("Subject")
    for msg_num, raw in sorted(messages.items()):
        part = decode_message(raw, headers_only=True)[0]
        table.add_row(
            str(msg_num),
            escape(part.get("Date", "")),
            escape(part.get("From", "")),
            escape(part.get("Subject", "")),
        )
    console.print(table)


####################################################################
#
async def do_append(client: IMAPClient, args: Dict[str, Any]):
    async with aiofiles.open(args["<message_file>"], "rb") as f:
        message = await f.read()
    response = await client.append(
        args["<mailbox>"], message, flags=args["--flag"]
    )
    console.print(str(response.completion), highlight=False, markup=False)


####################################################################
#
async def do_raw(client: IMAPClient, args: Dict[str, Any]):
    """
    Send a command as is. Print everything the server said in response.
    """
    response = await client.command(" ".join(args["<command>"]))
    console.print(response.text, end="", highlight=False, markup=False)
    console.print(str(response.result), highlight=False, markup=False)


COMMANDS = {
    "capability": do_capability,
    "list": do_list,
    "status": do_status,
    "search": do_search,
    "fetch": do_fetch,
    "append": do_append,
    "raw": do_raw,
}


####################################################################
#
async def run(
    args: Dict[str, Any],
    config: Dict[str, Any],
    ssl_context: Optional[ssl.SSLContext] = None,
):
    """
    Connect, log in (if we were given a user), run the sub-command, and log
    out. The whole run is bounded by the configured timeout.
    """
    if ssl_context is None:
        ssl_context = make_ssl_context(config["insecure"])

    async with asyncio.timeout(config["timeout"]):
        client = await IMAPClient.connect(
            config["host"], config["port"], ssl_context=ssl_context
        )
        async with client:
            logged_in = client.state != ClientState.NOT_AUTHENTICATED
            if not logged_in and config["user"]:
                await client.login(config["user"], config["password"] or "")

            for name, command in COMMANDS.items():
                if args[name]:
                    await command(client, args)
                    break
            await client.logout()


#############################################################################
#
def main():
    """
    Parse the options, set up logging, and run the sub-command. Any failure
    is logged and we exit with a status of 1.
    """
    load_dotenv()
    args = docopt(__doc__, version=VERSION)
    try:
        config = get_config(args, os.environ)
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] bad option value: {exc}")
        sys.exit(1)

    if not config["host"]:
        err_console.print("[red]Error:[/red] no host (--host or IMAP_HOST)")
        sys.exit(1)

    setup_logging(
        config["log_config"],
        config["debug"],
        username=config["user"],
        trace_dir=config["trace_dir"],
    )
    setup_asyncio_logging()
    if config["debug"]:
        rich_install(show_locals=True)
    if config["trace"] or config["trace_dir"]:
        toggle_trace(True)
    init_sentry(config["debug"])

    exit_status = 0
    try:
        asyncio.run(run(args, config))
    except StatusError as exc:
        logger.error("Server said: %s", exc)
        exit_status = 1
    except (IMAPEngineException, TimeoutError, OSError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        exit_status = 1
    except KeyboardInterrupt:
        logger.warning("Keyboard interrupt, exiting")
        exit_status = 1
    finally:
        logging.shutdown()
    sys.exit(exit_status)


############################################################################
############################################################################
#
# Here is where it all starts
#
if __name__ == "__main__":
    main()
#
#
############################################################################
############################################################################
