"""
Utility functions that do not properly belong to any class or module:
setting up logging (and protocol traces) the way all of our programs do it,
and turning lists of message numbers in to IMAP sequence sets.
"""

# system imports
#
import asyncio
import atexit
import json
import logging
import logging.config
import logging.handlers
from itertools import count, groupby
from pathlib import Path
from queue import SimpleQueue
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
)

if TYPE_CHECKING:
    from _typeshed import StrPath

LOGGED_IN_USER: Optional[str] = None


##################################################################
##################################################################
#
class LocalQueueHandler(logging.handlers.QueueHandler):
    """
    A QueueHandler for an in-process queue. Records do not need to be
    prepared (pickle-able) since they never leave this process.

    See: https://www.zopatista.com/python/2019/05/11/asyncio-logging/
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.enqueue(record)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.handleError(record)


############################################################################
#
def setup_asyncio_logging() -> None:
    """
    Call this after you have configured all of your log handlers.

    Replaces the handlers on the root logger with a LocalQueueHandler and
    starts a QueueListener, in a separate thread, that feeds the original
    handlers. Logging from a coroutine then never blocks the event loop on
    a slow handler.
    """
    queue: SimpleQueue = SimpleQueue()
    root = logging.getLogger()

    handlers: List[logging.Handler] = []

    handler = LocalQueueHandler(queue)
    root.addHandler(handler)
    for h in root.handlers[:]:
        if h is not handler:
            root.removeHandler(h)
            handlers.append(h)

    listener = logging.handlers.QueueListener(
        queue, *handlers, respect_handler_level=True
    )
    listener.start()

    # Make sure all queued records get logged on program exit.
    #
    atexit.register(lambda: listener.stop())


####################################################################
#
def setup_logging(
    log_config: Optional["StrPath"],
    debug: bool,
    username: Optional[str] = None,
    trace_dir: Optional["StrPath"] = None,
) -> None:
    """
    Set up logging for an imapengine program. If `log_config` names a file
    that exists it is a JSON logging configuration dictionary and we use
    it as is. Otherwise imapengine's loggers write to stderr, and if
    `trace_dir` is a directory the protocol trace goes to a rotating file of
    JSON documents in it.

    NOTE: A custom log record factory adds a `username` field to every log
          record so log formats can say who a session was for.

    Arguments:
    - `log_config`: path to a JSON `dictConfig` file
    - `debug`: log at DEBUG instead of INFO
    - `username`: the user we are logging in as, if known
    - `trace_dir`: where protocol traces are written, when they are enabled
    """
    global LOGGED_IN_USER
    LOGGED_IN_USER = username if username else "no_user"
    old_factory = logging.getLogRecordFactory()

    def log_record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.username = LOGGED_IN_USER
        return record

    logging.setLogRecordFactory(log_record_factory)

    if log_config is not None and Path(log_config).exists():
        logging.config.dictConfig(json.loads(Path(log_config).read_text()))
        return

    # Without a logging config file this is what is used.
    #
    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "basic": {
                "format": (
                    "[{asctime}] {username:<20} "
                    "{levelname}:{module}.{funcName}: {message}"
                ),
                "style": "{",
            },
            "trace": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "format": "%(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "basic",
                "stream": "ext://sys.stderr",
            },
        },
        "loggers": {
            "imapengine": {
                "handlers": ["console"],
                "level": "DEBUG" if debug else "INFO",
                "propagate": False,
            },
        },
    }

    warn_no_trace_dir = False
    if trace_dir:
        trace_dir = Path(trace_dir)
        if trace_dir.exists() and trace_dir.is_dir():
            logging_config["handlers"]["trace_file"] = {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "trace",
                "filename": str(trace_dir / f"{LOGGED_IN_USER}-imap.trace"),
                "maxBytes": 20971520,
                "backupCount": 5,
            }
            logging_config["loggers"]["imapengine.trace"] = {
                "handlers": ["trace_file"],
                "level": "INFO",
                "propagate": False,
            }
        else:
            warn_no_trace_dir = True
    logging.config.dictConfig(logging_config)
    logger = logging.getLogger("imapengine.utils")
    logger.debug("Debug enabled")
    if log_config is not None:
        logger.warning("Logging config '%s' does not exist", log_config)
    if warn_no_trace_dir:
        logger.warning(
            "Unable to set up tracing because trace dir '%s' either does "
            "not exist or is not a directory.",
            trace_dir,
        )


####################################################################
#
def compact_sequence(msg_nums: Iterable[int]) -> str:
    """
    Turn a collection of message numbers (or uids) in to an IMAP sequence
    set, collapsing consecutive runs in to ranges:

        [1, 3, 4, 5, 6, 9] -> "1,3:6,9"

    Duplicates are dropped and the numbers are sorted.
    """
    keys = sorted(set(msg_nums))
    if not keys:
        raise ValueError("Can not make a sequence set from no messages")

    def as_range(iterable: Iterator[int]) -> str:
        grouped_ints = list(iterable)
        if len(grouped_ints) > 1:
            return f"{grouped_ints[0]}:{grouped_ints[-1]}"
        return str(grouped_ints[0])

    return ",".join(
        as_range(g)
        for _, g in groupby(keys, key=lambda n, c=count(): n - next(c))
    )
