#!/usr/bin/env python
#
# File: $Id$
#
"""
Protocol traces. When tracing is enabled every chunk of data we send to the
server and every line we receive from it is written to the
`imapengine.trace` logger as a JSON document. How (and where) those records
are written is up to the logging configuration (see
`imapengine.utils.setup_logging`.)
"""

# system imports
#
import json
import logging
from typing import Any, Dict, Optional

log = logging.getLogger("imapengine")
trace_logger = logging.getLogger("imapengine.trace")
TRACE_ENABLED = False


####################################################################
#
def toggle_trace(turn_on: Optional[bool] = None) -> None:
    """
    Flip tracing on or off. If `turn_on` is given, set it to that instead.
    """
    global TRACE_ENABLED
    TRACE_ENABLED = not TRACE_ENABLED if turn_on is None else turn_on
    log.info("Tracing %s", "enabled" if TRACE_ENABLED else "disabled")


####################################################################
#
def trace(msg: Dict[str, Any]) -> None:
    """
    Keyword Arguments:
    msg -- a dict describing the event. It is dumped as JSON so everything in
           it must be serializable.
    """
    if TRACE_ENABLED:
        trace_logger.info(json.dumps(msg))
