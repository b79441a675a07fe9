#!/usr/bin/env python
#
# File: $Id$
#
"""
Some exceptions need to be generally available to many modules so they are
kept in this module to avoid ciruclar dependencies.
"""

# system imports
#
from typing import TYPE_CHECKING, Optional

# Allow circular imports for annotations
#
if TYPE_CHECKING:
    from .response import Completion, Response


#######################################################################
#
# The base of every exception the engine raises. Callers that do not care
# which layer failed can catch this one.
#
class IMAPEngineException(Exception):
    def __init__(self, value="imap engine exception"):
        self.value = value

    def __str__(self):
        return self.value


##################################################################
##################################################################
#
class TransportError(IMAPEngineException):
    """
    The byte stream to the server failed: an I/O error or the server
    closing the connection before the command completed. The session is no
    longer usable after one of these.
    """

    def __init__(self, value="transport error"):
        self.value = value

    def __str__(self):
        return self.value


##################################################################
##################################################################
#
class ProtocolError(IMAPEngineException):
    """
    The server sent something that does not fit the response grammar we
    understand (or we were asked to do something the protocol state does not
    allow, like issuing a command while another is in flight.)
    """

    def __init__(self, value="protocol error"):
        self.value = value

    def __str__(self):
        return self.value


##################################################################
##################################################################
#
class StatusError(IMAPEngineException):
    """
    A well formed tagged completion that reported failure (NO, BAD, or
    BYE.) The message is the raw completion line. The informational lines the
    server sent before the completion are kept in `response` so the caller can
    look at them when diagnosing the failure.
    """

    ##################################################################
    #
    def __init__(
        self,
        value="status error",
        completion: Optional["Completion"] = None,
        response: Optional["Response"] = None,
    ):
        """
        Arguments:
        - `value`: the raw tagged completion line (without its CRLF)
        - `completion`: the parsed completion
        - `response`: the Response holding the aggregated untagged text
        """
        self.value = value
        self.completion = completion
        self.response = response

    ##################################################################
    #
    def __str__(self):
        return self.value


##################################################################
##################################################################
#
class No(StatusError):
    pass


##################################################################
##################################################################
#
class Bad(StatusError):
    pass


##################################################################
##################################################################
#
class Bye(StatusError):
    pass


##################################################################
##################################################################
#
class CodecError(IMAPEngineException):
    """
    Raised by the modified UTF-7 mailbox name codec when it is handed
    something it can not encode or decode.
    """

    def __init__(self, value="codec error"):
        self.value = value

    def __str__(self):
        return self.value
