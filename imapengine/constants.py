#!/usr/bin/env python
#
# File: $Id$
#
"""
Various global constants.
"""

# The letter every command tag starts with, and the modulus the tag counter
# wraps at.
#
TAG_PREFIX = "A"
TAG_MODULUS = 1000

LINE_TERMINATOR = b"\r\n"

DEFAULT_PORT = 993

# asyncio streams refuse lines longer than their limit. Server responses
# carrying message bodies as literals are read with `readexactly` so this only
# bounds a single line of protocol text.
#
STREAM_LIMIT = 1024 * 1024

# The system flags defined by rfc3501
#
FLAG_SEEN = r"\Seen"
FLAG_ANSWERED = r"\Answered"
FLAG_FLAGGED = r"\Flagged"
FLAG_DELETED = r"\Deleted"
FLAG_DRAFT = r"\Draft"
FLAG_RECENT = r"\Recent"

# The data items a client may ask for in a STATUS command.
#
STATUS_ITEMS = ("MESSAGES", "RECENT", "UIDNEXT", "UIDVALIDITY", "UNSEEN")
