"""
Command tags. Every command the client sends is prefixed with a tag so that
the server's tagged completion can be matched to it.
"""

# system imports
#
from typing import Optional

# Project imports
#
from .constants import TAG_MODULUS, TAG_PREFIX


##################################################################
##################################################################
#
class TagSequencer:
    """
    Hands out tags of the form `<letter><counter>`. The counter starts at 1
    and wraps modulo 1000, so after "A999" comes "A0" (not "A1").

    Tags are only unique within the window of the single command that is in
    flight. That is all we need since the engine never has more than one
    outstanding command.

    NOTE: The counter is a plain attribute. It belongs to the one session
          that owns this object and if you share a session between threads
          you need to provide your own locking.
    """

    ##################################################################
    #
    def __init__(self, prefix: str = TAG_PREFIX, modulus: int = TAG_MODULUS):
        self.prefix = prefix
        self.modulus = modulus
        self.counter = 0
        self.current: Optional[str] = None

    ##################################################################
    #
    def __str__(self):
        return f"TagSequencer({self.prefix}, counter: {self.counter})"

    ##################################################################
    #
    def next_tag(self) -> str:
        """
        Advance the counter and return the new tag.
        """
        self.counter = (self.counter + 1) % self.modulus
        self.current = f"{self.prefix}{self.counter}"
        return self.current
