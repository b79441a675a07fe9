"""
A client side engine for the IMAP4rev1 command/response protocol.
"""

__version__ = "0.1.0"
