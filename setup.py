#!/usr/bin/env python
#

from setuptools import setup

from imapengine import __version__

setup(
    name="imapengine",
    version=__version__,
    description="An asyncio IMAP4rev1 client command/response engine",
    long_description=(
        "imapengine is a python IMAP client: a tagged command engine, a "
        "response tokenizer, a modified UTF-7 mailbox name codec, and a "
        "small command line tool for talking to IMAP servers."
    ),
    author="Scanner",
    author_email="scanner@apricot.com",
    packages=["imapengine"],
    python_requires=">=3.11",
    install_requires=[
        "aiofiles",
        "charset-normalizer",
        "docopt",
        "python-dotenv",
        "python-json-logger>=3.1",
        "rich",
        "sentry-sdk",
    ],
    extras_require={
        "test": [
            "async-timeout",
            "dirty-equals",
            "faker",
            "pytest",
            "pytest-asyncio",
            "pytest-mock",
            "trustme",
        ],
    },
    entry_points={
        "console_scripts": ["imapcmd=imapengine.imapcmd:main"],
    },
)
