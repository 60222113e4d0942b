"""
Shared pytest setup for the pyremote suite.

Logging goes to stdout with file/line context. ``--debug-pyremote`` turns on
DEBUG for the ``pyremote`` loggers and the per-statement trace, and
``--pyremote-log-file`` mirrors that output into a file.
"""

import logging
import os
import sys

import pytest

from tests.fixtures.stub_engine import StubEngine

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"


def pytest_addoption(parser):
    group = parser.getgroup("pyremote")
    group.addoption(
        "--debug-pyremote",
        action="store_true",
        default=False,
        help="DEBUG logging for pyremote, including every submitted statement",
    )
    group.addoption(
        "--pyremote-log-file",
        action="store",
        default=None,
        help="Also write pyremote log records to this file",
    )


def pytest_configure(config):
    debug = config.getoption("--debug-pyremote")
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)], force=True)
    logging.getLogger("pyremote").setLevel(level)
    if debug:
        # Sessions created without an explicit debug_statements pick this up
        os.environ["PYREMOTE_DEBUG_STATEMENTS"] = "1"

    log_file = config.getoption("--pyremote-log-file")
    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger("pyremote").addHandler(handler)


@pytest.fixture
def engine():
    """Stub engine answering every statement with status ok."""
    stub = StubEngine()
    stub.start()
    yield stub
    stub.stop()
