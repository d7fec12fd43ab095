"""Unit tests for loguru setup and stdlib interception."""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Iterator

import pytest
from loguru import logger

from chatgate.inbound.log import setup_logging, setup_logging_from_settings
from chatgate.inbound.settings import ChatgateSettings


@pytest.fixture
def restore_logging() -> Iterator[None]:
    """Put loguru and the stdlib root logger back the way pytest had them."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    asyncio_level = logging.getLogger("asyncio").level
    yield
    logger.remove()
    logger.add(sys.stderr)
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("asyncio").setLevel(asyncio_level)


def test_stdlib_records_reach_loguru_sink(restore_logging: None) -> None:
    sink = io.StringIO()
    setup_logging("info", sink=sink)

    logging.getLogger("chatgate.im_gateway.gateway").info("Starting IM Gateway for agent %s", "ops")
    logging.getLogger("chatgate.im_gateway.gateway").debug("not shown")

    output = sink.getvalue()
    assert "Starting IM Gateway for agent ops" in output
    assert "INFO" in output
    assert "not shown" not in output


def test_quiet_loggers_are_capped_at_warning(restore_logging: None) -> None:
    setup_logging("debug", sink=io.StringIO())

    assert logging.getLogger("asyncio").level == logging.WARNING


def test_settings_select_json_output(restore_logging: None) -> None:
    sink = io.StringIO()
    settings = ChatgateSettings(log_level="warning", log_json=True)

    setup_logging_from_settings(settings, sink=sink)
    logger.info("hidden")
    logger.warning("queue full")

    lines = sink.getvalue().splitlines()
    assert len(lines) == 1
    record = json.loads(lines[0])["record"]
    assert record["message"] == "queue full"
    assert record["level"]["name"] == "WARNING"
