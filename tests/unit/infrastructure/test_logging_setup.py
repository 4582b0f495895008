"""Tests for structlog configuration."""

import logging

import structlog

from agentrelay.infrastructure.logging_setup import configure_logging


def teardown_function() -> None:
    structlog.reset_defaults()


def test_known_level_is_applied() -> None:
    assert configure_logging("warning") == logging.WARNING

    logger = structlog.get_logger()
    assert not logger.is_enabled_for(logging.INFO)
    assert logger.is_enabled_for(logging.ERROR)


def test_unknown_level_falls_back_to_info() -> None:
    assert configure_logging("chatty") == logging.INFO
