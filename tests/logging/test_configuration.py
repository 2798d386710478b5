import logging
from typing import Collection

import pytest

from astraprov._core.actions.loggers import EntityFormatter, EntityJsonFormatter, \
                                            EntityPrefixingJsonFormatter, \
                                            EntityPrefixingTextFormatter, EntityTextFormatter, \
                                            LogFormat, configure


@pytest.fixture(autouse=True)
def _clear_own_handlers():
    logger = logging.getLogger()
    original_level = logger.level
    logger.handlers[:] = [
        handler for handler in logger.handlers
        if not isinstance(handler, logging.StreamHandler) or
           not isinstance(handler.formatter, EntityFormatter)
    ]
    original_handlers = logger.handlers[:]
    yield
    logger.handlers[:] = original_handlers
    logger.setLevel(original_level)


def _get_own_handlers(logger: logging.Logger) -> Collection[logging.Handler]:
    return [
        handler for handler in logger.handlers
        if isinstance(handler, logging.StreamHandler) and
           isinstance(handler.formatter, EntityFormatter)
    ]


def test_own_formatter_is_used():
    configure()
    logger = logging.getLogger()
    own_handlers = _get_own_handlers(logger)
    assert len(own_handlers) == 1


def test_reconfiguration_replaces_own_handlers():
    configure()
    configure()
    logger = logging.getLogger()
    own_handlers = _get_own_handlers(logger)
    assert len(own_handlers) == 1


@pytest.mark.parametrize('log_format', [LogFormat.FULL, LogFormat.PLAIN, '%(message)s'])
def test_formatter_nonprefixed_text(log_format):
    configure(log_format=log_format, log_prefix=False)
    own_handlers = _get_own_handlers(logging.getLogger())
    assert type(own_handlers[0].formatter) is EntityTextFormatter


@pytest.mark.parametrize('log_format', [LogFormat.FULL, LogFormat.PLAIN, '%(message)s'])
def test_formatter_prefixed_text(log_format):
    configure(log_format=log_format, log_prefix=True)
    own_handlers = _get_own_handlers(logging.getLogger())
    assert type(own_handlers[0].formatter) is EntityPrefixingTextFormatter


def test_formatter_nonprefixed_json():
    configure(log_format=LogFormat.JSON, log_prefix=False)
    own_handlers = _get_own_handlers(logging.getLogger())
    assert type(own_handlers[0].formatter) is EntityJsonFormatter


def test_formatter_prefixed_json():
    configure(log_format=LogFormat.JSON, log_prefix=True)
    own_handlers = _get_own_handlers(logging.getLogger())
    assert type(own_handlers[0].formatter) is EntityPrefixingJsonFormatter


def test_json_has_no_prefix_by_default():
    configure(log_format=LogFormat.JSON, log_prefix=None)
    own_handlers = _get_own_handlers(logging.getLogger())
    assert type(own_handlers[0].formatter) is EntityJsonFormatter


def test_text_has_prefix_by_default():
    configure(log_format=LogFormat.FULL, log_prefix=None)
    own_handlers = _get_own_handlers(logging.getLogger())
    assert type(own_handlers[0].formatter) is EntityPrefixingTextFormatter


@pytest.mark.parametrize('kwargs, level', [
    (dict(), logging.INFO),
    (dict(verbose=True), logging.DEBUG),
    (dict(debug=True), logging.DEBUG),
    (dict(quiet=True), logging.WARNING),
])
def test_levels(kwargs, level):
    configure(**kwargs)
    assert logging.getLogger().level == level


def test_libraries_are_silenced_unless_debugging():
    configure(debug=False)
    assert not logging.getLogger('asyncio').propagate
    assert not logging.getLogger('aiohttp').propagate
    configure(debug=True)
    assert logging.getLogger('asyncio').propagate
    assert logging.getLogger('aiohttp').propagate
