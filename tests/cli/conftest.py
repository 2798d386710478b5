import functools
import logging

import click.testing
import pytest

from astraprov.cli import CLIControls, main


@pytest.fixture(autouse=True)
def _restore_root_logging():
    logger = logging.getLogger()
    original_handlers = logger.handlers[:]
    original_level = logger.level
    yield
    logger.handlers[:] = original_handlers
    logger.setLevel(original_level)


@pytest.fixture()
def runner():
    runner = click.testing.CliRunner(env={'ASTRAPROV_TOKEN': None, 'ASTRA_API_TOKEN': None})
    return runner


@pytest.fixture()
def controls(info, settings):
    return CLIControls(info=info, settings=settings)


@pytest.fixture()
def invoke(runner, controls):
    return functools.partial(runner.invoke, main, obj=controls)
