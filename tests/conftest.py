import asyncio
import logging
import re

import pytest

from astraprov._cogs.clients import auth
from astraprov._cogs.clients.api import Reply
from astraprov._cogs.configs.configuration import ProvisionerSettings
from astraprov._cogs.structs.credentials import ConnectionInfo, RoutingCredential
from astraprov._cogs.structs.identities import CDCKey, CDCSpec, KeyspaceKey

DATABASE_ID = '3c9a5d4e-1f2b-4c3d-8e9f-0a1b2c3d4e5f'


@pytest.fixture()
def settings():
    """ The default settings, but without any actual sleeping. """
    settings = ProvisionerSettings()
    settings.polling.delay = 0
    settings.credentials.refresh_delay = 0
    settings.convergence.delay = 0
    return settings


@pytest.fixture()
def guard():
    return asyncio.Lock()


@pytest.fixture()
def logger():
    return logging.getLogger('astraprov.tests')


@pytest.fixture()
def database_id():
    return DATABASE_ID


@pytest.fixture()
def keyspace_key(database_id):
    return KeyspaceKey(database_id=database_id, name='ks1')


@pytest.fixture()
def cdc_key(database_id):
    return CDCKey(database_id=database_id, keyspace='ks1', table='tbl1', tenant='tenant1')


@pytest.fixture()
def cdc_spec(cdc_key):
    return CDCSpec(key=cdc_key, database_name='db1', topic_partitions=3)


@pytest.fixture()
def credential():
    return RoutingCredential(cluster='pulsar-gcp-useast1', token='pulsar-token')


@pytest.fixture()
def database_reply(database_id):
    """ A factory of the database replies, as the status poller sees them. """
    def make(status='ACTIVE', *, code=200, keyspaces=('ks0',), **info):
        payload = {
            'id': database_id,
            'status': status,
            'info': dict({'cloudProvider': 'GCP', 'region': 'us-east1',
                          'keyspace': 'ks0', 'keyspaces': list(keyspaces)}, **info),
        }
        return Reply(status=code, payload=payload)
    return make


#
# Mocks for the remote APIs. No external calls must be made under any circumstances.
# The API client tests use fake servers; all other tests mock the client functions.
#

@pytest.fixture()
def hostname():
    """ A fake hostname of the control plane to be used in all aresponses tests. """
    return 'fake-host'


@pytest.fixture()
def streaming_hostname():
    """ A fake hostname of the streaming API to be used in all aresponses tests. """
    return 'fake-streaming-host'


@pytest.fixture()
def info(hostname, streaming_hostname):
    return ConnectionInfo(
        token='org-token',
        server=f'http://{hostname}',
        streaming_server=f'http://{streaming_hostname}',
    )


@pytest.fixture()
async def context(info):
    """
    Provide a freshly created API context for every test, as if the test
    runs inside of the ``connected()`` block (where it is set normally).
    """
    context = auth.APIContext(info)
    token = auth.context_var.set(context)
    try:
        yield context
    finally:
        auth.context_var.reset(token)
        await context.close()


@pytest.fixture()
def api_mocks(mocker):
    """
    Mock all client functions used by the engines, so that no requests are made.

    Individual tests set the return values or the side effects as needed.
    """
    from astraprov._cogs.clients import cdc, fetching, keyspaces, tokens
    return mocker.Mock(
        read_database=mocker.patch.object(fetching, 'read_database'),
        read_organization=mocker.patch.object(fetching, 'read_organization', return_value={'id': 'org-1'}),
        list_tenant_tokens=mocker.patch.object(tokens, 'list_tenant_tokens', return_value=[{'tokenid': 't-1'}]),
        read_tenant_token=mocker.patch.object(tokens, 'read_tenant_token', return_value='pulsar-token'),
        list_keyspaces=mocker.patch.object(keyspaces, 'list_keyspaces'),
        add_keyspace=mocker.patch.object(keyspaces, 'add_keyspace'),
        drop_keyspace=mocker.patch.object(keyspaces, 'drop_keyspace'),
        enable_cdc=mocker.patch.object(cdc, 'enable_cdc'),
        delete_cdc=mocker.patch.object(cdc, 'delete_cdc'),
        list_cdc=mocker.patch.object(cdc, 'list_cdc'),
    )


#
# Helpers for the logging checks.
#

@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    caplog.set_level(logging.DEBUG)

    def assert_logs_fn(patterns, prohibited=[], strict=False):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            # The expected pattern is at position 0.
            # Looking-ahead: if one of the following patterns matches, while the
            # 0th does not, then the log message is missing, and we fail the test.
            for idx, pattern in enumerate(remaining_patterns):
                m = re.search(pattern, message)
                if m:
                    if idx == 0:
                        remaining_patterns[:1] = []
                        break  # out of `remaining_patterns` cycle
                    else:
                        skipped_patterns = remaining_patterns[:idx]
                        raise AssertionError(f"Few patterns were skipped: {skipped_patterns!r}")
                elif strict:
                    raise AssertionError(f"Unexpected log message: {message!r}")

            # Check that the prohibited patterns do not appear in any message.
            for pattern in prohibited:
                m = re.search(pattern, message)
                if m:
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")

        # If all patterns have been matched in order, we are done.
        # if some are left, but the messages are over, then we fail.
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
