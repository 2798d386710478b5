import asyncio

import pytest

from astraprov._cogs.clients.errors import APIConflictError, APINotFoundError, APIUnauthorizedError, \
                                           APIUnparsableError
from astraprov._cogs.structs.identities import KeyspaceKey
from astraprov._cogs.structs.outcomes import Reason
from astraprov._core.reactor.orchestration import ConvergenceTimeoutError, Provisioned, \
                                                  ProvisioningError, StructuralDecodeError, \
                                                  create_keyspace, delete_keyspace, read_keyspace


async def test_creation_waits_for_the_database(
        api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.side_effect = [
        database_reply('INITIALIZING'),
        database_reply('INITIALIZING'),
        database_reply('ACTIVE'),
    ]
    api_mocks.add_keyspace.return_value = 201
    api_mocks.list_keyspaces.return_value = ['ks0', 'ks1']

    provisioned = await create_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert isinstance(provisioned, Provisioned)
    assert provisioned.identity == f'{keyspace_key.database_id}/keyspace/ks1'
    assert provisioned.snapshot == keyspace_key
    assert api_mocks.read_database.call_count == 3
    assert api_mocks.add_keyspace.call_count == 1
    assert api_mocks.list_keyspaces.call_count == 1


@pytest.mark.parametrize('status', ['TERMINATED', 'TERMINATING', 'ERROR'])
async def test_creation_fails_on_terminal_database(
        api_mocks, keyspace_key, database_reply, settings, guard, logger, status):
    api_mocks.read_database.return_value = database_reply(status)

    with pytest.raises(ProvisioningError) as err:
        await create_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert err.value.reason == Reason.PARENT_TERMINAL
    assert api_mocks.read_database.call_count == 1
    assert not api_mocks.add_keyspace.called
    assert not api_mocks.list_keyspaces.called


async def test_creation_retries_conflicts(api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.add_keyspace.side_effect = [APIConflictError(None, status=409), 201]
    api_mocks.list_keyspaces.return_value = ['ks1']

    provisioned = await create_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert provisioned.identity == keyspace_key.identity
    assert api_mocks.add_keyspace.call_count == 2
    assert api_mocks.read_database.call_count == 2  # re-checked before every mutation
    assert api_mocks.list_keyspaces.call_count == 1


async def test_creation_without_permissions(api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.add_keyspace.side_effect = APIUnauthorizedError(None, status=401)

    with pytest.raises(ProvisioningError) as err:
        await create_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert err.value.reason == Reason.PERMISSION_DENIED
    assert 'db-keyspace-create' in err.value.message
    assert api_mocks.add_keyspace.call_count == 1
    assert not api_mocks.list_keyspaces.called


async def test_creation_is_not_confirmed(api_mocks, keyspace_key, database_reply, settings, guard, logger):
    settings.convergence.limit = 3
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.add_keyspace.return_value = 201
    api_mocks.list_keyspaces.return_value = ['ks0']

    with pytest.raises(ConvergenceTimeoutError) as err:
        await create_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert err.value.reason == Reason.CONVERGENCE_TIMEOUT
    assert err.value.identity == keyspace_key.identity
    assert api_mocks.list_keyspaces.call_count == 3


async def test_creation_with_an_unparsable_listing_is_possibly_applied(
        api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.add_keyspace.return_value = 201
    api_mocks.list_keyspaces.side_effect = APIUnparsableError(None, status=200, text="not a valid JSON")

    with pytest.raises(ConvergenceTimeoutError) as err:
        await create_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert err.value.reason == Reason.UNEXPECTED_RESPONSE
    assert err.value.identity == keyspace_key.identity
    assert api_mocks.add_keyspace.call_count == 1
    assert api_mocks.list_keyspaces.call_count == 1


async def test_creation_gives_up_at_the_deadline(
        api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('INITIALIZING')

    with pytest.raises(ProvisioningError) as err:
        await create_keyspace(keyspace_key, settings=settings, guard=guard, timeout=0, logger=logger)

    assert not isinstance(err.value, ConvergenceTimeoutError)
    assert err.value.reason == Reason.DEADLINE_EXCEEDED
    assert not api_mocks.add_keyspace.called


async def test_creation_gives_up_when_stopped(
        api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('INITIALIZING')
    stopper = asyncio.Event()
    stopper.set()

    with pytest.raises(ProvisioningError) as err:
        await create_keyspace(keyspace_key, settings=settings, guard=guard, stopper=stopper, logger=logger)

    assert err.value.reason == Reason.DEADLINE_EXCEEDED
    assert not api_mocks.add_keyspace.called


async def test_creation_validates_the_key(api_mocks, settings, guard, logger):
    with pytest.raises(ValueError):
        await create_keyspace(KeyspaceKey(database_id='db-1', name='ks-1'),
                              settings=settings, guard=guard, logger=logger)
    assert not api_mocks.read_database.called


async def test_creation_waits_for_the_guard(
        api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.add_keyspace.return_value = 201
    api_mocks.list_keyspaces.return_value = ['ks1']

    async with guard:
        task = asyncio.create_task(create_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger))
        for _ in range(10):
            await asyncio.sleep(0)
        assert not api_mocks.read_database.called
        assert not task.done()

    await task
    assert api_mocks.read_database.call_count == 1
    assert api_mocks.add_keyspace.call_count == 1


async def test_deletion_twice_is_idempotent(
        api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.drop_keyspace.side_effect = [202, APINotFoundError(None, status=404)]
    api_mocks.list_keyspaces.return_value = ['ks0']

    result1 = await delete_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)
    result2 = await delete_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert result1 is None
    assert result2 is None
    assert api_mocks.drop_keyspace.call_count == 2
    assert api_mocks.list_keyspaces.call_count == 2


async def test_deletion_waits_for_absence(api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.drop_keyspace.return_value = 202
    api_mocks.list_keyspaces.side_effect = [['ks0', 'ks1'], ['ks0', 'ks1'], ['ks0']]

    await delete_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert api_mocks.drop_keyspace.call_count == 1
    assert api_mocks.list_keyspaces.call_count == 3


async def test_deletion_without_permissions(api_mocks, keyspace_key, database_reply, settings, guard, logger):
    api_mocks.read_database.return_value = database_reply('ACTIVE')
    api_mocks.drop_keyspace.side_effect = APIUnauthorizedError(None, status=401)

    with pytest.raises(ProvisioningError) as err:
        await delete_keyspace(keyspace_key, settings=settings, guard=guard, logger=logger)

    assert err.value.reason == Reason.PERMISSION_DENIED
    assert 'db-keyspace-drop' in err.value.message


async def test_reading_a_present_keyspace(api_mocks, keyspace_key, settings, logger):
    api_mocks.list_keyspaces.return_value = ['ks0', 'ks1']
    key = await read_keyspace(keyspace_key.identity, settings=settings, logger=logger)
    assert key == keyspace_key
    assert api_mocks.list_keyspaces.call_args.kwargs['database_id'] == keyspace_key.database_id


async def test_reading_an_absent_keyspace(api_mocks, keyspace_key, settings, logger):
    api_mocks.list_keyspaces.return_value = ['ks0']
    key = await read_keyspace(keyspace_key.identity, settings=settings, logger=logger)
    assert key is None


async def test_reading_a_malformed_identity(api_mocks, settings, logger):
    with pytest.raises(StructuralDecodeError) as err:
        await read_keyspace('db-1/ks1', settings=settings, logger=logger)
    assert err.value.reason == Reason.STRUCTURAL_DECODE
    assert not api_mocks.list_keyspaces.called
