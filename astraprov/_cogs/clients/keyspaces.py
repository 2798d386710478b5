from typing import Collection

import aiohttp

from astraprov._cogs.clients import api
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import bodies, identities


async def list_keyspaces(
        *,
        settings: configuration.ProvisionerSettings,
        database_id: str,
        logger: typedefs.Logger,
) -> Collection[str]:
    """
    List the keyspaces of the database, including the initial (default) one.
    """
    rsp: bodies.RawDatabase = await api.get(
        url=f'/v2/databases/{database_id}',
        settings=settings,
        logger=logger,
    )
    snapshot = bodies.ParentSnapshot.from_raw(database_id, rsp or {})
    return snapshot.keyspaces


async def add_keyspace(
        *,
        settings: configuration.ProvisionerSettings,
        key: identities.KeyspaceKey,
        logger: typedefs.Logger,
) -> int:
    response = await api.request(
        method='post',
        url=f'/v2/databases/{key.database_id}/keyspaces/{key.name}',
        settings=settings,
        logger=logger,
    )
    return await _release(response)


async def drop_keyspace(
        *,
        settings: configuration.ProvisionerSettings,
        key: identities.KeyspaceKey,
        logger: typedefs.Logger,
) -> int:
    response = await api.request(
        method='delete',
        url=f'/v2/databases/{key.database_id}/keyspaces/{key.name}',
        settings=settings,
        logger=logger,
    )
    return await _release(response)


async def _release(response: aiohttp.ClientResponse) -> int:
    # The mutation responses carry nothing useful; only the status matters.
    async with response:
        await response.read()
    return response.status
