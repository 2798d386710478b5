from astraprov._cogs.clients import api
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import bodies


async def read_database(
        *,
        settings: configuration.ProvisionerSettings,
        database_id: str,
        logger: typedefs.Logger,
) -> api.Reply:
    """
    Read the database (the parent resource) with its status, as is.

    The reply is not interpreted here: which statuses and payloads are usable
    is decided by the status poller (it also classifies the raised errors).
    """
    return await api.fetch(
        'get',
        url=f'/v2/databases/{database_id}',
        settings=settings,
        logger=logger,
    )


async def read_organization(
        *,
        settings: configuration.ProvisionerSettings,
        logger: typedefs.Logger,
) -> bodies.RawOrganization:
    rsp: bodies.RawOrganization = await api.get(
        url='/v2/currentOrg',
        settings=settings,
        logger=logger,
    )
    return rsp
