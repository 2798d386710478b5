from typing import Collection

from astraprov._cogs.clients import api, auth
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import bodies, credentials, identities


def _url(context: auth.APIContext, tenant: str) -> str:
    return f'{context.streaming_server.rstrip("/")}/v3/astra/tenants/{tenant}/cdc'


def build_cdc_body(spec: identities.CDCSpec, *, org_id: str) -> dict[str, object]:
    return {
        'databaseId': spec.key.database_id,
        'databaseName': spec.database_name,
        'keyspace': spec.key.keyspace,
        'orgId': org_id,
        'tableName': spec.key.table,
        'topicPartitions': spec.topic_partitions,
    }


@auth.authenticated
async def enable_cdc(
        *,
        settings: configuration.ProvisionerSettings,
        spec: identities.CDCSpec,
        org_id: str,
        credential: credentials.RoutingCredential,
        context: auth.APIContext | None = None,
        logger: typedefs.Logger,
) -> int:
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")
    reply = await api.fetch(
        'post',
        url=_url(context, spec.key.tenant),
        payload=build_cdc_body(spec, org_id=org_id),
        headers=credential.headers,
        settings=settings,
        logger=logger,
    )
    return reply.status


@auth.authenticated
async def delete_cdc(
        *,
        settings: configuration.ProvisionerSettings,
        spec: identities.CDCSpec,
        org_id: str,
        credential: credentials.RoutingCredential,
        context: auth.APIContext | None = None,
        logger: typedefs.Logger,
) -> int:
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")
    reply = await api.fetch(
        'delete',
        url=_url(context, spec.key.tenant),
        payload=build_cdc_body(spec, org_id=org_id),
        headers=credential.headers,
        settings=settings,
        logger=logger,
    )
    return reply.status


@auth.authenticated
async def list_cdc(
        *,
        settings: configuration.ProvisionerSettings,
        tenant: str,
        credential: credentials.RoutingCredential,
        context: auth.APIContext | None = None,
        logger: typedefs.Logger,
) -> Collection[bodies.RawCDCEntry]:
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")
    rsp = await api.get(
        url=_url(context, tenant),
        headers=credential.headers,
        settings=settings,
        logger=logger,
    )
    return rsp if isinstance(rsp, list) else []
