from typing import Collection

from astraprov._cogs.clients import api, auth
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import bodies


def _headers(*, org_id: str, cluster: str) -> dict[str, str]:
    # The Authorization header is the session's one: the organisation's token.
    return {
        'X-DataStax-Current-Org': org_id,
        'X-DataStax-Pulsar-Cluster': cluster,
    }


@auth.authenticated
async def list_tenant_tokens(
        *,
        settings: configuration.ProvisionerSettings,
        tenant: str,
        org_id: str,
        cluster: str,
        context: auth.APIContext | None = None,
        logger: typedefs.Logger,
) -> Collection[bodies.RawTenantToken]:
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")
    rsp = await api.get(
        url=f'{context.streaming_server.rstrip("/")}/v2/admin/tenants/{tenant}/tokens',
        headers=_headers(org_id=org_id, cluster=cluster),
        settings=settings,
        logger=logger,
    )
    return rsp if isinstance(rsp, list) else []


@auth.authenticated
async def read_tenant_token(
        *,
        settings: configuration.ProvisionerSettings,
        tenant: str,
        token_id: str,
        org_id: str,
        cluster: str,
        context: auth.APIContext | None = None,
        logger: typedefs.Logger,
) -> str:
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")
    text = await api.get_text(
        url=f'{context.streaming_server.rstrip("/")}/v2/admin/tenants/{tenant}/tokens/{token_id}',
        headers=_headers(org_id=org_id, cluster=cluster),
        settings=settings,
        logger=logger,
    )
    return text.strip()
