"""
Resolution of the routing & auth artifacts for the streaming API calls.

The streaming API is served by several physical clusters; which one serves
a tenant is derived from the cloud provider & region of the database.
The auth token is one of the tenant's tokens, fetched by its id.

There are no retries here: any failure is a :class:`outcomes.Fail`.
Whether to re-enter the resolution (with fresh data) is decided by the caller.
"""
import collections.abc

from astraprov._cogs.clients import api, errors, fetching, tokens
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import bodies, credentials, outcomes


def make_cluster(cloud_provider: str, region: str) -> str:
    """
    Build the routing locator (the streaming cluster name).

    In most APIs, there are dashes in the region names depending on
    the cloud provider; this is not the case for the streaming clusters.
    """
    region = region.replace('-', '')
    return f'pulsar-{cloud_provider}-{region}'.lower()


async def resolve_organization(
        *,
        settings: configuration.ProvisionerSettings,
        logger: typedefs.Logger,
) -> outcomes.Outcome[str]:
    """
    Get the id of the organisation of the configured token.
    """
    try:
        org = await fetching.read_organization(settings=settings, logger=logger)
    except (errors.APIUnauthorizedError, errors.APIForbiddenError) as e:
        return outcomes.Fail(outcomes.Reason.PERMISSION_DENIED, f"Cannot read the organization: {e}")
    except errors.APIUnparsableError as e:
        return outcomes.Fail(outcomes.Reason.UNEXPECTED_RESPONSE, f"Cannot read the organization: {e}")
    except (errors.APIError, *api.TRANSPORT_ERRORS) as e:
        return outcomes.Fail(outcomes.Reason.CREDENTIAL_UNAVAILABLE, f"Cannot read the organization: {e!r}")
    if not isinstance(org, collections.abc.Mapping) or not org.get('id'):
        return outcomes.Fail(outcomes.Reason.UNEXPECTED_RESPONSE, f"Unexpected organization payload: {org!r}")
    return outcomes.Proceed(str(org['id']))


async def resolve(
        *,
        settings: configuration.ProvisionerSettings,
        database_id: str,
        tenant: str,
        org_id: str,
        parent: bodies.ParentSnapshot | None = None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[credentials.RoutingCredential]:
    """
    Derive the streaming cluster of the database and a token of the tenant.

    If the database is already read (e.g. when checking its status),
    its snapshot is used as is; otherwise, the database is read here.
    """
    try:
        if parent is None:
            reply = await fetching.read_database(settings=settings, database_id=database_id, logger=logger)
            if reply.status > 200 or not isinstance(reply.payload, collections.abc.Mapping):
                return outcomes.Fail(
                    reason=outcomes.Reason.UNEXPECTED_RESPONSE,
                    message=f"Unexpected response fetching database {database_id}: status={reply.status}")
            parent = bodies.ParentSnapshot.from_raw(database_id, reply.payload)

        if not parent.cloud_provider or not parent.region:
            return outcomes.Fail(
                reason=outcomes.Reason.UNEXPECTED_RESPONSE,
                message=f"Database {database_id} has no cloud provider or region.")

        cluster = make_cluster(parent.cloud_provider, parent.region)
        logger.debug(f"Resolved the streaming cluster {cluster!r} for tenant {tenant!r}.")

        items = await tokens.list_tenant_tokens(
            settings=settings, tenant=tenant, org_id=org_id, cluster=cluster, logger=logger)
        token_ids = [item.get('tokenid') for item in items if isinstance(item, collections.abc.Mapping)]
        token_ids = [token_id for token_id in token_ids if token_id]
        if not token_ids:
            return outcomes.Fail(
                reason=outcomes.Reason.CREDENTIAL_UNAVAILABLE,
                message=f"No tokens found for tenant {tenant!r} in cluster {cluster!r}.")

        token = await tokens.read_tenant_token(
            settings=settings, tenant=tenant, token_id=token_ids[0],
            org_id=org_id, cluster=cluster, logger=logger)
        if not token:
            return outcomes.Fail(
                reason=outcomes.Reason.CREDENTIAL_UNAVAILABLE,
                message=f"Empty token {token_ids[0]!r} for tenant {tenant!r}.")

    except (errors.APIUnauthorizedError, errors.APIForbiddenError) as e:
        return outcomes.Fail(
            reason=outcomes.Reason.PERMISSION_DENIED,
            message=f"Cannot get a token for tenant {tenant!r}: {e}")
    except errors.APIUnparsableError as e:
        return outcomes.Fail(
            reason=outcomes.Reason.UNEXPECTED_RESPONSE,
            message=f"Cannot get a token for tenant {tenant!r}: {e}")
    except (errors.APIError, *api.TRANSPORT_ERRORS) as e:
        return outcomes.Fail(
            reason=outcomes.Reason.CREDENTIAL_UNAVAILABLE,
            message=f"Cannot get a token for tenant {tenant!r}: {e!r}")

    return outcomes.Proceed(credentials.RoutingCredential(cluster=cluster, token=token))
