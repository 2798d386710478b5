"""
One-shot mutations of the dependent entities (keyspaces, CDC pipelines).

The mutation is issued exactly once per call, and its result is classified:

* 2xx/3xx -- accepted; the remote state is (eventually) changed.
* 404 on deletion -- already absent; treated as accepted.
* 409 -- a concurrent modification in the control plane; retryable.
* 401 -- with routing credentials: they are stale or not yet valid,
  the caller can refresh them; without: the role misses a permission.
* 403 -- the role misses a permission, regardless of the credentials.
* Other 4xx/5xx and transport errors -- failures. A mutation is never
  blindly re-sent: the caller must re-check the state before retrying.
"""
import enum

from astraprov._cogs.clients import api, cdc, errors, keyspaces
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import credentials, identities, outcomes

Entity = identities.KeyspaceKey | identities.CDCSpec


class Operation(str, enum.Enum):
    CREATE = 'create'
    DELETE = 'delete'

    def __str__(self) -> str:
        return self.value


# The roles' permissions, as named in the control plane.
KEYSPACE_PERMISSIONS = {
    Operation.CREATE: 'db-keyspace-create',
    Operation.DELETE: 'db-keyspace-drop',
}


def classify_status(
        op: Operation,
        entity: Entity,
        status: int,
        *,
        message: str | None = None,
        credential: credentials.RoutingCredential | None = None,
) -> outcomes.Outcome[None]:
    what = f"{op} {_describe(entity)}"
    details = f": {message}" if message else ""
    if status == 409:
        return outcomes.Retry(outcomes.Reason.CONFLICT, f"Concurrent modification on {what}{details}")
    elif status == 401 and credential is not None:
        return outcomes.Fail(outcomes.Reason.STALE_CREDENTIAL, f"Credentials rejected on {what}{details}")
    elif status in (401, 403) and isinstance(entity, identities.KeyspaceKey):
        permission = KEYSPACE_PERMISSIONS[op]
        return outcomes.Fail(
            reason=outcomes.Reason.PERMISSION_DENIED,
            message=f"Insufficient permissions on {what}: role missing {permission!r}")
    elif status in (401, 403):
        return outcomes.Fail(outcomes.Reason.PERMISSION_DENIED, f"Insufficient permissions on {what}{details}")
    elif status == 404 and op == Operation.DELETE:
        # Already absent: the same as deleted; the convergence confirms it anyway.
        return outcomes.Proceed(None)
    elif status >= 400:
        return outcomes.Fail(outcomes.Reason.UNEXPECTED_RESPONSE, f"Error on {what} (status {status}){details}")
    else:
        return outcomes.Proceed(None)


async def apply(
        op: Operation,
        entity: Entity,
        credential: credentials.RoutingCredential | None = None,
        *,
        settings: configuration.ProvisionerSettings,
        org_id: str | None = None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[None]:
    try:
        match entity:
            case identities.KeyspaceKey():
                fn = keyspaces.add_keyspace if op == Operation.CREATE else keyspaces.drop_keyspace
                status = await fn(settings=settings, key=entity, logger=logger)
            case identities.CDCSpec() if credential is None or org_id is None:
                raise ValueError("CDC mutations require the routing credentials and the org id.")
            case identities.CDCSpec():
                fn = cdc.enable_cdc if op == Operation.CREATE else cdc.delete_cdc
                status = await fn(settings=settings, spec=entity, org_id=org_id,
                                  credential=credential, logger=logger)
            case _:
                raise TypeError(f"Unsupported entity: {entity!r}")
    except api.TRANSPORT_ERRORS as e:
        return outcomes.Fail(
            reason=outcomes.Reason.TRANSIENT_TRANSPORT,
            message=f"Error calling {op} {_describe(entity)} (not retrying): {e!r}")
    except errors.APIError as e:
        return classify_status(op, entity, e.status, message=e.message, credential=credential)
    else:
        return classify_status(op, entity, status, credential=credential)


def _describe(entity: Entity) -> str:
    match entity:
        case identities.KeyspaceKey():
            return f"keyspace {entity.name!r} in database {entity.database_id}"
        case identities.CDCSpec():
            return f"cdc for table {entity.key.keyspace}.{entity.key.table} in tenant {entity.key.tenant!r}"
        case _:
            return repr(entity)
