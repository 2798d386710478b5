"""
Orchestration of the create/read/delete operations on the dependent entities.

Every create/delete operation goes through the same sequence of steps::

    AwaitParentActive -> ResolveCredential -> Mutate -> AwaitConvergence -> Done

with a terminal failure reachable from any step. The steps are the engines;
each of them returns an outcome (proceed/retry/fail), and only here it is
decided what to do next:

* ``Retry`` outcomes are re-attempted until the operation's deadline.
* ``Fail`` outcomes are escalated as :class:`ProvisioningError` right away,
  with no remote calls made afterwards.
* A stale credential on the mutation goes back to the credential resolution,
  up to a separate fixed number of times, and only then is escalated.

Keyspaces need no routing credentials (the organisation's token is used).

All reads of the parent status followed by the mutations are serialized
through the guard (an :class:`asyncio.Lock`) owned by the caller: one per
process, so that parallel operations do not interleave their read-then-write
sequences against the control plane.
"""
import asyncio
import dataclasses
import functools
from typing import Generic, TypeVar

from astraprov._cogs.aiokits import aiotime
from astraprov._cogs.clients import cdc, keyspaces
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import bodies, credentials, identities, outcomes
from astraprov._core.actions import loggers
from astraprov._core.engines import converging, mutating, polling, resolving

_SnapshotT = TypeVar('_SnapshotT')


class ProvisioningError(Exception):
    """
    A terminal failure of an operation, with the reason of the last outcome.
    """

    def __init__(self, outcome: outcomes.Fail, *, identity: str | None = None) -> None:
        super().__init__(str(outcome))
        self.outcome = outcome
        self.identity = identity

    @property
    def reason(self) -> outcomes.Reason:
        return self.outcome.reason

    @property
    def message(self) -> str:
        return self.outcome.message


class StructuralDecodeError(ProvisioningError):
    """ The identity string is malformed and cannot be decoded. """


class ConvergenceTimeoutError(ProvisioningError):
    """
    The mutation was accepted, but its effect was not confirmed.

    It is either not listed in time, or the listing itself has failed.
    The entity should be considered possibly-applied: re-read it
    by the identity (which is always set here) rather than assume no effect.
    """


@dataclasses.dataclass(frozen=True)
class Provisioned(Generic[_SnapshotT]):
    identity: str
    snapshot: _SnapshotT


def escalate(outcome: outcomes.Fail, *, identity: str | None = None) -> ProvisioningError:
    """
    Turn a failure into an error; with the identity if the mutation was accepted.

    Whatever fails after the accepted mutation (the timeout, the deadline,
    an erroneous listing), the entity is possibly applied and is reported so.
    """
    match outcome.reason:
        case outcomes.Reason.STRUCTURAL_DECODE:
            return StructuralDecodeError(outcome)
        case _ if identity is not None:
            return ConvergenceTimeoutError(outcome, identity=identity)
        case _:
            return ProvisioningError(outcome)


def _is_over(deadline: aiotime.Deadline, stopper: asyncio.Event | None) -> bool:
    return deadline.expired or (stopper is not None and stopper.is_set())


#
# Keyspaces.
#


async def create_keyspace(
        key: identities.KeyspaceKey,
        *,
        settings: configuration.ProvisionerSettings,
        guard: asyncio.Lock,
        timeout: float | None = None,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger | None = None,
) -> Provisioned[identities.KeyspaceKey]:
    key.validate()
    logger = logger if logger is not None else loggers.EntityLogger(kind='keyspace', identity=key.identity)
    deadline = aiotime.Deadline(timeout if timeout is not None else settings.polling.timeout)

    outcome = await _mutate_keyspace_when_active(
        mutating.Operation.CREATE, key,
        settings=settings, guard=guard, deadline=deadline, stopper=stopper, logger=logger)
    if isinstance(outcome, outcomes.Fail):
        logger.error(f"Keyspace creation failed: {outcome}")
        raise escalate(outcome)

    logger.info("Keyspace creation is accepted; waiting for it to be listed.")
    visible = await _converge_keyspace(
        key, present=True, settings=settings, deadline=deadline, stopper=stopper, logger=logger)
    if isinstance(visible, outcomes.Fail):
        logger.warning(f"Keyspace is possibly created, but not confirmed: {visible}")
        raise escalate(visible, identity=key.identity)

    logger.info("Keyspace is created.")
    return Provisioned(identity=key.identity, snapshot=key)


async def delete_keyspace(
        key: identities.KeyspaceKey,
        *,
        settings: configuration.ProvisionerSettings,
        guard: asyncio.Lock,
        timeout: float | None = None,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger | None = None,
) -> None:
    logger = logger if logger is not None else loggers.EntityLogger(kind='keyspace', identity=key.identity)
    deadline = aiotime.Deadline(timeout if timeout is not None else settings.polling.timeout)

    outcome = await _mutate_keyspace_when_active(
        mutating.Operation.DELETE, key,
        settings=settings, guard=guard, deadline=deadline, stopper=stopper, logger=logger)
    if isinstance(outcome, outcomes.Fail):
        logger.error(f"Keyspace deletion failed: {outcome}")
        raise escalate(outcome)

    logger.info("Keyspace deletion is accepted; waiting for it to be unlisted.")
    absent = await _converge_keyspace(
        key, present=False, settings=settings, deadline=deadline, stopper=stopper, logger=logger)
    if isinstance(absent, outcomes.Fail):
        logger.warning(f"Keyspace is possibly deleted, but not confirmed: {absent}")
        raise escalate(absent, identity=key.identity)

    logger.info("Keyspace is deleted.")


async def read_keyspace(
        identity: str,
        *,
        settings: configuration.ProvisionerSettings,
        logger: typedefs.Logger | None = None,
) -> identities.KeyspaceKey | None:
    """
    Restore the keyspace from its identity, or ``None`` if it does not exist.
    """
    decoded = identities.KeyspaceKey.decode(identity)
    if isinstance(decoded, outcomes.Fail):
        raise escalate(decoded)
    key: identities.KeyspaceKey = decoded.value
    logger = logger if logger is not None else loggers.EntityLogger(kind='keyspace', identity=key.identity)

    list_fn = functools.partial(
        keyspaces.list_keyspaces, settings=settings, database_id=key.database_id, logger=logger)
    match await converging.list_once(f"keyspaces of database {key.database_id}", list_fn):
        case outcomes.Proceed(value=names) if key.name in names:
            return key
        case outcomes.Proceed():
            logger.info("Keyspace is not found.")
            return None
        case outcomes.Retry(reason=reason, message=message) | outcomes.Fail(reason=reason, message=message):
            raise escalate(outcomes.Fail(reason, message))
        case other:
            raise RuntimeError(f"Unexpected listing outcome: {other!r}")


async def _mutate_keyspace_when_active(
        op: mutating.Operation,
        key: identities.KeyspaceKey,
        *,
        settings: configuration.ProvisionerSettings,
        guard: asyncio.Lock,
        deadline: aiotime.Deadline,
        stopper: asyncio.Event | None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[None]:
    """
    Check the database and mutate the keyspace in one step, retried as a whole.

    Conflicts are retried from the database check, since the conflicting
    modification can change the database status (e.g. to maintenance).
    """
    policy = settings.polling.policy
    attempt = 0
    while True:
        attempt += 1
        async with guard:
            outcome: outcomes.Outcome[None]
            match await polling.check_database(settings=settings, database_id=key.database_id, logger=logger):
                case outcomes.Proceed():
                    outcome = await mutating.apply(op, key, settings=settings, logger=logger)
                case other:
                    outcome = other

        match outcome:
            case outcomes.Retry() if _is_over(deadline, stopper):
                return outcomes.Fail(outcomes.Reason.DEADLINE_EXCEEDED, f"Gave up retrying: {outcome}")
            case outcomes.Retry():
                logger.info(f"Cannot {op} the keyspace yet (attempt #{attempt}); will retry: {outcome.message}")
                await aiotime.sleep([policy.delay, deadline.remaining], wakeup=stopper)
            case _:
                return outcome


async def _converge_keyspace(
        key: identities.KeyspaceKey,
        *,
        present: bool,
        settings: configuration.ProvisionerSettings,
        deadline: aiotime.Deadline,
        stopper: asyncio.Event | None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[object]:
    list_fn = functools.partial(
        keyspaces.list_keyspaces, settings=settings, database_id=key.database_id, logger=logger)
    match_fn = key.name.__eq__
    fn = converging.await_visible if present else converging.await_absent
    try:
        return await fn(
            f"keyspace {key.name!r}", list_fn=list_fn, match_fn=match_fn,
            policy=settings.convergence.policy, deadline=deadline, stopper=stopper, logger=logger)
    except asyncio.CancelledError:
        logger.warning(f"Cancelled after the mutation was accepted; possibly applied: {key.identity}")
        raise


#
# CDC pipelines.
#


async def create_cdc(
        spec: identities.CDCSpec,
        *,
        settings: configuration.ProvisionerSettings,
        guard: asyncio.Lock,
        timeout: float | None = None,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger | None = None,
) -> Provisioned[bodies.CDCSnapshot]:
    spec.validate()
    key = spec.key
    logger = logger if logger is not None else loggers.EntityLogger(kind='cdc', identity=key.identity)
    deadline = aiotime.Deadline(timeout if timeout is not None else settings.polling.timeout)

    _, credential = await _mutate_cdc_when_active(
        mutating.Operation.CREATE, spec,
        settings=settings, guard=guard, deadline=deadline, stopper=stopper, logger=logger)

    logger.info("CDC enabling is accepted; waiting for it to be listed.")
    visible = await _converge_cdc(
        key, credential, present=True, settings=settings, deadline=deadline, stopper=stopper, logger=logger)
    match visible:
        case outcomes.Proceed(value=raw):
            snapshot = bodies.CDCSnapshot.from_raw(key, raw)
            logger.info(f"CDC is enabled: connector status={snapshot.connector_status}, "
                        f"data topic={snapshot.data_topic}")
            return Provisioned(identity=key.identity, snapshot=snapshot)
        case outcomes.Fail() as fail:
            logger.warning(f"CDC is possibly enabled, but not confirmed: {fail}")
            raise escalate(fail, identity=key.identity)
        case other:
            raise RuntimeError(f"Unexpected convergence outcome: {other!r}")


async def delete_cdc(
        spec: identities.CDCSpec,
        *,
        settings: configuration.ProvisionerSettings,
        guard: asyncio.Lock,
        timeout: float | None = None,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger | None = None,
) -> None:
    key = spec.key
    logger = logger if logger is not None else loggers.EntityLogger(kind='cdc', identity=key.identity)
    deadline = aiotime.Deadline(timeout if timeout is not None else settings.polling.timeout)

    _, credential = await _mutate_cdc_when_active(
        mutating.Operation.DELETE, spec,
        settings=settings, guard=guard, deadline=deadline, stopper=stopper, logger=logger)

    logger.info("CDC deletion is accepted; waiting for it to be unlisted.")
    absent = await _converge_cdc(
        key, credential, present=False, settings=settings, deadline=deadline, stopper=stopper, logger=logger)
    if isinstance(absent, outcomes.Fail):
        logger.warning(f"CDC is possibly deleted, but not confirmed: {absent}")
        raise escalate(absent, identity=key.identity)

    logger.info("CDC is deleted.")


async def read_cdc(
        identity: str,
        *,
        settings: configuration.ProvisionerSettings,
        logger: typedefs.Logger | None = None,
) -> bodies.CDCSnapshot | None:
    """
    Restore the CDC pipeline from its identity, or ``None`` if it does not exist.

    Only the entry that matches the whole composite key is reported,
    even if the tenant has other CDC pipelines for other tables.
    """
    decoded = identities.CDCKey.decode(identity)
    if isinstance(decoded, outcomes.Fail):
        raise escalate(decoded)
    key: identities.CDCKey = decoded.value
    logger = logger if logger is not None else loggers.EntityLogger(kind='cdc', identity=key.identity)

    org = await resolving.resolve_organization(settings=settings, logger=logger)
    if isinstance(org, outcomes.Fail):
        raise escalate(org)
    resolved = await resolving.resolve(
        settings=settings, database_id=key.database_id, tenant=key.tenant, org_id=org.value, logger=logger)
    if isinstance(resolved, outcomes.Fail):
        raise escalate(resolved)

    list_fn = functools.partial(
        cdc.list_cdc, settings=settings, tenant=key.tenant, credential=resolved.value, logger=logger)
    match await converging.list_once(f"cdc of tenant {key.tenant!r}", list_fn):
        case outcomes.Proceed(value=items):
            for raw in items:
                if bodies.matches_cdc_key(raw, key):
                    return bodies.CDCSnapshot.from_raw(key, raw)
            logger.info("CDC is not found.")
            return None
        case outcomes.Retry(reason=reason, message=message) | outcomes.Fail(reason=reason, message=message):
            raise escalate(outcomes.Fail(reason, message))
        case other:
            raise RuntimeError(f"Unexpected listing outcome: {other!r}")


async def _mutate_cdc_when_active(
        op: mutating.Operation,
        spec: identities.CDCSpec,
        *,
        settings: configuration.ProvisionerSettings,
        guard: asyncio.Lock,
        deadline: aiotime.Deadline,
        stopper: asyncio.Event | None,
        logger: typedefs.Logger,
) -> tuple[str, credentials.RoutingCredential]:
    """
    Check the database and mutate with the freshly resolved credentials.

    As with the keyspaces, the database check and the mutation are one step,
    retried as a whole under the guard: a conflict or a credentials refresh
    re-checks the database status before the mutation is re-sent.

    Returns the organisation id and the credentials that were accepted,
    so that the convergence could list the entities with the same ones.
    """
    key = spec.key

    org = await resolving.resolve_organization(settings=settings, logger=logger)
    if isinstance(org, outcomes.Fail):
        logger.error(f"CDC {op} failed: {org}")
        raise escalate(org)

    refresh_policy = settings.credentials.policy
    retry_policy = settings.polling.policy
    rejections = 0
    attempt = 0
    while True:
        attempt += 1
        async with guard:
            outcome: outcomes.Outcome[None]
            credential: credentials.RoutingCredential | None = None
            match await polling.check_database(settings=settings, database_id=key.database_id, logger=logger):
                case outcomes.Proceed(value=parent):
                    resolved = await resolving.resolve(
                        settings=settings, database_id=key.database_id, tenant=key.tenant,
                        org_id=org.value, parent=parent, logger=logger)
                    match resolved:
                        case outcomes.Proceed(value=credential):
                            outcome = await mutating.apply(
                                op, spec, credential, settings=settings, org_id=org.value, logger=logger)
                        case _:
                            outcome = resolved
                case other:
                    outcome = other

        match outcome:
            case outcomes.Proceed() if credential is not None:
                return org.value, credential
            case outcomes.Fail(reason=outcomes.Reason.STALE_CREDENTIAL) if refresh_policy.allows(rejections + 2):
                rejections += 1
                logger.warning(f"Credentials are rejected (#{rejections}); will refresh: {outcome.message}")
                delays = [refresh_policy.delay, deadline.remaining]
            case outcomes.Fail(reason=outcomes.Reason.STALE_CREDENTIAL):
                rejections += 1
                fail = outcomes.Fail(
                    reason=outcomes.Reason.PERMISSION_DENIED,
                    message=f"Could not {op} CDC with {rejections} refreshed credentials: {outcome.message}")
                logger.error(f"CDC {op} failed: {fail}")
                raise escalate(fail)
            case outcomes.Retry():
                logger.info(f"Cannot {op} CDC yet (attempt #{attempt}); will retry: {outcome.message}")
                delays = [retry_policy.delay, deadline.remaining]
            case outcomes.Fail():
                logger.error(f"CDC {op} failed: {outcome}")
                raise escalate(outcome)
            case other:
                raise RuntimeError(f"Unexpected mutation outcome: {other!r}")

        await aiotime.sleep(delays, wakeup=stopper)
        if _is_over(deadline, stopper):
            fail = outcomes.Fail(outcomes.Reason.DEADLINE_EXCEEDED, f"Gave up retrying: {outcome}")
            logger.error(f"CDC {op} failed: {fail}")
            raise escalate(fail)


async def _converge_cdc(
        key: identities.CDCKey,
        credential: credentials.RoutingCredential,
        *,
        present: bool,
        settings: configuration.ProvisionerSettings,
        deadline: aiotime.Deadline,
        stopper: asyncio.Event | None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[bodies.RawCDCEntry | None]:
    list_fn = functools.partial(
        cdc.list_cdc, settings=settings, tenant=key.tenant, credential=credential, logger=logger)
    match_fn = functools.partial(_matches_cdc, key)
    fn = converging.await_visible if present else converging.await_absent
    try:
        return await fn(
            f"cdc for table {key.keyspace}.{key.table}", list_fn=list_fn, match_fn=match_fn,
            policy=settings.convergence.policy, deadline=deadline, stopper=stopper, logger=logger)
    except asyncio.CancelledError:
        logger.warning(f"Cancelled after the mutation was accepted; possibly applied: {key.identity}")
        raise


def _matches_cdc(key: identities.CDCKey, raw: bodies.RawCDCEntry) -> bool:
    return bodies.matches_cdc_key(raw, key)
