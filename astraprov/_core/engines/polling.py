"""
Polling of the parent database until it becomes usable for the mutations.

Three conditions are distinguished and never conflated:

* The remote call failed (transport, server-side errors) -- retry it.
* The database is not usable yet (e.g. initializing) -- retry it.
* The database will never be usable (error, terminating, terminated),
  or the API replied with something unexpected -- fail right away.
"""
import asyncio
import collections.abc

from astraprov._cogs.aiokits import aiotime
from astraprov._cogs.clients import api, errors, fetching
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import bodies, outcomes


def classify_database(
        database_id: str,
        reply: api.Reply,
) -> outcomes.Outcome[bodies.ParentSnapshot]:
    """
    Classify a received (i.e. non-erroneous) reply of the database read.
    """
    if reply.status > 200 or not isinstance(reply.payload, collections.abc.Mapping):
        return outcomes.Fail(
            reason=outcomes.Reason.UNEXPECTED_RESPONSE,
            message=f"Unexpected response fetching database {database_id}: "
                    f"status={reply.status}, payload={reply.payload!r}")

    snapshot = bodies.ParentSnapshot.from_raw(database_id, reply.payload)
    if snapshot.status in bodies.TERMINAL_STATUSES:
        return outcomes.Fail(
            reason=outcomes.Reason.PARENT_TERMINAL,
            message=f"Database {database_id} failed to reach active status: status={snapshot.status}")
    elif snapshot.status == bodies.DatabaseStatus.ACTIVE:
        return outcomes.Proceed(snapshot)
    else:
        return outcomes.Retry(
            reason=outcomes.Reason.PARENT_PENDING,
            message=f"Expected database {database_id} to be active but is {snapshot.status}")


async def check_database(
        *,
        settings: configuration.ProvisionerSettings,
        database_id: str,
        logger: typedefs.Logger,
) -> outcomes.Outcome[bodies.ParentSnapshot]:
    """
    Read the database once, and classify the result in the fixed priority order.
    """
    try:
        reply = await fetching.read_database(settings=settings, database_id=database_id, logger=logger)
    except api.TRANSPORT_ERRORS as e:
        return outcomes.Retry(
            reason=outcomes.Reason.TRANSIENT_TRANSPORT,
            message=f"Error while fetching database {database_id}: {e!r}")
    except errors.APIServerError as e:
        return outcomes.Retry(
            reason=outcomes.Reason.TRANSIENT_TRANSPORT,
            message=f"Error while fetching database {database_id}: {e}")
    except errors.APIError as e:
        return outcomes.Fail(
            reason=outcomes.Reason.UNEXPECTED_RESPONSE,
            message=f"Unexpected response fetching database {database_id}: {e}")
    return classify_database(database_id, reply)


async def poll_until_active(
        *,
        settings: configuration.ProvisionerSettings,
        database_id: str,
        deadline: aiotime.Deadline,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[bodies.ParentSnapshot]:
    """
    Poll the database until it is active, or never will be, or time is out.

    The last retry reason is reported if the deadline is reached first.
    """
    policy = settings.polling.policy
    attempt = 0
    while True:
        attempt += 1
        outcome = await check_database(settings=settings, database_id=database_id, logger=logger)
        match outcome:
            case outcomes.Retry() if deadline.expired or (stopper is not None and stopper.is_set()):
                return outcomes.Fail(outcomes.Reason.DEADLINE_EXCEEDED, f"Gave up waiting: {outcome}")
            case outcomes.Retry() if not policy.allows(attempt + 1):
                return outcomes.Fail(outcome.reason, outcome.message)
            case outcomes.Retry():
                logger.info(f"Database is not ready (attempt #{attempt}); will retry: {outcome.message}")
                await aiotime.sleep([policy.delay, deadline.remaining], wakeup=stopper)
            case _:
                return outcome
