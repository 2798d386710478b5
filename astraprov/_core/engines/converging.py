"""
Confirmation of the accepted mutations by re-reading the remote listings.

The control plane is eventually consistent: an accepted mutation is not
immediately visible in the listings. The listings are re-read within
a bounded budget of attempts until the entity is found (or is absent).

If the budget is exhausted, it is a :attr:`outcomes.Reason.CONVERGENCE_TIMEOUT`:
the mutation itself has succeeded, only its confirmation did not come in time.
"""
import asyncio
from typing import Awaitable, Callable, Collection, TypeVar

from astraprov._cogs.aiokits import aiotime
from astraprov._cogs.clients import api, errors
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs
from astraprov._cogs.structs import outcomes

_ItemT = TypeVar('_ItemT')

ListFn = Callable[[], Awaitable[Collection[_ItemT]]]
MatchFn = Callable[[_ItemT], bool]


async def list_once(
        what: str,
        list_fn: ListFn[_ItemT],
) -> outcomes.Outcome[Collection[_ItemT]]:
    try:
        items = await list_fn()
    except api.TRANSPORT_ERRORS as e:
        return outcomes.Retry(outcomes.Reason.TRANSIENT_TRANSPORT, f"Error listing {what}: {e!r}")
    except errors.APIServerError as e:
        return outcomes.Retry(outcomes.Reason.TRANSIENT_TRANSPORT, f"Error listing {what}: {e}")
    except errors.APIError as e:
        return outcomes.Fail(outcomes.Reason.UNEXPECTED_RESPONSE, f"Error listing {what}: {e}")
    return outcomes.Proceed(items)


async def await_visible(
        what: str,
        *,
        list_fn: ListFn[_ItemT],
        match_fn: MatchFn[_ItemT],
        policy: configuration.RetryPolicy,
        deadline: aiotime.Deadline | None = None,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[_ItemT]:
    """
    Re-list until an item matching the composite key is listed.

    The found item is returned, so that its observable fields can be read
    from the entry that actually matches (not from any other entry).
    """
    return await _converge(
        what, list_fn=list_fn, match_fn=match_fn, expect_present=True,
        policy=policy, deadline=deadline, stopper=stopper, logger=logger)


async def await_absent(
        what: str,
        *,
        list_fn: ListFn[_ItemT],
        match_fn: MatchFn[_ItemT],
        policy: configuration.RetryPolicy,
        deadline: aiotime.Deadline | None = None,
        stopper: asyncio.Event | None = None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[None]:
    """
    Re-list until no item matches the composite key. Never listed is absent too.
    """
    outcome = await _converge(
        what, list_fn=list_fn, match_fn=match_fn, expect_present=False,
        policy=policy, deadline=deadline, stopper=stopper, logger=logger)
    match outcome:
        case outcomes.Proceed():
            return outcomes.Proceed(None)
        case _:
            return outcome


async def _converge(
        what: str,
        *,
        list_fn: ListFn[_ItemT],
        match_fn: MatchFn[_ItemT],
        expect_present: bool,
        policy: configuration.RetryPolicy,
        deadline: aiotime.Deadline | None,
        stopper: asyncio.Event | None,
        logger: typedefs.Logger,
) -> outcomes.Outcome[_ItemT | None]:
    state = 'present' if expect_present else 'absent'
    last: outcomes.Retry | None = None
    attempt = 0
    while policy.allows(attempt + 1):
        attempt += 1
        if attempt > 1:
            unslept = await aiotime.sleep([policy.delay, deadline.remaining if deadline else None],
                                          wakeup=stopper)
            stopped = stopper is not None and stopper.is_set()
            expired = deadline is not None and deadline.expired
            if unslept is not None or stopped or expired:
                break

        match await list_once(what, list_fn):
            case outcomes.Proceed(value=items):
                found = [item for item in items if match_fn(item)]
                if expect_present and found:
                    logger.debug(f"Confirmed {what} as {state} (attempt #{attempt}).")
                    return outcomes.Proceed(found[0])
                elif not expect_present and not found:
                    logger.debug(f"Confirmed {what} as {state} (attempt #{attempt}).")
                    return outcomes.Proceed(None)
                last = outcomes.Retry(outcomes.Reason.CONVERGENCE_TIMEOUT, f"{what} is not {state} yet")
            case outcomes.Retry() as retry:
                last = retry
            case outcomes.Fail() as fail:
                return fail

        logger.info(f"Waiting for {what} to become {state} (attempt #{attempt}): {last.message}")

    return outcomes.Fail(
        reason=outcomes.Reason.CONVERGENCE_TIMEOUT,
        message=f"Could not confirm {what} as {state} after {attempt} attempts"
                f"{f': {last.message}' if last is not None else ''}")
