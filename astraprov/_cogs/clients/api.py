import asyncio
import json
from typing import Any, Mapping, NamedTuple

import aiohttp

from astraprov._cogs.clients import auth, errors
from astraprov._cogs.configs import configuration
from astraprov._cogs.helpers import typedefs

# Errors of the transport itself, not of the API: nothing was received from the server.
TRANSPORT_ERRORS = (aiohttp.ClientConnectionError, asyncio.TimeoutError)


class Reply(NamedTuple):
    """
    A response reduced to what the classification needs: the status & payload.

    The payload is ``None`` if the body is absent or is not a valid JSON.
    """
    status: int
    payload: Any


@auth.authenticated
async def request(
        method: str,
        url: str,  # relative to the control-plane's root, or absolute.
        *,
        settings: configuration.ProvisionerSettings,
        payload: object | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        context: auth.APIContext | None = None,  # injected by the decorator
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Make one request and check it for the API errors, but do not parse it.

    There are no retries here: what is retried, when, and how many times
    is decided by the engines above, since it depends on the operation
    (e.g. a mutation is never blindly re-sent on a connection error).
    """
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")

    if '://' not in url:
        url = context.server.rstrip('/') + '/' + url.lstrip('/')

    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    what = f"{method.upper()} {url}"
    try:
        response = await context.session.request(
            method=method,
            url=url,
            json=payload,
            headers=headers,
            timeout=timeout,
        )
        await errors.check_response(response)  # but do not parse it!
    except TRANSPORT_ERRORS as e:
        logger.debug(f"Request failed in transport: {what} -> {e!r}")
        raise
    except errors.APIError as e:
        logger.debug(f"Request failed with status {e.status}: {what}")
        raise
    else:
        logger.debug(f"Request succeeded with status {response.status}: {what}")
        return response


async def fetch(
        method: str,
        url: str,
        *,
        settings: configuration.ProvisionerSettings,
        payload: object | None = None,
        headers: Mapping[str, str] | None = None,
        logger: typedefs.Logger,
) -> Reply:
    """
    Make a request and read its status & payload, regardless of the success status.
    """
    response = await request(
        method=method,
        url=url,
        payload=payload,
        headers=headers,
        settings=settings,
        logger=logger,
    )
    async with response:
        text = await response.text()
    try:
        data = json.loads(text) if text else None
    except json.JSONDecodeError:
        data = None
    return Reply(status=response.status, payload=data)


async def get(
        url: str,
        *,
        settings: configuration.ProvisionerSettings,
        headers: Mapping[str, str] | None = None,
        logger: typedefs.Logger,
) -> Any:
    response = await request(
        method='get',
        url=url,
        headers=headers,
        settings=settings,
        logger=logger,
    )
    async with response:
        try:
            return await response.json(content_type=None)
        except ValueError as e:
            logger.debug(f"Response is not a valid JSON: GET {url} -> {e!r}")
            raise errors.APIUnparsableError(
                None, status=response.status, text=f"Response is not a valid JSON: {e}") from e


async def get_text(
        url: str,
        *,
        settings: configuration.ProvisionerSettings,
        headers: Mapping[str, str] | None = None,
        logger: typedefs.Logger,
) -> str:
    response = await request(
        method='get',
        url=url,
        headers=headers,
        settings=settings,
        logger=logger,
    )
    async with response:
        return await response.text()
