import contextlib
import functools
import ssl
from collections.abc import AsyncIterator, Callable
from contextvars import ContextVar
from typing import Any, TypeVar, cast

import aiohttp

from astraprov._cogs.helpers import versions
from astraprov._cogs.structs import credentials

# Per-run storage of the connected context. Set by `connected()`,
# so that every API call of that run uses the same session.
context_var: ContextVar['APIContext | None'] = ContextVar('context_var')

# A typevar to show that we return a function with the same signature as given.
_F = TypeVar('_F', bound=Callable[..., Any])


def authenticated(fn: _F) -> _F:
    """
    A decorator to inject a pre-authenticated session to a requesting routine.

    If the context is explicitly passed, it is used as is. Otherwise, the one
    of the current run is taken from the context variable (see `connected()`).
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if kwargs.get('context') is None:
            kwargs['context'] = context_var.get(None)
        if kwargs['context'] is None:
            raise credentials.LoginError("No API context: use `connected()` or pass it explicitly.")
        return await fn(*args, **kwargs)

    return cast(_F, wrapper)


class APIContext:
    """
    A container for an aiohttp session and the endpoints of the remote APIs.

    The container is constructed once per run (usually once per process),
    and is shared by all operations of that run. The session carries
    the organisation-level token; the streaming calls override the auth header
    with their own short-lived routing credentials per request.
    """

    # The main contained object used by the API methods.
    session: aiohttp.ClientSession

    # Contextual information for URL building.
    server: str
    streaming_server: str

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            *,
            session: aiohttp.ClientSession | None = None,
    ) -> None:
        super().__init__()
        self.session = session if session is not None else self.make_aiohttp_session(info)

        # It is a good practice to self-identify a bit, even with a user-provided session.
        if self.session.headers.get('User-Agent') is None:
            self.session.headers['User-Agent'] = f'astraprov/{versions.version or "unknown"}'

        self.server = info.server
        self.streaming_server = info.streaming_server

    def make_aiohttp_session(self, info: credentials.ConnectionInfo) -> aiohttp.ClientSession:

        # The SSL part (CA verification only; there are no client certificates here).
        context = ssl.create_default_context(cafile=info.ca_path)
        if info.insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=context),
            headers={'Authorization': f'Bearer {info.token}'},
        )

    async def close(self) -> None:
        await self.session.close()


@contextlib.asynccontextmanager
async def connected(
        info: credentials.ConnectionInfo,
) -> AsyncIterator[APIContext]:
    """
    Open the session for the duration of the run, and close it afterwards.
    """
    context = APIContext(info)
    token = context_var.set(context)
    try:
        yield context
    finally:
        context_var.reset(token)
        await context.close()
