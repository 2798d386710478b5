"""
Control-plane API errors.

The underlying client library (now, ``aiohttp``) can be replaced in the future.
We cannot rely on embedding its exceptions all over the code.
Hence, we have our own hierarchy of exceptions for the API errors.

Low-level errors, such as the network connectivity issues, SSL/HTTPS issues,
etc, are escalated from the client library as is, since they are related not
to the domain of the API, but rather to the networking and encryption.

The original errors of the client library are chained as the causes of our own
specialised errors -- for better explainability of errors in the stack traces.

Some selected statuses are made into their own classes, so that they could be
intercepted and classified in the engines: conflicts are retried, server-side
errors are transient, unauthorized requests can refresh their credentials.
A successful response with a body that cannot be parsed is an API error too.

These errors never cross the engines: the engines classify them into outcomes.
"""
import collections.abc
import json
from typing import Any, Collection

import aiohttp
from typing_extensions import TypedDict


class RawErrorItem(TypedDict, total=False):
    ID: int
    description: str
    message: str


class RawErrors(TypedDict, total=False):
    errors: Collection[RawErrorItem]
    message: str


class APIError(Exception):

    def __init__(
            self,
            payload: RawErrors | None,
            *,
            status: int,
            text: str | None = None,
    ) -> None:
        message = _extract_message(payload) or text or None
        super().__init__(message, payload)
        self._status = status
        self._payload = payload
        self._message = message

    def __str__(self) -> str:
        return f"({self._status}) {self._message or 'no details'}"

    @property
    def status(self) -> int:
        return self._status

    @property
    def message(self) -> str | None:
        return self._message

    @property
    def payload(self) -> RawErrors | None:
        return self._payload


class APIClientError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


class APIServerError(APIError):
    pass


class APIUnparsableError(APIError):
    """ A successful response, but its body is not what the API promises. """


async def check_response(
        response: aiohttp.ClientResponse,
) -> None:
    """
    Check for specialised API errors, and raise with extended information.
    """
    if response.status >= 400:

        # Read the response's body before it is closed by raise_for_status().
        text: str | None
        payload: RawErrors | None
        try:
            text = await response.text()
        except aiohttp.ClientConnectionError:
            text = None
        try:
            payload = json.loads(text) if text else None
        except json.JSONDecodeError:
            payload = None
        if not isinstance(payload, collections.abc.Mapping):
            payload = None

        cls = (
            APIUnauthorizedError if response.status == 401 else
            APIForbiddenError if response.status == 403 else
            APINotFoundError if response.status == 404 else
            APIConflictError if response.status == 409 else
            APIClientError if response.status < 500 else
            APIServerError
        )

        # Raise the specialised error while keeping the original error in scope.
        # This call also closes the response's body, so it cannot be read afterwards.
        try:
            response.raise_for_status()
        except aiohttp.ClientResponseError as e:
            raise cls(payload, status=response.status, text=text) from e


def _extract_message(payload: Any) -> str | None:
    if not isinstance(payload, collections.abc.Mapping):
        return None
    items = payload.get('errors')
    if isinstance(items, collections.abc.Collection) and not isinstance(items, str):
        messages = [
            str(item.get('description') or item.get('message'))
            for item in items
            if isinstance(item, collections.abc.Mapping) and (item.get('description') or item.get('message'))
        ]
        if messages:
            return '; '.join(messages)
    message = payload.get('message')
    return str(message) if message else None
