"""
Authentication-related structures.

Two kinds of credentials are in play:

* :class:`ConnectionInfo` -- the long-lived organisation-level credentials
  and endpoints, as configured by the user (CLI options, env vars, or a file).
* :class:`RoutingCredential` -- the short-lived per-tenant credentials
  of the streaming API, re-derived on every attempt and never persisted.
"""
import dataclasses
import datetime
import os
from typing import Any, Mapping

import yaml

DEFAULT_SERVER = 'https://api.astra.datastax.com'
DEFAULT_STREAMING_SERVER = 'https://api.streaming.datastax.com'


class LoginError(Exception):
    """ Raised when the connection info is absent or unusable. """


@dataclasses.dataclass(frozen=True)
class ConnectionInfo:
    """
    The endpoints with specific credentials and connection flags to use.
    """
    token: str
    server: str = DEFAULT_SERVER
    streaming_server: str = DEFAULT_STREAMING_SERVER
    ca_path: str | None = None
    insecure: bool | None = None

    def __repr__(self) -> str:
        # The token must never leak into the logs or the tracebacks.
        return (f'{self.__class__.__name__}(server={self.server!r}, '
                f'streaming_server={self.streaming_server!r}, token=<hidden>)')

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'ConnectionInfo':
        token = data.get('token')
        if not token:
            raise LoginError("The API token is not configured.")
        return cls(
            token=str(token),
            server=data.get('server') or DEFAULT_SERVER,
            streaming_server=data.get('streaming-server') or data.get('streaming_server') or DEFAULT_STREAMING_SERVER,
            ca_path=data.get('certificate-authority') or data.get('ca_path'),
            insecure=data.get('insecure-skip-tls-verify') or data.get('insecure'),
        )

    @classmethod
    def from_file(cls, path: str) -> 'ConnectionInfo':
        """
        Load the connection info from a YAML file, e.g.::

            server: https://api.astra.datastax.com
            streaming-server: https://api.streaming.datastax.com
            token: AstraCS:...
        """
        with open(os.path.expanduser(path), encoding='utf-8') as f:
            data = yaml.safe_load(f.read()) or {}
        if not isinstance(data, Mapping):
            raise LoginError(f"The connection file {path!r} is not a mapping.")
        return cls.from_mapping(data)


@dataclasses.dataclass(frozen=True)
class RoutingCredential:
    """
    The routing & auth artifacts for one attempt of a streaming API call.
    """
    cluster: str
    token: str
    issued_at: datetime.datetime = dataclasses.field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc))

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(cluster={self.cluster!r}, token=<hidden>)'

    @property
    def headers(self) -> dict[str, str]:
        return {
            'X-DataStax-Pulsar-Cluster': self.cluster,
            'Authorization': f'Bearer {self.token}',
        }
