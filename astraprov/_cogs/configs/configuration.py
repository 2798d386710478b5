"""
All configuration flags, options, settings to fine-tune the provisioning.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

Every group with repeated attempts exposes its delays and limits
as a :class:`RetryPolicy`, which is what the engines actually consume.
The tests substitute zero-delay policies via the settings.
"""
import dataclasses


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """
    A fixed-delay retry policy: how long to sleep between the attempts,
    and how many attempts are allowed in total (``None`` for unlimited,
    i.e. limited only by the operation's deadline).
    """
    delay: float = 0
    limit: int | None = None

    def allows(self, attempt: int) -> bool:
        """ Check if the attempt (1-based) is still within the limit. """
        return self.limit is None or attempt <= self.limit


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for the whole API request, in seconds.
    """

    connect_timeout: float | None = None
    """
    A timeout for the connection establishing, in seconds.
    """


@dataclasses.dataclass
class PollingSettings:
    """
    How the parent database is polled until it becomes active.
    """

    delay: float = 5.0
    """
    How long to sleep between the polls of the database status, in seconds.
    Also used between the re-attempts of mutations rejected due to conflicts.
    """

    timeout: float | None = 20 * 60
    """
    The default wall-clock budget of one create/delete operation, in seconds.
    Individual operations can override it. ``None`` means no deadline.
    """

    @property
    def policy(self) -> RetryPolicy:
        return RetryPolicy(delay=self.delay, limit=None)


@dataclasses.dataclass
class CredentialsSettings:
    """
    How the streaming credentials are refreshed when they are rejected.
    """

    refresh_limit: int = 7
    """
    How many times in total the routing credentials can be resolved
    within one mutation before a 401 response is escalated as a failure.
    """

    refresh_delay: float = 20.0
    """
    How long to sleep before re-resolving the rejected credentials, in seconds.
    Freshly issued tenant tokens are often not accepted immediately.
    """

    @property
    def policy(self) -> RetryPolicy:
        return RetryPolicy(delay=self.refresh_delay, limit=self.refresh_limit)


@dataclasses.dataclass
class ConvergenceSettings:
    """
    How the listings are re-read after a mutation until its effect is visible.
    """

    limit: int = 7
    """
    How many listings are made at most before giving up on the confirmation.
    """

    delay: float = 20.0
    """
    How long to sleep between the listings, in seconds.
    """

    @property
    def policy(self) -> RetryPolicy:
        return RetryPolicy(delay=self.delay, limit=self.limit)


@dataclasses.dataclass
class ProvisionerSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    polling: PollingSettings = dataclasses.field(default_factory=PollingSettings)
    credentials: CredentialsSettings = dataclasses.field(default_factory=CredentialsSettings)
    convergence: ConvergenceSettings = dataclasses.field(default_factory=ConvergenceSettings)
