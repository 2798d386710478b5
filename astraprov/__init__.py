"""
The main module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the package's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from astraprov._cogs.aiokits.aiotime import (
    Deadline,
)
from astraprov._cogs.clients.auth import (
    APIContext,
    connected,
)
from astraprov._cogs.configs.configuration import (
    ProvisionerSettings,
    RetryPolicy,
)
from astraprov._cogs.helpers.versions import (
    version as __version__,
)
from astraprov._cogs.structs.bodies import (
    CDCSnapshot,
    DatabaseStatus,
    ParentSnapshot,
)
from astraprov._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
    RoutingCredential,
)
from astraprov._cogs.structs.identities import (
    KeyspaceKey,
    CDCKey,
    CDCSpec,
)
from astraprov._cogs.structs.outcomes import (
    Reason,
)
from astraprov._core.actions.loggers import (
    LogFormat,
    configure,
)
from astraprov._core.engines.polling import (
    poll_until_active,
)
from astraprov._core.reactor.orchestration import (
    ProvisioningError,
    StructuralDecodeError,
    ConvergenceTimeoutError,
    Provisioned,
    create_keyspace,
    read_keyspace,
    delete_keyspace,
    create_cdc,
    read_cdc,
    delete_cdc,
)

__all__ = [
    'Deadline',
    'APIContext', 'connected',
    'ProvisionerSettings', 'RetryPolicy',
    'CDCSnapshot', 'DatabaseStatus', 'ParentSnapshot',
    'LoginError', 'ConnectionInfo', 'RoutingCredential',
    'KeyspaceKey', 'CDCKey', 'CDCSpec',
    'Reason',
    'LogFormat', 'configure',
    'ProvisioningError', 'StructuralDecodeError', 'ConvergenceTimeoutError', 'Provisioned',
    'create_keyspace', 'read_keyspace', 'delete_keyspace',
    'create_cdc', 'read_cdc', 'delete_cdc',
    'poll_until_active',
]
