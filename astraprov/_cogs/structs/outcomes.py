"""
Uniform results of every classification step.

Raw transport results (HTTP statuses, connection errors, response bodies)
are classified once, at the edge, right where the remote call is made.
Everything above that edge sees only one of the three outcomes:

* :class:`Proceed` -- the step succeeded and carries a value for the next step.
* :class:`Retry` -- the step did not succeed yet, but can succeed if repeated.
* :class:`Fail` -- the step will never succeed; the operation is over.

Both ``Retry`` and ``Fail`` carry a :class:`Reason` from a closed enumeration,
so that the orchestrator can branch on it without looking at status codes.
"""
import dataclasses
import enum
from typing import Generic, TypeVar, Union

_T = TypeVar('_T')


class Reason(str, enum.Enum):
    TRANSIENT_TRANSPORT = 'TransientTransport'
    PARENT_PENDING = 'ParentPending'
    PARENT_TERMINAL = 'ParentTerminal'
    UNEXPECTED_RESPONSE = 'UnexpectedResponseShape'
    CONFLICT = 'Conflict'
    PERMISSION_DENIED = 'PermissionDenied'
    STALE_CREDENTIAL = 'PermissionOrStaleCredential'
    CREDENTIAL_UNAVAILABLE = 'CredentialUnavailable'
    CONVERGENCE_TIMEOUT = 'ConvergenceTimeout'
    STRUCTURAL_DECODE = 'StructuralDecodeError'
    DEADLINE_EXCEEDED = 'DeadlineExceeded'

    def __str__(self) -> str:
        return self.value


@dataclasses.dataclass(frozen=True)
class Proceed(Generic[_T]):
    value: _T


@dataclasses.dataclass(frozen=True)
class Retry:
    reason: Reason
    message: str

    def __str__(self) -> str:
        return f"{self.reason}: {self.message}"


@dataclasses.dataclass(frozen=True)
class Fail:
    reason: Reason
    message: str

    def __str__(self) -> str:
        return f"{self.reason}: {self.message}"


Outcome = Union[Proceed[_T], Retry, Fail]
