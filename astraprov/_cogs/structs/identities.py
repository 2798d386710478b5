"""
Identities of the dependent entities: composite keys and their string forms.

The caller persists only the opaque identity string between invocations.
On read or import, the whole input of an operation is restored from it,
so encoding and decoding must be exact inverses of each other:

* Keyspaces: ``<databaseId>/keyspace/<name>``.
* CDC pipelines: ``<databaseId>/<keyspace>/<table>/<tenant>``, lower-cased.

Decoding never raises: a malformed identity is a :class:`outcomes.Fail`
with :attr:`outcomes.Reason.STRUCTURAL_DECODE`, so that the callers can
branch on it specifically.
"""
import dataclasses
import re
import uuid

from astraprov._cogs.structs import outcomes

KEYSPACE_DELIMITER = '/keyspace/'
CDC_DELIMITER = '/'

KEYSPACE_NAME_RE = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_]{0,48}$')


def encode(*fields: str, delimiter: str) -> str:
    return delimiter.join(fields)


def decode(
        identity: str,
        *,
        arity: int,
        delimiter: str,
) -> outcomes.Outcome[tuple[str, ...]]:
    fields = tuple(identity.split(delimiter))
    if len(fields) != arity:
        return outcomes.Fail(
            reason=outcomes.Reason.STRUCTURAL_DECODE,
            message=f"Invalid id format {identity!r}: expected {arity} fields "
                    f"separated by {delimiter!r}, got {len(fields)}.")
    return outcomes.Proceed(fields)


@dataclasses.dataclass(frozen=True)
class KeyspaceKey:
    database_id: str
    name: str

    def __str__(self) -> str:
        return self.identity

    @property
    def identity(self) -> str:
        return encode(self.database_id, self.name, delimiter=KEYSPACE_DELIMITER)

    @classmethod
    def decode(cls, identity: str) -> outcomes.Outcome['KeyspaceKey']:
        match decode(identity, arity=2, delimiter=KEYSPACE_DELIMITER):
            case outcomes.Proceed(value=(database_id, name)):
                return outcomes.Proceed(cls(database_id=database_id, name=name))
            case outcomes.Fail() as fail:
                return outcomes.Fail(fail.reason, f"{fail.message} Expected: database_id/keyspace/name.")
            case other:
                raise RuntimeError(f"Unexpected decoding outcome: {other!r}")

    def validate(self) -> None:
        validate_database_id(self.database_id)
        validate_keyspace_name(self.name)


@dataclasses.dataclass(frozen=True)
class CDCKey:
    database_id: str
    keyspace: str
    table: str
    tenant: str

    def __str__(self) -> str:
        return self.identity

    @property
    def identity(self) -> str:
        fields = (self.database_id, self.keyspace, self.table, self.tenant)
        return encode(*fields, delimiter=CDC_DELIMITER).lower()

    @classmethod
    def decode(cls, identity: str) -> outcomes.Outcome['CDCKey']:
        match decode(identity.lower(), arity=4, delimiter=CDC_DELIMITER):
            case outcomes.Proceed(value=(database_id, keyspace, table, tenant)):
                return outcomes.Proceed(cls(database_id, keyspace, table, tenant))
            case outcomes.Fail() as fail:
                return outcomes.Fail(fail.reason, f"{fail.message} Expected: databaseId/keyspace/table/tenantName.")
            case other:
                raise RuntimeError(f"Unexpected decoding outcome: {other!r}")

    def validate(self) -> None:
        validate_database_id(self.database_id)
        validate_keyspace_name(self.keyspace)
        validate_table_name(self.table)
        validate_tenant_name(self.tenant)


@dataclasses.dataclass(frozen=True)
class CDCSpec:
    """ Everything needed to enable CDC, while only the key is persisted. """
    key: CDCKey
    database_name: str
    topic_partitions: int

    def validate(self) -> None:
        self.key.validate()
        validate_database_name(self.database_name)
        if self.topic_partitions < 1:
            raise ValueError(f"Topic partitions must be positive, got {self.topic_partitions}.")


def validate_keyspace_name(name: str) -> None:
    if not KEYSPACE_NAME_RE.match(name):
        raise ValueError(f"{name}: invalid keyspace name - must match {KEYSPACE_NAME_RE.pattern}")


def validate_database_id(database_id: str) -> None:
    try:
        uuid.UUID(database_id)
    except ValueError:
        raise ValueError(f"{database_id}: invalid database id - must be a UUID") from None


def validate_table_name(table: str) -> None:
    if len(table) < 2:
        raise ValueError(f"{table}: invalid table name - must be at least 2 characters")


def validate_tenant_name(tenant: str) -> None:
    if not tenant or CDC_DELIMITER in tenant:
        raise ValueError(f"{tenant!r}: invalid tenant name - must be non-empty and without {CDC_DELIMITER!r}")


def validate_database_name(name: str) -> None:
    if not name:
        raise ValueError(f"{name!r}: invalid database name - must not be empty")
