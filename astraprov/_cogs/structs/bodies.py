"""
Raw payloads of the remote APIs and the snapshots derived from them.

The raw payloads are typed dicts, exactly as returned by the APIs (only the
fields used here are declared). The snapshots are what the engines pass
further: frozen, explicit, and independent of the wire format.
"""
import dataclasses
import datetime
import enum
from typing import Any, Collection, Mapping

import iso8601
from typing_extensions import TypedDict

from astraprov._cogs.structs import identities


class RawDatabaseInfo(TypedDict, total=False):
    name: str
    keyspace: str
    keyspaces: list[str]
    cloudProvider: str
    region: str


class RawDatabase(TypedDict, total=False):
    id: str
    orgId: str
    status: str
    info: RawDatabaseInfo


class RawOrganization(TypedDict, total=False):
    id: str
    name: str


class RawTenantToken(TypedDict, total=False):
    iat: int
    iss: str
    sub: str
    tokenid: str


class RawCDCEntry(TypedDict, total=False):
    orgId: str
    clusterName: str
    tenant: str
    namespace: str
    connectorName: str
    configType: str
    databaseId: str
    databaseName: str
    keyspace: str
    databaseTable: str
    connectorStatus: str
    cdcStatus: str
    codStatus: str
    createdAt: str
    updatedAt: str
    eventTopic: str
    dataTopic: str
    instances: int
    cpu: int
    memory: int


class DatabaseStatus(str, enum.Enum):
    INITIALIZING = 'INITIALIZING'
    PENDING = 'PENDING'
    ACTIVE = 'ACTIVE'
    ERROR = 'ERROR'
    TERMINATING = 'TERMINATING'
    TERMINATED = 'TERMINATED'
    PARKED = 'PARKED'
    PARKING = 'PARKING'
    UNPARKING = 'UNPARKING'
    HIBERNATED = 'HIBERNATED'
    HIBERNATING = 'HIBERNATING'
    RESUMING = 'RESUMING'
    MAINTENANCE = 'MAINTENANCE'
    UNKNOWN = 'UNKNOWN'

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> 'DatabaseStatus | str':
        """ Interpret a raw status; keep it as is if it is not a known one. """
        try:
            return cls(value)
        except ValueError:
            return value


# Once a database is in one of these, it will never become active again.
TERMINAL_STATUSES: Collection[DatabaseStatus] = frozenset({
    DatabaseStatus.ERROR,
    DatabaseStatus.TERMINATING,
    DatabaseStatus.TERMINATED,
})


@dataclasses.dataclass(frozen=True)
class ParentSnapshot:
    database_id: str
    status: DatabaseStatus | str
    cloud_provider: str | None = None
    region: str | None = None
    keyspaces: Collection[str] = ()

    @classmethod
    def from_raw(cls, database_id: str, raw: RawDatabase) -> 'ParentSnapshot':
        info: Mapping[str, Any] = raw.get('info') or {}
        keyspaces = list(info.get('keyspaces') or [])
        if info.get('keyspace') and info['keyspace'] not in keyspaces:
            keyspaces.insert(0, info['keyspace'])
        return cls(
            database_id=raw.get('id') or database_id,
            status=DatabaseStatus.parse(str(raw.get('status', ''))),
            cloud_provider=info.get('cloudProvider'),
            region=info.get('region'),
            keyspaces=tuple(keyspaces),
        )


@dataclasses.dataclass(frozen=True)
class CDCSnapshot:
    key: identities.CDCKey
    connector_status: str | None = None
    cdc_status: str | None = None
    data_topic: str | None = None
    event_topic: str | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    @classmethod
    def from_raw(cls, key: identities.CDCKey, raw: RawCDCEntry) -> 'CDCSnapshot':
        return cls(
            key=key,
            connector_status=raw.get('connectorStatus'),
            cdc_status=raw.get('cdcStatus'),
            data_topic=raw.get('dataTopic'),
            event_topic=raw.get('eventTopic'),
            created_at=_parse_time(raw.get('createdAt')),
            updated_at=_parse_time(raw.get('updatedAt')),
        )

    def as_dict(self) -> dict[str, Any]:
        return dict(
            id=self.key.identity,
            connector_status=self.connector_status,
            cdc_status=self.cdc_status,
            data_topic=self.data_topic,
            event_topic=self.event_topic,
            created_at=self.created_at.isoformat() if self.created_at else None,
            updated_at=self.updated_at.isoformat() if self.updated_at else None,
        )


def _parse_time(value: str | None) -> datetime.datetime | None:
    if not value:
        return None
    try:
        return iso8601.parse_date(value)
    except iso8601.ParseError:
        return None


def matches_cdc_key(raw: RawCDCEntry, key: identities.CDCKey) -> bool:
    """
    Check if the listed CDC entry is the one of the key, by all its fields.

    The listing is per tenant; the database id, keyspace, and table identify
    the entry within it. Identities are lower-cased, so the comparison is too.
    """
    return (
        str(raw.get('databaseId', '')).lower() == key.database_id.lower() and
        str(raw.get('keyspace', '')).lower() == key.keyspace.lower() and
        str(raw.get('databaseTable', '')).lower() == key.table.lower()
    )
