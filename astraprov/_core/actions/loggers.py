"""
Logging of the provisioning runs, with the entities referred in every message.

Every operation logs via an :class:`EntityLogger`, which carries the reference
to the entity being provisioned. In the text formats, the reference is
rendered as a prefix of the message; in the JSON format, it is a separate key.
"""
import copy
import enum
import logging
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any, TextIO

from pythonjsonlogger.json import JsonFormatter as _pjl_JsonFormatter
from pythonjsonlogger.core import RESERVED_ATTRS as _pjl_RESERVED_ATTRS

from astraprov._cogs.helpers import typedefs

logger = logging.getLogger('astraprov.entities')

# A key for entity references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'entity'


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # not used for formatting, only for detection


class EntityFormatter(logging.Formatter):
    pass


class EntityTextFormatter(EntityFormatter, logging.Formatter):
    pass


class EntityJsonFormatter(EntityFormatter, _pjl_JsonFormatter):
    def __init__(
            self,
            *args: Any,
            refkey: str | None = None,
            **kwargs: Any,
    ) -> None:
        # Avoid type checking, as the args are not in the parent consructor.
        reserved_attrs = kwargs.pop('reserved_attrs', _pjl_RESERVED_ATTRS)
        reserved_attrs = set(reserved_attrs)
        reserved_attrs |= {'entity_ref'}
        kwargs |= dict(reserved_attrs=reserved_attrs)
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self._refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: dict[str, object],
            record: logging.LogRecord,
            message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self._refkey and hasattr(record, 'entity_ref'):
            ref = getattr(record, 'entity_ref')
            log_record[self._refkey] = ref

        if 'severity' not in log_record:
            log_record['severity'] = (
                "debug" if record.levelno <= logging.DEBUG else
                "info" if record.levelno <= logging.INFO else
                "warn" if record.levelno <= logging.WARNING else
                "error" if record.levelno <= logging.ERROR else
                "fatal")


class EntityPrefixingMixin(EntityFormatter):
    def format(self, record: logging.LogRecord) -> str:
        if hasattr(record, 'entity_ref'):
            ref = getattr(record, 'entity_ref')
            record = copy.copy(record)  # shallow
            record.msg = f"[{ref.get('kind')}:{ref.get('id')}] {record.msg}"
        return super().format(record)


class EntityPrefixingTextFormatter(EntityPrefixingMixin, EntityTextFormatter):
    pass


class EntityPrefixingJsonFormatter(EntityPrefixingMixin, EntityJsonFormatter):
    pass


class EntityLogger(typedefs.LoggerAdapter):
    """
    A logger/adapter to carry the entity identifiers for formatting.

    Constructed for every operation on every individual entity.
    As little information as possible is carried: the kind and the identity.
    Secrets (tokens) must never be put here.
    """

    def __init__(self, *, kind: str, identity: str) -> None:
        super().__init__(logger, dict(
            entity_ref=dict(
                kind=kind,
                id=identity,
            ),
        ))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # Native logging overwrites the message's extra with the adapter's extra.
        # We merge them, so that both message's & adapter's extras are available.
        kwargs["extra"] = dict(self.extra or {}) | kwargs.get('extra', {})
        return msg, kwargs


# Used to identify and remove our own handlers on re-configuration (e.g. in CLI tests,
# where every invocation streams into its own stderr interceptor of Click's runner).
if TYPE_CHECKING:
    class _OwnStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class _OwnStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> None:
    log_level = 'DEBUG' if debug or verbose else 'WARNING' if quiet else 'INFO'
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey)
    handler = _OwnStreamHandler()
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.handlers[:] = [h for h in logger.handlers if not isinstance(h, _OwnStreamHandler)]
    logger.addHandler(handler)
    logger.setLevel(log_level)

    # Prevent the low-level logging unless in the debug mode. Keep only our own messages.
    # For no-propagation loggers, add a dummy null handler to prevent printing the messages.
    for name in ['asyncio', 'aiohttp']:
        logger = logging.getLogger(name)
        logger.propagate = bool(debug)
        if not debug:
            logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> EntityFormatter:
    log_prefix = log_prefix if log_prefix is not None else bool(log_format is not LogFormat.JSON)
    match log_format:
        case LogFormat.JSON:
            if log_prefix:
                return EntityPrefixingJsonFormatter(refkey=log_refkey)
            else:
                return EntityJsonFormatter(refkey=log_refkey)
        case LogFormat():
            if log_prefix:
                return EntityPrefixingTextFormatter(log_format.value)
            else:
                return EntityTextFormatter(log_format.value)
        case str():
            if log_prefix:
                return EntityPrefixingTextFormatter(log_format)
            else:
                return EntityTextFormatter(log_format)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
