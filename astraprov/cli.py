import asyncio
import dataclasses
import functools
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from astraprov._cogs.clients import auth
from astraprov._cogs.configs import configuration
from astraprov._cogs.structs import credentials, identities, outcomes
from astraprov._core.actions import loggers
from astraprov._core.reactor import orchestration

_T = TypeVar('_T')

# Exit code of the read commands when the entity does not exist.
EXIT_CODE_ABSENT = 3


@dataclasses.dataclass()
class CLIControls:
    """ Controls, which are impossible to pass via CLI (used in tests). """
    settings: configuration.ProvisionerSettings | None = None
    info: credentials.ConnectionInfo | None = None


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: bool | None = False,
                log_refkey: str | None = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def connection_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to build the connection info in all commands the same way."""
    @click.option('--server', type=str, default=None)
    @click.option('--streaming-server', type=str, default=None)
    @click.option('--token', type=str, default=None, envvar=['ASTRAPROV_TOKEN', 'ASTRA_API_TOKEN'])
    @click.option('--connection-file', type=click.Path(exists=True, dir_okay=False), default=None)
    @click.option('--timeout', type=float, default=None)
    @click.make_pass_decorator(CLIControls, ensure=True)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(__controls: CLIControls,
                server: str | None,
                streaming_server: str | None,
                token: str | None,
                connection_file: str | None,
                timeout: float | None,
                *args: Any, **kwargs: Any) -> Any:
        settings = __controls.settings if __controls.settings is not None else configuration.ProvisionerSettings()
        if timeout is not None:
            settings.polling.timeout = timeout
        try:
            if __controls.info is not None:
                info = __controls.info
            elif connection_file:
                info = credentials.ConnectionInfo.from_file(connection_file)
            else:
                info = credentials.ConnectionInfo.from_mapping(dict(token=token))
        except credentials.LoginError as e:
            raise click.UsageError(str(e))
        info = dataclasses.replace(
            info,
            server=server or info.server,
            streaming_server=streaming_server or info.streaming_server,
            token=token or info.token,
        )
        return fn(*args, info=info, settings=settings, **kwargs)

    return wrapper


def _validated(validator: Callable[[Any], None]) -> Callable[[Any, Any, Any], Any]:
    def callback(ctx: Any, param: Any, value: Any) -> Any:
        if value is not None:
            try:
                validator(value)
            except ValueError as e:
                raise click.BadParameter(str(e))
        return value
    return callback


def _run(
        info: credentials.ConnectionInfo,
        coro_fn: Callable[[asyncio.Lock], Awaitable[_T]],
) -> _T:
    """
    Run one operation in a fresh event loop, with the session open around it.
    """
    async def _main() -> _T:
        guard = asyncio.Lock()
        async with auth.connected(info):
            return await coro_fn(guard)

    try:
        return asyncio.run(_main())
    except orchestration.ConvergenceTimeoutError as e:
        raise click.ClickException(f"{e} (possibly applied: {e.identity})")
    except orchestration.ProvisioningError as e:
        raise click.ClickException(str(e))


@click.version_option(prog_name='astraprov')
@click.group(name='astraprov', context_settings=dict(
    auto_envvar_prefix='ASTRAPROV',
))
def main() -> None:
    pass


@main.group()
def keyspace() -> None:
    """ Keyspaces of the databases. """


@keyspace.command('create')
@logging_options
@connection_options
@click.option('--database-id', required=True, callback=_validated(identities.validate_database_id))
@click.option('--name', required=True, callback=_validated(identities.validate_keyspace_name))
def keyspace_create(
        info: credentials.ConnectionInfo,
        settings: configuration.ProvisionerSettings,
        database_id: str,
        name: str,
) -> None:
    """ Create a keyspace once the database is active; print its id. """
    key = identities.KeyspaceKey(database_id=database_id, name=name)
    provisioned = _run(info, lambda guard: orchestration.create_keyspace(key, settings=settings, guard=guard))
    click.echo(provisioned.identity)


@keyspace.command('read')
@logging_options
@connection_options
@click.argument('identity')
def keyspace_read(
        info: credentials.ConnectionInfo,
        settings: configuration.ProvisionerSettings,
        identity: str,
) -> None:
    """ Print the keyspace by its id, or exit with code 3 if it is absent. """
    key = _run(info, lambda guard: orchestration.read_keyspace(identity, settings=settings))
    if key is None:
        click.echo(f"Keyspace {identity} is not found.", err=True)
        raise SystemExit(EXIT_CODE_ABSENT)
    click.echo(json.dumps(dict(id=key.identity, database_id=key.database_id, name=key.name)))


@keyspace.command('delete')
@logging_options
@connection_options
@click.argument('identity')
def keyspace_delete(
        info: credentials.ConnectionInfo,
        settings: configuration.ProvisionerSettings,
        identity: str,
) -> None:
    """ Delete the keyspace by its id. """
    key = _decode(identities.KeyspaceKey.decode(identity))
    _run(info, lambda guard: orchestration.delete_keyspace(key, settings=settings, guard=guard))


@main.group('cdc')
def cdc_group() -> None:
    """ Change-data-capture pipelines of the tables. """


@cdc_group.command('create')
@logging_options
@connection_options
@click.option('--database-id', required=True, callback=_validated(identities.validate_database_id))
@click.option('--database-name', required=True, callback=_validated(identities.validate_database_name))
@click.option('--keyspace', required=True, callback=_validated(identities.validate_keyspace_name))
@click.option('--table', required=True, callback=_validated(identities.validate_table_name))
@click.option('--tenant', required=True, callback=_validated(identities.validate_tenant_name))
@click.option('--topic-partitions', type=click.IntRange(min=1), required=True)
def cdc_create(
        info: credentials.ConnectionInfo,
        settings: configuration.ProvisionerSettings,
        database_id: str,
        database_name: str,
        keyspace: str,
        table: str,
        tenant: str,
        topic_partitions: int,
) -> None:
    """ Enable CDC for a table once the database is active; print its state. """
    key = identities.CDCKey(database_id=database_id, keyspace=keyspace, table=table, tenant=tenant)
    spec = identities.CDCSpec(key=key, database_name=database_name, topic_partitions=topic_partitions)
    provisioned = _run(info, lambda guard: orchestration.create_cdc(spec, settings=settings, guard=guard))
    click.echo(json.dumps(provisioned.snapshot.as_dict()))


@cdc_group.command('read')
@logging_options
@connection_options
@click.argument('identity')
def cdc_read(
        info: credentials.ConnectionInfo,
        settings: configuration.ProvisionerSettings,
        identity: str,
) -> None:
    """ Print the CDC state by its id, or exit with code 3 if it is absent. """
    snapshot = _run(info, lambda guard: orchestration.read_cdc(identity, settings=settings))
    if snapshot is None:
        click.echo(f"CDC {identity} is not found.", err=True)
        raise SystemExit(EXIT_CODE_ABSENT)
    click.echo(json.dumps(snapshot.as_dict()))


@cdc_group.command('delete')
@logging_options
@connection_options
@click.option('--database-name', required=True, callback=_validated(identities.validate_database_name))
@click.option('--topic-partitions', type=click.IntRange(min=1), required=True)
@click.argument('identity')
def cdc_delete(
        info: credentials.ConnectionInfo,
        settings: configuration.ProvisionerSettings,
        database_name: str,
        topic_partitions: int,
        identity: str,
) -> None:
    """ Disable CDC for a table by its id. """
    key = _decode(identities.CDCKey.decode(identity))
    spec = identities.CDCSpec(key=key, database_name=database_name, topic_partitions=topic_partitions)
    _run(info, lambda guard: orchestration.delete_cdc(spec, settings=settings, guard=guard))


def _decode(outcome: Any) -> Any:
    match outcome:
        case outcomes.Proceed(value=value):
            return value
        case _:
            raise click.BadParameter(str(outcome), param_hint='IDENTITY')
