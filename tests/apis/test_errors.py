import aiohttp
import aiohttp.web
import pytest

from astraprov._cogs.clients.errors import APIClientError, APIConflictError, APIError, \
                                           APIForbiddenError, APINotFoundError, APIServerError, \
                                           APIUnauthorizedError, check_response


@pytest.fixture()
async def session(context):
    return context.session


@pytest.mark.parametrize('status', [200, 201, 202, 204, 299])
async def test_no_error_on_success(aresponses, hostname, session, status):
    aresponses.add(hostname, '/', 'get', aresponses.Response(status=status))
    async with session.get(f'http://{hostname}/') as response:
        await check_response(response)


@pytest.mark.parametrize('status, exctype', [
    (400, APIClientError),
    (401, APIUnauthorizedError),
    (403, APIForbiddenError),
    (404, APINotFoundError),
    (409, APIConflictError),
    (422, APIClientError),
    (500, APIServerError),
    (503, APIServerError),
])
async def test_errors_by_status(aresponses, hostname, session, status, exctype):
    aresponses.add(hostname, '/', 'get', aresponses.Response(status=status))
    async with session.get(f'http://{hostname}/') as response:
        with pytest.raises(exctype) as err:
            await check_response(response)
    assert isinstance(err.value, APIError)
    assert err.value.status == status
    assert isinstance(err.value.__cause__, aiohttp.ClientResponseError)


async def test_error_messages_from_the_errors_list(aresponses, hostname, session):
    payload = {'errors': [{'ID': 2000, 'description': 'Database is not active'},
                          {'ID': 2001, 'message': 'Try later'}]}
    aresponses.add(hostname, '/', 'get', aiohttp.web.json_response(payload, status=400))
    async with session.get(f'http://{hostname}/') as response:
        with pytest.raises(APIClientError) as err:
            await check_response(response)
    assert err.value.message == 'Database is not active; Try later'
    assert err.value.payload == payload
    assert str(err.value) == '(400) Database is not active; Try later'


async def test_error_messages_from_the_top_level(aresponses, hostname, session):
    aresponses.add(hostname, '/', 'get', aiohttp.web.json_response({'message': 'Bad token'}, status=401))
    async with session.get(f'http://{hostname}/') as response:
        with pytest.raises(APIUnauthorizedError) as err:
            await check_response(response)
    assert err.value.message == 'Bad token'


async def test_error_messages_from_plain_text(aresponses, hostname, session):
    aresponses.add(hostname, '/', 'get', aresponses.Response(status=500, text='Internal failure'))
    async with session.get(f'http://{hostname}/') as response:
        with pytest.raises(APIServerError) as err:
            await check_response(response)
    assert err.value.message == 'Internal failure'
    assert err.value.payload is None


def test_error_without_details():
    err = APIError(None, status=418)
    assert err.message is None
    assert str(err) == '(418) no details'
