import aiohttp
import pytest
from aiohttp import test_utils, web

from trygraph.errors import PushLookupError
from trygraph.pushlog import PushlogClient

PUSHES = {
    "lastpushid": 42,
    "pushes": {
        "42": {
            "changesets": [
                {
                    "author": "Dev <dev@example.com>",
                    "branch": "default",
                    "desc": "first",
                    "files": ["README"],
                    "node": "cafe",
                    "parents": ["0000"],
                    "tags": [],
                },
                {
                    "author": "Dev <dev@example.com>",
                    "branch": "default",
                    "desc": "fix bug",
                    "files": ["main.c"],
                    "node": "deadbeef",
                    "parents": ["cafe"],
                    "tags": ["tip"],
                },
            ],
            "date": 1430000000,
            "user": "dev@example.com",
        }
    },
}


def _pushlog_app(body: object, status: int = 200) -> tuple[web.Application, list[dict[str, str]]]:
    queries = list[dict[str, str]]()

    async def handler(request: web.Request) -> web.Response:
        queries.append(dict(request.query))
        return web.json_response(body, status=status)

    app = web.Application()
    app.router.add_get("/try/json-pushes/", handler)
    return app, queries


@pytest.mark.asyncio
async def test_get_one():
    app, queries = _pushlog_app(PUSHES)
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        push = await PushlogClient(session).get_one(str(server.make_url("/try/")), 42)

    assert queries == [dict(version="2", full="1", startID="41", endID="42")]
    assert push.id == 42
    assert push.user == "dev@example.com"
    assert [c.node for c in push.changesets] == ["cafe", "deadbeef"]
    assert push.tip.desc == "fix bug"


@pytest.mark.asyncio
async def test_missing_push():
    app, _ = _pushlog_app(dict(lastpushid=41, pushes={}))
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        with pytest.raises(PushLookupError) as excinfo:
            await PushlogClient(session).get_one(str(server.make_url("/try")), 42)

    assert isinstance(excinfo.value, LookupError)
    assert excinfo.value.push_id == 42


@pytest.mark.asyncio
async def test_server_error():
    app, _ = _pushlog_app(dict(error="boom"), status=500)
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        with pytest.raises(PushLookupError, match="HTTP 500"):
            await PushlogClient(session).get_one(str(server.make_url("/try/")), 42)


@pytest.mark.asyncio
async def test_malformed_response():
    app, _ = _pushlog_app(dict(pushes={"42": {"user": "dev@example.com"}}))
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        with pytest.raises(PushLookupError, match="malformed"):
            await PushlogClient(session).get_one(str(server.make_url("/try/")), 42)


@pytest.mark.asyncio
async def test_empty_push():
    app, _ = _pushlog_app(dict(pushes={"42": {"user": "dev@example.com", "changesets": []}}))
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        with pytest.raises(PushLookupError, match="no changesets"):
            await PushlogClient(session).get_one(str(server.make_url("/try/")), 42)
