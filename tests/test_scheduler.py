import json
import typing as T

import aiohttp
import pytest
from aiohttp import test_utils, web

from trygraph.data.config import SchedulerConfig
from trygraph.errors import SchedulerError
from trygraph.instantiate import instantiate
from trygraph.scheduler import HttpScheduler, make_scheduler_factory

GRAPH = {"tasks": [], "scopes": ["queue:*"]}


def _scheduler_app(status: int = 200) -> tuple[web.Application, list[dict[str, T.Any]]]:
    requests = list[dict[str, T.Any]]()

    async def handler(request: web.Request) -> web.Response:
        requests.append(
            dict(
                graph_id=request.match_info["graph_id"],
                headers=dict(request.headers),
                body=await request.json(),
            )
        )
        if status >= 400:
            return web.json_response(dict(message="insufficient scopes"), status=status)
        return web.json_response(dict(status=dict(taskGraphId=request.match_info["graph_id"])))

    app = web.Application()
    app.router.add_put("/v1/task-graph/{graph_id}", handler)
    return app, requests


@pytest.mark.asyncio
async def test_create_task_graph():
    app, requests = _scheduler_app()
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        config = SchedulerConfig(
            base_url=str(server.make_url("/v1")), client_id="submitter", access_token="secret"
        )
        scheduler = make_scheduler_factory(session, config)(["queue:*"])
        await scheduler.create_task_graph("abcdefghijklmnopqrstuv", GRAPH)

    assert len(requests) == 1
    (request,) = requests
    assert request["graph_id"] == "abcdefghijklmnopqrstuv"
    assert request["body"] == GRAPH
    assert json.loads(request["headers"]["X-Authorized-Scopes"]) == ["queue:*"]
    assert request["headers"]["Authorization"] == aiohttp.BasicAuth("submitter", "secret").encode()


@pytest.mark.asyncio
async def test_unauthenticated_without_client_id():
    app, requests = _scheduler_app()
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        config = SchedulerConfig(base_url=str(server.make_url("/v1")))
        await make_scheduler_factory(session, config)(["queue:*"]).create_task_graph("id", GRAPH)

    assert "Authorization" not in requests[0]["headers"]


@pytest.mark.asyncio
async def test_rejection():
    app, _ = _scheduler_app(status=403)
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        scheduler = HttpScheduler(session, str(server.make_url("/v1")), ["queue:*"])
        with pytest.raises(SchedulerError) as excinfo:
            await scheduler.create_task_graph("some-id", GRAPH)

    assert excinfo.value.status == 403
    assert "insufficient scopes" in excinfo.value.body
    assert excinfo.value.graph_id == "some-id"


@pytest.mark.asyncio
async def test_unreachable():
    app, _ = _scheduler_app()
    async with test_utils.TestServer(app) as server:
        base_url = str(server.make_url("/v1"))

    async with aiohttp.ClientSession() as session:
        with pytest.raises(SchedulerError) as excinfo:
            await HttpScheduler(session, base_url, []).create_task_graph("some-id", GRAPH)

    assert excinfo.value.status is None


@pytest.mark.asyncio
async def test_submits_instantiated_timestamps():
    graph = instantiate("created: {{ now }}\ntasks: []\n", {})
    app, requests = _scheduler_app()
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        scheduler = HttpScheduler(session, str(server.make_url("/v1")), ["queue:*"])
        await scheduler.create_task_graph("some-id", graph)

    assert requests[0]["body"]["created"] == graph["created"]
    assert requests[0]["headers"]["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_unserializable_graph():
    app, requests = _scheduler_app()
    async with test_utils.TestServer(app) as server, aiohttp.ClientSession() as session:
        scheduler = HttpScheduler(session, str(server.make_url("/v1")), ["queue:*"])
        with pytest.raises(SchedulerError) as excinfo:
            await scheduler.create_task_graph("some-id", {"tasks": [], "created": object()})

    assert excinfo.value.status is None
    assert requests == []
