import asyncio
import io
import typing as T

import pytest

from trygraph.data.config import TryConfig, TryProject
from trygraph.data.job import Changeset, Job, Push, PushRef, Repository
from trygraph.errors import FetchExhaustedError, SchedulerError
from trygraph.pushlog import Pushlog
from trygraph.scheduler import Scheduler
from trygraph.utils.logging.job_logger import JobLogger

PRIMARY_URL = "https://hg.mozilla.org/try/raw-file/deadbeef/graph.yml"
ERROR_URL = "https://hg.mozilla.org/try/raw-file/deadbeef/error.yml"
TRY_SCOPES = [
    "queue:*",
    "scheduler:create-task-graph",
    "assume:repo:hg.mozilla.org/try:level-1",
]

GRAPH_TEMPLATE = """\
tasks:
  - taskId: "{{ as_slugid('build') }}"
    task:
      scopes: ["queue:create-task:{{ project }}"]
      payload:
        command: ["echo", "{{ revision }}"]
      metadata:
        name: "build {{ revision_hash }}"
        description: "{{ comment }}"
"""

ERROR_TEMPLATE = """\
tasks:
  - taskId: "{{ as_slugid('error') }}"
    task:
      metadata:
        name: "graph error for {{ project }}"
        description: |
          {{ error | indent(10) }}
"""


class SleepRecorder:
    """Stands in for :py:func:`asyncio.sleep`, without sleeping."""

    def __init__(self) -> None:
        self.delays = list[float]()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakePushlog(Pushlog):
    def __init__(self, push: Push | None = None, error: Exception | None = None) -> None:
        self.push = push
        self.error = error
        self.calls = list[tuple[str, int]]()

    async def get_one(self, repo_url: str, push_id: int) -> Push:
        self.calls.append((repo_url, push_id))
        if self.error is not None:
            raise self.error
        assert self.push is not None
        return self.push


class FakeFetcher:
    """Serves documents from memory.  Unknown URLs fail like an exhausted fetch."""

    def __init__(self, documents: dict[str, str]) -> None:
        self.documents = documents
        self.fetched = list[str]()

    async def fetch(self, url: str, log: JobLogger) -> str:
        self.fetched.append(url)
        log.log("fetching graph %s", url)
        try:
            return self.documents[url]
        except KeyError:
            raise FetchExhaustedError(url, ["HTTP 404 Not Found"] * 2) from None


class BlockingFetcher:
    """Never finishes fetching."""

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def fetch(self, url: str, log: JobLogger) -> str:
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


class FakeScheduler(Scheduler):
    def __init__(self, owner: "SchedulerRecorder", authorized_scopes: list[str]) -> None:
        self.owner = owner
        self.authorized_scopes = authorized_scopes

    async def create_task_graph(self, graph_id: str, graph: T.Mapping[str, T.Any]) -> None:
        if self.owner.error is not None:
            raise self.owner.error
        self.owner.submissions.append((graph_id, dict(graph), self.authorized_scopes))


class SchedulerRecorder:
    """A scheduler factory recording everything submitted through its schedulers."""

    def __init__(self, error: SchedulerError | None = None) -> None:
        self.error = error
        self.submissions = list[tuple[str, dict[str, T.Any], list[str]]]()

    def __call__(self, authorized_scopes: list[str]) -> Scheduler:
        return FakeScheduler(self, authorized_scopes)


class InstantiateSpy:
    """Wraps an instantiation function, recording its inputs and outputs."""

    def __init__(self, wrapped: T.Callable[..., dict[str, T.Any]]) -> None:
        self.wrapped = wrapped
        self.calls = list[tuple[str, dict[str, T.Any]]]()
        self.results = list[dict[str, T.Any]]()

    def __call__(self, template: str, variables: T.Mapping[str, T.Any]) -> dict[str, T.Any]:
        self.calls.append((template, dict(variables)))
        result = self.wrapped(template, variables)
        self.results.append(result)
        return result


@pytest.fixture
def try_config() -> TryConfig:
    return TryConfig(
        default_url="{{host}}{{path}}/raw-file/{{revision}}/graph.yml",
        error_task_url="{{host}}{{path}}/raw-file/{{revision}}/error.yml",
        default_scopes=["assume:repo:{{alias}}"],
        projects={
            "try": TryProject(
                scopes=[
                    "queue:*",
                    "scheduler:create-task-graph",
                    "assume:repo:hg.mozilla.org/try:level-{{level}}",
                ],
                level=1,
            ),
        },
    )


@pytest.fixture
def job() -> Job:
    return Job(
        revision_hash="abc123",
        pushref=PushRef(id=42),
        repo=Repository(url="https://hg.mozilla.org/try/", alias="try"),
    )


@pytest.fixture
def push() -> Push:
    return Push(
        id=42,
        user="dev@example.com",
        changesets=[Changeset(node="deadbeef", desc="fix bug")],
    )


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def job_log(log_stream: io.StringIO) -> JobLogger:
    return JobLogger(log_stream)
