# Task graph submission for a single push.
# Copyright (C) 2025  Arsen Arsenović <arsen@managarm.org>

# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.

# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""
This module implements the submission job: it turns a push into a task graph and
hands that graph to the scheduler.

A submission goes through the following steps, in order:

#. Look the push up in the push log.
#. Fetch the graph template of the repository at the tip of the push.
#. Instantiate the template.  If that fails, the error graph is fetched and
   instantiated instead, with the failure as its ``error`` variable, so that the push
   author still learns what went wrong through the scheduler.
#. Stamp the scopes of the repository onto the graph.
#. Submit the graph under a new ID, with a scheduler client restricted to the same
   scopes.

Exactly one graph is submitted per successful run.  Failures other than a broken graph
template end the run with a :py:class:`trygraph.errors.GraphSubmissionError` before
anything is submitted.
"""

import enum
import logging
import traceback
import typing as T

import attr

import trygraph.project_scopes as project_scopes
from trygraph.errors import (
    ConfigurationError,
    FetchExhaustedError,
    PushLookupError,
    SchedulerError,
    TemplateInstantiationError,
)
from trygraph.instantiate import instantiate as default_instantiate
from trygraph.utils.ids import slugid
from trygraph.utils.url import parse_url

if T.TYPE_CHECKING:
    from trygraph.data.config import TryConfig
    from trygraph.data.job import Job, Push
    from trygraph.fetch import GraphFetcher
    from trygraph.pushlog import Pushlog
    from trygraph.scheduler import SchedulerFactory
    from trygraph.utils.logging.job_logger import JobLogger

logger = logging.getLogger(__name__)

Instantiator: T.TypeAlias = T.Callable[[str, T.Mapping[str, T.Any]], dict[str, T.Any]]
"""Turns graph template text and variables into a graph."""


class RunState(enum.Enum):
    """
    Progress of a submission.
    """

    INIT = enum.auto()
    PUSH_RESOLVED = enum.auto()
    PRIMARY_FETCHED = enum.auto()
    INSTANTIATED = enum.auto()
    INSTANTIATION_FAILED = enum.auto()
    FALLBACK_FETCHED = enum.auto()
    FALLBACK_INSTANTIATED = enum.auto()
    SCOPES_ASSIGNED = enum.auto()
    SUBMITTED = enum.auto()

    LOOKUP_FAILED = enum.auto()
    FETCH_FAILED = enum.auto()
    SUBMISSION_FAILED = enum.auto()


@attr.frozen
class SubmissionResult:
    """What a successful submission submitted."""

    graph_id: str
    scopes: list[str]
    fell_back: bool
    """``True`` iff the error graph was submitted in place of the real one."""


def format_failure(exc: BaseException) -> str:
    """Format ``exc`` and its traceback for presenting to the push author."""
    return "".join(traceback.format_exception(exc))


def with_scopes(graph: T.Mapping[str, T.Any], scopes: list[str]) -> dict[str, T.Any]:
    """
    Returns:
      A new graph with the contents of ``graph`` and the given ``scopes``.
    """
    return {**graph, "scopes": list(scopes)}


class GraphSubmission:
    """
    One submission of a task graph for a push.  Each instance runs at most once; all the
    state of the run lives on it.
    """

    def __init__(
        self,
        try_config: "TryConfig",
        pushlog: "Pushlog",
        fetcher: "GraphFetcher",
        scheduler_factory: "SchedulerFactory",
        *,
        instantiate: Instantiator = default_instantiate,
        id_factory: T.Callable[[], str] = slugid,
    ) -> None:
        """
        Args:
          try_config: Graph locations and scopes of repositories.
          pushlog: Where to look pushes up.
          fetcher: Fetcher for graph templates.
          scheduler_factory: Creates scheduler clients restricted to some scopes.
          instantiate: Turns graph templates into graphs.
          id_factory: Generates graph IDs.
        """
        self.try_config = try_config
        self.pushlog = pushlog
        self.fetcher = fetcher
        self.scheduler_factory = scheduler_factory
        self.instantiate = instantiate
        self.id_factory = id_factory
        self.state = RunState.INIT
        self._log_context = dict[str, T.Any]()

    def _set_state(self, state: RunState) -> None:
        logger.debug("%s -> %s", self.state.name, state.name, extra=self._log_context)
        self.state = state

    async def _fetch(self, url: str, log: "JobLogger") -> str:
        try:
            return await self.fetcher.fetch(url, log)
        except FetchExhaustedError:
            self._set_state(RunState.FETCH_FAILED)
            logger.error("giving up on fetching %s", url, extra=self._log_context)
            raise

    async def _instantiate_error_graph(
        self,
        url_variables: dict[str, T.Any],
        variables: dict[str, T.Any],
        error: TemplateInstantiationError,
        log: "JobLogger",
    ) -> dict[str, T.Any]:
        error_graph_url = project_scopes.error_url(self.try_config, url_variables)
        error_graph_text = await self._fetch(error_graph_url, log)
        self._set_state(RunState.FALLBACK_FETCHED)
        # Failures here are ours, not the push author's, and are fatal.
        graph = self.instantiate(error_graph_text, variables | dict(error=format_failure(error)))
        self._set_state(RunState.FALLBACK_INSTANTIATED)
        return graph

    async def _lookup_push(self, job: "Job") -> "Push":
        try:
            push = await self.pushlog.get_one(job.repo.url, job.pushref.id)
        except PushLookupError:
            self._set_state(RunState.LOOKUP_FAILED)
            logger.exception("push lookup failed", extra=self._log_context)
            raise
        self._set_state(RunState.PUSH_RESOLVED)
        return push

    async def run(self, job: "Job", log: "JobLogger") -> SubmissionResult:
        """
        Submit the task graph for the push described by ``job``.

        Returns:
          The ID and scopes of the submitted graph.

        Raises:
          GraphSubmissionError: if no graph was submitted.
        """
        if self.state is not RunState.INIT:
            raise RuntimeError("a graph submission can only run once")
        repo = job.repo
        self._log_context.update(alias=repo.alias, push_id=job.pushref.id)

        push = await self._lookup_push(job)
        changeset = push.tip

        repository_url_parts = parse_url(repo.url)
        url_variables = dict(
            alias=repo.alias,
            revision=changeset.node,
            path=repository_url_parts.path,
            host=repository_url_parts.host,
        )

        graph_url = project_scopes.url(self.try_config, repo.alias, url_variables)
        log.log("Fetching url (%s) for %s push id %d", graph_url, repo.alias, push.id)
        graph_text = await self._fetch(graph_url, log)
        self._set_state(RunState.PRIMARY_FETCHED)

        variables = dict(
            owner=push.user,
            source=graph_url,
            revision=changeset.node,
            project=repo.alias,
            revision_hash=job.revision_hash,
            comment=changeset.desc,
            pushlog_id=str(push.id),
            url=repo.url,
            import_scopes=True,
        )

        try:
            graph = self.instantiate(graph_text, variables)
            self._set_state(RunState.INSTANTIATED)
            fell_back = False
        except TemplateInstantiationError as e:
            self._set_state(RunState.INSTANTIATION_FAILED)
            log.error("Error creating graph due to template errors: %s", e)
            logger.info(
                "graph at %s failed to instantiate: %s", graph_url, e, extra=self._log_context
            )
            graph = await self._instantiate_error_graph(url_variables, variables, e, log)
            fell_back = True

        scopes = project_scopes.scopes(self.try_config, repo.alias)
        if not scopes:
            raise ConfigurationError(f"no scopes configured for {repo.alias!r}")
        submitted_graph = with_scopes(graph, scopes)
        self._set_state(RunState.SCOPES_ASSIGNED)

        graph_id = self.id_factory()
        self._log_context.update(graph_id=graph_id)
        scheduler = self.scheduler_factory(scopes)

        log.log("Posting job with id %s and scopes %s", graph_id, ", ".join(scopes))
        try:
            await scheduler.create_task_graph(graph_id, submitted_graph)
        except SchedulerError as e:
            self._set_state(RunState.SUBMISSION_FAILED)
            log.exception("Failed to submit graph %s (status %s): %s", graph_id, e.status, e.body)
            logger.exception("task graph submission failed", extra=self._log_context)
            raise

        self._set_state(RunState.SUBMITTED)
        logger.info("submitted task graph", extra=self._log_context)
        return SubmissionResult(graph_id=graph_id, scopes=scopes, fell_back=fell_back)
