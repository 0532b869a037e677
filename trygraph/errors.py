# Errors raised while submitting a task graph.
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
This module contains the exceptions that terminate a submission run.

Every exception here derives from :py:class:`GraphSubmissionError`, so that the job
runner can tell a failed run apart from a bug.  Failures of a single fetch attempt are
not exceptions; see :py:mod:`trygraph.fetch`.
"""

import typing as T


class GraphSubmissionError(Exception):
    """A submission run failed and no graph was submitted."""


class ConfigurationError(GraphSubmissionError):
    """A configured URL or scope template could not be rendered."""


class PushLookupError(GraphSubmissionError, LookupError):
    """The push log has no record of the requested push."""

    def __init__(self, repo_url: str, push_id: int, reason: str) -> None:
        super().__init__(f"could not look up push {push_id} of {repo_url}: {reason}")
        self.repo_url = repo_url
        self.push_id = push_id
        self.reason = reason


class FetchExhaustedError(GraphSubmissionError):
    """All attempts to fetch a graph template failed."""

    def __init__(self, url: str, reasons: T.Sequence[str]) -> None:
        super().__init__(f"Could not fetch graph at {url}")
        self.url = url
        self.reasons = list(reasons)
        """Why each of the attempts failed, in order."""


class TemplateInstantiationError(GraphSubmissionError):
    """
    A graph template could not be turned into a graph.  The message is meant to be read
    by the push author.
    """


class SchedulerError(GraphSubmissionError):
    """The scheduler rejected a task graph, or could not be reached."""

    def __init__(self, graph_id: str, status: int | None, body: str) -> None:
        if status is None:
            super().__init__(f"failed to submit task graph {graph_id}: {body}")
        else:
            super().__init__(f"scheduler refused task graph {graph_id} ({status}): {body}")
        self.graph_id = graph_id
        self.status = status
        """HTTP status of the response, or ``None`` if no response was received."""
        self.body = body
        """Response body, or a description of the transport error."""
