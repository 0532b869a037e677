# Task scheduler client.
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
This module contains the client used to hand task graphs over to the scheduler.
"""

import asyncio
import json
import typing as T
from abc import ABC, abstractmethod
from urllib.parse import quote

import aiohttp

from trygraph.constants import SCHEDULER_TIMEOUT
from trygraph.errors import SchedulerError
from trygraph.utils.url import fuse_url

if T.TYPE_CHECKING:
    from trygraph.data.config import SchedulerConfig


class Scheduler(ABC):
    """
    A scheduler accepts task graphs and runs them.
    """

    @abstractmethod
    async def create_task_graph(self, graph_id: str, graph: T.Mapping[str, T.Any]) -> None:
        """
        Submit ``graph`` under ``graph_id``.  Submitting the same graph under the same ID
        twice is harmless.

        Raises:
          SchedulerError: if the graph was not accepted.
        """


SchedulerFactory: T.TypeAlias = T.Callable[[list[str]], Scheduler]
"""
Creates a scheduler client that may only exercise the given scopes.
"""


class HttpScheduler(Scheduler):
    """
    Submits task graphs to the scheduler HTTP API.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        authorized_scopes: list[str],
        *,
        auth: aiohttp.BasicAuth | None = None,
        timeout: float = SCHEDULER_TIMEOUT,
    ) -> None:
        """
        Args:
          session: Client session to issue requests from.
          base_url: URL the scheduler API lives under.
          authorized_scopes: Scopes this client restricts itself to.
          auth: Client credentials, if any.
          timeout: Request timeout, in seconds.
        """
        self.session = session
        self.base_url = base_url
        self.authorized_scopes = list(authorized_scopes)
        self.auth = auth
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def create_task_graph(self, graph_id: str, graph: T.Mapping[str, T.Any]) -> None:
        url = fuse_url(self.base_url, "task-graph", quote(graph_id, ""))
        headers = {
            "Content-Type": "application/json",
            "X-Authorized-Scopes": json.dumps(self.authorized_scopes),
        }
        try:
            body = json.dumps(graph)
        except (TypeError, ValueError) as e:
            raise SchedulerError(graph_id, None, f"graph is not serializable: {e}") from e
        try:
            async with self.session.put(
                url, data=body, headers=headers, auth=self.auth, timeout=self.timeout
            ) as resp:
                if resp.status >= 400:
                    raise SchedulerError(graph_id, resp.status, await resp.text(errors="replace"))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SchedulerError(graph_id, None, f"{type(e).__name__}: {e}") from e


def make_scheduler_factory(
    session: aiohttp.ClientSession, config: "SchedulerConfig"
) -> SchedulerFactory:
    """
    Returns:
      A factory of :py:class:`HttpScheduler` objects using the credentials in
      ``config``.
    """
    auth = None
    if config.client_id is not None:
        token = config.access_token.get_secret_value() if config.access_token else ""
        auth = aiohttp.BasicAuth(config.client_id, token)

    def _factory(authorized_scopes: list[str]) -> Scheduler:
        return HttpScheduler(session, config.base_url, authorized_scopes, auth=auth)

    return _factory
