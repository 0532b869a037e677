# Push log client.
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
This module contains a client for the Mercurial push log (``json-pushes``) API.
"""

import asyncio
import typing as T
from abc import ABC, abstractmethod

import aiohttp
import pydantic

from trygraph.constants import PUSHLOG_TIMEOUT
from trygraph.data.job import Changeset, Push
from trygraph.errors import PushLookupError
from trygraph.utils.url import fuse_url


class _PushEntry(pydantic.BaseModel):
    user: str
    changesets: list[Changeset]


class _PushesResponse(pydantic.BaseModel):
    pushes: dict[int, _PushEntry]


class Pushlog(ABC):
    """
    Source of push metadata.
    """

    @abstractmethod
    async def get_one(self, repo_url: str, push_id: int) -> Push:
        """
        Look up a single push.

        Raises:
          PushLookupError: if the push could not be retrieved.
        """


class PushlogClient(Pushlog):
    """
    Looks pushes up via ``json-pushes`` on the web frontend of the repository.
    """

    def __init__(
        self, session: aiohttp.ClientSession, *, timeout: float = PUSHLOG_TIMEOUT
    ) -> None:
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def get_one(self, repo_url: str, push_id: int) -> Push:
        # The push log range is exclusive on the start.
        params = dict(version="2", full="1", startID=str(push_id - 1), endID=str(push_id))
        try:
            async with self.session.get(
                fuse_url(repo_url, "json-pushes/"), params=params, timeout=self.timeout
            ) as resp:
                if resp.status >= 400:
                    raise PushLookupError(repo_url, push_id, f"HTTP {resp.status} {resp.reason}")
                body: T.Any = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PushLookupError(repo_url, push_id, f"{type(e).__name__}: {e}") from e

        try:
            pushes = _PushesResponse.model_validate(body).pushes
        except pydantic.ValidationError as e:
            raise PushLookupError(repo_url, push_id, f"malformed response: {e}") from e

        entry = pushes.get(push_id)
        if entry is None:
            raise PushLookupError(repo_url, push_id, "no such push")
        if not entry.changesets:
            raise PushLookupError(repo_url, push_id, "push has no changesets")

        return Push(id=push_id, user=entry.user, changesets=entry.changesets)
