# Graph template fetching.
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
This module contains the fetcher for graph templates.

Graph templates usually live in the repository that was pushed to, and are served by
the same web frontend that has just accepted the push.  That frontend is sometimes slow
to catch up, so fetches are retried a few times with a linear backoff.
"""

import asyncio
import logging
import typing as T

import aiohttp
import attr

from trygraph.constants import GRAPH_FETCH_TIMEOUT, GRAPH_RETRY_INTERVAL, MAX_RETRIES
from trygraph.errors import FetchExhaustedError

if T.TYPE_CHECKING:
    from trygraph.utils.logging.job_logger import JobLogger

logger = logging.getLogger(__name__)


@attr.frozen
class FetchOk:
    """An attempt that retrieved the template."""

    text: str


@attr.frozen
class TransientFailure:
    """An attempt that failed in a way that may go away by trying again."""

    reason: str


FetchResult: T.TypeAlias = FetchOk | TransientFailure
"""Outcome of a single fetch attempt."""


class GraphFetcher:
    """
    Fetches graph templates over HTTP, retrying failed attempts.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        retries: int = MAX_RETRIES,
        interval: float = GRAPH_RETRY_INTERVAL,
        timeout: float = GRAPH_FETCH_TIMEOUT,
        sleep: T.Callable[[float], T.Awaitable[T.Any]] = asyncio.sleep,
    ) -> None:
        """
        Args:
          session: Client session to issue requests from.
          retries: Number of attempts to make before giving up.
          interval: Base backoff interval, in seconds.
          timeout: Timeout of each attempt, in seconds.
          sleep: Coroutine function used to wait between attempts.
        """
        self.session = session
        self.retries = retries
        self.interval = interval
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._sleep = sleep

    async def attempt(self, url: str) -> FetchResult:
        """Make a single attempt at fetching ``url``."""
        try:
            async with self.session.get(url, timeout=self.timeout) as resp:
                text = await resp.text(errors="replace")
                if resp.status >= 400:
                    return TransientFailure(f"HTTP {resp.status} {resp.reason}")
                return FetchOk(text)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return TransientFailure(f"{type(e).__name__}: {e}")

    async def fetch(self, url: str, log: "JobLogger") -> str:
        """
        Fetch the template at ``url``.  After the ``n``-th failed attempt, waits
        ``n * interval`` seconds before trying again.

        Returns:
          The body of the first successful response.

        Raises:
          FetchExhaustedError: if all attempts failed.
        """
        if not url:
            raise ValueError("url is required")

        log.log("fetching graph %s", url)
        reasons = list[str]()
        for attempt in range(1, self.retries + 1):
            result = await self.attempt(url)
            if isinstance(result, FetchOk):
                return result.text

            reasons.append(result.reason)
            log.error("Error fetching graph %s (attempt %d): %s", url, attempt, result.reason)
            logger.warning("fetch attempt %d of %s failed: %s", attempt, url, result.reason)
            if attempt < self.retries:
                await self._sleep(attempt * self.interval)

        raise FetchExhaustedError(url, reasons)
