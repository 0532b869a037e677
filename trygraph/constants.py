# Tunables shared across the submitter.
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
This module contains constants that form the de-facto contract between the submitter
and the services it talks to.
"""

MAX_RETRIES = 2
"""How many times a graph template fetch is attempted before giving up."""

GRAPH_RETRY_INTERVAL = 5.0
"""
Base backoff interval, in seconds.  After the ``n``-th failed attempt, the fetcher
waits ``n * GRAPH_RETRY_INTERVAL`` seconds.
"""

GRAPH_FETCH_TIMEOUT = 30.0
"""Timeout of a single graph template fetch attempt, in seconds."""

PUSHLOG_TIMEOUT = 30.0
"""Timeout of a push-log lookup, in seconds."""

SCHEDULER_TIMEOUT = 60.0
"""Timeout of a task graph submission, in seconds."""
