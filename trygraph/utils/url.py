# URL helpers.
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
This module contains functions for taking apart and putting together URLs.
"""

import posixpath
import typing as T
from urllib.parse import urlsplit, urlunsplit


class UrlParts(T.NamedTuple):
    """A repository URL, split for substitution into URL templates."""

    host: str
    """Scheme and network location, e.g. ``https://hg.mozilla.org``."""

    path: str
    """Normalized path without a trailing slash, or ``""`` for the root."""


def parse_url(url: str) -> UrlParts:
    """
    Parses given url into path and host parts::

        parse_url("https://hg.mozilla.org/try/")
        # => UrlParts(host="https://hg.mozilla.org", path="/try")

    The path is normalized as if it were an absolute filesystem path, so that
    ``host + path`` never contains doubled or trailing slashes.  Credentials, query
    and fragment are dropped.  Scheme-relative URLs (``//host/path``) are taken to be
    ``http``.

    Raises:
      ValueError: if ``url`` has no network location.
    """
    parsed = urlsplit(url)
    if not parsed.hostname:
        raise ValueError(f"{url!r} has no host")

    path = posixpath.normpath("/" + parsed.path.lstrip("/"))
    if path == "/":
        path = ""

    netloc = parsed.hostname
    if ":" in netloc:
        # IPv6 literal.
        netloc = f"[{netloc}]"
    if parsed.port is not None:
        netloc = f"{netloc}:{parsed.port}"

    return UrlParts(host=urlunsplit((parsed.scheme or "http", netloc, "", "", "")), path=path)


def fuse_url(base: str, *parts: str) -> str:
    """
    Appends ``parts`` to ``base`` such that there is exactly one slash between each of
    them.  A trailing slash on the last part is kept.
    """
    if not parts:
        return base

    pieces = [base.rstrip("/")]
    pieces.extend(part.strip("/") for part in parts[:-1])
    pieces.append(parts[-1].lstrip("/"))
    return "/".join(pieces)
