# Job and push data models.
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
This module contains the data a submission job consumes.
"""

from pydantic import BaseModel, ConfigDict, Field


class Repository(BaseModel):
    """
    A repository pushes are received for.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    """Public URL of the repository, e.g. ``https://hg.mozilla.org/try/``."""

    alias: str
    """Short name of the repository, used to look up its configuration."""


class PushRef(BaseModel):
    """
    Reference to a push in the push log of a repository.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    """Push log ID of the push."""


class Job(BaseModel):
    """
    Input of one submission run.
    """

    model_config = ConfigDict(frozen=True)

    revision_hash: str
    """Opaque hash identifying the result set this push belongs to."""

    pushref: PushRef
    repo: Repository


class Changeset(BaseModel):
    """
    A single commit within a push.  Fields other than the ones below are ignored.
    """

    model_config = ConfigDict(frozen=True)

    node: str
    """Revision ID of the changeset."""

    desc: str
    """Commit message."""


class Push(BaseModel):
    """
    A set of changesets pushed together.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    user: str
    """Who pushed."""

    changesets: list[Changeset] = Field(min_length=1)
    """Changesets in push order.  The last one is the tip of the push."""

    @property
    def tip(self) -> Changeset:
        """The changeset the push left the repository at."""
        return self.changesets[-1]
