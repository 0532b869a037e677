# Configuration file models
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
Data models and validation schemas for configuration files.
"""

import logging
import os
import os.path as path
import sys
from typing import TypeVar

import toml
from pydantic import BaseModel, Field, SecretStr, ValidationError

M = TypeVar("M", bound=BaseModel)

logger = logging.getLogger(__name__)


class LoggingConfig(BaseModel):
    """
    Common logging configuration.
    """

    debug: bool = Field(default=False)
    """
    If ``true``, enables logging the debug level.  This can be extremely verbose.
    """


class TryProject(BaseModel):
    """
    Per-repository overrides of the graph location and granted scopes.
    """

    url: str | None = Field(default=None)
    """
    Template of the graph URL for this repository.  If missing,
    :py:attr:`TryConfig.default_url` is used.
    """

    scopes: list[str] | None = Field(default=None)
    """
    Scope templates granted to graphs of this repository.  If missing,
    :py:attr:`TryConfig.default_scopes` are used.
    """

    level: int = Field(default=1, ge=1)
    """
    Trust level of the repository.  Available to scope templates as ``level``.
    """


class TryConfig(BaseModel):
    """
    Describes where graph templates live and what they are allowed to do.

    All URLs are Jinja2_ templates rendered with the variables ``alias``, ``revision``,
    ``path`` and ``host``.  For a push to revision ``abc`` of
    ``https://hg.mozilla.org/try/`` aliased ``try``, ``host`` is
    ``https://hg.mozilla.org`` and ``path`` is ``/try``, so a typical template is::

        {{host}}{{path}}/raw-file/{{revision}}/testing/taskcluster/tasks/decision/try.yml

    .. _Jinja2: https://jinja.palletsprojects.com/
    """

    default_url: str
    """Template of the graph URL of repositories without their own ``url``."""

    error_task_url: str
    """
    Template of the URL of the error graph.  The error graph is submitted in place of a
    graph that failed to instantiate, and receives the failure as the ``error``
    variable.
    """

    default_scopes: list[str] = Field(default_factory=list)
    """
    Scope templates for repositories without their own ``scopes``.  Rendered with
    ``alias`` and ``level``.
    """

    projects: dict[str, TryProject] = Field(default_factory=dict)
    """
    Maps repository aliases to their overrides.
    """


class SchedulerConfig(BaseModel):
    """
    Location of, and credentials for, the task scheduler.
    """

    base_url: str
    """URL under which the scheduler API is exposed."""

    client_id: str | None = Field(default=None)
    """Client ID to submit task graphs as.  If missing, requests are unauthenticated."""

    access_token: SecretStr | None = Field(default=None)
    """Access token matching :py:attr:`client_id`."""


class SubmitterConfig(BaseModel):
    """
    Configuration model for ``trygraph-submit``.
    """

    log: LoggingConfig = Field(default_factory=LoggingConfig)
    """
    Logger configuration.  See :py:class:`LoggingConfig`.
    """

    try_: TryConfig = Field(alias="try")
    """
    Graph locations and scopes.  Named ``try`` in the configuration file.  See
    :py:class:`TryConfig`.
    """

    scheduler: SchedulerConfig
    """
    Where to submit graphs.  See :py:class:`SchedulerConfig`.
    """


def load_and_validate_config(config_file: str, model: type[M]) -> M:
    """
    Validate and load a config file as the given model.

    Args:
      config_file: Filename to open in the config directory
      model: A Pydantic model by which to validate the loaded config

    Returns:
      A parsed config.

    Raises:
      SystemExit: if configuration parsing fails.  Exit code 1.
    """

    config_dir = os.getenv("TRYGRAPH_CFG_DIR") or "/etc/trygraph"

    try:
        with open(path.join(config_dir, config_file), "r") as config:
            return model.model_validate(toml.load(config))
    except (ValidationError, toml.TomlDecodeError):
        logger.exception("failed to parse config")
        sys.exit(1)
    except Exception:
        logger.exception("failed to load config")
        sys.exit(1)


def parse_config(text: str, model: type[M]) -> M:
    """Parse configuration file contents ``text`` as the given model."""
    return model.model_validate(toml.loads(text))
