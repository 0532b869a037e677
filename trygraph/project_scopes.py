# Per-repository graph locations and scopes.
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
This module resolves the configured graph URLs and scopes of a repository.  See
:py:class:`trygraph.data.config.TryConfig` for the configuration format.
"""

import functools
import typing as T

import jinja2

from trygraph.errors import ConfigurationError

if T.TYPE_CHECKING:
    from trygraph.data.config import TryConfig

_env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False)


@functools.lru_cache(maxsize=128)
def _compile(template: str) -> jinja2.Template:
    return _env.from_string(template)


def render(template: str, variables: T.Mapping[str, T.Any]) -> str:
    """
    Render a configured template string.

    Raises:
      ConfigurationError: if the template is malformed or uses an unknown variable.
    """
    try:
        return _compile(template).render(variables)
    except jinja2.TemplateError as e:
        raise ConfigurationError(f"failed to render {template!r}: {e}") from e


def url(config: "TryConfig", alias: str, variables: T.Mapping[str, T.Any]) -> str:
    """
    Returns:
      The graph URL for the repository ``alias``, with ``variables`` substituted in.
    """
    template = config.default_url
    project = config.projects.get(alias)
    if project is not None and project.url:
        template = project.url
    return render(template, variables)


def error_url(config: "TryConfig", variables: T.Mapping[str, T.Any]) -> str:
    """
    Returns:
      The URL of the graph used to report a graph that failed to instantiate.
    """
    return render(config.error_task_url, variables)


def scopes(config: "TryConfig", alias: str) -> list[str]:
    """
    Returns:
      The scopes granted to graphs of the repository ``alias``, in configured order.
    """
    project = config.projects.get(alias)
    templates = config.default_scopes
    level = 1
    if project is not None:
        level = project.level
        if project.scopes is not None:
            templates = project.scopes
    return [render(scope, dict(alias=alias, level=level)) for scope in templates]
