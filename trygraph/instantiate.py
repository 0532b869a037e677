# Graph template instantiation.
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
This module turns graph templates into task graphs.

A graph template is a YAML document run through Jinja2 first.  Besides the variables
passed in by the caller, templates can use:

``now``
  The instantiation time, as an ISO-8601 UTC timestamp.

``as_slugid(label)``
  A fresh task ID for ``label``.  The same label yields the same ID within one
  instantiation, so tasks can refer to each other by label.

``"<duration>" | from_now``
  ``now`` moved ahead by a duration such as ``"1 day 6 hours"``.

The rendered document must be a mapping with a ``tasks`` list.  Timestamps in it are
kept as strings.
"""

import datetime
import re
import typing as T

import jinja2
import yaml

from trygraph.errors import TemplateInstantiationError
from trygraph.utils.ids import slugid

_DURATION_RE = re.compile(r"\s*(\d+)\s*([a-z]+)\s*", re.IGNORECASE)
_DURATION_UNITS = {
    "w": "weeks",
    "wk": "weeks",
    "week": "weeks",
    "d": "days",
    "day": "days",
    "h": "hours",
    "hr": "hours",
    "hour": "hours",
    "m": "minutes",
    "min": "minutes",
    "minute": "minutes",
    "s": "seconds",
    "sec": "seconds",
    "second": "seconds",
}


def _format_ts(ts: datetime.datetime) -> str:
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_duration(duration: str) -> datetime.timedelta:
    """
    Parse a duration such as ``"2 days 3 hours"`` into a :py:class:`datetime.timedelta`.

    Raises:
      ValueError: if ``duration`` is not a sequence of counts and known units.
    """
    delta = datetime.timedelta()
    pos = 0
    for match in _DURATION_RE.finditer(duration):
        if match.start() != pos:
            break
        count, unit = match.groups()
        unit = unit.lower()
        if unit not in _DURATION_UNITS and unit.endswith("s"):
            unit = unit[:-1]
        if unit not in _DURATION_UNITS:
            raise ValueError(f"unknown time unit {unit!r} in {duration!r}")
        delta += datetime.timedelta(**{_DURATION_UNITS[unit]: int(count)})
        pos = match.end()
    if pos != len(duration) or not duration.strip():
        raise ValueError(f"{duration!r} is not a valid duration")
    return delta


@jinja2.pass_context
def _from_now(context: jinja2.runtime.Context, duration: str) -> str:
    now = datetime.datetime.fromisoformat(context["now"])
    return _format_ts(now + parse_duration(duration))


_env = jinja2.Environment(undefined=jinja2.StrictUndefined, autoescape=False)
_env.filters["from_now"] = _from_now


class _GraphLoader(yaml.SafeLoader):
    """
    A safe loader that leaves timestamps as strings, so that graphs stay JSON-native.
    """

    yaml_implicit_resolvers = {
        first: [
            (tag, regexp) for (tag, regexp) in resolvers if tag != "tag:yaml.org,2002:timestamp"
        ]
        for (first, resolvers) in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }


def _import_scopes(tasks: list[T.Any]) -> list[str]:
    scopes = set[str]()
    for entry in tasks:
        task = entry.get("task", {}) if isinstance(entry, dict) else None
        if not isinstance(task, dict):
            raise TemplateInstantiationError("graph tasks must be mappings with a task")
        task_scopes = task.get("scopes", [])
        if not isinstance(task_scopes, list) or not all(
            isinstance(s, str) for s in task_scopes
        ):
            raise TemplateInstantiationError("task scopes must be a list of strings")
        scopes.update(task_scopes)
    return sorted(scopes)


def instantiate(template: str, variables: T.Mapping[str, T.Any]) -> dict[str, T.Any]:
    """
    Instantiate the graph ``template`` with ``variables``.

    If ``variables`` contains a true ``import_scopes``, the scopes of the resulting
    graph are the union of the scopes of all of its tasks.

    Returns:
      A freshly constructed graph.

    Raises:
      TemplateInstantiationError: if the template fails to render or does not produce a
                                  task graph.
    """
    now = datetime.datetime.now(datetime.UTC)
    labels = dict[str, str]()

    def as_slugid(label: str) -> str:
        if label not in labels:
            labels[label] = slugid()
        return labels[label]

    try:
        rendered = _env.from_string(template).render(
            dict(variables), now=_format_ts(now), as_slugid=as_slugid
        )
    except jinja2.TemplateSyntaxError as e:
        raise TemplateInstantiationError(
            f"template syntax error on line {e.lineno}: {e.message}"
        ) from e
    except Exception as e:
        # Expressions in pushed templates can fail in arbitrary ways.
        raise TemplateInstantiationError(
            f"failed to render template: {type(e).__name__}: {e}"
        ) from e

    try:
        graph = yaml.load(rendered, Loader=_GraphLoader)
    except yaml.YAMLError as e:
        raise TemplateInstantiationError(f"graph is not valid YAML: {e}") from e

    if not isinstance(graph, dict):
        raise TemplateInstantiationError("graph must be a mapping")
    tasks = graph.get("tasks")
    if not isinstance(tasks, list):
        raise TemplateInstantiationError("graph must contain a list of tasks")

    metadata = graph.setdefault("metadata", {})
    if not isinstance(metadata, dict):
        raise TemplateInstantiationError("graph metadata must be a mapping")
    for field in ("owner", "source"):
        if field in variables:
            metadata.setdefault(field, variables[field])

    if variables.get("import_scopes"):
        graph["scopes"] = _import_scopes(tasks)

    return graph
