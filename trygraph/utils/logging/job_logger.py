# Logger for job-visible output.
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
This module contains the logger submission runs write their progress into.
"""

import traceback
import typing as T
from datetime import datetime, timezone

from . import LOG_TS_FORMAT


class JobLogger:
    """
    A logger for the output of a single submission run.  Whoever runs the job decides
    where that output goes; the command-line runner sends it to standard error.

    Messages are formatted printf-style, like stdlib :py:mod:`logging`::

        log.log("Fetching url (%s) for %s push id %d", url, alias, push_id)
    """

    def __init__(self, out_stream: T.TextIO) -> None:
        """
        Args:
          out_stream: Where to write the formatted output.
        """
        self.out_stream = out_stream

    def _write(
        self, level: T.Literal["INFO", "ERROR"], message: str, args: tuple[T.Any, ...]
    ) -> None:
        if args:
            message = message % args
        now_ts = datetime.now(timezone.utc)
        print(
            f"[trygraph @ {now_ts.strftime(LOG_TS_FORMAT)} {level:>5}] {message}",
            file=self.out_stream,
        )

    def log(self, message: str, *args: T.Any) -> None:
        """Logs an informative message."""
        self._write("INFO", message, args)

    def error(self, message: str, *args: T.Any) -> None:
        """Logs an error message."""
        self._write("ERROR", message, args)

    def exception(self, message: str, *args: T.Any) -> None:
        """Logs ``message`` as an error, accompanied by the current exception."""
        self._write("ERROR", message, args)
        traceback.print_exc(file=self.out_stream)
