# Command-line entry point.
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

import argparse
import asyncio
import logging
import sys
import typing as T

import aiohttp
import pydantic

import trygraph.data.config as config
import trygraph.project_scopes as project_scopes
import trygraph.utils.logging as tgu_logging
from trygraph.data.job import Job
from trygraph.errors import GraphSubmissionError
from trygraph.fetch import GraphFetcher
from trygraph.pushlog import PushlogClient
from trygraph.scheduler import make_scheduler_factory
from trygraph.submission import GraphSubmission, SubmissionResult
from trygraph.utils.logging.job_logger import JobLogger
from trygraph.utils.url import parse_url

logger = logging.getLogger(__name__)

argparser = argparse.ArgumentParser(description="task graph submission for pushes")
subcommands = argparser.add_subparsers(dest="command")


async def _submit(cfg: config.SubmitterConfig, job: Job, log: JobLogger) -> SubmissionResult:
    async with aiohttp.ClientSession() as session:
        submission = GraphSubmission(
            cfg.try_,
            PushlogClient(session),
            GraphFetcher(session),
            make_scheduler_factory(session, cfg.scheduler),
        )
        return await submission.run(job, log)


def do_submit(cfg: config.SubmitterConfig, args: argparse.Namespace) -> None:
    with args.job_file as job_file:
        job_text = job_file.read()
    try:
        job = Job.model_validate_json(job_text)
    except pydantic.ValidationError:
        logger.exception("invalid job description")
        sys.exit(1)

    try:
        result = asyncio.run(_submit(cfg, job, JobLogger(sys.stderr)))
    except GraphSubmissionError:
        logger.exception("submission of push %d failed", job.pushref.id)
        sys.exit(1)
    print(result.graph_id)


do_submit.parser = subcommands.add_parser(
    "submit",
    help="submit the task graph for a push"
)
do_submit.parser.add_argument(
    "job_file",
    help="JSON job description, defaults to standard input",
    nargs="?",
    type=argparse.FileType("r"),
    default="-",
)


def do_resolve_url(cfg: config.SubmitterConfig, args: argparse.Namespace) -> None:
    parts = parse_url(args.repo_url)
    print(
        project_scopes.url(
            cfg.try_,
            args.alias,
            dict(alias=args.alias, revision=args.revision, path=parts.path, host=parts.host),
        )
    )


do_resolve_url.parser = subcommands.add_parser(
    "resolve-url",
    help="print the graph URL of a revision"
)
do_resolve_url.parser.add_argument("alias", help="repository alias")
do_resolve_url.parser.add_argument("repo_url", help="repository URL")
do_resolve_url.parser.add_argument("revision", help="revision to build")


def main(argv: T.Sequence[str] | None = None) -> None:
    parsed = argparser.parse_args(argv)
    if not parsed.command:
        argparser.print_help()
        sys.exit(1)

    cfg = config.load_and_validate_config("submitter.toml", config.SubmitterConfig)
    tgu_logging.apply_logging_config(cfg.log)
    logger.debug("config loaded: %r", cfg)

    if parsed.command == "submit":
        subcommand = do_submit
    elif parsed.command == "resolve-url":
        subcommand = do_resolve_url
    else:
        raise ValueError(f"unexpected command {parsed.command}")

    try:
        subcommand(cfg, parsed)
    except GraphSubmissionError:
        logger.exception("%s failed", parsed.command)
        sys.exit(1)
