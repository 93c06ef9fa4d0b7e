"""
Mirror job input and execution.

Reads "SOURCE DEST TAG" lines from a file or standard input and runs one
mirror job per line. Jobs are independent of each other.
"""

import logging
import os
import re
import sys
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from typing import Iterable, Iterator, NamedTuple

from .errors import ConfigurationError
from .mirror import mirror_image

logger = logging.getLogger(__name__)

# Three whitespace separated tokens, unless the line is a # or // comment
LINE_RE = re.compile(r'^(?!\s*(?:#|//))\s*(\S+)\s+(\S+)\s+(\S+)')


class MirrorJob(NamedTuple):
    """One input line: mirror SOURCE:TAG to DEST."""

    source: str
    dest: str
    tag: str


def parse_line(line: str) -> MirrorJob | None:
    """
    Parse one input line.

    Returns:
        MirrorJob, or None for comments, blank and malformed lines

    Examples:
        >>> parse_line("quay.io/coreos/etcd rancher/mirrored-coreos-etcd v3.4.13")
        MirrorJob(source='quay.io/coreos/etcd', dest='rancher/mirrored-coreos-etcd', tag='v3.4.13')
        >>> parse_line("# amd64/foo bar/baz v1") is None
        True
    """
    match = LINE_RE.match(line)
    if not match:
        return None
    return MirrorJob(*match.groups())


def read_jobs(lines: Iterable[str]) -> Iterator[MirrorJob]:
    """Yield a MirrorJob for every line that is not a comment or malformed."""
    for line in lines:
        line = line.rstrip("\n")
        job = parse_line(line)
        if job is None:
            logger.debug(f"Skipping line: {line}")
            continue
        logger.debug(f"Line: {line}")
        yield job


@contextmanager
def open_input(path: str | None = None):
    """
    Open the job input: a named file, or standard input when path is None.

    Undecodable bytes are replaced, so they only affect their own line.

    Raises:
        ConfigurationError: if a named file does not exist
    """
    if not path:
        logger.info("Reading SOURCE DESTINATION TAG from /dev/stdin")
        if hasattr(sys.stdin, "reconfigure"):
            sys.stdin.reconfigure(errors="replace")
        yield sys.stdin
        return

    if not os.path.isfile(path):
        raise ConfigurationError(f"File {path} does not exist!")

    logger.info(f"Reading SOURCE DESTINATION TAG from {path}")
    with open(path, encoding="utf-8", errors="replace") as infile:
        yield infile


def run_jobs(jobs: Iterable[MirrorJob], workers: int = 1, mirror=mirror_image, **kwargs) -> list:
    """
    Run mirror jobs and collect their results in input order.

    Args:
        jobs: Jobs to run
        workers: Number of jobs to run concurrently
        mirror: Function called as mirror(source, dest, tag, **kwargs)
        **kwargs: Passed through to mirror (transport, publisher, cfg)

    Returns:
        List of JobResult, one per job
    """
    def run(job):
        logger.info(f"Mirroring {job.source} => {job.dest}:{job.tag}")
        result = mirror(job.source, job.dest, job.tag, **kwargs)
        logger.info(result.summary())
        return result

    if workers <= 1:
        return [run(job) for job in jobs]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(run, jobs))
