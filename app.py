"""
Command-line entry point for the multi-architecture image mirror.

Reads "SOURCE DESTINATION TAG" lines from a file, or from standard input when
no file is given, and mirrors each tag. Lines starting with # or // are
comments.

Example input:
    # source                 destination                    tag
    quay.io/coreos/etcd      rancher/mirrored-coreos-etcd   v3.4.13
    library/busybox          rancher/mirrored-busybox       1.36

Environment Variables:
    LOG_LEVEL, DEFAULT_REGISTRY, DEST_ORG_OVERRIDE, ARCH_LIST, DOCKER_TOKEN,
    DOCKER_HUB_API_URL, DESCRIPTION_REGISTRY, MIRROR_PROJECT_URL,
    SKOPEO_BIN, DOCKER_BIN, COMMAND_TIMEOUT, HTTP_TIMEOUT

Example:
    $ LOG_LEVEL=DEBUG python app.py images-list
    $ echo "busybox rancher/mirrored-busybox 1.36" | python app.py --arch amd64 arm64
"""

import logging
import sys
from argparse import ArgumentParser

from image_mirror.config import Config, parse_arch_list
from image_mirror.description import DescriptionPublisher
from image_mirror.errors import ConfigurationError
from image_mirror.jobs import open_input, read_jobs, run_jobs
from image_mirror.transport import RegistryTransport

logger = logging.getLogger(__name__)


def get_args(argv):
    """Return parsed argument namespace object."""
    parser = ArgumentParser(prog="image-mirror",
                            description="Mirror multi-architecture images between registries.")
    parser.add_argument('-v', '--verbose',
                        dest='verbose', action='store_true', default=False,
                        help='Enable debug logging (overrides LOG_LEVEL).')
    parser.add_argument('--arch', dest='arch', nargs='+', default=None, metavar='ARCH',
                        help='Architectures to mirror (overrides ARCH_LIST).')
    parser.add_argument('--workers', dest='workers', type=int, default=1,
                        help='Number of jobs to run concurrently.')
    parser.add_argument('--dry-run', dest='dry_run', action='store_true', default=False,
                        help='Inspect registries but only log copy and publish commands.')
    parser.add_argument('infile', nargs='?', default=None, metavar='INPUT',
                        help='File of "SOURCE DEST TAG" lines (default: standard input).')
    return parser.parse_args(args=argv)


def main(argv=None):
    """Main entry point; returns the process exit status."""
    args = get_args(sys.argv[1:] if argv is None else argv)
    cfg = Config()
    if args.arch:
        cfg.ARCH_LIST = parse_arch_list(" ".join(args.arch))

    # Configure logging
    logging.basicConfig(
        level="DEBUG" if args.verbose else cfg.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info(f"Configuration: {cfg}")

    transport = RegistryTransport(cfg, dry_run=args.dry_run)
    publisher = DescriptionPublisher(cfg, dry_run=args.dry_run)

    try:
        with open_input(args.infile) as infile:
            results = run_jobs(read_jobs(infile), workers=args.workers,
                               transport=transport, publisher=publisher, cfg=cfg)
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    failed = [r for r in results if not r.ok]
    logger.info(f"Mirrored {len(results) - len(failed)}/{len(results)} jobs")
    for result in failed:
        logger.error(f"Failed: {result.summary()}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
