#!/usr/bin/env python3
"""
dcp - copy files while computing their digests.

Command-line front end: parses arguments and environment, then copies while
writing a result file that a later run can use as its index (``-i``).
"""

import argparse
import logging
import sys
from pathlib import Path

from . import __version__
from .config import RunConfig
from .engine import run_copy
from .exceptions import ConfigError, DcpError
from .sinks import ResultFileSink, RunMetadata, open_result_stream

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """
    Configure logging for the application.

    Parameters
    ----------
    verbose : bool
        Report every copied item
    debug : bool
        Enable debug output
    """
    if debug:
        log_level = logging.DEBUG
    elif verbose:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return value


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        prog="dcp",
        description="Copy files and directories while computing their digests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  DCP_OWNER, DCP_GROUP, DCP_CACHE_SIZE   defaults for -u, -g and -c

Examples:
  %(prog)s --sha256 footage/ /mnt/backup              # copy, writing dcp.out
  %(prog)s -i dcp.out -o check.out footage/ /mnt/backup  # report changes since dcp.out
  %(prog)s -a -c 8M -u media -g media card01 /mnt/raid
        """,
    )

    parser.add_argument(
        "paths",
        nargs="*",
        metavar="PATH",
        help="Source files or directories followed by the destination",
    )

    digests = parser.add_argument_group("digests (default: md5)")
    digests.add_argument("--md5", action="store_true", help="Compute MD5")
    digests.add_argument("--sha1", action="store_true", help="Compute SHA-1")
    digests.add_argument("--sha256", action="store_true", help="Compute SHA-256")
    digests.add_argument("--sha512", action="store_true", help="Compute SHA-512")
    digests.add_argument(
        "--xxh64", action="store_true", help="Also compute xxHash64 (non-cryptographic)"
    )
    digests.add_argument(
        "-a", "--all", action="store_true", help="Compute MD5, SHA-1, SHA-256 and SHA-512"
    )

    parser.add_argument(
        "-i",
        "--input",
        dest="inputs",
        action="append",
        type=Path,
        metavar="FILE",
        help="Result file of a prior run to detect changes against (repeatable)",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        metavar="FILE",
        help="Where to write results (default: first free dcp.out, dcp(1).out, ...)",
    )
    parser.add_argument("-u", "--owner", help="User that will own the copies")
    parser.add_argument("-g", "--group", help="Group that will own the copies")
    parser.add_argument(
        "-c",
        "--cache-size",
        help="Copy buffer size in bytes, k/m/g suffixes allowed; 0x is hex and "
        "a leading 0 is octal (default: 32768)",
    )
    parser.add_argument(
        "-j",
        "--workers",
        type=_positive_int,
        default=1,
        help="Number of files copied concurrently (default: 1)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Report every copied item"
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Returns
    -------
    int
        Exit code: 0 if every item was copied, 1 otherwise, 130 if interrupted
    """
    args = parse_arguments(argv)
    setup_logging(args.verbose, args.debug)
    command = sys.argv if argv is None else ["dcp", *argv]

    try:
        config = RunConfig.from_args(args)
        stream, output_path = open_result_stream(config.output)
        metadata = RunMetadata(
            version=__version__,
            command=list(command),
            algorithms=config.options.algorithms,
            sources=[str(s) for s in config.sources],
            destination=str(config.destination),
            output=str(output_path),
            owner=config.owner_name,
            group=config.group_name,
        )

        with stream:
            sink = ResultFileSink(stream, metadata)
            summary = run_copy(
                config.sources, config.destination, config.options, sink
            )

        if summary.success:
            logger.info(f"All {summary.total} item(s) copied successfully")
            return 0

        logger.error(
            f"{summary.failed} of {summary.total} item(s) failed "
            f"({summary.failure_breakdown()})"
        )
        return 1

    except KeyboardInterrupt:
        logger.error("Operation interrupted by user")
        return 130
    except ConfigError as e:
        logger.error(f"Invalid parameter: {e}")
        return 1
    except DcpError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
