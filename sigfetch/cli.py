# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Command-line entry point.

Parses arguments, runs the request pipeline and streams the decoded
response body to stdout (or a file).  Errors are reported once, as
``Error: <message>`` on stderr.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import BinaryIO, TextIO

from sigfetch._version import __version__
from sigfetch.config import Context, FileConfig
from sigfetch.errors import FetchError, TransportError
from sigfetch.fetch import FetchOptions, create_request, format_request
from sigfetch.logging import configure_logging, verbosity_to_level
from sigfetch.request import HttpVersion
from sigfetch.transport import HttpxTransport, Response, Transport


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sigfetch",
        description="Make HTTP requests, optionally signed with AWS SigV4.",
    )
    parser.add_argument("url", help="The URL to make a request to")
    auth = parser.add_mutually_exclusive_group()
    auth.add_argument(
        "--aws-sigv4",
        metavar="REGION/SERVICE",
        help="Sign the request using AWS signature V4",
    )
    auth.add_argument(
        "--basic",
        metavar="USER:PASS",
        help="Use basic auth with the provided username and password",
    )
    auth.add_argument(
        "--bearer",
        metavar="TOKEN",
        help="Use bearer auth with the provided token",
    )
    body = parser.add_mutually_exclusive_group()
    body.add_argument(
        "-d",
        "--data",
        metavar="[@]VALUE",
        help="Send a request body; @path reads a file, @- reads stdin",
    )
    body.add_argument(
        "-f",
        "--form",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Send a URL-encoded form body",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print out the request info and exit",
    )
    parser.add_argument(
        "-H",
        "--header",
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="Append headers to the request",
    )
    parser.add_argument(
        "--http",
        choices=[v.value for v in HttpVersion],
        help="Force the use of an HTTP version",
    )
    content_type = parser.add_mutually_exclusive_group()
    content_type.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Set the content-type to application/json",
    )
    content_type.add_argument(
        "-x",
        "--xml",
        action="store_true",
        help="Set the content-type to application/xml",
    )
    parser.add_argument("-m", "--method", help="HTTP method to use")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        metavar="FILE",
        help="Write the response body to a file",
    )
    parser.add_argument("--proxy", help="Configure a proxy")
    parser.add_argument(
        "-q",
        "--query",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Append query parameters to the url",
    )
    parser.add_argument(
        "-s",
        "--silent",
        action="store_true",
        help="Avoid printing anything to stderr",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        help="Timeout in seconds applied to the entire request",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Verbosity of the command",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to config file (default: ~/.config/sigfetch/config.yaml)",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def options_from_args(args: argparse.Namespace) -> FetchOptions:
    return FetchOptions(
        url=args.url,
        method=args.method,
        headers=args.header,
        query=args.query,
        data=args.data,
        form=args.form,
        json=args.json,
        xml=args.xml,
        timeout=args.timeout,
        http=HttpVersion(args.http) if args.http else None,
        proxy=args.proxy,
        aws_sigv4=args.aws_sigv4,
        basic=args.basic,
        bearer=args.bearer,
        dry_run=args.dry_run,
    )


def write_status(stderr: TextIO, response: Response) -> None:
    """Print the status line and response headers."""
    stderr.write(f"{response.version} {response.status}\n")
    for name, value in response.headers:
        stderr.write(f"{name}: {value}\n")
    stderr.write("\n")


def write_output(reader: BinaryIO, path: Path) -> None:
    """Copy the response body into ``path``."""
    try:
        with path.open("wb") as f:
            shutil.copyfileobj(reader, f)
    except OSError as e:
        raise TransportError(f"writing output to '{path}': {e}") from e


def run(
    argv: list[str] | None = None,
    *,
    context: Context | None = None,
    transport: Transport | None = None,
    stdout: BinaryIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run the command.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:].
        context: Process context; detected when None.
        transport: Transport override, for tests.
        stdout: Binary stream for the response body.
        stderr: Text stream for status and errors.

    Returns:
        Exit code: 0 when the response status is 2xx or 3xx, else 1.
    """
    args = build_parser().parse_args(argv)
    out = stdout if stdout is not None else sys.stdout.buffer
    err = stderr if stderr is not None else sys.stderr

    configure_logging(verbosity_to_level(args.verbose, silent=args.silent))

    try:
        config = FileConfig.from_yaml(args.config)
        options = options_from_args(args).with_file_config(config)
        if context is None:
            context = Context.detect(config.connect_timeout)

        request = create_request(options, context)
        if options.dry_run:
            err.write(format_request(request))
            if request.body is not None:
                err.write("\n")
                err.write(request.body.materialize().decode(errors="replace"))
                err.write("\n")
            return 0

        if args.verbose > 1 and not args.silent:
            err.write(format_request(request) + "\n")
        if transport is None:
            transport = HttpxTransport(context, proxy=options.proxy)
        response = transport.send(request)

        with response:
            if args.verbose > 0 and not args.silent:
                write_status(err, response)
            with response.reader() as reader:
                if args.output is not None:
                    write_output(reader, args.output)
                else:
                    shutil.copyfileobj(reader, out)
                    out.flush()
            return 0 if response.is_success else 1
    except FetchError as e:
        logger.debug("Request failed", exc_info=True)
        err.write(f"Error: {e}\n")
        return 1


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
