# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Request pipeline: build, optionally sign, send.

The stages run strictly in order and every validation error is raised
before the transport is touched:

    RequestBuilder -> SigV4 signer -> Transport -> Decoder

No stage retries; the first error ends the invocation.
"""

from __future__ import annotations

import logging
import sys
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from sigfetch.aws_sigv4 import SigV4Spec, sign_request
from sigfetch.body import Body
from sigfetch.config import (
    Context,
    FileConfig,
    first_not_none,
    load_dotenv_files,
)
from sigfetch.errors import AuthError
from sigfetch.headers import parse_query
from sigfetch.logging import SecretFilter
from sigfetch.request import (
    HttpVersion,
    Request,
    RequestBuilder,
    basic_authorization,
    bearer_authorization,
    parse_url,
)
from sigfetch.transport import HttpxTransport, Response, Transport


logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
XML_CONTENT_TYPE = "application/xml"


@dataclass
class FetchOptions:
    """Everything the command-line layer hands to the pipeline.

    Attributes:
        url: URL as typed by the user.
        method: HTTP method; None means GET.
        headers: Raw ``name: value`` strings.
        query: Raw ``key=value`` strings.
        data: Raw body, ``@path`` to read a file, or ``-``/``@-`` for stdin.
        form: Raw ``key=value`` form fields; sent URL-encoded.
        json: Set Content-Type to application/json.
        xml: Set Content-Type to application/xml.
        timeout: Total timeout in seconds.
        http: HTTP version pin.
        proxy: Proxy URL.
        aws_sigv4: ``REGION/SERVICE`` to sign the request for.
        basic: ``USER:PASS`` for basic auth.
        bearer: Bearer token.
        dry_run: Build (and sign) the request without sending it.
    """

    url: str
    method: str | None = None
    headers: list[str] = field(default_factory=list)
    query: list[str] = field(default_factory=list)
    data: str | None = None
    form: list[str] = field(default_factory=list)
    json: bool = False
    xml: bool = False
    timeout: float | None = None
    http: HttpVersion | None = None
    proxy: str | None = None
    aws_sigv4: str | None = None
    basic: str | None = None
    bearer: str | None = None
    dry_run: bool = False

    def auth_flags(self) -> list[str]:
        """Return the flags of the authentication options that are set."""
        flags = {
            "--aws-sigv4": self.aws_sigv4,
            "--basic": self.basic,
            "--bearer": self.bearer,
        }
        return [flag for flag, value in flags.items() if value is not None]

    def with_file_config(self, config: FileConfig) -> FetchOptions:
        """Fill unset options from the configuration file.

        Host-specific entries apply to the request's host.  Header and
        query lists from the file come before the command-line ones.
        """
        host = urllib.parse.urlsplit(parse_url(self.url)).hostname or ""
        defaults = config.for_host(host)
        # Authentication options are taken as a group from one source
        auth = self if self.auth_flags() else defaults
        return FetchOptions(
            url=self.url,
            method=self.method,
            headers=[*defaults.headers, *self.headers],
            query=[*defaults.query, *self.query],
            data=self.data,
            form=self.form,
            json=self.json,
            xml=self.xml,
            timeout=first_not_none(self.timeout, defaults.timeout),
            http=first_not_none(self.http, defaults.http),
            proxy=first_not_none(self.proxy, defaults.proxy),
            aws_sigv4=auth.aws_sigv4,
            basic=auth.basic,
            bearer=auth.bearer,
            dry_run=self.dry_run,
        )


def body_from_options(options: FetchOptions) -> Body | None:
    """Create the request body from ``--data`` or ``--form``.

    ``@path`` reads a file as a sized stream, ``-`` or ``@-`` streams stdin with
    unknown length, anything else is sent as-is.
    """
    if options.form:
        return Body.from_form(parse_query(options.form))
    if options.data is None:
        return None
    if options.data in ("-", "@-"):
        return Body.from_stream(sys.stdin.buffer)
    if options.data.startswith("@"):
        return Body.from_file(Path(options.data[1:]))
    return Body.from_text(options.data)


def content_type_from_options(options: FetchOptions) -> str | None:
    if options.json:
        return JSON_CONTENT_TYPE
    if options.xml:
        return XML_CONTENT_TYPE
    return None


def authorization_from_options(options: FetchOptions) -> str | None:
    """Return the ``Authorization`` value for basic or bearer auth.

    The credentials and the header value are registered with
    :class:`SecretFilter` so they never reach the logs.

    Raises:
        AuthError: If more than one authentication option is set, or the
            value is malformed.
    """
    flags = options.auth_flags()
    if len(flags) > 1:
        raise AuthError(f"{flags[1]} cannot be used with {flags[0]}")

    if options.basic is not None:
        _, _, password = options.basic.partition(":")
        SecretFilter.register_secret(password)
        value = basic_authorization(options.basic)
    elif options.bearer is not None:
        SecretFilter.register_secret(options.bearer)
        value = bearer_authorization(options.bearer)
    else:
        return None
    SecretFilter.register_secret(value)
    return value


def create_request(
    options: FetchOptions,
    context: Context,
    *,
    environ: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> Request:
    """Build and, when requested, authenticate the request.

    The authentication options, SigV4 specifier and credentials are
    checked here, so a bad configuration never reaches the network.

    Raises:
        FetchError: Any builder, authentication or signer validation
            error.
    """
    authorization = authorization_from_options(options)
    builder = (
        RequestBuilder(options.url, user_agent=context.user_agent)
        .with_method(options.method)
        .with_headers(options.headers)
        .with_query(options.query)
        .with_timeout(options.timeout)
        .with_version(options.http)
        .with_content_type(content_type_from_options(options))
        .with_authorization(authorization)
    )

    spec = SigV4Spec.parse(options.aws_sigv4) if options.aws_sigv4 else None

    body = body_from_options(options)
    try:
        request = builder.with_body(body).build()
    except Exception:
        if body is not None:
            body.close()
        raise

    if spec is not None:
        if environ is None:
            load_dotenv_files()
        sign_request(request, spec, environ=environ, now=now)
    return request


def fetch(
    options: FetchOptions,
    context: Context,
    transport: Transport | None = None,
) -> Response:
    """Run the whole pipeline and return the response.

    Args:
        options: Caller inputs.
        context: Process context.
        transport: Transport to send with; defaults to ``httpx``.

    Returns:
        The response.  Read the decoded body with ``response.reader()``.
    """
    request = create_request(options, context)
    if transport is None:
        transport = HttpxTransport(context, proxy=options.proxy)
    return transport.send(request)


def format_request(request: Request) -> str:
    """Render the request line and headers as text.

    Used by dry runs and verbose output.
    """
    parts = urllib.parse.urlsplit(request.url)
    target = parts.path or "/"
    if parts.query:
        target = f"{target}?{parts.query}"
    version = "HTTP/2" if request.version is HttpVersion.HTTP2 else "HTTP/1.1"
    lines = [f"{request.method} {target} {version}"]
    if "Host" not in request.headers:
        lines.append(f"Host: {request.authority}")
    lines.extend(f"{name}: {value}" for name, value in request.headers)
    return "\n".join(lines) + "\n"
