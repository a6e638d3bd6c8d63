# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTTP request pipeline with AWS SigV4 signing and response decoding.

Builds a request from user intent, optionally signs it with AWS
Signature Version 4, sends it with ``httpx`` and exposes the response
body as a transparently decompressed byte stream.
"""

from sigfetch._version import __version__
from sigfetch.aws_sigv4 import Credentials, SigV4Spec, sign, sign_request
from sigfetch.body import Body, BodyKind
from sigfetch.config import Context, FileConfig
from sigfetch.decoder import (
    ContentEncoding,
    DecodingReader,
    open_decoder,
    select_encoding,
)
from sigfetch.errors import (
    BodyConflictError,
    ConfigError,
    DecodeError,
    FetchError,
    HeaderError,
    MethodError,
    SigV4ConfigError,
    TransportError,
    UrlError,
)
from sigfetch.fetch import FetchOptions, create_request, fetch, format_request
from sigfetch.headers import HeaderMap, parse_headers, parse_query
from sigfetch.request import HttpVersion, Request, RequestBuilder
from sigfetch.transport import HttpxTransport, Response, Transport


__all__ = [
    "Body",
    "BodyConflictError",
    "BodyKind",
    "ConfigError",
    "ContentEncoding",
    "Context",
    "Credentials",
    "DecodeError",
    "DecodingReader",
    "FetchError",
    "FetchOptions",
    "FileConfig",
    "HeaderError",
    "HeaderMap",
    "HttpVersion",
    "HttpxTransport",
    "MethodError",
    "Request",
    "RequestBuilder",
    "Response",
    "SigV4ConfigError",
    "SigV4Spec",
    "Transport",
    "TransportError",
    "UrlError",
    "__version__",
    "create_request",
    "fetch",
    "format_request",
    "open_decoder",
    "parse_headers",
    "parse_query",
    "select_encoding",
    "sign",
    "sign_request",
]
