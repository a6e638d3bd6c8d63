# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""AWS Signature Version 4 request signing.

Signs a built :class:`~sigfetch.request.Request` in place by adding the
``x-amz-date``, ``x-amz-content-sha256`` (S3 only) and ``Authorization``
headers.  The algorithm follows the AWS documentation byte for byte:

1. Resolve the payload hash.
2. Build the canonical request (method, path, query, headers, payload).
3. Build the string to sign from the canonical request hash.
4. Derive the signing key with an HMAC-SHA256 chain and sign.

Nothing is cached between requests.  Credentials come from the
environment and are registered with the log redaction filter before use.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
import urllib.parse
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from sigfetch.body import BodyKind
from sigfetch.errors import SigV4ConfigError
from sigfetch.logging import SecretFilter
from sigfetch.request import Request, url_authority


logger = logging.getLogger(__name__)

ALGORITHM = "AWS4-HMAC-SHA256"

UNSIGNED_PAYLOAD = "UNSIGNED-PAYLOAD"

HEADER_CONTENT_SHA256 = "x-amz-content-sha256"
HEADER_DATE = "x-amz-date"

ENV_ACCESS_KEY = "AWS_ACCESS_KEY_ID"
ENV_SECRET_KEY = "AWS_SECRET_ACCESS_KEY"

_DATETIME_FORMAT = "%Y%m%dT%H%M%SZ"

_SHA256_EMPTY = hashlib.sha256(b"").hexdigest()

_AWS_UNRESERVED = frozenset(
    b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_.~"
)

# Headers that intermediaries may rewrite, so they are never signed
_UNSIGNED_HEADERS = frozenset({"authorization", "content-length", "user-agent"})


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SigV4Spec:
    """Region and service to sign for.

    Attributes:
        region: AWS region, e.g. ``us-east-1``.
        service: AWS service name, e.g. ``s3``.
    """

    region: str
    service: str

    @classmethod
    def parse(cls, raw: str) -> SigV4Spec:
        """Parse a ``"REGION/SERVICE"`` specifier.

        Raises:
            SigV4ConfigError: If the separator is missing or a part is empty.
        """
        region, sep, service = raw.partition("/")
        region = region.strip()
        service = service.strip()
        if not sep or not region or not service:
            raise SigV4ConfigError(
                f"aws-sigv4: format must be 'REGION/SERVICE', got '{raw}'"
            )
        return cls(region=region, service=service)


@dataclass(frozen=True)
class Credentials:
    """AWS access key pair, held only while signing."""

    access_key: str
    secret_key: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Credentials:
        """Read the key pair from the environment.

        Raises:
            SigV4ConfigError: Naming the first missing variable.
        """
        env = os.environ if environ is None else environ
        values: list[str] = []
        for var in (ENV_ACCESS_KEY, ENV_SECRET_KEY):
            value = env.get(var, "")
            if not value:
                raise SigV4ConfigError(f"aws-sigv4: {var} must be provided")
            values.append(value)
        return cls(access_key=values[0], secret_key=values[1])

    def __repr__(self) -> str:
        return "Credentials(access_key=..., secret_key=...)"


# ---------------------------------------------------------------------------
# URI encoding (AWS-specific RFC 3986 subset)
# ---------------------------------------------------------------------------


def uri_encode(value: str, *, encode_slash: bool = True) -> str:
    """URI-encode a value using AWS's rules.

    - Unreserved characters are not encoded: A-Z, a-z, 0-9, -, _, ., ~
    - Every other UTF-8 byte is percent-encoded as %XX (uppercase hex)
    - Forward slashes (/) are optionally preserved

    Args:
        value: String to encode.
        encode_slash: If True, encode '/'; if False, preserve '/'.

    Returns:
        URI-encoded string.
    """
    result: list[str] = []
    for byte in value.encode("utf-8"):
        if byte in _AWS_UNRESERVED or (byte == 0x2F and not encode_slash):
            result.append(chr(byte))
        else:
            result.append(f"%{byte:02X}")
    return "".join(result)


# ---------------------------------------------------------------------------
# Canonical request construction
# ---------------------------------------------------------------------------


def canonical_uri(path: str) -> str:
    """Percent-encode the URL path, preserving ``/``.

    The path is encoded as it appears in the URL, so existing escapes are
    encoded again (``%20`` becomes ``%2520``).
    """
    if not path.startswith("/"):
        path = "/" + path
    return uri_encode(path, encode_slash=False)


def canonical_query_string(query: str) -> str:
    """Build the canonical query string.

    Pairs are parsed with form decoding, sorted by ``(key, value)`` and
    re-encoded with ``/`` escaped.

    Args:
        query: Raw query string (without leading ?).
    """
    if not query:
        return ""
    params = urllib.parse.parse_qsl(query, keep_blank_values=True)
    params.sort()
    return "&".join(f"{uri_encode(k)}={uri_encode(v)}" for k, v in params)


def signed_headers(request: Request) -> list[tuple[str, str]]:
    """Collect the headers to sign as sorted ``(name, value)`` pairs.

    Names are lower-cased.  Repeated names are merged by joining their
    trimmed values with ``,`` in their original order.  A ``host`` header
    is synthesized from the URL authority unless the caller set one.
    """
    merged: dict[str, list[str]] = {}
    if "host" not in request.headers:
        merged["host"] = [url_authority(request.url)]
    for name, value in request.headers:
        key = name.strip().lower()
        if key in _UNSIGNED_HEADERS:
            continue
        merged.setdefault(key, []).append(value.strip())
    return sorted((key, ",".join(values)) for key, values in merged.items())


def build_canonical_request(
    method: str,
    path: str,
    query: str,
    headers: list[tuple[str, str]],
    payload_hash: str,
) -> str:
    """Build the canonical request string.

    Args:
        method: HTTP method.
        path: Request path.
        query: Query string (without leading ?).
        headers: Sorted, merged signed headers from :func:`signed_headers`.
        payload_hash: Resolved payload hash.

    Returns:
        Canonical request string.
    """
    canonical_headers = "".join(f"{name}:{value}\n" for name, value in headers)
    return "\n".join(
        [
            method,
            canonical_uri(path),
            canonical_query_string(query),
            canonical_headers,
            ";".join(name for name, _ in headers),
            payload_hash,
        ]
    )


# ---------------------------------------------------------------------------
# Signing primitives
# ---------------------------------------------------------------------------


def _hmac_sha256(key: bytes, msg: str | bytes) -> bytes:
    if isinstance(msg, str):
        msg = msg.encode("utf-8")
    return hmac.new(key, msg, hashlib.sha256).digest()


def derive_signing_key(
    secret_key: str, date: str, region: str, service: str
) -> bytes:
    """Derive the SigV4 signing key.

    Args:
        secret_key: AWS secret access key.
        date: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        Derived signing key bytes.
    """
    k_date = _hmac_sha256(("AWS4" + secret_key).encode("utf-8"), date)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, "aws4_request")


def build_string_to_sign(
    timestamp: str, region: str, service: str, canonical_request: str
) -> str:
    """Build the SigV4 string to sign.

    Args:
        timestamp: ``YYYYMMDDTHHMMSSZ`` timestamp.
        region: AWS region.
        service: AWS service name.
        canonical_request: The canonical request string.
    """
    return "\n".join(
        [
            ALGORITHM,
            timestamp,
            credential_scope(timestamp[:8], region, service),
            hashlib.sha256(canonical_request.encode("utf-8")).hexdigest(),
        ]
    )


def credential_scope(date: str, region: str, service: str) -> str:
    return f"{date}/{region}/{service}/aws4_request"


def format_timestamp(now: datetime) -> str:
    """Format a datetime as a UTC ``YYYYMMDDTHHMMSSZ`` timestamp.

    Naive datetimes are taken to be UTC already.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).strftime(_DATETIME_FORMAT)


def payload_hash(request: Request, service: str) -> str:
    """Resolve the payload hash for a request.

    Resolution order: an explicit ``x-amz-content-sha256`` header, the
    hash of a buffered body, ``UNSIGNED-PAYLOAD`` for an unsized S3
    stream, the hash of a stream read fully into memory, and finally the
    hash of the empty string when there is no body.

    Streams for other services have to be buffered to be hashed; the
    buffered bytes are what gets transmitted afterwards.
    """
    explicit = request.headers.get(HEADER_CONTENT_SHA256)
    if explicit:
        return explicit

    body = request.body
    if body is None:
        return _SHA256_EMPTY
    if body.kind is BodyKind.BUFFER or body.is_materialized:
        return hashlib.sha256(body.materialize()).hexdigest()
    if body.kind is BodyKind.UNSIZED_STREAM and service == "s3":
        return UNSIGNED_PAYLOAD

    logger.debug("Buffering %s body to compute payload hash", body.kind.value)
    return hashlib.sha256(body.materialize()).hexdigest()


# ---------------------------------------------------------------------------
# Request signing
# ---------------------------------------------------------------------------


def sign(
    request: Request,
    access_key: str,
    secret_key: str,
    region: str,
    service: str,
    now: datetime,
) -> None:
    """Sign ``request`` in place.

    Args:
        request: Built request; only its headers are modified.
        access_key: AWS access key ID.
        secret_key: AWS secret access key.
        region: AWS region.
        service: AWS service name.
        now: Signing time.
    """
    timestamp = format_timestamp(now)
    date = timestamp[:8]
    payload = payload_hash(request, service)

    request.headers.set(HEADER_DATE, timestamp)
    if service == "s3":
        request.headers.setdefault(HEADER_CONTENT_SHA256, payload)

    headers = signed_headers(request)
    parts = urllib.parse.urlsplit(request.url)
    canonical_request = build_canonical_request(
        request.method, parts.path, parts.query, headers, payload
    )
    logger.debug("Canonical request:\n%s", canonical_request)

    string_to_sign = build_string_to_sign(
        timestamp, region, service, canonical_request
    )
    signing_key = derive_signing_key(secret_key, date, region, service)
    signature = hmac.new(
        signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
    ).hexdigest()

    names = ";".join(name for name, _ in headers)
    scope = credential_scope(date, region, service)
    request.headers.set(
        "Authorization",
        f"{ALGORITHM} Credential={access_key}/{scope},"
        f"SignedHeaders={names},Signature={signature}",
    )


def sign_request(
    request: Request,
    spec: SigV4Spec,
    *,
    environ: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> None:
    """Sign ``request`` with credentials taken from the environment.

    Args:
        request: Built request.
        spec: Region and service to sign for.
        environ: Environment mapping; defaults to ``os.environ``.
        now: Signing time; defaults to the current UTC time.

    Raises:
        SigV4ConfigError: If a credential variable is missing.
    """
    creds = Credentials.from_env(environ)
    SecretFilter.register_secret(creds.secret_key)
    SecretFilter.register_secret(creds.access_key)

    logger.info(
        "Signing request with SigV4 for %s/%s", spec.region, spec.service
    )
    sign(
        request,
        creds.access_key,
        creds.secret_key,
        spec.region,
        spec.service,
        now or datetime.now(UTC),
    )
