"""AWS Signature Version 4 helpers.

``presign_url`` authenticates a connection entirely through its query string,
which is how the streaming transcription WebSocket is opened. ``sign_headers``
produces the ``Authorization`` header for ordinary JSON API calls.
"""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import quote

ALGORITHM = "AWS4-HMAC-SHA256"
EMPTY_PAYLOAD_HASH = hashlib.sha256(b"").hexdigest()
TRANSCRIBE_SERVICE = "transcribe"
TRANSCRIBE_PORT = 8443
TRANSCRIBE_PATH = "/stream-transcription-websocket"


@dataclass(frozen=True)
class AwsCredentials:
    access_key: str
    secret_key: str
    session_token: str = ""

    def __repr__(self) -> str:
        return f"AwsCredentials(access_key={self.access_key!r}, secret_key=***)"


def presign_url(
    method: str,
    host: str,
    path: str,
    service: str,
    payload_hash: str,
    *,
    credentials: AwsCredentials,
    region: str,
    protocol: str = "wss",
    expires: int = 15,
    query: dict[str, str] | None = None,
    now: datetime | None = None,
) -> str:
    amz_date, date_stamp = _timestamps(now)
    scope = _credential_scope(date_stamp, region, service)

    params = dict(query or {})
    params["X-Amz-Algorithm"] = ALGORITHM
    params["X-Amz-Credential"] = f"{credentials.access_key}/{scope}"
    params["X-Amz-Date"] = amz_date
    params["X-Amz-Expires"] = str(expires)
    params["X-Amz-SignedHeaders"] = "host"
    if credentials.session_token:
        params["X-Amz-Security-Token"] = credentials.session_token

    canonical_query = _canonical_query(params)
    canonical_request = "\n".join(
        [method, _canonical_path(path), canonical_query, f"host:{host}\n", "host", payload_hash]
    )
    signature = _sign(credentials.secret_key, date_stamp, region, service, amz_date, scope, canonical_request)
    return f"{protocol}://{host}{path}?{canonical_query}&X-Amz-Signature={signature}"


def sign_headers(
    method: str,
    host: str,
    path: str,
    service: str,
    region: str,
    credentials: AwsCredentials,
    body: bytes = b"",
    headers: dict[str, str] | None = None,
    now: datetime | None = None,
) -> dict[str, str]:
    amz_date, date_stamp = _timestamps(now)
    scope = _credential_scope(date_stamp, region, service)

    signed = {name.lower(): " ".join(value.split()) for name, value in (headers or {}).items()}
    signed["host"] = host
    signed["x-amz-date"] = amz_date
    if credentials.session_token:
        signed["x-amz-security-token"] = credentials.session_token

    names = sorted(signed)
    canonical_headers = "".join(f"{name}:{signed[name]}\n" for name in names)
    signed_headers = ";".join(names)
    canonical_request = "\n".join(
        [
            method,
            _canonical_path(path),
            "",
            canonical_headers,
            signed_headers,
            hashlib.sha256(body).hexdigest(),
        ]
    )
    signature = _sign(credentials.secret_key, date_stamp, region, service, amz_date, scope, canonical_request)

    result = dict(headers or {})
    result["X-Amz-Date"] = amz_date
    if credentials.session_token:
        result["X-Amz-Security-Token"] = credentials.session_token
    result["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return result


def transcribe_url(
    region: str,
    language_code: str,
    sample_rate: int,
    credentials: AwsCredentials,
    expires: int = 15,
    now: datetime | None = None,
) -> str:
    return presign_url(
        "GET",
        f"transcribestreaming.{region}.amazonaws.com:{TRANSCRIBE_PORT}",
        TRANSCRIBE_PATH,
        TRANSCRIBE_SERVICE,
        EMPTY_PAYLOAD_HASH,
        credentials=credentials,
        region=region,
        protocol="wss",
        expires=expires,
        query={
            "language-code": language_code,
            "media-encoding": "pcm",
            "sample-rate": str(sample_rate),
        },
        now=now,
    )


def _timestamps(now: datetime | None) -> tuple[str, str]:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y%m%dT%H%M%SZ"), moment.strftime("%Y%m%d")


def _credential_scope(date_stamp: str, region: str, service: str) -> str:
    return f"{date_stamp}/{region}/{service}/aws4_request"


def _uri_encode(value: str) -> str:
    return quote(value, safe="-_.~")


def _canonical_path(path: str) -> str:
    return quote(path or "/", safe="/-_.~")


def _canonical_query(params: dict[str, str]) -> str:
    encoded = sorted((_uri_encode(k), _uri_encode(v)) for k, v in params.items())
    return "&".join(f"{k}={v}" for k, v in encoded)


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def _sign(
    secret_key: str,
    date_stamp: str,
    region: str,
    service: str,
    amz_date: str,
    scope: str,
    canonical_request: str,
) -> str:
    string_to_sign = "\n".join(
        [ALGORITHM, amz_date, scope, hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()]
    )
    key = _hmac(("AWS4" + secret_key).encode("utf-8"), date_stamp)
    key = _hmac(key, region)
    key = _hmac(key, service)
    key = _hmac(key, "aws4_request")
    return hmac.new(key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()
