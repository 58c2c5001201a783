"""
AWS Signature Version 4 request signing for S3-compatible stores (R2).

Lets an uploading client write directly to the bucket with long-lived
credentials and no backend session. Every header that goes into the
canonical request is returned in SignedRequest.headers and must be sent
exactly as returned; any drift in name, value or length makes the
provider reject the request.

    canonical request = METHOD \n PATH \n QUERY \n HEADERS \n SIGNED_HEADERS \n PAYLOAD_HASH
    string to sign    = ALGORITHM \n AMZ_DATE \n SCOPE \n sha256(canonical request)
    signing key       = HMAC chain over date, region, service, "aws4_request"

The signer is pure: no I/O, no retries, safe to share between threads.
"""
import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import quote

ALGORITHM = "AWS4-HMAC-SHA256"
TERMINATOR = "aws4_request"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"
DATE_STAMP_FORMAT = "%Y%m%d"

CONTENT_SHA256_HEADER = "x-amz-content-sha256"
DATE_HEADER = "x-amz-date"
META_HEADER_PREFIX = "x-amz-meta-"


def sha256_hex(data) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """Derive the scoped signing key; each step's output keys the next."""
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, TERMINATOR)


def canonical_uri(path: str) -> str:
    # S3 encodes each segment once and keeps the separators
    return quote(path if path.startswith("/") else "/" + path, safe="/-_.~")


def canonical_headers(headers: Mapping[str, str]) -> Tuple[str, str]:
    """
    Build the canonical header block and the signed header list.

    Names are lower-cased and sorted; values are trimmed with inner
    whitespace runs collapsed to one space.

    Returns:
        (canonical header block ending in a newline, ";"-joined names)
    """
    normalized = {
        name.strip().lower(): " ".join(str(value).split())
        for name, value in headers.items()
    }
    names = sorted(normalized)
    block = "".join(f"{name}:{normalized[name]}\n" for name in names)
    return block, ";".join(names)


def build_canonical_request(
    method: str,
    path: str,
    headers: Mapping[str, str],
    payload_hash: str,
    query: str = "",
) -> Tuple[str, str]:
    """Return (canonical request, signed header list)."""
    header_block, signed_headers = canonical_headers(headers)
    canonical_request = "\n".join([
        method.upper(),
        canonical_uri(path),
        query,
        header_block,
        signed_headers,
        payload_hash,
    ])
    return canonical_request, signed_headers


def build_string_to_sign(amz_date: str, scope: str, canonical_request: str) -> str:
    return "\n".join([ALGORITHM, amz_date, scope, sha256_hex(canonical_request)])


@dataclass
class SignedRequest:
    """Everything needed to send a signed request, plus the signing trail."""
    method: str
    path: str
    headers: Dict[str, str]
    canonical_request: str
    string_to_sign: str
    signature: str
    authorization: str
    amz_date: str
    payload_hash: str
    signed_headers: str = field(default="")


class RequestSigner:
    """
    SigV4 signer bound to one set of credentials and one scope.

    Args:
        access_key_id: Access key ID (goes into the Credential field)
        secret_access_key: Secret key (seeds the signing key chain)
        region: Region component of the scope ("auto" for R2)
        service: Service component of the scope
    """

    def __init__(self, access_key_id: str, secret_access_key: str, region: str = "auto", service: str = "s3"):
        self.access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self.region = region
        self.service = service

    def credential_scope(self, date_stamp: str) -> str:
        return f"{date_stamp}/{self.region}/{self.service}/{TERMINATOR}"

    def sign(
        self,
        method: str,
        host: str,
        path: str,
        payload: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
        timestamp: Optional[datetime] = None,
    ) -> SignedRequest:
        """
        Sign a request.

        host, x-amz-content-sha256 and x-amz-date are always added and
        signed; any extra headers passed in are signed as well.

        Args:
            method: HTTP method
            host: Host header value
            path: Request path, "/{bucket}/{key}" for path-style S3
            payload: Exact body bytes that will be sent
            headers: Additional headers to sign and send
            timestamp: Request time, defaults to now (UTC)

        Returns:
            SignedRequest whose headers include Authorization
        """
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        elif timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        else:
            timestamp = timestamp.astimezone(timezone.utc)

        amz_date = timestamp.strftime(AMZ_DATE_FORMAT)
        date_stamp = timestamp.strftime(DATE_STAMP_FORMAT)
        payload_hash = sha256_hex(payload)

        to_sign = {name.lower(): value for name, value in (headers or {}).items()}
        to_sign["host"] = host
        to_sign[CONTENT_SHA256_HEADER] = payload_hash
        to_sign[DATE_HEADER] = amz_date

        canonical_request, signed_headers = build_canonical_request(
            method, path, to_sign, payload_hash
        )
        scope = self.credential_scope(date_stamp)
        string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)

        signing_key = derive_signing_key(self._secret_access_key, date_stamp, self.region, self.service)
        signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        authorization = (
            f"{ALGORITHM} Credential={self.access_key_id}/{scope}, "
            f"SignedHeaders={signed_headers}, "
            f"Signature={signature}"
        )

        sent_headers = {name: " ".join(str(value).split()) for name, value in to_sign.items()}
        sent_headers["authorization"] = authorization

        return SignedRequest(
            method=method.upper(),
            path=canonical_uri(path),
            headers=sent_headers,
            canonical_request=canonical_request,
            string_to_sign=string_to_sign,
            signature=signature,
            authorization=authorization,
            amz_date=amz_date,
            payload_hash=payload_hash,
            signed_headers=signed_headers,
        )

    def sign_put(
        self,
        host: str,
        bucket: str,
        key: str,
        payload: bytes,
        content_type: str,
        metadata: Optional[Mapping[str, str]] = None,
        timestamp: Optional[datetime] = None,
    ) -> SignedRequest:
        """
        Sign an object PUT.

        Signed headers: content-length, content-type, host,
        x-amz-content-sha256, x-amz-date, then one x-amz-meta-* per
        metadata entry.
        """
        headers = {
            "content-length": str(len(payload)),
            "content-type": content_type,
        }
        for name, value in (metadata or {}).items():
            headers[META_HEADER_PREFIX + name.lower()] = value

        return self.sign("PUT", host, f"/{bucket}/{key}", payload=payload, headers=headers, timestamp=timestamp)
