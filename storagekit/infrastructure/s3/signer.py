"""
AWS Signature Version 4.

Implemented by hand rather than through botocore because the request
layer owns its headers: what gets signed must be byte-for-byte what goes
on the wire, including the Content-MD5 and Range headers the devices set
themselves.

Reference: https://docs.aws.amazon.com/AmazonS3/latest/API/sig-v4-header-based-auth.html
"""

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional, Union
from urllib.parse import quote

from ...core.errors import SignatureInputError

ALGORITHM = "AWS4-HMAC-SHA256"
TERMINATOR = "aws4_request"

# sha256 of the empty string, the payload hash of every bodiless request
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def sha256_hex(data: Union[bytes, str]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).digest()


def amz_date(now: Optional[datetime] = None) -> str:
    """Timestamp in ISO-8601 basic format, e.g. ``20230101T000000Z``."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def uri_encode(value: str) -> str:
    """Percent-encode everything outside the RFC 3986 unreserved set."""
    return quote(value, safe="-_.~")


def canonical_query_string(params: Mapping[str, str]) -> str:
    """
    Sorted, encoded ``k=v`` pairs joined with ``&``.

    Flags such as ``uploads`` or ``delete`` carry an empty value and are
    rendered ``uploads=``.
    """
    return "&".join(
        f"{uri_encode(key)}={uri_encode(str(params[key]))}"
        for key in sorted(params)
    )


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """HMAC chain: date -> region -> service -> aws4_request."""
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, TERMINATOR)


@dataclass(frozen=True)
class SignerV4:
    """
    Produces Authorization header values for S3-compatible requests.

    Stateless: the timestamp comes from the request's own ``x-amz-date``
    header, so signing the same request twice gives the same result.
    """
    access_key: str
    secret_key: str
    region: str
    service: str = "s3"

    def canonical_request(
        self,
        method: str,
        uri: str,
        params: Mapping[str, str],
        headers: Mapping[str, str],
        content_sha256: str,
    ) -> tuple[str, str]:
        """Return the canonical request and its signed-headers list."""
        combined = {name.lower(): str(value).strip() for name, value in headers.items()}
        names = sorted(combined)
        signed_headers = ";".join(names)

        lines = [
            method.upper(),
            uri.split("?", 1)[0],
            canonical_query_string(params),
            *(f"{name}:{combined[name]}" for name in names),
            "",
            signed_headers,
            content_sha256,
        ]
        return "\n".join(lines), signed_headers

    def sign(
        self,
        method: str,
        uri: str,
        params: Mapping[str, str],
        headers: Mapping[str, str],
        content_sha256: str,
    ) -> str:
        """
        Compute the Authorization header for a request.

        ``headers`` must be exactly the set sent on the wire (minus
        Authorization) and must include ``x-amz-date``.
        """
        lowered = {name.lower(): value for name, value in headers.items()}
        request_date = lowered.get("x-amz-date", "").strip()
        if not request_date:
            raise SignatureInputError("x-amz-date header is required for signing")

        date_stamp = request_date[:8]
        credential_scope = "/".join([date_stamp, self.region, self.service, TERMINATOR])

        canonical, signed_headers = self.canonical_request(
            method, uri, params, headers, content_sha256
        )
        string_to_sign = "\n".join([
            ALGORITHM,
            request_date,
            credential_scope,
            sha256_hex(canonical),
        ])

        signing_key = derive_signing_key(self.secret_key, date_stamp, self.region, self.service)
        signature = hmac.new(
            signing_key, string_to_sign.encode("utf-8"), hashlib.sha256
        ).hexdigest()

        return (
            f"{ALGORITHM} Credential={self.access_key}/{credential_scope},"
            f"SignedHeaders={signed_headers},Signature={signature}"
        )
