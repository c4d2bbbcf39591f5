"""
HMAC-signed, time-limited download URLs.

A token is the hex HMAC-SHA256 of ``"<filename>:<expires_at>"``. Nothing is
stored server-side: verification recomputes the signature, so rotating the
secret invalidates every URL issued before.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union
from urllib.parse import quote, urlencode

DOWNLOAD_PATH = "/api/download"


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_at: int
    token: str


class UrlSigner:
    def __init__(self, secret: str, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("Signing secret must not be empty")
        self._key = secret.encode("utf-8")
        self._clock = clock

    def now(self) -> int:
        return int(self._clock())

    def signature_for(self, filename: str, expires_at: int) -> str:
        payload = f"{filename}:{expires_at}".encode("utf-8")
        return hmac.new(self._key, payload, hashlib.sha256).hexdigest()

    def issue(self, filename: str, ttl_seconds: int, base_url: str = "") -> SignedUrl:
        """Sign ``filename`` for ``ttl_seconds`` and build its download URL."""
        expires_at = self.now() + int(ttl_seconds)
        token = self.signature_for(filename, expires_at)
        query = urlencode({"expires": expires_at, "token": token})
        url = f"{base_url.rstrip('/')}{DOWNLOAD_PATH}/{quote(filename, safe='')}?{query}"
        return SignedUrl(url=url, expires_at=expires_at, token=token)

    def verify(
        self,
        filename: str,
        expires: Optional[Union[str, int]],
        token: Optional[str],
    ) -> bool:
        """
        Check a download token.

        Returns False (never raises) for a missing or non-integer expiry, an
        expiry in the past, or a token that does not match byte for byte.
        """
        if expires is None or expires == "" or not token:
            return False
        try:
            expires_at = int(expires)
        except (TypeError, ValueError):
            return False
        if expires_at < self.now():
            return False

        try:
            expected = self.signature_for(filename, expires_at)
            return hmac.compare_digest(expected.encode("ascii"), token.encode("utf-8"))
        except (AttributeError, UnicodeEncodeError):
            return False
