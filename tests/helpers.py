"""Shared test helpers: controllable clock and multipart body builder."""

import uuid
from typing import Iterable, Optional, Tuple


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# (field name, filename or None, content type or None, payload)
Part = Tuple[str, Optional[str], Optional[str], bytes]


def build_multipart(parts: Iterable[Part], boundary: Optional[str] = None) -> Tuple[bytes, str]:
    """Encode ``parts`` as multipart/form-data; returns (body, content-type header)."""
    boundary = boundary or f"----test{uuid.uuid4().hex}"
    chunks = []
    for name, filename, content_type, payload in parts:
        disposition = f'form-data; name="{name}"'
        if filename is not None:
            disposition += f'; filename="{filename}"'
        headers = f"Content-Disposition: {disposition}\r\n"
        if content_type:
            headers += f"Content-Type: {content_type}\r\n"
        chunks.append(f"--{boundary}\r\n{headers}\r\n".encode("utf-8"))
        chunks.append(payload)
        chunks.append(b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode("utf-8"))
    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"
