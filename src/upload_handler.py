"""
Streaming receiver for single-file audio uploads.

The multipart body is fed to python-multipart chunk by chunk as it arrives, so
the content type is checked from the part headers before any bytes are
written, and the size limit aborts the transfer as soon as it is crossed
instead of after the whole body has been buffered.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect, Request

from errors import PayloadTooLargeError, UnsupportedMediaTypeError, UploadValidationError
from storage import open_stored_file, remove_partial_file

logger = logging.getLogger(__name__)

MB = 1024 * 1024

AUDIO_MIME_TYPES = frozenset({
    "audio/mpeg",
    "audio/mp3",
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/aac",
    "audio/flac",
    "audio/ogg",
})

AUDIO_FIELD = "audio"

# Allowance for boundaries and part headers when pre-checking Content-Length
MULTIPART_OVERHEAD_BYTES = 64 * 1024


@dataclass
class StoredUpload:
    stored_name: str
    path: Path
    original_name: str
    mime_type: str
    size: int = 0


@dataclass
class _PartHeaders:
    raw: Dict[str, str] = field(default_factory=dict)
    field_name: bytes = b""
    value: bytes = b""

    @property
    def name(self) -> Optional[str]:
        return self._disposition_params().get(b"name", b"").decode("utf-8", "replace") or None

    @property
    def filename(self) -> Optional[str]:
        value = self._disposition_params().get(b"filename")
        return value.decode("utf-8", "replace") if value is not None else None

    @property
    def content_type(self) -> str:
        content_type, _ = parse_options_header(self.raw.get("content-type", ""))
        return content_type.decode("latin-1").lower()

    def _disposition_params(self) -> Dict[bytes, bytes]:
        _, params = parse_options_header(self.raw.get("content-disposition", ""))
        return params


def too_large_message(max_upload_bytes: int) -> str:
    return (
        "File is too large for your current plan. "
        f"Limit: {round(max_upload_bytes / MB)}MB"
    )


def check_declared_length(request: Request, max_upload_bytes: int) -> None:
    """Reject early when the declared body size cannot fit the limit."""
    content_length = request.headers.get("content-length")
    if not content_length:
        return
    try:
        declared = int(content_length)
    except ValueError:
        return
    if declared > max_upload_bytes + MULTIPART_OVERHEAD_BYTES:
        logger.warning(
            f"Upload too large: {declared} bytes declared (max {max_upload_bytes})"
        )
        raise PayloadTooLargeError(too_large_message(max_upload_bytes))


class AudioUploadReceiver:
    """
    Drives a ``MultipartParser`` over the request stream.

    Parser callbacks are synchronous, so they only queue events; the queue is
    drained asynchronously after every chunk (file I/O happens there).
    """

    def __init__(
        self,
        upload_dir: Path,
        max_upload_bytes: int,
        field_name: str = AUDIO_FIELD,
        clock: Callable[[], float] = time.time,
    ):
        self.upload_dir = upload_dir
        self.max_upload_bytes = max_upload_bytes
        self.field_name = field_name
        self.clock = clock

        self._events: List[Tuple[str, Any]] = []
        self._headers = _PartHeaders()
        self._current: Optional[StoredUpload] = None
        self._handle = None
        self._skip_part = False
        self.upload: Optional[StoredUpload] = None

    # parser callbacks

    def on_part_begin(self) -> None:
        self._headers = _PartHeaders()
        self._events.append(("part_begin", None))

    def on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._headers.field_name += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._headers.value += data[start:end]

    def on_header_end(self) -> None:
        key = self._headers.field_name.decode("latin-1").strip().lower()
        self._headers.raw[key] = self._headers.value.decode("latin-1").strip()
        self._headers.field_name = b""
        self._headers.value = b""

    def on_headers_finished(self) -> None:
        self._events.append(("headers", self._headers))

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", bytes(data[start:end])))

    def on_part_end(self) -> None:
        self._events.append(("part_end", None))

    # event processing

    async def _process_events(self) -> None:
        events, self._events = self._events, []
        for kind, payload in events:
            if kind == "part_begin":
                self._skip_part = False
            elif kind == "headers":
                await self._start_part(payload)
            elif kind == "data":
                await self._write(payload)
            elif kind == "part_end":
                await self._finish_part()

    async def _start_part(self, headers: _PartHeaders) -> None:
        filename = headers.filename
        if not filename:
            # plain form field, or a file input left empty
            self._skip_part = True
            return

        if headers.name != self.field_name or self.upload is not None:
            raise UploadValidationError("Unexpected field")

        mime_type = headers.content_type
        if mime_type not in AUDIO_MIME_TYPES:
            logger.info(f"Rejected upload with content type {mime_type or 'none'}")
            raise UnsupportedMediaTypeError("Unsupported audio format")

        stored_name, path, handle = await open_stored_file(
            self.upload_dir, filename, clock=self.clock
        )
        self._handle = handle
        self._current = StoredUpload(
            stored_name=stored_name,
            path=path,
            original_name=filename,
            mime_type=mime_type,
        )

    async def _write(self, data: bytes) -> None:
        if self._skip_part or self._current is None:
            return
        self._current.size += len(data)
        if self._current.size > self.max_upload_bytes:
            raise PayloadTooLargeError(too_large_message(self.max_upload_bytes))
        await self._handle.write(data)

    async def _finish_part(self) -> None:
        if self._current is None:
            return
        await self._close_handle()
        self.upload, self._current = self._current, None

    async def _close_handle(self) -> None:
        if self._handle is not None:
            handle, self._handle = self._handle, None
            await handle.close()

    async def _discard(self) -> None:
        await self._close_handle()
        for upload in (self._current, self.upload):
            if upload is not None:
                await remove_partial_file(upload.path)
        self._current = None
        self.upload = None

    async def receive(self, request: Request) -> StoredUpload:
        content_type, params = parse_options_header(request.headers.get("content-type", ""))
        boundary = params.get(b"boundary")
        if content_type != b"multipart/form-data" or not boundary:
            raise UploadValidationError("No audio file provided")

        callbacks = {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
        }
        parser = MultipartParser(boundary, callbacks)

        try:
            async for chunk in request.stream():
                if chunk:
                    parser.write(chunk)
                await self._process_events()
            parser.finalize()
            await self._process_events()
        except ClientDisconnect:
            logger.warning("Client disconnected during upload; discarding partial file")
            await self._discard()
            raise
        except Exception:
            await self._discard()
            raise

        if self._current is not None:
            # body ended inside the file part
            await self._discard()
            raise UploadValidationError("Unexpected end of form")
        if self.upload is None:
            raise UploadValidationError("No audio file provided")
        return self.upload


async def receive_audio_upload(
    request: Request,
    upload_dir: Path,
    max_upload_bytes: int,
    field_name: str = AUDIO_FIELD,
) -> StoredUpload:
    """Stream the single ``audio`` file part of ``request`` to disk."""
    check_declared_length(request, max_upload_bytes)
    receiver = AudioUploadReceiver(upload_dir, max_upload_bytes, field_name=field_name)
    return await receiver.receive(request)
