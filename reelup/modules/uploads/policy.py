"""Upload limits and key naming shared by the API and the upload client."""
import math
import re
import secrets
import string
import uuid

from reelup.core.config import settings
from reelup.core.errors import (
    EmptyFileError, FileTooLargeError, UnsupportedMediaTypeError, InvalidFileKeyError, InvalidUploadIdError,
    TotalChunksMismatchError,
)

CHUNK_SIZE = 5 * 1024 * 1024
MAX_FILE_SIZE = 5 * 1024 * 1024 * 1024
VIDEO_MIME_PREFIX = "video/"

_KEY_ALPHABET = string.ascii_letters + string.digits + "_-"
_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,10}$")
UPLOAD_ID_PATTERN = r"^[A-Za-z0-9_-]{8,128}$"
_UPLOAD_ID_RE = re.compile(UPLOAD_ID_PATTERN)


def count_chunks(file_size: int, chunk_size: int | None = None) -> int:
    chunk_size = chunk_size or settings.UPLOAD_CHUNK_SIZE
    if file_size <= 0:
        raise EmptyFileError()
    return math.ceil(file_size / chunk_size)


def max_chunks(chunk_size: int | None = None) -> int:
    return count_chunks(settings.UPLOAD_MAX_FILE_SIZE, chunk_size)


def check_total_chunks(total_chunks: int, file_size: int | None = None) -> None:
    limit = max_chunks()
    if not 1 <= total_chunks <= limit:
        raise TotalChunksMismatchError(f"totalChunks must be between 1 and {limit}")
    if file_size is not None:
        expected = count_chunks(file_size)
        if total_chunks != expected:
            raise TotalChunksMismatchError(
                f"A file of {file_size} bytes is {expected} chunks of {settings.UPLOAD_CHUNK_SIZE} bytes, got totalChunks={total_chunks}"
            )


def format_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KiB", "MiB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GiB"


def validate_video_upload(file_size: int, mime_type: str, max_file_size: int | None = None) -> None:
    max_file_size = max_file_size or settings.UPLOAD_MAX_FILE_SIZE
    if file_size <= 0:
        raise EmptyFileError()
    if file_size > max_file_size:
        raise FileTooLargeError(
            f"File is {format_size(file_size)}, the limit is {format_size(max_file_size)}"
        )
    if not (mime_type or "").lower().startswith(VIDEO_MIME_PREFIX):
        raise UnsupportedMediaTypeError(f"Only video files can be uploaded (got {mime_type or 'unknown'})")


def project_video_prefix(project_id: uuid.UUID) -> str:
    return f"projects/{project_id}/videos/"


def new_file_key(project_id: uuid.UUID, file_name: str) -> str:
    ext = file_name.rsplit(".", 1)[1] if "." in file_name else ""
    if not _EXT_RE.match(ext):
        ext = "bin"
    token = "".join(secrets.choice(_KEY_ALPHABET) for _ in range(21))
    return f"{project_video_prefix(project_id)}{token}.{ext.lower()}"


def check_file_key(project_id: uuid.UUID, file_key: str) -> None:
    prefix = project_video_prefix(project_id)
    rest = file_key[len(prefix):] if file_key.startswith(prefix) else ""
    if not rest or "/" in rest or ".." in rest:
        raise InvalidFileKeyError(f"File key must be a file directly under {prefix}")


def chunk_key(upload_id: str, chunk_index: int) -> str:
    return f"temp/{upload_id}/chunk_{chunk_index}"


def check_upload_id(upload_id: str) -> None:
    if not _UPLOAD_ID_RE.match(upload_id or ""):
        raise InvalidUploadIdError("Upload id must be 8-128 characters of [A-Za-z0-9_-]")
