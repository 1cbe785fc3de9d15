"""Error taxonomy for the upload pipeline.

Every error carries the HTTP status it maps to and a stable ``code`` so the
API layer can render it with a single exception handler.
"""


class UploadError(Exception):
    """Base for errors surfaced to the caller as a single terminal message."""

    status_code: int = 400
    code: str = "upload_error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return "Upload failed"


# ---- Authorization ----

class ProjectNotFoundError(UploadError):
    """Raised for missing projects and for projects owned by someone else."""
    status_code = 404
    code = "project_not_found"

    @classmethod
    def default_message(cls) -> str:
        return "Project not found"


# ---- Validation ----

class FileTooLargeError(UploadError):
    status_code = 413
    code = "file_too_large"

class EmptyFileError(UploadError):
    code = "empty_file"

    @classmethod
    def default_message(cls) -> str:
        return "File is empty"

class UnsupportedMediaTypeError(UploadError):
    status_code = 415
    code = "unsupported_media_type"

class MalformedChunkError(UploadError):
    code = "malformed_chunk"

    @classmethod
    def default_message(cls) -> str:
        return "Chunk payload is not valid base64"

class ChunkIndexOutOfRangeError(UploadError):
    code = "chunk_index_out_of_range"

class ChunkTooLargeError(UploadError):
    status_code = 413
    code = "chunk_too_large"

class TotalChunksMismatchError(UploadError):
    code = "total_chunks_mismatch"

class InvalidFileKeyError(UploadError):
    code = "invalid_file_key"

class InvalidUploadIdError(UploadError):
    code = "invalid_upload_id"


# ---- Session state ----

class UploadSessionNotFoundError(UploadError):
    status_code = 404
    code = "upload_session_not_found"

    @classmethod
    def default_message(cls) -> str:
        return "Upload session not found"

class UploadSessionStateError(UploadError):
    status_code = 409
    code = "upload_session_state"

class TooManyUploadsError(UploadError):
    status_code = 429
    code = "too_many_uploads"


# ---- Transient I/O ----

class StorageUnavailableError(UploadError):
    """Storage backend failed; the caller may retry the same call."""
    status_code = 503
    code = "storage_unavailable"

    @classmethod
    def default_message(cls) -> str:
        return "Storage backend unavailable, retry the request"


# ---- Integrity ----

class MissingChunksError(UploadError):
    status_code = 422
    code = "missing_chunks"
    # most indices listed in a response body
    report_limit = 100

    def __init__(self, missing: list[int], message: str | None = None):
        self.missing = missing
        shown = ", ".join(str(i) for i in missing[:20])
        if len(missing) > 20:
            shown += ", ..."
        super().__init__(message or f"Missing chunks: {shown}")

    def reported(self) -> list[int]:
        return self.missing[:self.report_limit]

class AssemblySizeMismatchError(UploadError):
    status_code = 422
    code = "assembly_size_mismatch"

class ChunkIntegrityError(UploadError):
    status_code = 422
    code = "chunk_integrity"
