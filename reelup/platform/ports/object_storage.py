from typing import BinaryIO, Protocol, runtime_checkable


class ObjectNotFoundError(Exception):
    """Raised by adapters when a key has no object behind it."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found: {key}")


@runtime_checkable
class ObjectStoragePort(Protocol):
    def put_bytes(self, key: str, data: bytes, content_type: str) -> str: ...

    def put_file(self, key: str, fileobj: BinaryIO, content_type: str) -> str: ...

    def get_bytes(self, key: str) -> bytes: ...

    def exists(self, key: str) -> bool: ...

    def presign_download(self, key: str, expires_seconds: int = 900) -> str: ...

    def delete(self, key: str) -> None: ...
