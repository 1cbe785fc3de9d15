import logging
import os
import shutil
import tempfile
from typing import BinaryIO
from urllib.parse import quote
from reelup.platform.ports.object_storage import ObjectStoragePort, ObjectNotFoundError
from reelup.core.config import settings
from reelup.core.errors import StorageUnavailableError

log = logging.getLogger("storage.local")

class LocalFilesystemStorage(ObjectStoragePort):
    def __init__(self, root: str | None = None, public_base_url: str | None = None):
        self.root = os.path.abspath(root or settings.LOCAL_STORAGE_ROOT)
        self.public_base_url = public_base_url if public_base_url is not None else settings.LOCAL_PUBLIC_BASE_URL
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        safe = key.replace("..", "").strip("/")
        return os.path.join(self.root, safe)

    def _url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quote(key.strip('/'))}"
        return f"file://{quote(self._path(key))}"

    def presign_download(self, key: str, expires_seconds: int = 900) -> str:
        # No signing locally; serve the root via nginx or a static mount.
        return self._url(key)

    def put_bytes(self, key: str, data: bytes, content_type: str) -> str:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            self._atomic_write(path, lambda f: f.write(data))
        except OSError as e:
            log.exception("put_bytes failed key=%s", key)
            raise StorageUnavailableError(f"Could not store {key}: {e.strerror or e}") from e
        return self._url(key)

    def put_file(self, key: str, fileobj: BinaryIO, content_type: str) -> str:
        path = self._path(key)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            self._atomic_write(path, lambda f: shutil.copyfileobj(fileobj, f, 1024 * 1024))
        except OSError as e:
            log.exception("put_file failed key=%s", key)
            raise StorageUnavailableError(f"Could not store {key}: {e.strerror or e}") from e
        return self._url(key)

    def _atomic_write(self, path: str, write) -> None:
        # readers never observe a half-written object
        fd, tmp = tempfile.mkstemp(dir=os.path.dirname(path), prefix=".part-")
        try:
            with os.fdopen(fd, "wb") as f:
                write(f)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def get_bytes(self, key: str) -> bytes:
        path = self._path(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise ObjectNotFoundError(key) from e
        except OSError as e:
            raise StorageUnavailableError(f"Could not read {key}: {e.strerror or e}") from e

    def exists(self, key: str) -> bool:
        return os.path.isfile(self._path(key))

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)
