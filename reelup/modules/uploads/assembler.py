"""Concatenate staged chunks into one stream, strictly in index order."""
import hashlib
import logging
import tempfile
from dataclasses import dataclass, field
from typing import BinaryIO, Sequence

from reelup.core.errors import MissingChunksError, ChunkIntegrityError
from reelup.platform.ports.object_storage import ObjectStoragePort, ObjectNotFoundError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkRef:
    index: int
    storage_key: str
    sha256: str | None = None


@dataclass
class AssembledStream:
    fileobj: BinaryIO
    size: int = 0
    sha256: str = ""
    chunk_sizes: list[int] = field(default_factory=list)

    def close(self) -> None:
        self.fileobj.close()

    def __enter__(self) -> "AssembledStream":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def assemble_chunks(storage: ObjectStoragePort, chunks: Sequence[ChunkRef], spool_max_bytes: int) -> AssembledStream:
    """Fetch every chunk and append it to a spooled temp file.

    ``chunks`` must be dense and sorted by index; the output is chunk 0,
    chunk 1, ... regardless of the order they were staged in. Blocking, run
    it in a worker thread.
    """
    expected = list(range(len(chunks)))
    if [c.index for c in chunks] != expected:
        have = {c.index for c in chunks}
        raise MissingChunksError([i for i in expected if i not in have] or expected)

    out = tempfile.SpooledTemporaryFile(max_size=spool_max_bytes)
    digest = hashlib.sha256()
    result = AssembledStream(fileobj=out)
    try:
        for ref in chunks:
            try:
                data = storage.get_bytes(ref.storage_key)
            except ObjectNotFoundError as e:
                raise MissingChunksError([ref.index], f"Chunk {ref.index} is no longer in storage") from e
            if ref.sha256 and hashlib.sha256(data).hexdigest() != ref.sha256:
                raise ChunkIntegrityError(f"Chunk {ref.index} does not match the checksum recorded at upload")
            out.write(data)
            digest.update(data)
            result.chunk_sizes.append(len(data))
            result.size += len(data)
        out.seek(0)
    except BaseException:
        out.close()
        raise
    result.sha256 = digest.hexdigest()
    log.debug("Assembled %d chunks, %d bytes", len(chunks), result.size)
    return result
