"""Split a source file into ordered, fixed-size chunks."""
import os
from dataclasses import dataclass
from typing import Iterator

from reelup.core.errors import EmptyFileError
from reelup.modules.uploads.codec import encode_chunk
from reelup.modules.uploads.policy import CHUNK_SIZE


@dataclass(frozen=True)
class ChunkRange:
    index: int
    start: int
    end: int  # exclusive

    @property
    def size(self) -> int:
        return self.end - self.start


def iter_chunk_ranges(file_size: int, chunk_size: int = CHUNK_SIZE) -> Iterator[ChunkRange]:
    """Yield [0, S), [S, 2S), ... with the last range truncated to the file end."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if file_size <= 0:
        raise EmptyFileError()
    index = 0
    for start in range(0, file_size, chunk_size):
        yield ChunkRange(index=index, start=start, end=min(start + chunk_size, file_size))
        index += 1


def read_chunks(path: str | os.PathLike, chunk_size: int = CHUNK_SIZE) -> Iterator[tuple[ChunkRange, bytes]]:
    file_size = os.path.getsize(path)
    with open(path, "rb") as f:
        for rng in iter_chunk_ranges(file_size, chunk_size):
            f.seek(rng.start)
            data = f.read(rng.size)
            if len(data) != rng.size:
                raise OSError(f"{path} changed while reading chunk {rng.index}")
            yield rng, data


def iter_encoded_chunks(path: str | os.PathLike, chunk_size: int = CHUNK_SIZE) -> Iterator[tuple[int, str]]:
    for rng, data in read_chunks(path, chunk_size):
        yield rng.index, encode_chunk(data)
