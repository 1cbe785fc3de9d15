"""Base64 transport encoding for chunk payloads.

Chunks travel inside JSON bodies, so binary data is carried as standard
(padded) base64 text. Decoding is strict: anything outside the alphabet or
with bad padding is rejected before it reaches storage.
"""
import base64
import binascii

from reelup.core.errors import MalformedChunkError


def encode_chunk(data: bytes) -> str:
    if not data:
        raise ValueError("Cannot encode an empty chunk")
    return base64.b64encode(data).decode("ascii")


def decode_chunk(payload: str) -> bytes:
    if not payload:
        raise MalformedChunkError("Chunk payload is empty")
    try:
        data = base64.b64decode(payload.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise MalformedChunkError() from e
    if not data:
        raise MalformedChunkError("Chunk payload is empty")
    return data
