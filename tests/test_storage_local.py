import io
import os

import pytest

from reelup.platform.adapters.storage_local import LocalFilesystemStorage
from reelup.platform.ports.object_storage import ObjectStoragePort, ObjectNotFoundError


@pytest.fixture
def local(tmp_path):
    return LocalFilesystemStorage(str(tmp_path / "root"), public_base_url="http://media.test/")


def test_local_storage_satisfies_port(local):
    assert isinstance(local, ObjectStoragePort)


def test_put_bytes_returns_public_url_and_round_trips(local):
    url = local.put_bytes("temp/abc/chunk_0", b"hello", "application/octet-stream")
    assert url == "http://media.test/temp/abc/chunk_0"
    assert local.get_bytes("temp/abc/chunk_0") == b"hello"
    assert local.exists("temp/abc/chunk_0")


def test_put_bytes_overwrites_existing_object(local):
    local.put_bytes("temp/abc/chunk_1", b"first", "application/octet-stream")
    local.put_bytes("temp/abc/chunk_1", b"second", "application/octet-stream")
    assert local.get_bytes("temp/abc/chunk_1") == b"second"


def test_put_file_streams_into_place_without_leftovers(local):
    local.put_file("projects/p/videos/x.mp4", io.BytesIO(b"a" * 10_000), "video/mp4")
    assert local.get_bytes("projects/p/videos/x.mp4") == b"a" * 10_000
    leftovers = [n for n in os.listdir(os.path.join(local.root, "projects/p/videos")) if n.startswith(".part-")]
    assert leftovers == []


def test_missing_object_raises_not_found(local):
    with pytest.raises(ObjectNotFoundError) as exc:
        local.get_bytes("temp/nope/chunk_0")
    assert exc.value.key == "temp/nope/chunk_0"
    assert not local.exists("temp/nope/chunk_0")


def test_delete_is_quiet_for_missing_objects(local):
    local.put_bytes("temp/abc/chunk_2", b"x", "application/octet-stream")
    local.delete("temp/abc/chunk_2")
    local.delete("temp/abc/chunk_2")
    assert not local.exists("temp/abc/chunk_2")


def test_keys_cannot_escape_the_root(local):
    local.put_bytes("../../escape.bin", b"x", "application/octet-stream")
    assert os.path.isfile(os.path.join(local.root, "escape.bin"))


def test_file_urls_without_public_base(tmp_path):
    store = LocalFilesystemStorage(str(tmp_path / "plain"), public_base_url="")
    url = store.put_bytes("a/b.bin", b"x", "application/octet-stream")
    assert url.startswith("file://")
    assert store.presign_download("a/b.bin") == url
